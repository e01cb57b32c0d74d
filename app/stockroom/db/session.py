import time

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from app.stockroom.core.config import settings
from app.stockroom.core.timing import query_timer

# seconds a sqlite writer waits for a competing transaction to finish
SQLITE_BUSY_TIMEOUT = 15


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _start_query_clock(conn, cursor, statement, parameters, context, executemany) -> None:
    if query_timer.active:
        conn.info["query_started_at"] = time.perf_counter()


def _stop_query_clock(conn, cursor, statement, parameters, context, executemany) -> None:
    started_at = conn.info.pop("query_started_at", None)
    if started_at is not None:
        query_timer.add((time.perf_counter() - started_at) * 1000)


def build_engine(database_url: str) -> Engine:
    is_sqlite = database_url.startswith("sqlite")
    connect_args = {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT} if is_sqlite else {}
    built = create_engine(database_url, echo=False, future=True, connect_args=connect_args)
    if is_sqlite:
        event.listen(built, "connect", _enable_sqlite_foreign_keys)
    event.listen(built, "before_cursor_execute", _start_query_clock)
    event.listen(built, "after_cursor_execute", _stop_query_clock)
    return built


engine = build_engine(settings.DATABASE_URL)

# rows stay readable after commit; callers that need fresh values re-select
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
