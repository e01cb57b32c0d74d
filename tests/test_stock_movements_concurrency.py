import threading

import pytest

from app.stockroom.core.context import RequestContext, build_request_context
from app.stockroom.core.error_catalog import AppError, ErrorCatalog
from app.stockroom.db.models import Product, StockMovement
from app.stockroom.repos.stock_movements import StockMovementRepository
from app.stockroom.services.stock_movements import MovementCommand, StockMovementService
from tests.stock_helpers import create_product, current_stock, movement_count


def _context(actor_id: str = "worker") -> RequestContext:
    return build_request_context(actor_id=actor_id, ip_address="127.0.0.1", user_agent="pytest", trace_id="trace")


def _out(product_id: int, quantity: int) -> MovementCommand:
    return MovementCommand(product_id=product_id, type="out", quantity=quantity, new_stock=None, notes=None)


def _require_lock_free_reads() -> None:
    from app.stockroom.db.session import engine

    # the interfering writer runs on the same thread, so a held row lock would block it
    if engine.dialect.name != "sqlite":
        pytest.skip("needs a backend where the read does not hold a row lock")


def test_concurrent_out_movements_serialize(client, db_session):
    from app.stockroom.db.session import SessionLocal

    product = create_product(client, stock=5)
    product_id = product["id"]
    barrier = threading.Barrier(2)
    outcomes: list[str] = []
    lock = threading.Lock()

    def worker(name: str) -> None:
        db = SessionLocal()
        try:
            barrier.wait()
            StockMovementService(db).apply(_out(product_id, 3), _context(name))
            result = "ok"
        except AppError as exc:
            result = exc.error.code
        finally:
            db.close()
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker, args=(f"worker-{i}",)) for i in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(outcomes) == ["INSUFFICIENT_STOCK", "ok"]
    assert current_stock(db_session, product_id) == 2
    assert movement_count(db_session, product_id, "out") == 1


def test_stale_read_is_retried_against_fresh_stock(client, db_session, monkeypatch):
    from app.stockroom.db.session import SessionLocal

    _require_lock_free_reads()

    product = create_product(client, stock=10)
    product_id = product["id"]
    original = StockMovementRepository.find_product_for_update
    calls = {"count": 0}

    def find_then_interfere(self, requested_id):
        snapshot = original(self, requested_id)
        calls["count"] += 1
        if calls["count"] == 1:
            other = SessionLocal()
            try:
                other.query(Product).filter(Product.id == requested_id).update({"stock": 4})
                other.commit()
            finally:
                other.close()
        return snapshot

    monkeypatch.setattr(StockMovementRepository, "find_product_for_update", find_then_interfere)

    db = SessionLocal()
    try:
        result = StockMovementService(db).apply(_out(product_id, 3), _context())
    finally:
        db.close()

    assert calls["count"] == 2
    assert result.attempts == 2
    assert result.movement.previous_stock == 4
    assert result.movement.resulting_stock == 1
    assert current_stock(db_session, product_id) == 1


def test_stale_read_rechecks_sufficiency(client, db_session, monkeypatch):
    from app.stockroom.db.session import SessionLocal

    _require_lock_free_reads()

    product = create_product(client, stock=10)
    product_id = product["id"]
    before = movement_count(db_session, product_id)
    original = StockMovementRepository.find_product_for_update
    calls = {"count": 0}

    def find_then_drain(self, requested_id):
        snapshot = original(self, requested_id)
        calls["count"] += 1
        if calls["count"] == 1:
            other = SessionLocal()
            try:
                other.query(Product).filter(Product.id == requested_id).update({"stock": 1})
                other.commit()
            finally:
                other.close()
        return snapshot

    monkeypatch.setattr(StockMovementRepository, "find_product_for_update", find_then_drain)

    db = SessionLocal()
    try:
        with pytest.raises(AppError) as exc_info:
            StockMovementService(db).apply(_out(product_id, 3), _context())
    finally:
        db.close()

    assert exc_info.value.error is ErrorCatalog.INSUFFICIENT_STOCK
    assert current_stock(db_session, product_id) == 1
    assert movement_count(db_session, product_id) == before


def test_exhausted_retries_surface_stock_conflict(client, db_session, monkeypatch):
    product = create_product(client, stock=10)
    before = db_session.query(StockMovement).count()
    monkeypatch.setattr(StockMovementRepository, "compare_and_set_stock", lambda self, **kwargs: False)

    response = client.post(
        "/stock-movements",
        json={"product_id": product["id"], "type": "out", "quantity": 1},
    )

    assert response.status_code == 409
    payload = response.json()
    assert payload["code"] == "STOCK_CONFLICT"
    assert payload["details"]["attempts"] >= 1
    assert current_stock(db_session, product["id"]) == 10
    assert db_session.query(StockMovement).count() == before


def test_failure_after_stock_write_rolls_back_both_writes(client, db_session, monkeypatch):
    product = create_product(client, stock=10)
    before = movement_count(db_session, product["id"])

    def broken_append(self, draft):
        raise RuntimeError("disk full")

    monkeypatch.setattr(StockMovementRepository, "append_movement", broken_append)

    with pytest.raises(RuntimeError):
        client.post(
            "/stock-movements",
            json={"product_id": product["id"], "type": "in", "quantity": 5},
        )

    assert current_stock(db_session, product["id"]) == 10
    assert movement_count(db_session, product["id"]) == before
