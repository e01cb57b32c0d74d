from __future__ import annotations

from contextvars import ContextVar, Token


class QueryTimer:
    """Accumulates database cursor time for the request being served.

    The context variable holds a mutable cell so time added from the
    threadpool or a child task is visible to the middleware that started it.
    """

    def __init__(self) -> None:
        self._cell: ContextVar[list[float] | None] = ContextVar("query_elapsed_ms", default=None)

    def start(self) -> Token:
        return self._cell.set([0.0])

    def stop(self, token: Token) -> None:
        self._cell.reset(token)

    @property
    def active(self) -> bool:
        return self._cell.get() is not None

    def add(self, delta_ms: float) -> None:
        cell = self._cell.get()
        if cell is None:
            return
        cell[0] += delta_ms

    def elapsed_ms(self) -> float | None:
        cell = self._cell.get()
        return cell[0] if cell is not None else None


query_timer = QueryTimer()
