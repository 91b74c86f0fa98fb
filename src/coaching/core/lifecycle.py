"""Screen-scoped fetches (F3).

A FetchScope owns the requests a screen starts while it is shown.
Leaving the scope cancels whatever is still in flight, so a response
that arrives after navigation never lands on a screen that is gone.

    async with FetchScope("parent-dashboard") as scope:
        child_task = scope.spawn(client.get_child_profile(parent_id))
        ...
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class ScopeClosedError(RuntimeError):
    """Raised when spawning into a scope that was already torn down."""


class FetchScope:
    """Set of in-flight tasks tied to one screen."""

    def __init__(self, name: str = "screen"):
        self.name = name
        self.closed = False
        self._tasks: set[asyncio.Task[Any]] = set()

    async def __aenter__(self) -> FetchScope:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def spawn(self, coro: Coroutine[Any, Any, T]) -> asyncio.Task[T]:
        if self.closed:
            coro.close()
            raise ScopeClosedError(f"Scope '{self.name}' is closed")
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return sum(1 for t in self._tasks if not t.done())

    async def close(self) -> None:
        """Cancel pending tasks and wait for them to finish unwinding."""
        if self.closed:
            return
        self.closed = True

        pending = [t for t in self._tasks if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.debug("fetch_scope_cancelled", scope=self.name, cancelled=len(pending))
        self._tasks.clear()
