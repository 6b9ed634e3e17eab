"""Screen scope: ownership of the asynchronous work a screen starts.

A screen opens one :class:`ScreenScope` when it mounts and closes it when it
unmounts.  Every load or save the screen starts runs through the scope:

* :meth:`ScreenScope.run` awaits one operation under the scope's timeout.
* :meth:`ScreenScope.spawn` starts an operation in the background.

Leaving the scope cancels whatever is still running, so a late response can
never be applied to a screen that is gone.  While the scope is open the
:data:`~listingsync.core.logging_config.SCOPE_ID_CTX` context variable holds
a short scope id, which every log record emitted by the screen's tasks
carries as ``scope_id``.

Typical usage::

    async with ScreenScope("listings", timeout_s=60) as scope:
        snapshot = await scope.run(catalog.load())
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Coroutine
from contextvars import Token
from types import TracebackType
from typing import Any, TypeVar

from listingsync.core import events
from listingsync.core.exceptions import OperationTimeoutError
from listingsync.core.logging_config import SCOPE_ID_CTX

__all__ = ["ScreenScope", "DEFAULT_TIMEOUT_S"]

logger = logging.getLogger(__name__)

T = TypeVar("T")

#: Default per-operation timeout, in seconds.
DEFAULT_TIMEOUT_S: float = 60.0

_SCOPE_TIMEOUT: Any = object()


class ScreenScope:
    """Async context manager owning every task one screen starts.

    Args:
        name: Screen name, used in log messages.
        timeout_s: Per-operation timeout for :meth:`run` and :meth:`spawn`;
            ``None`` disables it.
    """

    def __init__(self, name: str, *, timeout_s: float | None = DEFAULT_TIMEOUT_S) -> None:
        self._name = name
        self._timeout_s = timeout_s
        self._scope_id = "-"
        self._token: Token[str] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._closed = False

    @property
    def scope_id(self) -> str:
        return self._scope_id

    @property
    def timeout_s(self) -> float | None:
        return self._timeout_s

    @property
    def active(self) -> bool:
        return self._token is not None and not self._closed

    @property
    def pending(self) -> int:
        """Number of spawned tasks that have not finished yet."""
        return sum(1 for task in self._tasks if not task.done())

    async def __aenter__(self) -> ScreenScope:
        self._scope_id = uuid.uuid4().hex[:8]
        self._token = SCOPE_ID_CTX.set(self._scope_id)
        self._closed = False
        logger.debug("Scope %s opened for %s.", self._scope_id, self._name)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        """Cancel in-flight tasks and restore the previous scope id."""
        if self._closed:
            return
        self._closed = True
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.info(
                "Scope %s closed with %d operation(s) in flight; cancelled.",
                self._scope_id,
                len(pending),
                extra={"event": events.LISTINGS_LOAD_ABORT, "screen": self._name},
            )
        self._tasks.clear()
        if self._token is not None:
            SCOPE_ID_CTX.reset(self._token)
            self._token = None

    async def _guarded(self, coro: Coroutine[Any, Any, T], timeout_s: float | None) -> T:
        try:
            async with asyncio.timeout(timeout_s):
                return await coro
        except TimeoutError as exc:
            logger.warning(
                "%s operation timed out after %ss.",
                self._name,
                timeout_s,
                extra={"event": events.LISTINGS_LOAD_ABORT, "screen": self._name},
            )
            raise OperationTimeoutError(self._name, timeout_s) from exc

    async def run(
        self, coro: Coroutine[Any, Any, T], *, timeout_s: float | None = _SCOPE_TIMEOUT
    ) -> T:
        """Await *coro* as a task owned by this scope.

        Args:
            coro: The operation.
            timeout_s: Overrides the scope timeout for this operation;
                ``None`` disables it.

        Raises:
            RuntimeError: If the scope is not open.
            OperationTimeoutError: If the operation exceeds its timeout.
            asyncio.CancelledError: If the scope was closed meanwhile.
        """
        return await self.spawn(coro, timeout_s=timeout_s)

    def spawn(
        self, coro: Coroutine[Any, Any, T], *, timeout_s: float | None = _SCOPE_TIMEOUT
    ) -> asyncio.Task[T]:
        """Start *coro* in the background; it is cancelled when the scope closes."""
        if not self.active:
            coro.close()
            raise RuntimeError(f"Scope for {self._name} is not open")
        if timeout_s is _SCOPE_TIMEOUT:
            timeout_s = self._timeout_s
        task = asyncio.create_task(
            self._guarded(coro, timeout_s), name=f"{self._name}-{self._scope_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
