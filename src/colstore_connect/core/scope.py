"""Scoped acquisition and release of store handles."""

import logging
from typing import Awaitable, Callable, Generic, Optional, Protocol, TypeVar

from colstore_connect.exceptions import ColumnStoreError, StoreConnectionError

logger = logging.getLogger(__name__)


class Handle(Protocol):
    """Anything obtained from the store that must be closed."""

    async def close(self) -> None: ...


H = TypeVar("H", bound=Handle)
R = TypeVar("R")


class ResourceScope(Generic[H]):
    """
    Async context manager owning one store handle.

    The handle is closed exactly once when the block exits, whether it
    returns, raises or is cancelled. Nested scopes therefore release in
    reverse acquisition order. A failure while closing is logged and kept
    in ``release_error``; it never replaces the block's own outcome.

    Example:
        async with ResourceScope(connection.adapter.open_admin, "admin") as admin:
            exists = await admin.table_exists("t1")
    """

    def __init__(
        self,
        acquire: Callable[[], Awaitable[H]],
        kind: str = "handle",
        target: Optional[str] = None,
    ):
        """
        Initialize the scope.

        Args:
            acquire: Coroutine function returning the handle
            kind: Handle kind used in logs and errors (admin, table, scanner, ...)
            target: Table or other object the handle is bound to
        """
        self._acquire = acquire
        self.kind = kind
        self.target = target
        self.handle: Optional[H] = None
        self.release_error: Optional[BaseException] = None
        self._released = False

    @property
    def released(self) -> bool:
        """Whether the handle has been released."""
        return self._released

    async def __aenter__(self) -> H:
        if self.handle is not None or self._released:
            raise RuntimeError(f"{self.kind} scope cannot be entered twice")

        try:
            self.handle = await self._acquire()
        except ColumnStoreError as e:
            if e.operation is None:
                e.operation = f"open_{self.kind}"
            if e.table is None:
                e.table = self.target
            raise
        except Exception as e:
            raise StoreConnectionError(
                f"Failed to acquire {self.kind} handle",
                e,
                operation=f"open_{self.kind}",
                table=self.target,
            ) from e

        logger.debug("Acquired %s handle (target=%s)", self.kind, self.target)
        return self.handle

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        await self.release()
        return False

    async def release(self) -> None:
        """Close the handle if it is still held."""
        if self.handle is None or self._released:
            return

        self._released = True
        try:
            await self.handle.close()
        except Exception as e:
            self.release_error = e
            logger.error(
                "Failed to close %s handle (target=%s)",
                self.kind,
                self.target,
                exc_info=e,
            )
        else:
            logger.debug("Released %s handle (target=%s)", self.kind, self.target)


async def with_handle(
    acquire: Callable[[], Awaitable[H]],
    body: Callable[[H], Awaitable[R]],
    kind: str = "handle",
    target: Optional[str] = None,
) -> R:
    """
    Run ``body`` with a freshly acquired handle and release it afterwards.

    Args:
        acquire: Coroutine function returning the handle
        body: Coroutine function receiving the handle
        kind: Handle kind used in logs and errors
        target: Table or other object the handle is bound to

    Returns:
        Whatever ``body`` returns

    Raises:
        StoreConnectionError: If the handle cannot be acquired
    """
    async with ResourceScope(acquire, kind, target) as handle:
        return await body(handle)
