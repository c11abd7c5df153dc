"""Exception hierarchy for column store operations.

Every failure that leaves a component carries the operation name and the
target table so callers can decide whether to retry without parsing messages.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

logger = logging.getLogger(__name__)


class ColumnStoreError(Exception):
    """Base exception for all column store client errors."""

    def __init__(
        self,
        message: str,
        original_error: Optional[BaseException] = None,
        operation: Optional[str] = None,
        table: Optional[str] = None,
    ):
        """
        Initialize store error.

        Args:
            message: Human-readable error message
            original_error: Underlying exception that caused this error
            operation: Name of the client operation that failed
            table: Target table of the failed operation
        """
        super().__init__(message)
        self.message = message
        self.original_error = original_error
        self.operation = operation
        self.table = table

    def __str__(self) -> str:
        """Return formatted error message with context."""
        context = []
        if self.operation:
            context.append(f"operation={self.operation}")
        if self.table:
            context.append(f"table={self.table}")

        text = self.message
        if context:
            text = f"{text} [{', '.join(context)}]"
        if self.original_error is not None:
            text = (
                f"{text} (caused by {type(self.original_error).__name__}: "
                f"{self.original_error})"
            )
        return text

    def __repr__(self) -> str:
        """Return detailed error representation."""
        return (
            f"{self.__class__.__name__}(message={self.message!r}, "
            f"operation={self.operation!r}, table={self.table!r}, "
            f"original_error={self.original_error!r})"
        )


class StoreConnectionError(ColumnStoreError, ConnectionError):
    """Raised when a connection or handle cannot be acquired from the store."""


class SchemaConflict(ColumnStoreError):
    """Raised when a schema object already exists or a change is illegal."""


class AlreadyExists(SchemaConflict):
    """Raised when creating a table, family or index that is already present."""


class TableOnlineError(SchemaConflict):
    """Raised when a schema modification is attempted on an enabled table."""


class NotFound(ColumnStoreError):
    """Raised when a table, family or index is absent but presence is required."""


class IndexNotFound(NotFound):
    """Raised when a named index is not registered on an existing table."""


class StoreError(ColumnStoreError):
    """Raised for any other failure surfaced by the underlying store."""


class TableOfflineError(StoreError):
    """Raised when a data operation targets a disabled table."""


class IndexCreationIncomplete(StoreError):
    """
    Raised when index registration succeeded but recording it in the table
    metadata failed.

    The index coordinator knows about the index while the table schema does
    not, so callers must verify or clean up before relying on the index.
    """

    def __init__(
        self,
        message: str,
        index_name: str,
        registered: bool = True,
        original_error: Optional[BaseException] = None,
        operation: Optional[str] = None,
        table: Optional[str] = None,
    ):
        super().__init__(message, original_error, operation, table)
        self.index_name = index_name
        self.registered = registered


@contextmanager
def store_operation(operation: str, table: Optional[str] = None) -> Iterator[None]:
    """
    Attach operation context to errors raised inside the block.

    Typed client errors keep their type and gain any missing context. Any
    other exception is wrapped in StoreError and chained to the original.
    Cancellation and interpreter exits are never wrapped.

    Args:
        operation: Client operation name (e.g. "create_table")
        table: Target table name, if any

    Raises:
        ColumnStoreError: For every failure inside the block
    """
    try:
        yield
    except ColumnStoreError as e:
        if e.operation is None:
            e.operation = operation
        if e.table is None:
            e.table = table
        logger.warning("%s failed: %s", operation, e)
        raise
    except ConnectionError as e:
        logger.warning("%s lost the store connection: %s", operation, e)
        raise StoreConnectionError(
            "Lost connection to store", e, operation, table
        ) from e
    except TimeoutError as e:
        logger.warning("%s timed out", operation)
        raise StoreError("Store call timed out", e, operation, table) from e
    except Exception as e:
        logger.warning("%s failed: %s: %s", operation, type(e).__name__, e)
        raise StoreError(f"{operation} failed", e, operation, table) from e
