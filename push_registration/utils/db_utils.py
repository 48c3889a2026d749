"""Database utility functions."""
import asyncio
import logging
from contextlib import asynccontextmanager

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from ..errors import StorageUnavailable

logger = logging.getLogger(__name__)

TRANSIENT_MESSAGES = (
    "connection refused",
    "connection reset",
    "connection closed",
    "server closed",
    "timeout",
    "too many clients",
    "database is locked",
)


def is_transient_error(exc: BaseException) -> bool:
    """Whether a driver error looks like a connection or timeout condition."""
    if isinstance(exc, (PoolTimeoutError, asyncio.TimeoutError)):
        return True
    error_str = str(exc).lower()
    return any(msg in error_str for msg in TRANSIENT_MESSAGES)


@asynccontextmanager
async def storage_errors(operation: str):
    """Translate driver failures into StorageUnavailable.

    Nothing is retried here; callers decide whether to try again.

    Args:
        operation: Name of the store operation, used in the error message
    """
    try:
        yield
    except (OperationalError, InterfaceError, PoolTimeoutError, asyncio.TimeoutError) as e:
        transient = is_transient_error(e)
        logger.warning(f"Storage failure during {operation} (transient={transient}): {e}")
        raise StorageUnavailable(f"{operation} failed: {e}", transient=transient) from e
