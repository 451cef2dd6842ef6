"""Exceptions raised by the bookstore data-access layer.

Driver exceptions are translated at the facade boundary so callers only ever
catch these types. The original pymongo exception stays on ``__cause__``.
"""
import logging
from contextlib import contextmanager
from typing import Optional

from pymongo.errors import (
    ConfigurationError,
    ConnectionFailure,
    InvalidOperation,
    OperationFailure,
)

logger = logging.getLogger(__name__)


class BookstoreError(Exception):
    """Base class for every error raised by this package."""


class DatabaseConnectionError(BookstoreError, ConnectionError):
    """The store could not be reached, or the connection was lost."""


class QueryError(BookstoreError):
    """The store rejected a filter, update, pipeline or index spec."""

    def __init__(self, message: str, code: Optional[int] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}


def _store_message(exc: Exception) -> str:
    details = getattr(exc, "details", None)
    if isinstance(details, dict) and details.get("errmsg"):
        return str(details["errmsg"])
    return str(exc)


@contextmanager
def translate_errors(operation: str):
    """Re-raise pymongo errors from the wrapped block as bookstore errors."""
    try:
        yield
    except ConnectionFailure as exc:
        logger.warning("%s: connection failure: %s", operation, exc)
        raise DatabaseConnectionError(f"{operation} failed: {exc}") from exc
    except ConfigurationError as exc:
        logger.warning("%s: configuration error: %s", operation, exc)
        raise DatabaseConnectionError(f"{operation} failed: {exc}") from exc
    except OperationFailure as exc:
        message = _store_message(exc)
        logger.warning("%s rejected by store (code=%s): %s", operation, exc.code, message)
        raise QueryError(message, code=exc.code, details=exc.details) from exc
    except (InvalidOperation, TypeError, ValueError) as exc:
        # raised client-side while marshaling a malformed document
        logger.warning("%s: invalid request: %s", operation, exc)
        raise QueryError(str(exc)) from exc


def describe(exc: BaseException) -> str:
    """Short one-line form used by the console and HTTP surfaces."""
    if isinstance(exc, QueryError) and exc.code is not None:
        return f"{exc} (code {exc.code})"
    return str(exc)
