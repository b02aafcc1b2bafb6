"""
Custom exceptions for the catalog data layer.

These exceptions represent repository-level errors and are independent
of the underlying store (SQLAlchemy, database driver, etc.).
"""

from typing import Optional


class CatalogDataException(Exception):
    """Base exception for all catalog data errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class InvalidArgumentException(CatalogDataException, ValueError):
    """Raised when a write operation receives a missing entity or collection."""

    def __init__(self, argument: str, operation: Optional[str] = None):
        message = f"Argument '{argument}' must not be None"
        if operation:
            message = f"{operation}: argument '{argument}' must not be None"
        super().__init__(
            message=message, details={"argument": argument, "operation": operation}
        )


class PersistenceConflictException(CatalogDataException):
    """
    Raised (and absorbed) when the store rejects a flush.

    Covers constraint violations and concurrency mismatches. Callers never
    see it raised; the repository exposes it through ``last_exception``.
    """

    def __init__(self, entity: str, cause: BaseException):
        message = f"Persistence conflict while committing {entity}: {cause}"
        super().__init__(
            message=message,
            details={"entity": entity, "cause": type(cause).__name__},
        )
        self.cause = cause


class RecoveryFailureException(CatalogDataException):
    """Raised (and absorbed) when the follow-up flush of a recovery fails."""

    def __init__(self, entity: str, cause: BaseException):
        message = f"Recovery commit failed for {entity}: {cause}"
        super().__init__(
            message=message,
            details={"entity": entity, "cause": type(cause).__name__},
        )
        self.cause = cause
