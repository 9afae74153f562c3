"""
Structured error types for kvspine.

Every failure the storage layer or the timeout scheduler raises on purpose
is a ``KVSpineError`` subclass. Each error carries a category, a retry flag,
structured context and an optional chained cause, so callers can log the
failure with ``to_dict()`` instead of parsing messages.

Manifesto:
    - **Typed Error Hierarchy:** One error type per contract violation
    - **Synchronous and local:** Configuration and table errors are raised to
      the caller of the operation and never corrupt in-memory state
    - **Rich Context:** Errors carry the table, key or backend involved
    - **Error Chaining:** Driver exceptions are preserved as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       KVSpineError                               │
        │  (category, retryable, context, cause)                           │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ConfigError          StorageError            SchedulingError   │
        │  (CONFIG)             (STORAGE)               (SCHEDULING)      │
        │       │                    │                        │            │
        │  InvalidArgumentError NotReadyError          DuplicateTimeout-  │
        │                       UnknownTableError      Error              │
        │                       BackendConnectionError                    │
        │                       StorageWriteError                         │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> error = UnknownTableError("users")
    >>> error.table
    'users'
    >>> error.to_dict()["category"]
    'STORAGE'

    Chaining a driver failure:

    >>> try:
    ...     raise OSError("disk full")
    ... except OSError as e:
    ...     error = StorageWriteError("write failed", cause=e)
    >>> error.cause
    OSError('disk full')

Tags:
    error-handling, exception-hierarchy, kvspine, storage, scheduling

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

import builtins
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    CONFIG = "CONFIG"             # Missing options, invalid arguments
    STORAGE = "STORAGE"           # Backend lifecycle, tables, I/O
    NETWORK = "NETWORK"           # Unreachable backend medium
    SCHEDULING = "SCHEDULING"     # Timeout registration and dispatch
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        backend: Backend name (``file``, ``sql``, ``mongo``, ``firestore``)
        table: Table involved in the failing operation
        key: Record key involved in the failing operation
        metadata: Additional key-value pairs
    """

    backend: str | None = None
    table: str | None = None
    key: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for name in ("backend", "table", "key"):
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class KVSpineError(Exception):
    """
    Base exception for all kvspine errors.

    Subclasses set ``default_category`` and ``default_retryable`` so call
    sites only pass a message (and, when wrapping, a ``cause``).

    Examples:
        >>> error = KVSpineError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(table="main").context.table
        'main'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> KVSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise StorageWriteError("Failed").with_context(table="main", key="a")
        """
        for name, value in kwargs.items():
            if name != "metadata" and hasattr(self.context, name):
                setattr(self.context, name, value)
            else:
                self.context.metadata[name] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(KVSpineError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class InvalidArgumentError(ConfigError):
    """A required option or argument is missing or empty (path, extname, id)."""

    def __init__(self, argument: str, message: str | None = None, **kwargs: Any):
        self.argument = argument
        super().__init__(message or f"The '{argument}' parameter is not specified", **kwargs)


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StorageError(KVSpineError):
    """Storage-related error (file system, database, document store)."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


class NotReadyError(StorageError):
    """An operation was attempted before ``connect()`` completed."""

    def __init__(self, backend: str, **kwargs: Any):
        super().__init__(
            f"Backend '{backend}' is not connected; await connect() before using it",
            context=ErrorContext(backend=backend),
            **kwargs,
        )


class UnknownTableError(StorageError):
    """The table was not declared when the backend was constructed."""

    def __init__(self, table: str, **kwargs: Any):
        self.table = table
        super().__init__(
            f"The specified table '{table}' is not available",
            context=ErrorContext(table=table),
            **kwargs,
        )


class BackendConnectionError(StorageError, builtins.ConnectionError):
    """The backend medium could not be reached during ``connect()``."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class StorageWriteError(StorageError):
    """A write to the backend medium failed. Writes are never retried."""

    pass


# =============================================================================
# SCHEDULING ERRORS
# =============================================================================


class SchedulingError(KVSpineError):
    """Timeout registration or dispatch error."""

    default_category = ErrorCategory.SCHEDULING
    default_retryable = False


class DuplicateTimeoutError(SchedulingError):
    """A timeout descriptor with the same id is already registered."""

    def __init__(self, timeout_id: str, **kwargs: Any):
        self.timeout_id = timeout_id
        super().__init__(f"The timeout '{timeout_id}' already exists", **kwargs)


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "KVSpineError",
    "ConfigError",
    "InvalidArgumentError",
    "StorageError",
    "NotReadyError",
    "UnknownTableError",
    "BackendConnectionError",
    "StorageWriteError",
    "SchedulingError",
    "DuplicateTimeoutError",
]
