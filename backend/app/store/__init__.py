"""Remote document store adapter."""

from .base import (
    SERVER_TIMESTAMP,
    ChangeEvent,
    ChangeOp,
    FieldFilter,
    FilterOp,
    QueryDescriptor,
    RemoteStore,
    SortKey,
    eq,
    is_in,
)
from .exceptions import (
    DocumentDecodeError,
    StoreConflictError,
    StoreError,
    StoreErrorCode,
    StoreNotFoundError,
    StorePermissionError,
    StoreUnavailableError,
    is_transient,
)

__all__ = [
    "SERVER_TIMESTAMP",
    "ChangeEvent",
    "ChangeOp",
    "FieldFilter",
    "FilterOp",
    "QueryDescriptor",
    "RemoteStore",
    "SortKey",
    "eq",
    "is_in",
    "DocumentDecodeError",
    "StoreConflictError",
    "StoreError",
    "StoreErrorCode",
    "StoreNotFoundError",
    "StorePermissionError",
    "StoreUnavailableError",
    "is_transient",
]
