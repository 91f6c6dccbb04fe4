"""Errors raised at the remote document store boundary."""

from __future__ import annotations

from enum import Enum


class StoreErrorCode(str, Enum):
    NOT_FOUND = "not-found"
    ALREADY_EXISTS = "already-exists"
    UNAVAILABLE = "unavailable"
    PERMISSION_DENIED = "permission-denied"
    DECODE = "decode"
    UNKNOWN = "unknown"


class StoreError(Exception):
    """Base exception for store failures. ``code`` classifies the failure."""

    code: StoreErrorCode = StoreErrorCode.UNKNOWN

    def __init__(self, message: str, code: StoreErrorCode | None = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class StoreNotFoundError(StoreError):
    """Raised when a write targets a document that does not exist."""

    code = StoreErrorCode.NOT_FOUND


class StoreConflictError(StoreError):
    """Raised when a write violates a uniqueness constraint."""

    code = StoreErrorCode.ALREADY_EXISTS


class StoreUnavailableError(StoreError):
    """Raised for transient connectivity problems (offline, timeouts)."""

    code = StoreErrorCode.UNAVAILABLE


class StorePermissionError(StoreError):
    """Raised when the store refuses the operation for the current credentials."""

    code = StoreErrorCode.PERMISSION_DENIED


class DocumentDecodeError(StoreError):
    """
    Raised when a stored document does not match its schema.

    Treated like a missing document by callers that can tolerate absence.
    """

    code = StoreErrorCode.DECODE

    def __init__(self, message: str, collection: str, doc_id: str | None = None):
        super().__init__(message)
        self.collection = collection
        self.doc_id = doc_id


def is_transient(exc: BaseException) -> bool:
    """True for errors where the store was unreachable rather than refusing."""
    return isinstance(exc, StoreError) and exc.code == StoreErrorCode.UNAVAILABLE
