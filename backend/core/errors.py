"""
Structured error taxonomy for the ledger core.

Every error carries a machine readable ``kind``, a human message and a
``details`` dict with the ids needed to correct the request. The HTTP layer
maps ``kind`` to a status code; nothing below it knows about HTTP.
"""

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base class for all core errors"""
    kind = "LEDGER_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(LedgerError):
    """Referenced project (or other entity) does not exist or is inactive"""
    kind = "NOT_FOUND"


class InvalidReferenceError(LedgerError):
    """Actor or employee reference is missing, inactive or not assigned"""
    kind = "INVALID_REFERENCE"


class AllocationFailedError(LedgerError):
    """Sequence increment could not be committed after bounded retries"""
    kind = "ALLOCATION_FAILED"


class LedgerValidationError(LedgerError):
    """Malformed payload caught before reaching storage"""
    kind = "VALIDATION_ERROR"


class CounterResetRefusedError(LedgerError):
    """Counter reset attempted while the guarded collection still has documents"""
    kind = "RESET_REFUSED"


class ImmutableRecordError(LedgerError):
    """Attempt to delete or rewrite an append-only ledger record"""
    kind = "IMMUTABLE_RECORD"
