"""
Ledger Error Taxonomy

Every failure the ledger core can report has its own exception class and a
stable ErrorKind string. The UI layer switches on `kind` and uses `fields`
and `issues` to point at the exact inputs that were wrong.

DESIGN DECISION: Existence and ownership failures are separate types.
"Entry not found" and "entry belongs to another party" are never collapsed
into one generic 404.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class ErrorKind(str, Enum):
    """Stable identifiers for every failure the core reports."""
    INVALID_FIELD = "invalid_field"
    DUPLICATE_CONTACT = "duplicate_contact"
    NOT_FOUND = "not_found"
    PARTY_NOT_FOUND = "party_not_found"
    ENTRY_NOT_FOUND = "entry_not_found"
    ENTRY_NOT_OWNED = "entry_not_owned"
    INVALID_KIND = "invalid_kind"
    INVALID_AMOUNT = "invalid_amount"
    INVALID_DESCRIPTION = "invalid_description"
    TIMEOUT = "timeout"
    STORE_UNAVAILABLE = "store_unavailable"


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    kind: ErrorKind = Field(
        ...,
        description="Error kind this issue maps to"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    received: Optional[str] = Field(
        default=None,
        description="The offending input, rendered as text"
    )


class LedgerError(Exception):
    """Base exception for every ledger failure."""

    kind: ErrorKind = ErrorKind.NOT_FOUND

    def __init__(
        self,
        message: str,
        fields: Optional[list[str]] = None,
        issues: Optional[list[ValidationIssue]] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.issues = list(issues or [])
        self.fields = list(fields or [issue.field for issue in self.issues])
        self.details = dict(details or {})

    def to_dict(self) -> dict:
        """Structured form for the UI/API layer."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "fields": self.fields,
            "issues": [issue.model_dump(mode="json") for issue in self.issues],
            "details": self.details,
        }


# =============================================================================
# VALIDATION - raised before any store access
# =============================================================================

class ValidationFailedError(LedgerError):
    """Input failed validation."""
    kind = ErrorKind.INVALID_FIELD


class InvalidFieldError(ValidationFailedError):
    """Malformed or missing party field."""
    kind = ErrorKind.INVALID_FIELD


class InvalidKindError(ValidationFailedError):
    """Entry kind is not credit or debit."""
    kind = ErrorKind.INVALID_KIND


class InvalidAmountError(ValidationFailedError):
    """Amount is not a finite number greater than zero."""
    kind = ErrorKind.INVALID_AMOUNT


class InvalidDescriptionError(ValidationFailedError):
    """Description is empty or too long."""
    kind = ErrorKind.INVALID_DESCRIPTION


# =============================================================================
# EXISTENCE / OWNERSHIP - raised after a store read
# =============================================================================

class DuplicateContactError(LedgerError):
    """Another party already uses this contact number."""
    kind = ErrorKind.DUPLICATE_CONTACT


class NotFoundError(LedgerError):
    """Party not found (party CRUD operations)."""
    kind = ErrorKind.NOT_FOUND


class PartyNotFoundError(NotFoundError):
    """Party referenced by an entry operation does not exist."""
    kind = ErrorKind.PARTY_NOT_FOUND


class EntryNotFoundError(NotFoundError):
    """Entry does not exist at all."""
    kind = ErrorKind.ENTRY_NOT_FOUND


class EntryNotOwnedError(LedgerError):
    """Entry exists but belongs to a different party."""
    kind = ErrorKind.ENTRY_NOT_OWNED


# =============================================================================
# STORAGE - surfaced immediately, never retried by the core
# =============================================================================

class StorageError(LedgerError):
    """Base exception for storage operations."""
    kind = ErrorKind.STORE_UNAVAILABLE


class StoreUnavailableError(StorageError):
    """Transient failure talking to the storage backend."""
    kind = ErrorKind.STORE_UNAVAILABLE


class StoreTimeoutError(StorageError):
    """Operation did not finish before the caller's deadline."""
    kind = ErrorKind.TIMEOUT
