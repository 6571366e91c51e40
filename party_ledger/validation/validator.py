"""
Input Validation

DESIGN DECISION: Validation runs before any store access and collects
every problem instead of stopping at the first one. The UI can then mark
all bad fields in one pass.

The raised exception type is still deterministic: it is the type of the
first rule that failed, checked in a fixed order (kind, amount,
description for entries; name, number, address for parties). Every issue
found rides along on `error.issues`.

IMPORTANT: Validation NEVER silently fixes input beyond trimming
surrounding whitespace. "Credit" is not "credit".
"""

from collections.abc import Mapping
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict

from party_ledger.errors import (
    ErrorKind,
    InvalidAmountError,
    InvalidDescriptionError,
    InvalidFieldError,
    InvalidKindError,
    LedgerError,
    ValidationFailedError,
    ValidationIssue,
)
from party_ledger.models.amount import Amount
from party_ledger.models.entry import MAX_DESCRIPTION_LENGTH, EntryKind
from party_ledger.models.party import (
    MAX_PARTY_NAME_LENGTH,
    PARTY_PATCH_FIELDS,
    PartyPatch,
)


_ERROR_TYPES: dict[ErrorKind, type[ValidationFailedError]] = {
    ErrorKind.INVALID_KIND: InvalidKindError,
    ErrorKind.INVALID_AMOUNT: InvalidAmountError,
    ErrorKind.INVALID_DESCRIPTION: InvalidDescriptionError,
    ErrorKind.INVALID_FIELD: InvalidFieldError,
}

_VALID_KINDS = {kind.value: kind for kind in EntryKind}


class EntryInput(BaseModel):
    """Entry fields that passed validation, normalized."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: EntryKind
    amount: Amount
    description: str


def raise_for_issues(issues: list[ValidationIssue]) -> None:
    """Raise the first issue's error type carrying every issue."""
    if not issues:
        return
    first = issues[0]
    error_type = _ERROR_TYPES.get(first.kind, ValidationFailedError)
    message = first.message
    if len(issues) > 1:
        message = f"{message} (and {len(issues) - 1} more issue(s))"
    raise error_type(message, issues=issues)


def _render(value: Any) -> Optional[str]:
    return None if value is None else repr(value)


def _issue(field: str, kind: ErrorKind, message: str, value: Any) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        kind=kind,
        message=message,
        received=_render(value),
    )


class LedgerValidator:
    """
    Validates party fields and entry fields.

    `check_*` methods return the issues found; `validate_*` methods return
    normalized values or raise.
    """

    # -------------------------------------------------------------------------
    # Entries
    # -------------------------------------------------------------------------

    def _check_kind(self, kind: Any) -> tuple[Optional[EntryKind], list[ValidationIssue]]:
        if isinstance(kind, EntryKind):
            return kind, []
        if isinstance(kind, str) and kind in _VALID_KINDS:
            return _VALID_KINDS[kind], []
        return None, [_issue(
            "kind",
            ErrorKind.INVALID_KIND,
            "Type must be 'credit' or 'debit'",
            kind,
        )]

    def _check_amount(self, amount: Any) -> tuple[Optional[Amount], list[ValidationIssue]]:
        try:
            return Amount.of(amount), []
        except InvalidAmountError as e:
            issues = e.issues or [_issue("amount", ErrorKind.INVALID_AMOUNT, e.message, amount)]
            return None, issues

    def _check_description(self, description: Any) -> tuple[Optional[str], list[ValidationIssue]]:
        if not isinstance(description, str):
            return None, [_issue(
                "description",
                ErrorKind.INVALID_DESCRIPTION,
                "Description is required",
                description,
            )]

        text = description.strip()
        if not text:
            return None, [_issue(
                "description",
                ErrorKind.INVALID_DESCRIPTION,
                "Description cannot be empty",
                description,
            )]
        if len(text) > MAX_DESCRIPTION_LENGTH:
            return None, [_issue(
                "description",
                ErrorKind.INVALID_DESCRIPTION,
                f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters",
                f"<{len(text)} characters>",
            )]
        return text, []

    def check_entry(
        self,
        kind: Any,
        amount: Any,
        description: Any,
    ) -> tuple[Optional[EntryInput], list[ValidationIssue]]:
        """
        Check all three entry fields.

        Returns: (normalized_input or None, list_of_issues)
        """
        parsed_kind, kind_issues = self._check_kind(kind)
        parsed_amount, amount_issues = self._check_amount(amount)
        parsed_description, description_issues = self._check_description(description)

        issues = kind_issues + amount_issues + description_issues
        if issues:
            return None, issues

        return EntryInput(
            kind=parsed_kind,
            amount=parsed_amount,
            description=parsed_description,
        ), []

    def validate_entry(self, kind: Any, amount: Any, description: Any) -> EntryInput:
        """
        Validate entry fields for add and update alike.

        Raises:
            InvalidKindError, InvalidAmountError, InvalidDescriptionError:
                Whichever rule failed first, with every issue attached
        """
        entry_input, issues = self.check_entry(kind, amount, description)
        raise_for_issues(issues)
        return entry_input

    # -------------------------------------------------------------------------
    # Parties
    # -------------------------------------------------------------------------

    def _check_party_field(self, field: str, value: Any) -> tuple[Optional[str], list[ValidationIssue]]:
        label = field.capitalize()
        if not isinstance(value, str):
            return None, [_issue(field, ErrorKind.INVALID_FIELD, f"{label} is required", value)]

        text = value.strip()
        if not text:
            return None, [_issue(field, ErrorKind.INVALID_FIELD, f"{label} cannot be empty", value)]
        if field == "name" and len(text) > MAX_PARTY_NAME_LENGTH:
            return None, [_issue(
                field,
                ErrorKind.INVALID_FIELD,
                f"Name must be at most {MAX_PARTY_NAME_LENGTH} characters",
                value,
            )]
        return text, []

    def check_party_fields(
        self,
        fields: Mapping[str, Any],
    ) -> tuple[dict[str, str], list[ValidationIssue]]:
        """
        Check the given party fields in name, number, address order.

        Unknown keys are reported as issues of their own.
        """
        cleaned: dict[str, str] = {}
        issues: list[ValidationIssue] = []

        for field in PARTY_PATCH_FIELDS:
            if field not in fields:
                continue
            value, field_issues = self._check_party_field(field, fields[field])
            if field_issues:
                issues.extend(field_issues)
            else:
                cleaned[field] = value

        for field in fields:
            if field not in PARTY_PATCH_FIELDS:
                issues.append(_issue(
                    str(field),
                    ErrorKind.INVALID_FIELD,
                    f"Unknown party field: {field}",
                    fields[field],
                ))

        return cleaned, issues

    def validate_new_party(self, name: Any, number: Any, address: Any) -> dict[str, str]:
        """
        Validate the fields of a party about to be created.

        Raises:
            InvalidFieldError: Listing every bad field
        """
        cleaned, issues = self.check_party_fields(
            {"name": name, "number": number, "address": address}
        )
        raise_for_issues(issues)
        return cleaned

    def validate_party_patch(
        self,
        patch: Union[PartyPatch, Mapping[str, Any]],
    ) -> dict[str, str]:
        """
        Validate a partial party update.

        Returns the cleaned changes. An empty patch yields an empty dict.

        Raises:
            InvalidFieldError: For bad values or fields outside name/number/address
        """
        if isinstance(patch, PartyPatch):
            fields = patch.changes()
        elif isinstance(patch, Mapping):
            fields = dict(patch)
        else:
            raise InvalidFieldError(
                "Party update must be a mapping of field names to values",
                issues=[_issue("patch", ErrorKind.INVALID_FIELD, "Not a mapping", patch)],
            )

        cleaned, issues = self.check_party_fields(fields)
        raise_for_issues(issues)
        return cleaned

    def get_user_friendly_summary(self, error: LedgerError) -> str:
        """
        Summarize a ledger error for non-technical users.
        """
        if not error.issues:
            return f"❌ {error.message}"

        lines = ["❌ Please fix the following:"]
        for issue in error.issues:
            lines.append(f"  • {issue.message}")
        return "\n".join(lines)
