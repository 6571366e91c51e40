"""
Tests for input validation.
"""

import pytest

from party_ledger.errors import (
    ErrorKind,
    InvalidAmountError,
    InvalidDescriptionError,
    InvalidFieldError,
    InvalidKindError,
)
from party_ledger.models import EntryKind, Money, PartyPatch
from party_ledger.validation import LedgerValidator


@pytest.fixture
def validator():
    return LedgerValidator()


class TestEntryValidation:
    """Tests for kind, amount and description rules."""

    def test_valid_entry_is_normalized(self, validator):
        """Test a good entry comes back parsed and trimmed."""
        entry_input = validator.validate_entry("debit", "30.5", "  Cash payment ")
        assert entry_input.kind is EntryKind.DEBIT
        assert entry_input.amount == Money.of("30.50")
        assert entry_input.description == "Cash payment"

    def test_accepts_enum_kind(self, validator):
        """Test an EntryKind member is accepted as-is."""
        assert validator.validate_entry(EntryKind.CREDIT, 1, "x").kind is EntryKind.CREDIT

    @pytest.mark.parametrize("kind", ["refund", "Credit", "DEBIT", "", None, 1])
    def test_rejects_unknown_kind(self, validator, kind):
        """Test kind must be exactly 'credit' or 'debit'."""
        with pytest.raises(InvalidKindError) as exc:
            validator.validate_entry(kind, 10, "x")
        assert exc.value.fields == ["kind"]

    @pytest.mark.parametrize("amount", [0, -5, "abc", None, True, float("nan")])
    def test_rejects_bad_amount(self, validator, amount):
        """Test amount must be a finite number above zero."""
        with pytest.raises(InvalidAmountError):
            validator.validate_entry("credit", amount, "x")

    @pytest.mark.parametrize("description", ["", "   ", None, "d" * 201])
    def test_rejects_bad_description(self, validator, description):
        """Test description must be 1 to 200 characters after trimming."""
        with pytest.raises(InvalidDescriptionError):
            validator.validate_entry("credit", 10, description)

    def test_description_of_exactly_200_is_fine(self, validator):
        """Test the length limit is inclusive."""
        assert len(validator.validate_entry("credit", 10, "d" * 200).description) == 200

    def test_all_issues_are_reported(self, validator):
        """Test every bad field is listed and the first rule picks the type."""
        with pytest.raises(InvalidKindError) as exc:
            validator.validate_entry("refund", 0, "")
        kinds = [issue.kind for issue in exc.value.issues]
        assert kinds == [
            ErrorKind.INVALID_KIND,
            ErrorKind.INVALID_AMOUNT,
            ErrorKind.INVALID_DESCRIPTION,
        ]
        assert exc.value.fields == ["kind", "amount", "description"]

    def test_amount_error_outranks_description(self, validator):
        """Test amount is checked before description."""
        with pytest.raises(InvalidAmountError) as exc:
            validator.validate_entry("credit", -1, "")
        assert len(exc.value.issues) == 2

    def test_check_entry_does_not_raise(self, validator):
        """Test check_entry returns the issues instead of raising."""
        entry_input, issues = validator.check_entry("refund", 5, "ok")
        assert entry_input is None
        assert [issue.field for issue in issues] == ["kind"]


class TestPartyValidation:
    """Tests for party field rules."""

    def test_valid_party(self, validator):
        """Test fields are trimmed."""
        fields = validator.validate_new_party(" Ali ", " 0300-1234567 ", " Lahore ")
        assert fields == {"name": "Ali", "number": "0300-1234567", "address": "Lahore"}

    def test_every_bad_field_is_listed(self, validator):
        """Test all bad fields come back in one error."""
        with pytest.raises(InvalidFieldError) as exc:
            validator.validate_new_party("x" * 61, "", None)
        assert exc.value.fields == ["name", "number", "address"]
        assert exc.value.kind == ErrorKind.INVALID_FIELD

    def test_patch_from_mapping(self, validator):
        """Test a partial mapping validates only given fields."""
        assert validator.validate_party_patch({"address": " Multan "}) == {"address": "Multan"}

    def test_patch_from_model(self, validator):
        """Test a PartyPatch is accepted."""
        assert validator.validate_party_patch(PartyPatch(name="Zed")) == {"name": "Zed"}

    def test_patch_rejects_unknown_keys(self, validator):
        """Test keys outside name/number/address are refused."""
        with pytest.raises(InvalidFieldError) as exc:
            validator.validate_party_patch({"name": "Ok", "balance": "100"})
        assert exc.value.fields == ["balance"]

    def test_patch_rejects_empty_values(self, validator):
        """Test a patch cannot blank out a field."""
        with pytest.raises(InvalidFieldError):
            validator.validate_party_patch({"number": "  "})

    def test_empty_patch_is_allowed(self, validator):
        """Test an empty patch yields no changes."""
        assert validator.validate_party_patch({}) == {}

    def test_non_mapping_patch(self, validator):
        """Test a patch must be a mapping."""
        with pytest.raises(InvalidFieldError):
            validator.validate_party_patch(["name", "x"])

    def test_user_friendly_summary(self, validator):
        """Test every issue message appears in the summary."""
        with pytest.raises(InvalidFieldError) as exc:
            validator.validate_new_party("", "", "")
        summary = validator.get_user_friendly_summary(exc.value)
        assert "Name cannot be empty" in summary
        assert "Address cannot be empty" in summary
