"""
Ledger Entry Models

DESIGN DECISION: An entry carries only its own amount. There is no stored
running total and no link to the previous entry, so editing or deleting any
historical entry never needs a repair pass.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from party_ledger.models.amount import Amount, Money
from party_ledger.models.party import utc_now


MAX_DESCRIPTION_LENGTH = 200


class EntryKind(str, Enum):
    """Direction of an entry."""
    CREDIT = "credit"  # increases the party's balance
    DEBIT = "debit"    # decreases the party's balance


class LedgerEntry(BaseModel):
    """
    A single credit or debit attached to a party.

    `sequence` is assigned by the store on insert and breaks ties between
    entries created in the same instant.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        frozen=True,
        arbitrary_types_allowed=True,
    )

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique entry ID"
    )
    party_id: UUID = Field(
        ...,
        description="Party this entry belongs to"
    )
    kind: EntryKind
    amount: Amount
    description: str = Field(
        ...,
        min_length=1,
        max_length=MAX_DESCRIPTION_LENGTH,
    )
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    sequence: int = Field(
        default=0,
        ge=0,
        description="Insertion sequence number within the store"
    )

    @property
    def signed_amount(self) -> Money:
        """+amount for credits, -amount for debits."""
        if self.kind is EntryKind.CREDIT:
            return Money(self.amount.value)
        return -self.amount

    @property
    def sort_key(self) -> tuple[datetime, int]:
        return (self.created_at, self.sequence)
