"""
Party Models

A party is the customer whose ledger is tracked. Parties are immutable
values: an update produces a new Party with a fresh `updated_at`.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


MAX_PARTY_NAME_LENGTH = 60

PARTY_PATCH_FIELDS = ("name", "number", "address")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Party(BaseModel):
    """
    A stored party record.

    `number` is the contact number and is unique across all parties.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique party ID"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=MAX_PARTY_NAME_LENGTH,
        description="Party name"
    )
    number: str = Field(
        ...,
        min_length=1,
        description="Contact number (unique)"
    )
    address: str = Field(
        ...,
        min_length=1,
        description="Postal address"
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="When the party was created"
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        description="Last update timestamp"
    )


class PartyPatch(BaseModel):
    """
    Partial update for a party.

    Only the fields that are set are applied.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = None
    number: Optional[str] = None
    address: Optional[str] = None

    def changes(self) -> dict[str, str]:
        """Fields explicitly set on this patch."""
        return self.model_dump(exclude_unset=True, exclude_none=True)
