"""
Ticket Schemas

Everything the resolver reads from the ledger, fetches off-chain,
or hands to the presentation layer.

Ledger values (transfers, ticket state, event descriptors) are frozen:
they describe what the chain said at query time. TicketRecords are
rebuilt on every resolution pass and never mutated afterwards.
"""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


PLACEHOLDER_DESCRIPTION = "Metadata unavailable"


def addresses_match(a: str, b: str) -> bool:
    """Wallet addresses compare case-insensitively."""
    return a.lower() == b.lower()


_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_wallet_address(value: str) -> bool:
    """20-byte hex address with 0x prefix, in any case."""
    return bool(_ADDRESS_PATTERN.match(value))


# ============================================================
# Ledger values
# ============================================================

class TransferEvent(BaseModel):
    """A Transfer log entry, in ledger emission order."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_address: str = Field(..., alias="from")
    to_address: str = Field(..., alias="to")
    token_id: int = Field(..., ge=0, alias="tokenId")


class TicketState(BaseModel):
    """Mutable ledger-side state of one ticket, as read at query time."""
    model_config = ConfigDict(frozen=True)

    event_id: int = Field(..., ge=0)
    used: bool = False
    locked: bool = False


class EventDescriptor(BaseModel):
    """The real-world event a ticket admits to."""
    model_config = ConfigDict(frozen=True)

    event_id: int = Field(..., ge=0)
    name: str
    date: datetime

    @field_validator("date")
    @classmethod
    def date_must_be_aware(cls, v: datetime) -> datetime:
        """Naive datetimes cannot be compared against 'now' reliably."""
        if v.tzinfo is None:
            raise ValueError("Event date must be timezone-aware")
        return v


# ============================================================
# Off-chain metadata
# ============================================================

class Metadata(BaseModel):
    """
    Off-chain token metadata (the JSON behind the token URI).

    Only name, description and image are read; anything else in the
    document is ignored. A null image is treated as absent.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = ""
    description: str = ""
    image: str = ""

    @field_validator("name", "description", "image", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return "" if v is None else v

    @classmethod
    def placeholder(cls, token_id: int) -> "Metadata":
        """The fixed shape substituted when metadata cannot be fetched."""
        return cls(
            name=f"Ticket #{token_id}",
            description=PLACEHOLDER_DESCRIPTION,
            image="",
        )


# ============================================================
# Resolution records
# ============================================================

class TicketDetail(BaseModel):
    """Ledger-side half of a ticket: state, event and token URI."""
    model_config = ConfigDict(frozen=True)

    token_id: int = Field(..., ge=0)
    state: TicketState
    event: EventDescriptor
    token_uri: str = ""


class TicketRecord(BaseModel):
    """
    One ticket the wallet currently owns.

    Built once per resolution pass from a TicketDetail and its Metadata.
    """
    model_config = ConfigDict(frozen=True)

    token_id: int = Field(..., ge=0)
    event_id: int = Field(..., ge=0)
    event_name: str
    event_date: datetime
    used: bool
    locked: bool
    metadata: Metadata

    @classmethod
    def from_detail(cls, detail: TicketDetail, metadata: Metadata) -> "TicketRecord":
        return cls(
            token_id=detail.token_id,
            event_id=detail.state.event_id,
            event_name=detail.event.name,
            event_date=detail.event.date,
            used=detail.state.used,
            locked=detail.state.locked,
            metadata=metadata,
        )


class FallbackEvent(BaseModel):
    """The event fields the fallback image policy looks at."""
    model_config = ConfigDict(frozen=True)

    event_id: int = Field(default=0, ge=0)
    name: str = ""
    description: str = ""


# ============================================================
# Presentation
# ============================================================

class TicketView(BaseModel):
    """A renderable ticket card."""
    token_id: int
    event_id: int
    event_name: str
    event_date: datetime
    formatted_date: str
    used: bool
    locked: bool
    status: str = Field(..., description="used, active or expired")
    name: str
    description: str = ""
    image_url: str = Field(..., min_length=1)
    fallback_image_url: str = Field(
        ...,
        min_length=1,
        description="Image to swap in if image_url fails to load",
    )


class TicketBuckets(BaseModel):
    """Resolved tickets grouped for display, each list sorted by event date."""
    upcoming: list[TicketView] = Field(default_factory=list)
    used: list[TicketView] = Field(default_factory=list)
    expired: list[TicketView] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.upcoming) + len(self.used) + len(self.expired)

    def all_tickets(self) -> list[TicketView]:
        return [*self.upcoming, *self.used, *self.expired]


class FallbackImage(BaseModel):
    """Response body of the image recovery endpoints."""
    image_url: str
    token_id: Optional[int] = None
    event_id: Optional[int] = None
