# Canonical schemas for ticket resolution.
# Ledger values in, renderable tickets out.

from .ticket import (
    PLACEHOLDER_DESCRIPTION,
    EventDescriptor,
    FallbackEvent,
    FallbackImage,
    Metadata,
    TicketBuckets,
    TicketDetail,
    TicketRecord,
    TicketState,
    TicketView,
    TransferEvent,
    addresses_match,
    is_wallet_address,
)

__all__ = [
    # Ledger values
    "TransferEvent",
    "TicketState",
    "EventDescriptor",
    # Off-chain
    "Metadata",
    "PLACEHOLDER_DESCRIPTION",
    # Resolution
    "TicketDetail",
    "TicketRecord",
    "FallbackEvent",
    # Presentation
    "TicketView",
    "TicketBuckets",
    "FallbackImage",
    # Helpers
    "addresses_match",
    "is_wallet_address",
]
