"""
Wallet Ticket API Routes

Read-only endpoints behind the "My Tickets" page:
- the bucketed tickets of a wallet
- fallback images for tickets and events whose image failed to load
"""

from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from ..core import ScanError, TicketResolver, TokenSkipped
from ..observability import get_logger
from ..schemas import FallbackImage, TicketView, is_wallet_address


router = APIRouter(prefix="/api", tags=["Tickets"])
logger = get_logger(__name__)


# Single user-facing failure state for a pass that could not scan the ledger
SCAN_FAILED_MESSAGE = "Failed to load your tickets. Please try again later."


# ============================================================
# Response Models
# ============================================================

class WalletTicketsResponse(BaseModel):
    """Tickets currently owned by a wallet, grouped for display."""
    address: str
    total: int
    resolved_at: datetime
    upcoming: list[TicketView] = Field(default_factory=list)
    used: list[TicketView] = Field(default_factory=list)
    expired: list[TicketView] = Field(default_factory=list)


# ============================================================
# Helper Functions
# ============================================================

def get_resolver(request: Request) -> TicketResolver:
    """Get resolver from app state."""
    return request.app.state.resolver


def _validate_address(address: str) -> str:
    address = address.strip()
    if not address:
        raise HTTPException(status_code=400, detail="Wallet address is required")
    if not is_wallet_address(address):
        raise HTTPException(status_code=400, detail="Invalid wallet address")
    return address


# ============================================================
# Endpoints
# ============================================================

@router.get("/wallets/{address}/tickets", response_model=WalletTicketsResponse)
async def get_wallet_tickets(request: Request, address: str):
    """
    Resolve the tickets a wallet owns right now.

    Tickets received and later transferred away are not included.
    Returns 400 for a malformed address, 502 if the ledger's event log
    cannot be read.
    """
    resolver = get_resolver(request)
    address = _validate_address(address)
    resolved_at = datetime.now(timezone.utc)

    try:
        tickets = await resolver.resolve(address, now=resolved_at)
    except ScanError:
        raise HTTPException(status_code=502, detail=SCAN_FAILED_MESSAGE)

    buckets = tickets.buckets
    return WalletTicketsResponse(
        address=address,
        total=buckets.total,
        resolved_at=resolved_at,
        upcoming=buckets.upcoming,
        used=buckets.used,
        expired=buckets.expired,
    )


@router.get("/tickets/{token_id}/fallback-image", response_model=FallbackImage)
async def get_ticket_fallback_image(request: Request, token_id: int, description: str = ""):
    """
    Image to use when a ticket's image fails to load.

    Pass the ticket's `description` from the listing to get the same
    answer the listing put in fallback_image_url. Metadata is not
    fetched again.
    """
    if token_id < 0:
        raise HTTPException(status_code=400, detail="Invalid token ID")

    resolver = get_resolver(request)
    try:
        image_url = await resolver.recover_ticket_image(token_id, description)
    except TokenSkipped:
        raise HTTPException(status_code=404, detail="Ticket not found")

    return FallbackImage(image_url=image_url, token_id=token_id)


@router.get("/events/{event_id}/fallback-image", response_model=FallbackImage)
async def get_event_fallback_image(request: Request, event_id: int):
    """Image to use for an event without one of its own."""
    if event_id < 0:
        raise HTTPException(status_code=400, detail="Invalid event ID")

    resolver = get_resolver(request)
    return FallbackImage(image_url=resolver.event_image(event_id), event_id=event_id)
