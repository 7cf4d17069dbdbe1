"""
In-memory ticket ledger.

Suitable for:
- Development
- Testing
- Demos without a chain node

Mirrors the contract's behaviour closely enough for resolution: every
mint and transfer appends a Transfer event, ownership moves with the
transfer, and ticket state is kept per token.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from ..schemas import EventDescriptor, TicketState, TransferEvent, addresses_match
from .interfaces import EventNotFoundError, LedgerError, TicketLedger, TokenNotFoundError


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class InMemoryTicketLedger(TicketLedger):
    """
    In-memory implementation of TicketLedger.

    NOT suitable for production: state lives only as long as the process.
    """

    def __init__(self):
        self._transfers: list[TransferEvent] = []
        self._owners: dict[int, str] = {}
        self._states: dict[int, TicketState] = {}
        self._uris: dict[int, str] = {}
        self._events: dict[int, EventDescriptor] = {}
        self._next_token_id = 0
        self._next_event_id = 0

    # ================================================================
    # WRITE HELPERS (test and demo setup only)
    # ================================================================

    def add_event(self, name: str, date: datetime, event_id: Optional[int] = None) -> EventDescriptor:
        """Register an event and return its descriptor."""
        if event_id is None:
            event_id = self._next_event_id
        self._next_event_id = max(self._next_event_id, event_id + 1)
        event = EventDescriptor(event_id=event_id, name=name, date=date)
        self._events[event_id] = event
        return event

    def mint(
        self,
        to: str,
        event_id: int,
        token_uri: str = "",
        token_id: Optional[int] = None,
    ) -> int:
        """Mint a ticket for an event and return its token id."""
        if event_id not in self._events:
            raise EventNotFoundError(event_id)
        if token_id is None:
            token_id = self._next_token_id
        if token_id in self._owners:
            raise LedgerError(f"Token {token_id} already minted")
        self._next_token_id = max(self._next_token_id, token_id + 1)

        self._owners[token_id] = to
        self._states[token_id] = TicketState(event_id=event_id)
        self._uris[token_id] = token_uri
        self._transfers.append(
            TransferEvent(from_address=ZERO_ADDRESS, to_address=to, token_id=token_id)
        )
        return token_id

    def transfer(self, token_id: int, to: str) -> None:
        """Move a ticket to a new owner."""
        owner = self._require_owner(token_id)
        if self._states[token_id].locked:
            raise LedgerError(f"Token {token_id} is locked")
        self._owners[token_id] = to
        self._transfers.append(
            TransferEvent(from_address=owner, to_address=to, token_id=token_id)
        )

    def mark_used(self, token_id: int) -> None:
        self._require_owner(token_id)
        self._states[token_id] = self._states[token_id].model_copy(update={"used": True})

    def set_locked(self, token_id: int, locked: bool = True) -> None:
        self._require_owner(token_id)
        self._states[token_id] = self._states[token_id].model_copy(update={"locked": locked})

    def _require_owner(self, token_id: int) -> str:
        owner = self._owners.get(token_id)
        if owner is None:
            raise TokenNotFoundError(token_id)
        return owner

    # ================================================================
    # TicketLedger
    # ================================================================

    async def query_transfers(self, to: str) -> list[TransferEvent]:
        return [t for t in self._transfers if addresses_match(t.to_address, to)]

    async def owner_of(self, token_id: int) -> str:
        return self._require_owner(token_id)

    async def get_ticket_state(self, token_id: int) -> TicketState:
        self._require_owner(token_id)
        return self._states[token_id]

    async def get_event_descriptor(self, event_id: int) -> EventDescriptor:
        event = self._events.get(event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    async def get_token_uri(self, token_id: int) -> str:
        self._require_owner(token_id)
        return self._uris[token_id]


DEMO_WALLET = "0x8ba1f109551bD432803012645Ac136ddd64DBA72"


def seed_demo_tickets(ledger: InMemoryTicketLedger, wallet: str = DEMO_WALLET) -> None:
    """
    Seed a ledger with a small, varied wallet for local development.

    Produces one ticket per bucket plus the showcase ticket and one
    ticket that was received and later transferred away.
    """
    now = datetime.now(timezone.utc)
    festival = ledger.add_event("Spring Cultural Festival", now + timedelta(days=30))
    concert = ledger.add_event("Harbour Jazz Night", now + timedelta(days=7))
    gala = ledger.add_event("New Year Gala", now - timedelta(days=60))

    ledger.mint(wallet, festival.event_id)  # token 0, showcase
    ledger.mint(wallet, concert.event_id)
    used = ledger.mint(wallet, gala.event_id)
    ledger.mark_used(used)
    ledger.mint(wallet, gala.event_id)
    sold = ledger.mint(wallet, concert.event_id)
    ledger.transfer(sold, "0x0000000000000000000000000000000000000b0b")
