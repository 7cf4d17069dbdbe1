"""
Ticket ledger interface.

The resolver only reads from the ledger. Implementations must be
swappable and return schema values, never backend-specific objects.
"""

from abc import ABC, abstractmethod

from ..schemas import EventDescriptor, TicketState, TransferEvent


class LedgerError(Exception):
    """Raised by ledger implementations when a read cannot be served."""
    pass


class TokenNotFoundError(LedgerError):
    """Raised when a token id has never been minted."""

    def __init__(self, token_id: int):
        super().__init__(f"Token {token_id} does not exist")
        self.token_id = token_id


class EventNotFoundError(LedgerError):
    """Raised when an event id is unknown to the ledger."""

    def __init__(self, event_id: int):
        super().__init__(f"Event {event_id} does not exist")
        self.event_id = event_id


class TicketLedger(ABC):
    """Read capability over the ticket NFT contract."""

    @abstractmethod
    async def query_transfers(self, to: str) -> list[TransferEvent]:
        """Return every Transfer whose recipient is `to`, in emission order."""
        ...

    @abstractmethod
    async def owner_of(self, token_id: int) -> str:
        """Return the current owner of a token."""
        ...

    @abstractmethod
    async def get_ticket_state(self, token_id: int) -> TicketState:
        """Return the event id and used/locked flags of a token."""
        ...

    @abstractmethod
    async def get_event_descriptor(self, event_id: int) -> EventDescriptor:
        """Return the name and date of an event."""
        ...

    @abstractmethod
    async def get_token_uri(self, token_id: int) -> str:
        """Return the metadata locator of a token."""
        ...

    async def is_connected(self) -> bool:
        """Whether the backend is reachable."""
        return True

    async def close(self) -> None:
        """Release any connections held by the ledger."""
        return None
