"""
Ledger Layer for TicketVault

Provides:
- TicketLedger abstraction (read-only view of the ticket contract)
- InMemoryTicketLedger for development and tests
- Web3TicketLedger for a deployed contract
"""

from .interfaces import (
    EventNotFoundError,
    LedgerError,
    TicketLedger,
    TokenNotFoundError,
)
from .memory import InMemoryTicketLedger, seed_demo_tickets

__all__ = [
    "TicketLedger",
    "LedgerError",
    "TokenNotFoundError",
    "EventNotFoundError",
    "InMemoryTicketLedger",
    "seed_demo_tickets",
]
