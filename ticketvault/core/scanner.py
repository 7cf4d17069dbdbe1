"""
Event Log Scanner

Finds every token that has ever been transferred to an address. This is
the candidate set only: some of those tokens will have moved on since,
which the ownership check sorts out.
"""

import asyncio

from ..chain.interfaces import TicketLedger
from ..observability import get_logger
from ..schemas import addresses_match
from .errors import ScanError

logger = get_logger(__name__)


class EventLogScanner:
    """Extracts candidate token ids from the Transfer event log."""

    def __init__(self, ledger: TicketLedger, timeout: float):
        self._ledger = ledger
        self._timeout = timeout

    async def scan(self, address: str) -> set[int]:
        """
        Return the distinct token ids transferred to `address`.

        Raises:
            ScanError: If the event log cannot be queried. The whole pass
                fails; there is nothing to partially show.
        """
        try:
            events = await asyncio.wait_for(
                self._ledger.query_transfers(address), self._timeout
            )
        except asyncio.TimeoutError:
            raise ScanError(address, f"timed out after {self._timeout}s")
        except Exception as e:
            raise ScanError(address, f"{type(e).__name__}: {e}") from e

        candidates = {
            event.token_id for event in events
            if addresses_match(event.to_address, address)
        }

        logger.debug(
            "Scanned Transfer log",
            transfers=len(events),
            candidates=len(candidates),
        )
        return candidates
