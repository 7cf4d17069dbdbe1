"""
Ticket Detail Fetcher

Reads the ledger-side half of a ticket: its state, the event it admits
to and its metadata URI.
"""

import asyncio

from ..chain.interfaces import TicketLedger
from ..observability import get_logger
from ..schemas import TicketDetail
from .errors import SkipReason, TokenSkipped

logger = get_logger(__name__)


class TicketDetailFetcher:
    """Fetches TicketState, EventDescriptor and token URI for a verified token."""

    def __init__(self, ledger: TicketLedger, timeout: float):
        self._ledger = ledger
        self._timeout = timeout

    async def fetch(self, token_id: int) -> TicketDetail:
        """
        Raises:
            TokenSkipped: DETAIL_LOOKUP_FAILED if any of the reads fails.
        """
        try:
            state = await self._bounded(self._ledger.get_ticket_state(token_id))
            event = await self._bounded(self._ledger.get_event_descriptor(state.event_id))
            token_uri = await self._bounded(self._ledger.get_token_uri(token_id))
        except asyncio.TimeoutError:
            logger.warning("Ticket detail lookup timed out", token_id=token_id, timeout=self._timeout)
            raise TokenSkipped(token_id, SkipReason.DETAIL_LOOKUP_FAILED, "timed out")
        except Exception as e:
            logger.warning("Ticket detail lookup failed", token_id=token_id, error=str(e))
            raise TokenSkipped(token_id, SkipReason.DETAIL_LOOKUP_FAILED, str(e)) from e

        return TicketDetail(token_id=token_id, state=state, event=event, token_uri=token_uri)

    async def _bounded(self, coro):
        return await asyncio.wait_for(coro, self._timeout)
