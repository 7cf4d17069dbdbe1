"""
Ownership Verifier

A Transfer to the wallet only proves the wallet held the token once.
The current owner is the ledger's answer right now.
"""

import asyncio

from ..chain.interfaces import TicketLedger
from ..observability import get_logger
from ..schemas import addresses_match
from .errors import SkipReason, TokenSkipped

logger = get_logger(__name__)


class OwnershipVerifier:
    """Confirms a candidate token still belongs to the wallet."""

    def __init__(self, ledger: TicketLedger, timeout: float):
        self._ledger = ledger
        self._timeout = timeout

    async def verify(self, token_id: int, address: str) -> None:
        """
        Check that `address` currently owns `token_id`.

        Raises:
            TokenSkipped: NOT_OWNER if the token was transferred away,
                OWNERSHIP_LOOKUP_FAILED if the owner could not be read.
        """
        try:
            owner = await asyncio.wait_for(self._ledger.owner_of(token_id), self._timeout)
        except asyncio.TimeoutError:
            logger.warning("Ownership lookup timed out", token_id=token_id, timeout=self._timeout)
            raise TokenSkipped(token_id, SkipReason.OWNERSHIP_LOOKUP_FAILED, "timed out")
        except Exception as e:
            logger.warning("Ownership lookup failed", token_id=token_id, error=str(e))
            raise TokenSkipped(token_id, SkipReason.OWNERSHIP_LOOKUP_FAILED, str(e)) from e

        if not addresses_match(owner, address):
            # Received once, transferred away since
            logger.debug("Token no longer owned", token_id=token_id, owner=owner)
            raise TokenSkipped(token_id, SkipReason.NOT_OWNER, f"owned by {owner}")
