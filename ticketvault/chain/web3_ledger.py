"""
Web3 ticket ledger.

Reads the ticket NFT contract through web3.py's AsyncWeb3. The contract
is an ERC-721 with two extra views:

    getTicket(tokenId) -> (eventId, used, locked)
    getEvent(eventId)  -> (name, date)

Event dates are stored on chain as unix seconds.
"""

from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from web3 import AsyncWeb3

from ..observability import get_logger
from ..schemas import EventDescriptor, TicketState, TransferEvent
from .interfaces import TicketLedger

logger = get_logger(__name__)


TICKET_CONTRACT_ABI = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "from", "type": "address"},
            {"indexed": True, "name": "to", "type": "address"},
            {"indexed": True, "name": "tokenId", "type": "uint256"},
        ],
        "name": "Transfer",
        "type": "event",
    },
    {
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "name": "ownerOf",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "name": "tokenURI",
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "name": "getTicket",
        "outputs": [
            {"name": "eventId", "type": "uint256"},
            {"name": "used", "type": "bool"},
            {"name": "locked", "type": "bool"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "eventId", "type": "uint256"}],
        "name": "getEvent",
        "outputs": [
            {"name": "name", "type": "string"},
            {"name": "date", "type": "uint256"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
]


def transfer_from_log(log: Mapping[str, Any]) -> TransferEvent:
    """Convert a decoded Transfer log into a TransferEvent."""
    args = log["args"]
    return TransferEvent(
        from_address=str(args["from"]),
        to_address=str(args["to"]),
        token_id=int(args["tokenId"]),
    )


def event_date_from_chain(timestamp: int) -> datetime:
    """On-chain event dates are unix seconds."""
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc)


class Web3TicketLedger(TicketLedger):
    """TicketLedger backed by a deployed ticket contract."""

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        from_block: int = 0,
        w3: Optional[AsyncWeb3] = None,
    ):
        """
        Args:
            rpc_url: JSON-RPC endpoint
            contract_address: Ticket contract address (any case)
            from_block: First block scanned for Transfer events
            w3: Pre-built AsyncWeb3 instance (tests, shared providers)
        """
        self._w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        self._contract = self._w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(contract_address),
            abi=TICKET_CONTRACT_ABI,
        )
        self._from_block = from_block

    async def query_transfers(self, to: str) -> list[TransferEvent]:
        logs = await self._contract.events.Transfer.get_logs(
            argument_filters={"to": AsyncWeb3.to_checksum_address(to)},
            from_block=self._from_block,
        )
        ordered = sorted(logs, key=lambda log: (log["blockNumber"], log["logIndex"]))
        logger.debug("Fetched Transfer logs", count=len(ordered), from_block=self._from_block)
        return [transfer_from_log(log) for log in ordered]

    async def owner_of(self, token_id: int) -> str:
        return await self._contract.functions.ownerOf(token_id).call()

    async def get_ticket_state(self, token_id: int) -> TicketState:
        event_id, used, locked = await self._contract.functions.getTicket(token_id).call()
        return TicketState(event_id=int(event_id), used=bool(used), locked=bool(locked))

    async def get_event_descriptor(self, event_id: int) -> EventDescriptor:
        name, date = await self._contract.functions.getEvent(event_id).call()
        return EventDescriptor(
            event_id=event_id,
            name=name,
            date=event_date_from_chain(date),
        )

    async def get_token_uri(self, token_id: int) -> str:
        return await self._contract.functions.tokenURI(token_id).call()

    async def is_connected(self) -> bool:
        return await self._w3.is_connected()

    async def close(self) -> None:
        await self._w3.provider.disconnect()
