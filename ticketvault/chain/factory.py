"""
Ledger selection.

Mode is determined by configuration:
- TICKETVAULT_LEDGER_DRIVER: Explicit driver selection (memory, web3)
- TICKETVAULT_RPC_URL: Chain endpoint (auto-selects web3)
- Neither set: in-memory ledger (development)

SEEDING:
- Only the in-memory ledger can be seeded
- Set TICKETVAULT_SEED_DEMO=1 to get a demo wallet
"""

from ..config import LedgerDriver, ResolverConfig, get_ledger_driver
from ..observability import get_logger
from .interfaces import TicketLedger
from .memory import DEMO_WALLET, InMemoryTicketLedger, seed_demo_tickets

logger = get_logger(__name__)


def create_ledger(config: ResolverConfig) -> TicketLedger:
    """
    Create the TicketLedger the configuration asks for.

    Returns:
        InMemoryTicketLedger for development/testing
        Web3TicketLedger when an RPC endpoint is configured

    Raises:
        ValueError: If web3 is selected without an RPC URL or contract address.
    """
    driver = get_ledger_driver(config)

    if driver == LedgerDriver.MEMORY:
        ledger = InMemoryTicketLedger()
        if config.seed_demo:
            seed_demo_tickets(ledger)
            logger.info("Seeded in-memory ledger with demo tickets", wallet=DEMO_WALLET)
        logger.info("Using in-memory ledger (no chain connection)")
        return ledger

    if not config.rpc_url or not config.contract_address:
        raise ValueError(
            "The web3 ledger needs TICKETVAULT_RPC_URL and TICKETVAULT_CONTRACT_ADDRESS"
        )

    # Imported here so the in-memory mode never loads web3
    from .web3_ledger import Web3TicketLedger

    logger.info("Using web3 ledger", **config.to_log_dict())
    return Web3TicketLedger(
        rpc_url=config.rpc_url,
        contract_address=config.contract_address,
        from_block=config.from_block,
    )
