"""
Resolver Configuration

Handles ledger connection settings, request hardening and environment-based
configuration.

Environment Variables:
    TICKETVAULT_RPC_URL: JSON-RPC endpoint of the ticket ledger
    TICKETVAULT_CONTRACT_ADDRESS: Address of the ticket NFT contract
    TICKETVAULT_FROM_BLOCK: First block scanned for Transfer events (default 0)
    TICKETVAULT_IPFS_GATEWAY: Gateway used to fetch ipfs:// metadata
    TICKETVAULT_REQUEST_TIMEOUT: Per-request timeout in seconds (default 10)
    TICKETVAULT_MAX_CONCURRENCY: Tokens resolved in parallel (default 8)
    TICKETVAULT_SEED_DEMO: Seed the in-memory ledger with demo tickets

    TICKETVAULT_LEDGER_DRIVER: Which ledger backend to use
        - "memory" (default if no RPC URL configured)
        - "web3" (AsyncWeb3 against a deployed contract)
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional


DEFAULT_IPFS_GATEWAY = "https://ipfs.io"


class LedgerDriver(str, Enum):
    """Supported ledger backends."""
    MEMORY = "memory"
    WEB3 = "web3"


@dataclass
class ResolverConfig:
    """Settings for one ticket resolver instance."""
    rpc_url: Optional[str] = None
    contract_address: Optional[str] = None
    from_block: int = 0

    ipfs_gateway: str = DEFAULT_IPFS_GATEWAY

    # Hardening: no ledger or metadata call may block longer than this
    request_timeout: float = 10.0  # seconds
    max_concurrency: int = 8

    seed_demo: bool = False

    def __post_init__(self) -> None:
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if self.from_block < 0:
            raise ValueError("from_block cannot be negative")
        self.ipfs_gateway = self.ipfs_gateway.rstrip("/")

    @classmethod
    def from_env(cls) -> "ResolverConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - TICKETVAULT_RPC_URL
        - TICKETVAULT_CONTRACT_ADDRESS
        - TICKETVAULT_FROM_BLOCK
        - TICKETVAULT_IPFS_GATEWAY
        - TICKETVAULT_REQUEST_TIMEOUT
        - TICKETVAULT_MAX_CONCURRENCY
        - TICKETVAULT_SEED_DEMO
        """
        return cls(
            rpc_url=os.getenv("TICKETVAULT_RPC_URL") or None,
            contract_address=os.getenv("TICKETVAULT_CONTRACT_ADDRESS") or None,
            from_block=int(os.getenv("TICKETVAULT_FROM_BLOCK", "0")),
            ipfs_gateway=os.getenv("TICKETVAULT_IPFS_GATEWAY", DEFAULT_IPFS_GATEWAY),
            request_timeout=float(os.getenv("TICKETVAULT_REQUEST_TIMEOUT", "10.0")),
            max_concurrency=int(os.getenv("TICKETVAULT_MAX_CONCURRENCY", "8")),
            seed_demo=os.getenv("TICKETVAULT_SEED_DEMO", "").lower() in ("1", "true", "yes"),
        )

    def to_log_dict(self) -> dict:
        """Settings safe to log (the RPC URL may embed an API key)."""
        return {
            "rpc_configured": self.rpc_url is not None,
            "contract_address": self.contract_address,
            "from_block": self.from_block,
            "ipfs_gateway": self.ipfs_gateway,
            "request_timeout": self.request_timeout,
            "max_concurrency": self.max_concurrency,
        }


def get_ledger_driver(config: Optional[ResolverConfig] = None) -> LedgerDriver:
    """
    Get the ledger driver to use.

    Checks TICKETVAULT_LEDGER_DRIVER, then falls back to:
    - web3 if an RPC URL is configured
    - memory otherwise

    Returns:
        LedgerDriver enum value
    """
    explicit = os.getenv("TICKETVAULT_LEDGER_DRIVER", "").lower()

    if explicit:
        if explicit == "memory":
            return LedgerDriver.MEMORY
        elif explicit == "web3":
            return LedgerDriver.WEB3
        else:
            raise ValueError(
                f"Unknown TICKETVAULT_LEDGER_DRIVER: {explicit}. "
                f"Valid values: memory, web3"
            )

    config = config or ResolverConfig.from_env()
    if config.rpc_url is not None:
        return LedgerDriver.WEB3

    return LedgerDriver.MEMORY
