"""
TicketVault - Wallet Ticket Resolver

Main application entry point.

Shows which event tickets a wallet holds right now, reconciled
against the chain rather than trusted from history.
"""

from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import router as tickets_router
from .chain.factory import create_ledger
from .chain.interfaces import TicketLedger
from .config import ResolverConfig
from .core import TicketResolver
from .observability import (
    RequestContextMiddleware,
    check_health,
    get_logger,
    get_metrics,
    setup_logging,
)

# Setup logging at import time
setup_logging()
logger = get_logger(__name__)


def create_app(
    config: Optional[ResolverConfig] = None,
    ledger: Optional[TicketLedger] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        config: Resolver settings (read from the environment if None)
        ledger: Ledger to read from (selected from config if None)
        http_client: Metadata client (created, and closed on shutdown, if None)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        resolver_config = config or ResolverConfig.from_env()
        app_ledger = ledger or create_ledger(resolver_config)
        client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(resolver_config.request_timeout),
            follow_redirects=True,
        )

        app.state.config = resolver_config
        app.state.ledger = app_ledger
        app.state.resolver = TicketResolver(app_ledger, client, resolver_config)

        logger.info(
            "Application startup complete",
            ledger_type=type(app_ledger).__name__,
            **resolver_config.to_log_dict(),
        )

        yield

        # Only close what this app created
        if http_client is None:
            await client.aclose()
        if ledger is None:
            await app_ledger.close()

        logger.info("Application shutdown complete")

    app = FastAPI(
        title="TicketVault",
        description="""
## Wallet Ticket Resolver

Lists the event tickets (NFTs) a wallet currently owns.

- Candidates come from the contract's Transfer log
- Each candidate is confirmed against its current owner
- Metadata is fetched off-chain; missing images get a deterministic fallback
- Tickets are grouped into upcoming, used and expired

### Ledger Backends

- **InMemoryTicketLedger**: Development/testing (default)
- **Web3TicketLedger**: A deployed ticket contract

Set `TICKETVAULT_RPC_URL` and `TICKETVAULT_CONTRACT_ADDRESS` to use a chain.
        """,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add request context middleware for logging
    app.add_middleware(RequestContextMiddleware)

    # CORS configuration for the dApp frontend during development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",  # Vite dev server
            "http://127.0.0.1:5173",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.include_router(tickets_router)

    @app.get("/health", tags=["System"])
    async def health():
        """
        Basic health check endpoint.

        Returns 200 if the service is running.
        For ledger connectivity, use /health/detailed
        """
        return {"status": "healthy", "service": "ticketvault"}

    @app.get("/health/detailed", tags=["System"])
    async def health_detailed(request: Request):
        """
        Detailed health check.

        Returns 200 if the ledger is reachable, 503 otherwise.
        """
        health_status = await check_health(ledger=request.app.state.ledger)
        status_code = 200 if health_status.healthy else 503

        return JSONResponse(
            status_code=status_code,
            content={
                "status": "healthy" if health_status.healthy else "unhealthy",
                "checks": health_status.checks,
                "duration_ms": health_status.duration_ms,
            },
        )

    @app.get("/metrics", tags=["System"])
    async def metrics():
        """
        Get application metrics.

        Returns pass counters, skip reasons and latency percentiles.
        """
        return get_metrics().get_summary()

    return app


app = create_app()
