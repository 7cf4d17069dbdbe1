"""
Ticket Resolver - wallet address in, ticket buckets out.

One pass:
1. Scan the Transfer log for tokens ever sent to the wallet
2. For each candidate, independently:
   verify ownership -> fetch ticket detail -> fetch metadata
3. Reduce the per-token outcomes and hand the records to the aggregator

Candidates run concurrently up to `max_concurrency`. A failing token only
removes itself; a failing scan fails the pass. Nothing is cached between
passes.

ResolutionSession wraps the resolver for a caller that may switch wallets
mid-flight: starting a new pass abandons the previous one, and the
superseded caller gets PassAbandonedError instead of stale tickets.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import httpx

from ..chain.interfaces import TicketLedger
from ..config import ResolverConfig
from ..observability import MetricsCollector, get_logger, get_metrics, wallet_var
from ..schemas import FallbackEvent, TicketBuckets, TicketRecord
from .aggregator import TicketAggregator
from .details import TicketDetailFetcher
from .errors import PassAbandonedError, ScanError, TokenSkipped
from .fallback import DEFAULT_IMAGE_TABLES, ImageTables, event_fallback_image, ticket_fallback_image
from .metadata import MetadataResolver
from .outcome import PassResult, TokenOutcome, reduce_outcomes
from .ownership import OwnershipVerifier
from .scanner import EventLogScanner

logger = get_logger(__name__)


@dataclass(frozen=True)
class WalletTickets:
    """Everything one pass produced for a wallet."""
    address: str
    result: PassResult
    buckets: TicketBuckets

    @property
    def records(self) -> tuple[TicketRecord, ...]:
        return self.result.records


class TicketResolver:
    """
    Resolves the tickets a wallet currently owns.

    The ledger and HTTP client are shared across passes; everything a
    pass builds is discarded when it returns.
    """

    def __init__(
        self,
        ledger: TicketLedger,
        http_client: httpx.AsyncClient,
        config: Optional[ResolverConfig] = None,
        tables: ImageTables = DEFAULT_IMAGE_TABLES,
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        Args:
            ledger: Read access to the ticket contract
            http_client: Client used for metadata fetches
            config: Timeouts, concurrency and gateway (defaults if None)
            tables: Fallback image pools
            metrics: Metrics sink (global collector if None)
        """
        self._config = config or ResolverConfig()
        self._ledger = ledger
        self._tables = tables
        self._metrics = metrics or get_metrics()

        timeout = self._config.request_timeout
        self._scanner = EventLogScanner(ledger, timeout)
        self._verifier = OwnershipVerifier(ledger, timeout)
        self._details = TicketDetailFetcher(ledger, timeout)
        self._metadata = MetadataResolver(
            http_client, self._config.ipfs_gateway, self._metrics, timeout=timeout,
        )
        self._aggregator = TicketAggregator(tables, self._config.ipfs_gateway)

    @property
    def ledger(self) -> TicketLedger:
        return self._ledger

    @property
    def config(self) -> ResolverConfig:
        return self._config

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    # ================================================================
    # RESOLUTION PASS
    # ================================================================

    async def resolve(self, address: str, now: Optional[datetime] = None) -> WalletTickets:
        """
        Run a full pass for `address`.

        Raises:
            ScanError: If the Transfer log cannot be read.
        """
        wallet_var.set(address)
        start = time.perf_counter()

        try:
            result = await self.resolve_records(address)
        except ScanError as e:
            self._metrics.record_failed_pass()
            logger.error("Ticket resolution failed", error=e.cause)
            raise

        buckets = self._aggregator.aggregate(result.records, now)

        duration_ms = (time.perf_counter() - start) * 1000
        self._metrics.record_pass(
            latency_ms=duration_ms,
            candidates=result.candidate_count,
            resolved=len(result.records),
            skipped=len(result.skipped),
        )
        logger.info(
            "Resolved wallet tickets",
            candidates=result.candidate_count,
            resolved=len(result.records),
            skipped=len(result.skipped),
            upcoming=len(buckets.upcoming),
            used=len(buckets.used),
            expired=len(buckets.expired),
            duration_ms=round(duration_ms, 2),
        )
        return WalletTickets(address=address, result=result, buckets=buckets)

    async def resolve_records(self, address: str) -> PassResult:
        """Scan and resolve every candidate, without bucketing."""
        candidates = await self._scanner.scan(address)
        semaphore = asyncio.Semaphore(self._config.max_concurrency)

        async def run(token_id: int) -> TokenOutcome:
            async with semaphore:
                return await self._resolve_token(token_id, address)

        outcomes = await asyncio.gather(*(run(t) for t in sorted(candidates)))
        result = reduce_outcomes(address, outcomes)

        for outcome in result.skipped:
            self._metrics.record_skip(outcome.reason.value)

        return result

    async def _resolve_token(self, token_id: int, address: str) -> TokenOutcome:
        try:
            await self._verifier.verify(token_id, address)
            detail = await self._details.fetch(token_id)
        except TokenSkipped as skip:
            return TokenOutcome.skipped(skip)

        metadata = await self._metadata.resolve(token_id, detail.token_uri)
        return TokenOutcome.resolved(TicketRecord.from_detail(detail, metadata))

    # ================================================================
    # IMAGE RECOVERY
    # ================================================================

    async def recover_ticket_image(self, token_id: int, description: str = "") -> str:
        """
        Fallback image for a ticket whose image failed to load.

        Metadata is not fetched again. The event comes from the ledger and
        `description` is the TicketView.description the caller rendered
        with, so the answer matches the listing's fallback_image_url even
        while the metadata gateway is down.

        Raises:
            TokenSkipped: If the ticket's detail cannot be read.
        """
        detail = await self._details.fetch(token_id)
        event = FallbackEvent(
            event_id=detail.state.event_id,
            name=detail.event.name,
            description=description,
        )
        return ticket_fallback_image(event, token_id, self._tables)

    def event_image(self, event_id: int) -> str:
        """Fallback image for an event card."""
        return event_fallback_image(FallbackEvent(event_id=event_id), self._tables)


class ResolutionSession:
    """
    Holds at most one in-flight pass for one consumer.

    Usage:
        session = ResolutionSession(resolver)
        tickets = await session.resolve(address)
        ...
        await session.close()  # abandons whatever is still running
    """

    def __init__(self, resolver: TicketResolver):
        self._resolver = resolver
        self._task: Optional[asyncio.Task] = None
        self._address: Optional[str] = None
        self._closed = False

    @property
    def address(self) -> Optional[str]:
        """The wallet of the most recent pass."""
        return self._address

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    async def resolve(self, address: str, now: Optional[datetime] = None) -> WalletTickets:
        """
        Start a pass for `address`, abandoning any pass still running.

        Raises:
            PassAbandonedError: If this pass is superseded or the session
                closes before it finishes.
            ScanError: If the Transfer log cannot be read.
        """
        if self._closed:
            raise PassAbandonedError(address)

        self._abandon_in_flight()
        self._address = address
        task = asyncio.create_task(self._resolver.resolve(address, now))
        self._task = task

        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            # Our caller went away; take the pass down with it
            task.cancel()
            raise
        finally:
            if self._task is task:
                self._task = None

        if task.cancelled():
            self._resolver.metrics.record_abandoned_pass()
            raise PassAbandonedError(address)
        return task.result()

    async def close(self) -> None:
        """Abandon any in-flight pass and refuse new ones."""
        self._closed = True
        task = self._task
        self._abandon_in_flight()
        if task is not None:
            await asyncio.wait({task})

    def _abandon_in_flight(self) -> None:
        if self.in_flight:
            logger.info("Abandoning in-flight resolution pass", previous_wallet=self._address)
            self._task.cancel()
