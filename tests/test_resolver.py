"""
Tests for the ticket resolution pipeline.

Covers each stage on its own and then whole passes:
1. Scan the Transfer log
2. Verify current ownership
3. Fetch ticket detail
4. Fetch metadata (never fails)
5. Resolve a wallet end to end, including cancellation
"""

import asyncio
import base64
import json
import time

import httpx
import pytest

from ticketvault.chain import InMemoryTicketLedger
from ticketvault.config import ResolverConfig
from ticketvault.core import (
    EventLogScanner,
    MetadataResolver,
    OwnershipVerifier,
    PassAbandonedError,
    ResolutionSession,
    ScanError,
    SkipReason,
    TicketDetailFetcher,
    TicketResolver,
    TokenSkipped,
)
from ticketvault.core.fallback import DEFAULT_IMAGE_TABLES
from ticketvault.core.outcome import TokenOutcome, reduce_outcomes
from ticketvault.observability import MetricsCollector
from ticketvault.schemas import Metadata, TicketRecord, TransferEvent

from .conftest import (
    FUTURE,
    GATEWAY,
    NOW,
    OTHER_WALLET,
    PAST,
    WALLET,
    metadata_url,
    token_uri,
)


# ============================================================
# Test ledgers
# ============================================================

class FailingLedger(InMemoryTicketLedger):
    """Raises on chosen reads."""

    def __init__(self):
        super().__init__()
        self.fail_scan = False
        self.fail_owner: set[int] = set()
        self.fail_state: set[int] = set()
        self.fail_uri: set[int] = set()

    async def query_transfers(self, to):
        if self.fail_scan:
            raise ConnectionError("RPC unreachable")
        return await super().query_transfers(to)

    async def owner_of(self, token_id):
        if token_id in self.fail_owner:
            raise ConnectionError(f"ownerOf({token_id}) reverted")
        return await super().owner_of(token_id)

    async def get_ticket_state(self, token_id):
        if token_id in self.fail_state:
            raise ConnectionError(f"getTicket({token_id}) reverted")
        return await super().get_ticket_state(token_id)

    async def get_token_uri(self, token_id):
        if token_id in self.fail_uri:
            raise ConnectionError(f"tokenURI({token_id}) reverted")
        return await super().get_token_uri(token_id)


class SlowLedger(InMemoryTicketLedger):
    """Delays reads to exercise timeouts and concurrency limits."""

    def __init__(self, owner_delay: float = 0.0, slow_tokens: set[int] = frozenset()):
        super().__init__()
        self.owner_delay = owner_delay
        self.slow_tokens = slow_tokens
        self.scan_gate: asyncio.Event | None = None
        self.gated_wallet: str | None = None
        self.active = 0
        self.max_active = 0

    async def query_transfers(self, to):
        if self.scan_gate is not None and to == self.gated_wallet:
            await self.scan_gate.wait()
        return await super().query_transfers(to)

    async def owner_of(self, token_id):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if not self.slow_tokens or token_id in self.slow_tokens:
                await asyncio.sleep(self.owner_delay)
            return await super().owner_of(token_id)
        finally:
            self.active -= 1


class ForeignTransfersLedger(InMemoryTicketLedger):
    """A sloppy backend that returns transfers to any recipient."""

    async def query_transfers(self, to):
        return list(self._transfers)


def populate(ledger: InMemoryTicketLedger, metadata_server=None) -> None:
    """
    Wallet holds 3 and 7; 9 was received and sold on; 4 came back twice.
    """
    concert = ledger.add_event("Harbour Jazz Night", FUTURE)
    gala = ledger.add_event("New Year Gala", PAST)

    for token_id, event in ((3, concert), (7, gala), (9, concert), (4, gala)):
        ledger.mint(WALLET, event.event_id, token_uri(token_id), token_id=token_id)
        if metadata_server is not None:
            metadata_server.serve(token_id, f"Ticket {token_id}", "General admission")

    ledger.transfer(9, OTHER_WALLET)
    ledger.transfer(4, OTHER_WALLET)
    ledger.transfer(4, WALLET.lower())


def run(coro):
    return asyncio.run(coro)


# ============================================================
# Stages
# ============================================================

class TestEventLogScanner:
    """Candidates are distinct recipients of Transfer events."""

    def test_distinct_token_ids(self, ledger):
        populate(ledger)
        candidates = run(EventLogScanner(ledger, 1.0).scan(WALLET))
        assert candidates == {3, 4, 7, 9}

    def test_address_is_case_insensitive(self, ledger):
        populate(ledger)
        assert run(EventLogScanner(ledger, 1.0).scan(WALLET.upper().replace("0X", "0x"))) == {3, 4, 7, 9}

    def test_ignores_transfers_to_other_recipients(self):
        ledger = ForeignTransfersLedger()
        populate(ledger)
        assert run(EventLogScanner(ledger, 1.0).scan(OTHER_WALLET)) == {4, 9}

    def test_empty_wallet(self, ledger):
        populate(ledger)
        assert run(EventLogScanner(ledger, 1.0).scan("0x00000000000000000000000000000000000000ff")) == set()

    def test_query_failure_raises_scan_error(self):
        ledger = FailingLedger()
        ledger.fail_scan = True
        with pytest.raises(ScanError, match="RPC unreachable"):
            run(EventLogScanner(ledger, 1.0).scan(WALLET))

    def test_query_timeout_raises_scan_error(self):
        ledger = SlowLedger()
        ledger.scan_gate = asyncio.Event()
        ledger.gated_wallet = WALLET
        with pytest.raises(ScanError, match="timed out"):
            run(EventLogScanner(ledger, 0.05).scan(WALLET))


class TestOwnershipVerifier:
    """Only tokens the wallet still owns survive."""

    def test_current_owner_passes(self, ledger):
        populate(ledger)
        run(OwnershipVerifier(ledger, 1.0).verify(3, WALLET.lower()))

    def test_transferred_away_is_skipped(self, ledger):
        populate(ledger)
        with pytest.raises(TokenSkipped) as exc:
            run(OwnershipVerifier(ledger, 1.0).verify(9, WALLET))
        assert exc.value.reason == SkipReason.NOT_OWNER

    def test_lookup_failure_is_skipped(self):
        ledger = FailingLedger()
        populate(ledger)
        ledger.fail_owner.add(3)
        with pytest.raises(TokenSkipped) as exc:
            run(OwnershipVerifier(ledger, 1.0).verify(3, WALLET))
        assert exc.value.reason == SkipReason.OWNERSHIP_LOOKUP_FAILED
        assert "reverted" in exc.value.detail

    def test_unknown_token_is_skipped(self, ledger):
        with pytest.raises(TokenSkipped) as exc:
            run(OwnershipVerifier(ledger, 1.0).verify(404, WALLET))
        assert exc.value.reason == SkipReason.OWNERSHIP_LOOKUP_FAILED


class TestTicketDetailFetcher:
    """Detail combines ticket state, event and token URI."""

    def test_fetch(self, ledger):
        populate(ledger)
        ledger.mark_used(7)
        detail = run(TicketDetailFetcher(ledger, 1.0).fetch(7))
        assert detail.state.used is True
        assert detail.state.locked is False
        assert detail.event.name == "New Year Gala"
        assert detail.event.date == PAST
        assert detail.token_uri == token_uri(7)

    @pytest.mark.parametrize("failure", ["fail_state", "fail_uri"])
    def test_any_failed_read_skips(self, failure):
        ledger = FailingLedger()
        populate(ledger)
        getattr(ledger, failure).add(3)
        with pytest.raises(TokenSkipped) as exc:
            run(TicketDetailFetcher(ledger, 1.0).fetch(3))
        assert exc.value.reason == SkipReason.DETAIL_LOOKUP_FAILED


class TestMetadataResolver:
    """Metadata always comes back well-formed."""

    @pytest.fixture
    def metadata(self, http_client, metrics):
        return MetadataResolver(http_client, GATEWAY, metrics)

    def test_parses_document(self, metadata, metadata_server):
        metadata_server.serve(3, "VIP Pass", "Front row", "ipfs://QmImg/3.png")
        result = run(metadata.resolve(3, token_uri(3)))
        assert result == Metadata(name="VIP Pass", description="Front row", image="ipfs://QmImg/3.png")
        assert metadata_server.requested == [metadata_url(3)]

    def test_missing_image_defaults_empty(self, metadata, metadata_server):
        metadata_server.serve_raw(3, '{"name": "VIP Pass", "description": "x", "image": null, "attributes": []}')
        assert run(metadata.resolve(3, token_uri(3))).image == ""

    def test_fetch_failure_gives_placeholder(self, metadata, metadata_server, metrics):
        metadata_server.fail(5)
        result = run(metadata.resolve(5, token_uri(5)))
        assert result == Metadata(name="Ticket #5", description="Metadata unavailable", image="")
        assert metrics.metadata_placeholders == 1

    def test_malformed_body_gives_placeholder(self, metadata, metadata_server):
        metadata_server.serve_raw(5, "<html>gateway error</html>")
        assert run(metadata.resolve(5, token_uri(5))) == Metadata.placeholder(5)

    def test_wrong_shape_gives_placeholder(self, metadata, metadata_server):
        metadata_server.serve_raw(5, '["not", "an", "object"]')
        assert run(metadata.resolve(5, token_uri(5))) == Metadata.placeholder(5)

    def test_transport_error_gives_placeholder(self, metrics):
        def unreachable(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(unreachable))
        metadata = MetadataResolver(client, GATEWAY, metrics)
        assert run(metadata.resolve(5, token_uri(5))) == Metadata.placeholder(5)

    def test_empty_uri_gives_placeholder(self, metadata, metadata_server):
        assert run(metadata.resolve(5, "")) == Metadata.placeholder(5)
        assert metadata_server.requested == []

    def test_slow_endpoint_is_bounded_by_timeout(self, metrics):
        """The client has no timeout of its own; the resolver's bound still holds."""
        async def hanging(request):
            await asyncio.sleep(2.0)
            return httpx.Response(200, json={"name": "Too late"})

        client = httpx.AsyncClient(transport=httpx.MockTransport(hanging), timeout=None)
        metadata = MetadataResolver(client, GATEWAY, metrics, timeout=0.05)

        start = time.perf_counter()
        result = run(metadata.resolve(5, token_uri(5)))

        assert time.perf_counter() - start < 1.0
        assert result == Metadata.placeholder(5)
        assert metrics.metadata_placeholders == 1

    def test_unexpected_client_error_gives_placeholder(self, metrics):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        run(client.aclose())
        metadata = MetadataResolver(client, GATEWAY, metrics)
        assert run(metadata.resolve(5, token_uri(5))) == Metadata.placeholder(5)

    def test_plain_data_uri(self, metadata, metadata_server):
        uri = 'data:application/json,{"name":"On-chain","description":"Minted%20here","image":"ipfs://QmImg/1.png"}'
        result = run(metadata.resolve(1, uri))
        assert result == Metadata(name="On-chain", description="Minted here", image="ipfs://QmImg/1.png")
        assert metadata_server.requested == []

    def test_base64_data_uri(self, metadata, metadata_server):
        payload = base64.b64encode(json.dumps({"name": "VIP", "description": "Row A"}).encode()).decode()
        result = run(metadata.resolve(1, f"data:application/json;base64,{payload}"))
        assert result == Metadata(name="VIP", description="Row A", image="")
        assert metadata_server.requested == []

    @pytest.mark.parametrize("uri", [
        "data:application/json;base64,%%%not-base64",
        "data:application/json,not json",
        "data:application/json",
    ])
    def test_bad_data_uri_gives_placeholder(self, metadata, uri):
        assert run(metadata.resolve(1, uri)) == Metadata.placeholder(1)


# ============================================================
# Whole passes
# ============================================================

class TestReduceOutcomes:
    """Completion order never shows up in the result."""

    def _outcomes(self):
        def record(token_id):
            return TicketRecord(
                token_id=token_id,
                event_id=1,
                event_name="Harbour Jazz Night",
                event_date=FUTURE,
                used=False,
                locked=False,
                metadata=Metadata.placeholder(token_id),
            )

        return [
            TokenOutcome.resolved(record(7)),
            TokenOutcome.skipped(TokenSkipped(9, SkipReason.NOT_OWNER)),
            TokenOutcome.resolved(record(3)),
            TokenOutcome.skipped(TokenSkipped(1, SkipReason.DETAIL_LOOKUP_FAILED, "tokenURI reverted")),
        ]

    def test_sorted_by_token_id(self):
        result = reduce_outcomes(WALLET, self._outcomes())
        assert [r.token_id for r in result.records] == [3, 7]
        assert [o.token_id for o in result.skipped] == [1, 9]
        assert result.candidate_count == 4

    def test_order_independent(self):
        outcomes = self._outcomes()
        assert reduce_outcomes(WALLET, outcomes) == reduce_outcomes(WALLET, list(reversed(outcomes)))

    def test_skip_detail_kept(self):
        result = reduce_outcomes(WALLET, self._outcomes())
        assert result.skipped[0].detail == "tokenURI reverted"
        assert result.skipped_because(SkipReason.NOT_OWNER) == [9]


class TestTicketResolver:
    """End-to-end resolution of a wallet."""

    def test_final_set_excludes_transferred_tokens(self, resolver, ledger, metadata_server):
        """Log shows {3, 7, 9, 4}; 9 belongs to someone else now."""
        populate(ledger, metadata_server)
        tickets = run(resolver.resolve(WALLET, now=NOW))

        assert tickets.result.token_ids == {3, 4, 7}
        assert tickets.result.skipped_because(SkipReason.NOT_OWNER) == [9]

    def test_buckets(self, resolver, ledger, metadata_server):
        populate(ledger, metadata_server)
        ledger.mark_used(4)
        tickets = run(resolver.resolve(WALLET, now=NOW))

        assert [v.token_id for v in tickets.buckets.upcoming] == [3]
        assert [v.token_id for v in tickets.buckets.used] == [4]
        assert [v.token_id for v in tickets.buckets.expired] == [7]

    def test_resolution_is_idempotent(self, resolver, ledger, metadata_server):
        populate(ledger, metadata_server)
        first = run(resolver.resolve(WALLET, now=NOW))
        second = run(resolver.resolve(WALLET, now=NOW))
        assert first.records == second.records
        assert first.buckets == second.buckets

    def test_per_token_failure_is_isolated(self, http_client, config, metrics, metadata_server):
        ledger = FailingLedger()
        populate(ledger, metadata_server)
        ledger.fail_owner.add(3)
        ledger.fail_state.add(4)
        resolver = TicketResolver(ledger, http_client, config, metrics=metrics)

        tickets = run(resolver.resolve(WALLET, now=NOW))

        assert tickets.result.token_ids == {7}
        assert tickets.result.skipped_because(SkipReason.OWNERSHIP_LOOKUP_FAILED) == [3]
        assert tickets.result.skipped_because(SkipReason.DETAIL_LOOKUP_FAILED) == [4]
        assert metrics.skipped_by_reason == {
            "ownership_lookup_failed": 1,
            "detail_lookup_failed": 1,
            "not_owner": 1,
        }

    def test_metadata_failure_keeps_ticket(self, resolver, ledger, metadata_server):
        """Metadata for token 5 fails; the ticket stays with placeholder metadata."""
        event = ledger.add_event("Harbour Jazz Night", FUTURE)
        ledger.mint(WALLET, event.event_id, token_uri(5), token_id=5)
        metadata_server.fail(5)

        tickets = run(resolver.resolve(WALLET, now=NOW))

        (record,) = tickets.records
        assert record.metadata == Metadata(name="Ticket #5", description="Metadata unavailable", image="")
        (view,) = tickets.buckets.upcoming
        assert view.image_url == DEFAULT_IMAGE_TABLES.default_ticket_images[0]

    def test_showcase_ticket(self, resolver, ledger, metadata_server):
        festival = ledger.add_event("Spring Festival", FUTURE)
        ledger.mint(WALLET, festival.event_id, token_uri(0), token_id=0)
        metadata_server.serve(0, "Festival Pass", "Cultural celebration")

        tickets = run(resolver.resolve(WALLET, now=NOW))

        (view,) = tickets.buckets.upcoming
        assert view.image_url == DEFAULT_IMAGE_TABLES.cultural_showcase

    def test_scan_failure_fails_the_pass(self, http_client, config, metrics):
        ledger = FailingLedger()
        populate(ledger)
        ledger.fail_scan = True
        resolver = TicketResolver(ledger, http_client, config, metrics=metrics)

        with pytest.raises(ScanError):
            run(resolver.resolve(WALLET))
        assert metrics.passes_failed == 1

    def test_slow_token_times_out_alone(self, http_client, metrics, metadata_server):
        ledger = SlowLedger(owner_delay=5.0, slow_tokens={7})
        populate(ledger, metadata_server)
        config = ResolverConfig(ipfs_gateway=GATEWAY, request_timeout=0.05)
        resolver = TicketResolver(ledger, http_client, config, metrics=metrics)

        tickets = run(resolver.resolve(WALLET, now=NOW))

        assert tickets.result.token_ids == {3, 4}
        assert tickets.result.skipped_because(SkipReason.OWNERSHIP_LOOKUP_FAILED) == [7]

    def test_concurrency_is_bounded(self, http_client, metrics):
        ledger = SlowLedger(owner_delay=0.01)
        event = ledger.add_event("Harbour Jazz Night", FUTURE)
        for _ in range(10):
            ledger.mint(WALLET, event.event_id)
        config = ResolverConfig(ipfs_gateway=GATEWAY, max_concurrency=3)
        resolver = TicketResolver(ledger, http_client, config, metrics=metrics)

        tickets = run(resolver.resolve(WALLET, now=NOW))

        assert len(tickets.records) == 10
        assert 1 < ledger.max_active <= 3

    def test_metrics_recorded(self, resolver, ledger, metadata_server, metrics):
        populate(ledger, metadata_server)
        run(resolver.resolve(WALLET, now=NOW))

        summary = metrics.get_summary()
        assert summary["passes_total"] == 1
        assert summary["candidates_scanned"] == 4
        assert summary["tokens_resolved"] == 3
        assert summary["tokens_skipped"] == 1
        assert summary["pass_latency_p50_ms"] is not None

    def test_recover_ticket_image_matches_render(self, resolver, ledger, metadata_server):
        populate(ledger, metadata_server)
        tickets = run(resolver.resolve(WALLET, now=NOW))

        for view in tickets.buckets.all_tickets():
            assert run(resolver.recover_ticket_image(view.token_id, view.description)) == view.fallback_image_url

    def test_recovery_survives_metadata_outage(self, resolver, ledger, metadata_server):
        """Metadata served at render time and down at recovery time."""
        festival = ledger.add_event("Spring Festival", FUTURE)
        ledger.mint(WALLET, festival.event_id, token_uri(3), token_id=3)
        metadata_server.serve(3, "Festival Pass", "Cultural celebration", "ipfs://QmImg/3.png")

        (view,) = run(resolver.resolve(WALLET, now=NOW)).buckets.upcoming
        assert view.fallback_image_url == DEFAULT_IMAGE_TABLES.cultural_images[3]

        metadata_server.fail(3, status_code=502)
        requested = len(metadata_server.requested)

        assert run(resolver.recover_ticket_image(3, view.description)) == view.fallback_image_url
        assert len(metadata_server.requested) == requested

    def test_hanging_metadata_does_not_stall_the_pass(self, ledger, metrics, metadata_server):
        populate(ledger, metadata_server)

        async def handler(request):
            if request.url.path.endswith("/7.json"):
                await asyncio.sleep(2.0)
            return metadata_server(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), timeout=None)
        config = ResolverConfig(ipfs_gateway=GATEWAY, request_timeout=0.05)
        resolver = TicketResolver(ledger, client, config, metrics=metrics)

        start = time.perf_counter()
        tickets = run(resolver.resolve(WALLET, now=NOW))

        assert time.perf_counter() - start < 1.0
        assert tickets.result.token_ids == {3, 4, 7}
        (late,) = [r for r in tickets.records if r.token_id == 7]
        assert late.metadata == Metadata.placeholder(7)

    def test_recover_unknown_ticket(self, resolver):
        with pytest.raises(TokenSkipped):
            run(resolver.recover_ticket_image(404))

    def test_event_image(self, resolver):
        assert resolver.event_image(7) == DEFAULT_IMAGE_TABLES.default_event_images[2]


class TestResolutionSession:
    """Switching wallets abandons the pass in flight."""

    @pytest.fixture
    def gated(self, metadata_server):
        ledger = SlowLedger()
        populate(ledger, metadata_server)
        other = ledger.add_event("Harbour Jazz Night", FUTURE)
        ledger.mint(OTHER_WALLET, other.event_id, token_uri(20), token_id=20)
        metadata_server.serve(20, "Other ticket")
        ledger.gated_wallet = WALLET
        return ledger

    def test_new_address_abandons_previous_pass(self, gated, http_client, config):
        metrics = MetricsCollector()
        resolver = TicketResolver(gated, http_client, config, metrics=metrics)

        async def scenario():
            gated.scan_gate = asyncio.Event()
            session = ResolutionSession(resolver)

            first = asyncio.create_task(session.resolve(WALLET, now=NOW))
            await asyncio.sleep(0.01)
            assert session.in_flight

            second = await session.resolve(OTHER_WALLET, now=NOW)
            gated.scan_gate.set()

            with pytest.raises(PassAbandonedError):
                await first
            return second

        second = run(scenario())

        assert second.address == OTHER_WALLET
        # 4 passed through OTHER_WALLET but went back to WALLET
        assert second.result.token_ids == {9, 20}
        assert second.result.skipped_because(SkipReason.NOT_OWNER) == [4]
        assert metrics.passes_abandoned == 1

    def test_close_abandons_and_refuses(self, gated, http_client, config, metrics):
        resolver = TicketResolver(gated, http_client, config, metrics=metrics)

        async def scenario():
            gated.scan_gate = asyncio.Event()
            session = ResolutionSession(resolver)
            pending = asyncio.create_task(session.resolve(WALLET, now=NOW))
            await asyncio.sleep(0.01)

            await session.close()

            with pytest.raises(PassAbandonedError):
                await pending
            with pytest.raises(PassAbandonedError):
                await session.resolve(OTHER_WALLET)

        run(scenario())

    def test_sequential_passes(self, resolver, ledger, metadata_server):
        populate(ledger, metadata_server)

        async def scenario():
            session = ResolutionSession(resolver)
            first = await session.resolve(WALLET, now=NOW)
            second = await session.resolve(WALLET, now=NOW)
            await session.close()
            return first, second

        first, second = run(scenario())
        assert first.records == second.records
