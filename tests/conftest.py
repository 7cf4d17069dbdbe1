"""Shared fixtures for ticket resolution tests."""

import json
from datetime import datetime, timezone

import httpx
import pytest

from ticketvault.chain import InMemoryTicketLedger
from ticketvault.config import ResolverConfig
from ticketvault.core import TicketResolver
from ticketvault.observability import MetricsCollector


WALLET = "0xAbC0000000000000000000000000000000000001"
OTHER_WALLET = "0xdef0000000000000000000000000000000000002"

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
FUTURE = datetime(2099, 1, 1, tzinfo=timezone.utc)
PAST = datetime(2001, 1, 1, tzinfo=timezone.utc)

GATEWAY = "https://gateway.test"


def token_uri(token_id: int) -> str:
    return f"ipfs://QmTickets/{token_id}.json"


def metadata_url(token_id: int) -> str:
    return f"{GATEWAY}/ipfs/QmTickets/{token_id}.json"


class MetadataServer:
    """httpx handler serving metadata documents by URL."""

    def __init__(self):
        self.documents: dict[str, httpx.Response] = {}
        self.requested: list[str] = []

    def serve(self, token_id: int, name: str, description: str = "", image: str = "") -> None:
        body = {"name": name, "description": description, "image": image}
        self.documents[metadata_url(token_id)] = httpx.Response(200, json=body)

    def fail(self, token_id: int, status_code: int = 500) -> None:
        self.documents[metadata_url(token_id)] = httpx.Response(status_code)

    def serve_raw(self, token_id: int, content: str) -> None:
        self.documents[metadata_url(token_id)] = httpx.Response(200, content=content)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requested.append(url)
        response = self.documents.get(url)
        if response is None:
            return httpx.Response(404, content=json.dumps({"error": "not found"}))
        return response


@pytest.fixture
def metadata_server():
    return MetadataServer()


@pytest.fixture
def http_client(metadata_server):
    return httpx.AsyncClient(transport=httpx.MockTransport(metadata_server))


@pytest.fixture
def ledger():
    return InMemoryTicketLedger()


@pytest.fixture
def config():
    return ResolverConfig(ipfs_gateway=GATEWAY, request_timeout=0.5, max_concurrency=4)


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def resolver(ledger, http_client, config, metrics):
    return TicketResolver(ledger, http_client, config, metrics=metrics)
