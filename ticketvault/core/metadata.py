"""
Metadata Resolver

Fetches the off-chain JSON behind a token URI. This never fails: a
ticket with unreachable or malformed metadata is still a ticket the
wallet owns, so it is shown with placeholder metadata instead.

Token URIs are usually ipfs:// or https:// locators fetched over HTTP.
Contracts that store metadata on chain return data: URIs instead; those
are decoded in place without touching the network.
"""

import asyncio
import base64
import binascii
import json
from typing import Any, Optional
from urllib.parse import unquote_to_bytes

import httpx
from pydantic import ValidationError

from ..config import DEFAULT_IPFS_GATEWAY
from ..observability import MetricsCollector, get_logger, get_metrics
from ..schemas import Metadata
from .ipfs import ipfs_to_http

logger = get_logger(__name__)


DATA_SCHEME = "data:"


def decode_data_uri(uri: str) -> Any:
    """
    Decode the JSON document held in a data: URI.

    Supports both plain (percent-encoded) and ;base64 payloads:
        data:application/json,{"name":"VIP"}
        data:application/json;base64,eyJuYW1lIjoiVklQIn0=

    Raises:
        ValueError: If the URI is not a data: URI or its payload is not JSON.
    """
    if not uri.startswith(DATA_SCHEME):
        raise ValueError("not a data: URI")

    header, sep, payload = uri[len(DATA_SCHEME):].partition(",")
    if not sep:
        raise ValueError("data: URI has no payload")

    raw = unquote_to_bytes(payload)
    if header.lower().endswith(";base64"):
        try:
            raw = base64.b64decode(raw, validate=True)
        except binascii.Error as e:
            raise ValueError(f"bad base64 payload: {e}") from e

    return json.loads(raw.decode("utf-8"))


class MetadataResolver:
    """
    Resolves token metadata over HTTP.

    The httpx client is owned by the caller so a single connection pool
    is shared across every token in a pass. Each fetch is additionally
    bounded by `timeout` as a whole, whatever the client's own settings.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        gateway: str = DEFAULT_IPFS_GATEWAY,
        metrics: Optional[MetricsCollector] = None,
        timeout: float = 10.0,
    ):
        self._client = client
        self._gateway = gateway
        self._metrics = metrics or get_metrics()
        self._timeout = timeout

    async def resolve(self, token_id: int, token_uri: str) -> Metadata:
        """
        Fetch and parse metadata for a token.

        Returns:
            The parsed Metadata, or Metadata.placeholder(token_id) on any failure
        """
        token_uri = token_uri.strip()
        if not token_uri:
            return self._placeholder(token_id, "token has no URI")

        if token_uri.startswith(DATA_SCHEME):
            try:
                return Metadata.model_validate(decode_data_uri(token_uri))
            except ValueError as e:
                return self._placeholder(token_id, f"invalid data: URI: {e}")

        url = ipfs_to_http(token_uri, self._gateway)
        try:
            response = await asyncio.wait_for(self._client.get(url), timeout=self._timeout)
            response.raise_for_status()
            return Metadata.model_validate(response.json())
        except asyncio.TimeoutError:
            return self._placeholder(token_id, f"timed out after {self._timeout}s", url=url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return self._placeholder(token_id, f"{type(e).__name__}: {e}", url=url)
        except ValueError as e:
            # Invalid JSON body (json.JSONDecodeError) or wrong shape (ValidationError)
            kind = "invalid metadata" if isinstance(e, ValidationError) else "malformed body"
            return self._placeholder(token_id, f"{kind}: {e}", url=url)
        except Exception as e:
            return self._placeholder(token_id, f"{type(e).__name__}: {e}", url=url)

    def _placeholder(self, token_id: int, error: str, url: Optional[str] = None) -> Metadata:
        logger.warning(
            "Metadata unavailable, using placeholder",
            token_id=token_id,
            url=url,
            error=error,
        )
        self._metrics.record_metadata_placeholder()
        return Metadata.placeholder(token_id)
