"""
Content-addressed URI translation.

Token URIs and metadata images are usually ipfs:// locators, which
browsers and HTTP clients cannot fetch directly. ipfs_to_http rewrites
them onto an HTTP gateway; anything else passes through unchanged.
data: URIs are never fetched; MetadataResolver decodes them locally.
"""

import re

from ..config import DEFAULT_IPFS_GATEWAY


IPFS_SCHEME = "ipfs://"

# CIDv0 (base58, Qm...) and CIDv1 (base32, b...) roots
_BARE_CID = re.compile(r"^(Qm[1-9A-HJ-NP-Za-km-z]{44}|b[a-z2-7]{58,})(/.*)?$")


def ipfs_to_http(uri: str, gateway: str = DEFAULT_IPFS_GATEWAY) -> str:
    """
    Translate a content-addressed locator into a fetchable URL.

    Examples:
        ipfs://Qm.../1.json      -> https://ipfs.io/ipfs/Qm.../1.json
        ipfs://ipfs/Qm.../1.json -> https://ipfs.io/ipfs/Qm.../1.json
        /ipfs/Qm...              -> https://ipfs.io/ipfs/Qm...
        Qm...                    -> https://ipfs.io/ipfs/Qm...
        https://example.com/1    -> unchanged
    """
    uri = uri.strip()
    gateway = gateway.rstrip("/")

    if uri.startswith(IPFS_SCHEME):
        path = uri[len(IPFS_SCHEME):]
        if path.startswith("ipfs/"):
            path = path[len("ipfs/"):]
        return f"{gateway}/ipfs/{path}"

    if uri.startswith("/ipfs/"):
        return f"{gateway}{uri}"

    if _BARE_CID.match(uri):
        return f"{gateway}/ipfs/{uri}"

    return uri
