"""
Resolution errors.

Only ScanError is fatal to a pass. TokenSkipped never leaves the
per-token pipeline: it is turned into a TokenOutcome so one bad token
cannot take the rest of the wallet down with it.
"""

from enum import Enum


class SkipReason(str, Enum):
    """Why a candidate token was left out of the resolved set."""
    NOT_OWNER = "not_owner"
    OWNERSHIP_LOOKUP_FAILED = "ownership_lookup_failed"
    DETAIL_LOOKUP_FAILED = "detail_lookup_failed"


class ResolutionError(Exception):
    """Base exception for ticket resolution errors."""
    pass


class ScanError(ResolutionError):
    """Raised when the Transfer event log cannot be queried."""

    def __init__(self, address: str, cause: str):
        super().__init__(f"Transfer log query failed for {address}: {cause}")
        self.address = address
        self.cause = cause


class TokenSkipped(ResolutionError):
    """Raised inside a per-token pipeline when the token must be dropped."""

    def __init__(self, token_id: int, reason: SkipReason, detail: str = ""):
        message = f"Token {token_id} skipped ({reason.value})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.token_id = token_id
        self.reason = reason
        self.detail = detail


class PassAbandonedError(ResolutionError):
    """Raised when a pass was superseded or its session closed before it finished."""

    def __init__(self, address: str):
        super().__init__(f"Resolution pass for {address} was abandoned")
        self.address = address
