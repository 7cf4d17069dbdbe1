# Core ticket resolution services
from .aggregator import TicketAggregator, format_event_date, partition, sort_records
from .details import TicketDetailFetcher
from .errors import (
    PassAbandonedError,
    ResolutionError,
    ScanError,
    SkipReason,
    TokenSkipped,
)
from .fallback import (
    DEFAULT_IMAGE_TABLES,
    ImageTables,
    event_fallback_image,
    ticket_fallback_image,
)
from .ipfs import ipfs_to_http
from .metadata import MetadataResolver
from .outcome import PassResult, TokenOutcome, reduce_outcomes
from .ownership import OwnershipVerifier
from .resolver import ResolutionSession, TicketResolver, WalletTickets
from .scanner import EventLogScanner

__all__ = [
    "TicketAggregator",
    "format_event_date",
    "partition",
    "sort_records",
    "TicketDetailFetcher",
    "PassAbandonedError",
    "ResolutionError",
    "ScanError",
    "SkipReason",
    "TokenSkipped",
    "DEFAULT_IMAGE_TABLES",
    "ImageTables",
    "event_fallback_image",
    "ticket_fallback_image",
    "ipfs_to_http",
    "MetadataResolver",
    "PassResult",
    "TokenOutcome",
    "reduce_outcomes",
    "OwnershipVerifier",
    "ResolutionSession",
    "TicketResolver",
    "WalletTickets",
    "EventLogScanner",
]
