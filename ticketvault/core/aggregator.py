"""
Ticket Aggregator

Turns a pass's TicketRecords into what the wallet page shows:
three buckets, each sorted by event date.

Bucket rules, evaluated in order:
- Used:     used is set (even if the event is still in the future)
- Upcoming: not used and the event date is after now
- Expired:  not used and the event date is now or earlier
"""

from datetime import datetime, timezone
from typing import Iterable, Optional

from ..config import DEFAULT_IPFS_GATEWAY
from ..schemas import FallbackEvent, TicketBuckets, TicketRecord, TicketView
from .fallback import DEFAULT_IMAGE_TABLES, ImageTables, ticket_fallback_image
from .ipfs import ipfs_to_http


STATUS_USED = "used"
STATUS_ACTIVE = "active"
STATUS_EXPIRED = "expired"


def sort_records(records: Iterable[TicketRecord]) -> list[TicketRecord]:
    """Ascending by event date; equal dates keep their input order."""
    return sorted(records, key=lambda r: r.event_date)


def is_upcoming(record: TicketRecord, now: datetime) -> bool:
    return record.event_date > now


def partition(
    records: Iterable[TicketRecord],
    now: datetime,
) -> tuple[list[TicketRecord], list[TicketRecord], list[TicketRecord]]:
    """
    Split records into (upcoming, used, expired).

    Every record lands in exactly one bucket and each bucket keeps the
    event-date order.
    """
    upcoming: list[TicketRecord] = []
    used: list[TicketRecord] = []
    expired: list[TicketRecord] = []

    for record in sort_records(records):
        if record.used:
            used.append(record)
        elif is_upcoming(record, now):
            upcoming.append(record)
        else:
            expired.append(record)

    return upcoming, used, expired


def format_event_date(date: datetime) -> str:
    """Long en-US form, e.g. "Monday, January 15, 2024"."""
    return f"{date:%A}, {date:%B} {date.day}, {date.year}"


def fallback_event_for(record: TicketRecord) -> FallbackEvent:
    """
    The event as the fallback policy sees it.

    The ledger has no event description, so the ticket's metadata
    description stands in for it.
    """
    return FallbackEvent(
        event_id=record.event_id,
        name=record.event_name,
        description=record.metadata.description,
    )


def fallback_image_for(record: TicketRecord, tables: ImageTables = DEFAULT_IMAGE_TABLES) -> str:
    return ticket_fallback_image(fallback_event_for(record), record.token_id, tables)


def image_url_for(
    record: TicketRecord,
    tables: ImageTables = DEFAULT_IMAGE_TABLES,
    gateway: str = DEFAULT_IPFS_GATEWAY,
) -> str:
    """Metadata image if there is one, otherwise the fallback image."""
    if record.metadata.image:
        return ipfs_to_http(record.metadata.image, gateway)
    return fallback_image_for(record, tables)


class TicketAggregator:
    """Sorts, partitions and renders resolved tickets."""

    def __init__(
        self,
        tables: ImageTables = DEFAULT_IMAGE_TABLES,
        gateway: str = DEFAULT_IPFS_GATEWAY,
    ):
        self._tables = tables
        self._gateway = gateway

    @property
    def tables(self) -> ImageTables:
        return self._tables

    def present(self, record: TicketRecord, now: datetime) -> TicketView:
        """Build the renderable card for one record."""
        if record.used:
            status = STATUS_USED
        elif is_upcoming(record, now):
            status = STATUS_ACTIVE
        else:
            status = STATUS_EXPIRED

        return TicketView(
            token_id=record.token_id,
            event_id=record.event_id,
            event_name=record.event_name,
            event_date=record.event_date,
            formatted_date=format_event_date(record.event_date),
            used=record.used,
            locked=record.locked,
            status=status,
            name=record.metadata.name or f"Ticket #{record.token_id}",
            description=record.metadata.description,
            image_url=image_url_for(record, self._tables, self._gateway),
            fallback_image_url=fallback_image_for(record, self._tables),
        )

    def aggregate(
        self,
        records: Iterable[TicketRecord],
        now: Optional[datetime] = None,
    ) -> TicketBuckets:
        """
        Build the three display buckets.

        Args:
            records: The pass's resolved records, in any order
            now: Reference time for upcoming/expired (default: current UTC time)
        """
        now = now or datetime.now(timezone.utc)
        upcoming, used, expired = partition(records, now)
        return TicketBuckets(
            upcoming=[self.present(r, now) for r in upcoming],
            used=[self.present(r, now) for r in used],
            expired=[self.present(r, now) for r in expired],
        )
