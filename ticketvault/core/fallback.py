"""
Fallback images for tickets and events.

Used for tickets whose metadata has no image (or could not be fetched)
and again when a rendered image fails to load. Both call sites go through
the functions below, so they must stay pure: the same event and token id
always give the same URL.

Selection policy for tickets, in order:
1. Token #0 is the showcase ticket and always gets the cultural showcase image.
2. Events mentioning "cultural" in their name or description get a
   cultural image, indexed by token id.
3. Everything else gets a default ticket image, indexed by token id.
"""

from dataclasses import dataclass
from typing import Optional

from ..schemas import FallbackEvent


SHOWCASE_TOKEN_ID = 0
CULTURAL_KEYWORD = "cultural"


@dataclass(frozen=True)
class ImageTables:
    """
    The image pools the fallback policy draws from.

    Injected rather than global so tests (and deployments) can supply
    their own pools.
    """
    cultural_showcase: str
    cultural_images: tuple[str, ...]
    default_ticket_images: tuple[str, ...]
    default_event_images: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.cultural_showcase:
            raise ValueError("cultural_showcase image is required")
        for table_name in ("cultural_images", "default_ticket_images", "default_event_images"):
            table = getattr(self, table_name)
            if not table:
                raise ValueError(f"{table_name} cannot be empty")
            if not all(table):
                raise ValueError(f"{table_name} contains an empty URL")


DEFAULT_EVENT_IMAGES = (
    "https://cdn.pixabay.com/photo/2016/11/23/15/48/audience-1853662_1280.jpg",
    "https://cdn.pixabay.com/photo/2016/11/22/19/15/hand-1850120_1280.jpg",
    "https://cdn.pixabay.com/photo/2017/07/21/23/57/concert-2527495_1280.jpg",
    "https://cdn.pixabay.com/photo/2016/11/29/06/17/audience-1867754_1280.jpg",
    "https://cdn.pixabay.com/photo/2017/01/06/23/03/sunrise-1959227_1280.jpg",
)

DEFAULT_TICKET_IMAGES = (
    "https://img.freepik.com/free-vector/realistic-concert-entrance-tickets-set_1017-30605.jpg",
    "https://img.freepik.com/free-vector/realistic-golden-ticket-template_52683-35936.jpg",
    "https://img.freepik.com/free-vector/cinema-tickets-set_1017-30634.jpg",
    "https://img.freepik.com/free-vector/realistic-concert-entrance-tickets-set_1017-30605.jpg",
    "https://img.freepik.com/free-vector/realistic-concert-entrance-tickets-set_1017-30605.jpg",
)

CULTURAL_TICKET_IMAGES = (
    "https://img.freepik.com/free-photo/traditional-cultural-dance-performance-stage_53876-138776.jpg",
    "https://img.freepik.com/free-photo/group-people-traditional-indian-clothes_23-2149064512.jpg",
    "https://img.freepik.com/free-photo/woman-dancing-traditional-chinese-clothing_23-2149064502.jpg",
    "https://img.freepik.com/free-photo/african-american-jazz-musician-playing-trumpet_23-2149071755.jpg",
    "https://img.freepik.com/free-photo/traditional-mexican-hat-with-decorations_23-2149067702.jpg",
)

DEFAULT_IMAGE_TABLES = ImageTables(
    cultural_showcase=CULTURAL_TICKET_IMAGES[0],
    cultural_images=CULTURAL_TICKET_IMAGES,
    default_ticket_images=DEFAULT_TICKET_IMAGES,
    default_event_images=DEFAULT_EVENT_IMAGES,
)


def is_cultural(event: FallbackEvent) -> bool:
    """True if the event's name or description mentions "cultural"."""
    return (
        CULTURAL_KEYWORD in event.name.lower()
        or CULTURAL_KEYWORD in event.description.lower()
    )


def ticket_fallback_image(
    event: Optional[FallbackEvent],
    token_id: int,
    tables: ImageTables = DEFAULT_IMAGE_TABLES,
) -> str:
    """
    Pick the fallback image for a ticket.

    Args:
        event: The ticket's event (None if it could not be determined)
        token_id: The ticket's token id
        tables: Image pools to draw from

    Returns:
        A non-empty image URL
    """
    if token_id == SHOWCASE_TOKEN_ID:
        return tables.cultural_showcase

    if event is None:
        return tables.default_ticket_images[0]

    if is_cultural(event):
        return tables.cultural_images[token_id % len(tables.cultural_images)]

    return tables.default_ticket_images[token_id % len(tables.default_ticket_images)]


def event_fallback_image(
    event: Optional[FallbackEvent],
    tables: ImageTables = DEFAULT_IMAGE_TABLES,
) -> str:
    """Pick the fallback image for an event, keyed on its id."""
    if event is None:
        return tables.default_event_images[0]
    return tables.default_event_images[event.event_id % len(tables.default_event_images)]
