"""
StreamIndex Enrichment — Write-Time Derived Fields
==================================================

Adds collection-specific fields to a decoded record before it is indexed:

    listings  → score (rating × review volume, decayed by age), searchTags
    events    → dayOfWeek, monthOfYear, hourOfDay, timeSlot
    actors    → isActiveProvider

Every document also gets lastSyncedAt, stamped last.

A failing derivation drops that one field and nothing else; a partially
enriched document is still written.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
FieldDeriver = Callable[[Document, datetime], Any]

SECONDS_PER_DAY = 86400.0
DEFAULT_AGE_DAYS = 365.0
PROVIDER_ROLE = "provider"
ACTIVITY_COUNTERS = ("totalBookings", "completedBookings")


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an ISO-8601 string or epoch number into an aware UTC datetime.

    Epoch values above 1e11 are treated as milliseconds.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a timestamp: {value!r}")
    if isinstance(value, (int, float)):
        seconds = value / 1000.0 if value > 1e11 else float(value)
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    raise ValueError(f"Not a timestamp: {value!r}")


def _number(document: Document, name: str) -> float:
    value = document.get(name)
    if value is None:
        return 0.0
    if isinstance(value, bool):
        raise ValueError(f"{name} is not numeric: {value!r}")
    return float(value)


# ---------------------------------------------------------------------------
# listings
# ---------------------------------------------------------------------------

def listing_score(document: Document, now: datetime) -> float:
    """
    Popularity score for a listing.

        score = (rating * ln(reviewCount + 1)) / ln(max(1, ageInDays) + 1)

    ageInDays is at least 1, and 365 when createdAt is absent.
    """
    rating = _number(document, "rating")
    review_count = _number(document, "reviewCount")

    created_at = document.get("createdAt")
    if created_at is None:
        age_days = DEFAULT_AGE_DAYS
    else:
        elapsed = (now - parse_timestamp(created_at)).total_seconds()
        age_days = max(1.0, elapsed / SECONDS_PER_DAY)

    return (rating * math.log(review_count + 1)) / math.log(max(1.0, age_days) + 1)


def search_tags(document: Document, now: datetime) -> Optional[List[str]]:
    """Lower-cased title tokens longer than two characters, plus the category."""
    title = document.get("title")
    category = document.get("category")
    if title is None and category is None:
        return None

    tags: List[str] = []
    if title is not None:
        tags.extend(word for word in title.lower().split() if len(word) > 2)
    if category is not None:
        tags.append(category.lower())
    return list(dict.fromkeys(tags))


# ---------------------------------------------------------------------------
# events
# ---------------------------------------------------------------------------

START_FIELD = "startDateTime"


def _start(document: Document) -> Optional[datetime]:
    value = document.get(START_FIELD)
    if value is None:
        return None
    return parse_timestamp(value)


def day_of_week(document: Document, now: datetime) -> Optional[int]:
    start = _start(document)
    # Sunday = 0
    return None if start is None else (start.weekday() + 1) % 7


def month_of_year(document: Document, now: datetime) -> Optional[int]:
    start = _start(document)
    return None if start is None else start.month


def hour_of_day(document: Document, now: datetime) -> Optional[int]:
    start = _start(document)
    return None if start is None else start.hour


def time_slot(document: Document, now: datetime) -> Optional[str]:
    start = _start(document)
    if start is None:
        return None
    return f"{start.hour}:00-{start.hour + 1}:00"


# ---------------------------------------------------------------------------
# actors
# ---------------------------------------------------------------------------

def active_provider(document: Document, now: datetime) -> Optional[bool]:
    if document.get("userType") != PROVIDER_ROLE:
        return None
    return any(_number(document, name) > 0 for name in ACTIVITY_COUNTERS)


# Collection → ordered (field, deriver) pairs
ENRICHERS: Dict[str, List[tuple]] = {
    "listings": [
        ("score", listing_score),
        ("searchTags", search_tags),
    ],
    "events": [
        ("dayOfWeek", day_of_week),
        ("monthOfYear", month_of_year),
        ("hourOfDay", hour_of_day),
        ("timeSlot", time_slot),
    ],
    "actors": [
        ("isActiveProvider", active_provider),
    ],
}


def register_enricher(collection: str, field_name: str, deriver: FieldDeriver) -> None:
    """
    Add a derived field for a collection.

    Args:
        collection: Target collection name
        field_name: Document field to set
        deriver: Callable(document, now) returning the value, or None to skip
    """
    ENRICHERS.setdefault(collection, []).append((field_name, deriver))


def enrich(
    document: Document,
    collection: str,
    now: Optional[datetime] = None
) -> Document:
    """
    Return an enriched copy of a document for the given collection.

    Args:
        document: Decoded record (not modified)
        collection: Target collection name, selects the enricher
        now: Processing time (default: current UTC time)

    Returns:
        New dict with derived fields and lastSyncedAt
    """
    now = now or datetime.now(timezone.utc)
    enriched = dict(document)

    for field_name, deriver in ENRICHERS.get(collection, ()):
        try:
            value = deriver(document, now)
        except Exception as exc:
            logger.debug(
                "Skipping derived field",
                extra={"collection": collection, "field": field_name, "error": str(exc)},
            )
            continue
        if value is not None:
            enriched[field_name] = value

    enriched["lastSyncedAt"] = now.isoformat()
    return enriched
