"""
StreamIndex Builder — Write Operation Construction
==================================================

Turns one (OperationGroup, source table) group of mutation events into an
ordered list of write operations against the mapped target collection.

    UPSERT group → Upsert(collection, id, decode + enrich(NewImage))
    DELETE group → Delete(collection, id)

Tables missing from the collection mapping produce nothing. Records whose
key or image cannot be decoded, or whose document cannot be serialized for
the bulk body, are returned as RecordErrors alongside the operations, so
one bad record never blocks the rest of the group.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from elasticsearch import SerializationError
from elasticsearch.serializer import JsonSerializer

from .attributes import decode_image
from .enrichment import enrich
from .errors import AttributeDecodeError, RecordKeyError
from .models import (
    Delete,
    MutationEvent,
    OperationGroup,
    RecordError,
    Upsert,
    WriteOperation,
)

logger = logging.getLogger(__name__)

CollectionMapping = Dict[str, str]

# Same encoder the client uses for bulk bodies
_serializer = JsonSerializer()


@dataclass
class BuildOutcome:
    """Operations built for a group, plus the records that failed."""

    operations: List[WriteOperation] = field(default_factory=list)
    errors: List[RecordError] = field(default_factory=list)
    skipped: int = 0


def _fallback_id(event: MutationEvent) -> str:
    return event.event_id or f"{event.source_table}:unresolved"


def build_document(
    event: MutationEvent,
    record_id: str,
    collection: str,
    now: Optional[datetime] = None
) -> dict:
    """
    Build the search document for an upsert event.

    Args:
        event: Event carrying a NewImage
        record_id: Resolved primary key
        collection: Target collection (selects enrichment)
        now: Processing time for enrichment

    Raises:
        AttributeDecodeError: The image holds a malformed value
    """
    document = decode_image(event.new_image)
    document["id"] = record_id
    return enrich(document, collection, now=now)


def build_operations(
    group: OperationGroup,
    table: str,
    events: Iterable[MutationEvent],
    mapping: CollectionMapping,
    now: Optional[datetime] = None
) -> BuildOutcome:
    """
    Build write operations for one (group, table) pair.

    Args:
        group: UPSERT or DELETE
        table: Source table shared by all events
        events: Events in arrival order
        mapping: Source table → target collection
        now: Processing time for enrichment (default: current time)

    Returns:
        BuildOutcome with operations in event order and per-record errors
    """
    outcome = BuildOutcome()
    collection = mapping.get(table)
    if not collection:
        logger.warning("No index mapping for table", extra={"table": table})
        return outcome

    for event in events:
        try:
            record_id = event.record_id()
        except RecordKeyError as exc:
            logger.error(
                "Failed to resolve record id",
                extra={"table": table, "event_id": event.event_id, "error": str(exc)},
            )
            outcome.errors.append(RecordError(_fallback_id(event), "key", str(exc)))
            continue

        if group is OperationGroup.DELETE:
            outcome.operations.append(Delete(collection=collection, id=record_id))
            continue

        if not event.new_image:
            logger.warning(
                "Upsert event without NewImage, skipping",
                extra={"table": table, "record_id": record_id},
            )
            outcome.skipped += 1
            continue

        try:
            document = build_document(event, record_id, collection, now=now)
        except AttributeDecodeError as exc:
            logger.error(
                "Failed to decode record",
                extra={"table": table, "record_id": record_id, "error": str(exc)},
            )
            outcome.errors.append(RecordError(record_id, "decode", str(exc)))
            continue

        try:
            _serializer.dumps(document)
        except SerializationError as exc:
            cause = exc.errors[0] if exc.errors else exc
            logger.error(
                "Document cannot be serialized",
                extra={"table": table, "record_id": record_id, "error": str(cause)},
            )
            outcome.errors.append(RecordError(record_id, "serialize", str(cause)))
            continue

        outcome.operations.append(Upsert(collection=collection, id=record_id, document=document))

    logger.info(
        "Built operations",
        extra={
            "table": table,
            "collection": collection,
            "group": group.value,
            "operations": len(outcome.operations),
            "errors": len(outcome.errors),
            "skipped": outcome.skipped,
        },
    )
    return outcome
