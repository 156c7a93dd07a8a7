"""
StreamIndex Router — Event Partitioning
=======================================

Splits a batch of mutation events into (OperationGroup, source table)
groups. INSERT and MODIFY are both upserts of the latest image; REMOVE is a
delete. Events of any other kind are logged and dropped.
"""

import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Tuple

from .errors import RecordKeyError
from .models import MutationEvent, OperationGroup, OperationKind

logger = logging.getLogger(__name__)

GroupKey = Tuple[OperationGroup, str]

_GROUP_BY_KIND = {
    OperationKind.INSERT: OperationGroup.UPSERT,
    OperationKind.MODIFY: OperationGroup.UPSERT,
    OperationKind.REMOVE: OperationGroup.DELETE,
}


def classify(event: MutationEvent):
    """Return the OperationGroup for an event, or None for unknown kinds."""
    kind = event.kind
    return _GROUP_BY_KIND.get(kind) if kind is not None else None


def route(events: Iterable[MutationEvent]) -> Dict[GroupKey, List[MutationEvent]]:
    """
    Partition events by operation group and source table.

    Args:
        events: Mutation events in arrival order

    Returns:
        Ordered dict of (group, table) → events, each list in arrival order
    """
    groups: Dict[GroupKey, List[MutationEvent]] = OrderedDict()
    dropped = 0

    for event in events:
        group = classify(event)
        if group is None:
            dropped += 1
            logger.warning(
                "Unknown event type",
                extra={"event_name": event.operation_kind, "table": event.source_table},
            )
            continue
        groups.setdefault((group, event.source_table), []).append(event)

    logger.info(
        "Routed events",
        extra={
            "groups": {f"{g.value}:{t}": len(evs) for (g, t), evs in groups.items()},
            "dropped": dropped,
        },
    )
    return groups


def collapse_latest(events: Iterable[MutationEvent]) -> List[MutationEvent]:
    """
    Keep only the last event for each (table, id), in arrival order.

    Concurrent upsert and delete groups then never touch the same entity, so
    a delete followed by a re-insert in one batch cannot apply out of order.
    Events whose key cannot be resolved are passed through untouched and
    fail later in the builder. Unknown kinds pass through as well.
    """
    latest: Dict[Tuple[str, str], int] = {}
    ordered: List[MutationEvent] = list(events)
    unresolved = set()

    for position, event in enumerate(ordered):
        # unknown kinds must not shadow a real mutation; route() drops them
        if classify(event) is None:
            unresolved.add(position)
            continue
        try:
            key = (event.source_table, event.record_id())
        except RecordKeyError:
            unresolved.add(position)
            continue
        latest[key] = position

    keep = unresolved.union(latest.values())
    collapsed = [event for position, event in enumerate(ordered) if position in keep]

    superseded = len(ordered) - len(collapsed)
    if superseded:
        logger.info("Collapsed superseded events", extra={"superseded": superseded})
    return collapsed
