"""Shared fixtures: stream record factory and an in-memory bulk client."""

import logging
from typing import Any, Dict, List, Optional

import pytest

from streamindex.attributes import encode, encode_image

STREAM_ARN = "arn:aws:dynamodb:us-east-1:123456789012:table/{table}/stream/2024-01-01T00:00:00.000"


def make_record(
    event_name: str,
    table: str,
    record_id: Any,
    image: Optional[Dict[str, Any]] = None,
    event_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a raw stream record the way the change feed delivers it."""
    body: Dict[str, Any] = {"Keys": {"id": encode(record_id)}}
    if image is not None:
        body["NewImage"] = encode_image(dict(image, id=record_id))
    return {
        "eventID": event_id or f"{event_name}-{table}-{record_id}",
        "eventName": event_name,
        "eventSourceARN": STREAM_ARN.format(table=table),
        "dynamodb": body,
    }


def split_actions(body: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Return only the action lines of a bulk body."""
    actions = []
    skip_source = False
    for line in body:
        if skip_source:
            skip_source = False
            continue
        actions.append(line)
        skip_source = "index" in line
    return actions


def ok_response(body: List[Dict[str, Any]], failing: Optional[Dict[int, Dict[str, Any]]] = None):
    """Bulk response for a body; items at indices in `failing` carry that error."""
    failing = failing or {}
    items = []
    for position, action in enumerate(split_actions(body)):
        (kind, meta), = action.items()
        info = {"_index": meta["_index"], "_id": meta["_id"], "status": 200}
        if position in failing:
            info["status"] = 400
            info["error"] = failing[position]
        items.append({kind: info})
    return {"took": 3, "errors": bool(failing), "items": items}


class FakeBulkClient:
    """
    Async stand-in for the search client.

    `outcomes` is consumed one entry per bulk call: an exception instance is
    raised, a callable receives the body and returns the response, and None
    (or running out of outcomes) answers with an all-success response.
    """

    def __init__(self, outcomes: Optional[List[Any]] = None):
        self.outcomes = list(outcomes or [])
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    async def bulk(self, operations, refresh=None, timeout=None):
        self.calls.append({"operations": operations, "refresh": refresh, "timeout": timeout})
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return outcome(operations)
        return ok_response(operations)

    async def close(self):
        self.closed = True


class RecordingSleep:
    """Collects requested retry delays instead of sleeping."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def fake_client():
    return FakeBulkClient()


@pytest.fixture
def no_sleep():
    return RecordingSleep()


@pytest.fixture(autouse=True)
def restore_package_logger():
    """configure_logging() stops propagation; undo it so caplog keeps working."""
    package_logger = logging.getLogger("streamindex")
    saved = (list(package_logger.handlers), package_logger.level, package_logger.propagate)
    yield
    package_logger.handlers[:] = saved[0]
    package_logger.setLevel(saved[1])
    package_logger.propagate = saved[2]
