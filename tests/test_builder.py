"""Tests for write-operation construction."""

from datetime import datetime, timezone

from conftest import make_record
from streamindex import enrichment
from streamindex.builder import build_operations
from streamindex.models import Delete, MutationEvent, OperationGroup, Upsert

MAPPING = {"Service": "listings", "Booking": "events", "UserProfile": "actors"}
NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def events(*records):
    return [MutationEvent.from_record(r) for r in records]


def test_upserts_carry_decoded_enriched_documents():
    evs = events(
        make_record("INSERT", "Service", "s1", {"title": "Surf Lesson", "rating": 4.5, "reviewCount": 20}),
        make_record("MODIFY", "Service", "s2", {"title": "Yoga"}),
    )
    outcome = build_operations(OperationGroup.UPSERT, "Service", evs, MAPPING, now=NOW)

    assert [op.id for op in outcome.operations] == ["s1", "s2"]
    first = outcome.operations[0]
    assert isinstance(first, Upsert)
    assert first.collection == "listings"
    assert first.document["id"] == "s1"
    assert first.document["rating"] == 4.5
    assert "score" in first.document
    assert first.document["lastSyncedAt"] == NOW.isoformat()
    assert outcome.errors == []


def test_deletes_use_primary_key():
    evs = events(make_record("REMOVE", "Booking", "b1"), make_record("REMOVE", "Booking", "b2"))
    outcome = build_operations(OperationGroup.DELETE, "Booking", evs, MAPPING)

    assert outcome.operations == [Delete("events", "b1"), Delete("events", "b2")]
    assert outcome.operations[0].to_actions() == [{"delete": {"_index": "events", "_id": "b1"}}]


def test_unmapped_table_produces_nothing(caplog):
    evs = events(make_record("INSERT", "AuditLog", "a1", {"msg": "x"}))
    outcome = build_operations(OperationGroup.UPSERT, "AuditLog", evs, MAPPING)

    assert outcome.operations == []
    assert outcome.errors == []
    assert "No index mapping for table" in caplog.text


def test_missing_new_image_is_skipped():
    evs = events(make_record("INSERT", "Service", "s1"))
    outcome = build_operations(OperationGroup.UPSERT, "Service", evs, MAPPING)

    assert outcome.operations == []
    assert outcome.skipped == 1
    assert outcome.errors == []


def test_bad_record_does_not_block_the_group():
    bad_number = make_record("INSERT", "Service", "s1", {"title": "x"})
    bad_number["dynamodb"]["NewImage"]["price"] = {"N": "ten"}
    bad_key = MutationEvent(operation_kind="INSERT", source_table="Service",
                            keys={"id": {"NULL": True}}, new_image={}, event_id="evt-9")
    evs = events(bad_number, make_record("INSERT", "Service", "s2", {"title": "ok"})) + [bad_key]

    outcome = build_operations(OperationGroup.UPSERT, "Service", evs, MAPPING)

    assert [op.id for op in outcome.operations] == ["s2"]
    assert [(e.record_id, e.stage) for e in outcome.errors] == [("s1", "decode"), ("evt-9", "key")]
    assert outcome.errors[0].to_result().success is False


def test_rebuilding_the_same_event_is_idempotent():
    record = make_record("MODIFY", "Service", "s1", {"title": "Surf", "rating": 4, "reviewCount": 3})
    first = build_operations(OperationGroup.UPSERT, "Service", events(record), MAPPING, now=NOW)
    second = build_operations(OperationGroup.UPSERT, "Service", events(record), MAPPING, now=NOW)

    assert first.operations == second.operations


def test_rebuild_differs_only_in_sync_timestamp():
    record = make_record("MODIFY", "Booking", "b1", {"startDateTime": "2024-06-16T09:00:00Z"})
    first = build_operations(OperationGroup.UPSERT, "Booking", events(record), MAPPING)
    second = build_operations(OperationGroup.UPSERT, "Booking", events(record), MAPPING)

    strip = lambda op: {k: v for k, v in op.document.items() if k != "lastSyncedAt"}
    assert first.operations[0].id == second.operations[0].id
    assert strip(first.operations[0]) == strip(second.operations[0])


def test_binary_attribute_is_indexed_as_base64():
    record = make_record("INSERT", "Service", "s2", {"title": "Thumb"})
    record["dynamodb"]["NewImage"]["thumbnail"] = {"B": "aGk="}
    outcome = build_operations(OperationGroup.UPSERT, "Service", events(record), MAPPING, now=NOW)

    assert outcome.errors == []
    assert outcome.operations[0].document["thumbnail"] == "aGk="


def test_unserializable_document_fails_only_that_record(monkeypatch):
    monkeypatch.setitem(
        enrichment.ENRICHERS,
        "listings",
        [("handle", lambda doc, now: object() if doc["id"] == "s1" else None)],
    )
    evs = events(
        make_record("INSERT", "Service", "s1", {"title": "a"}),
        make_record("INSERT", "Service", "s2", {"title": "b"}),
    )
    outcome = build_operations(OperationGroup.UPSERT, "Service", evs, MAPPING, now=NOW)

    assert [op.id for op in outcome.operations] == ["s2"]
    assert [(e.record_id, e.stage) for e in outcome.errors] == [("s1", "serialize")]
    assert "object" in outcome.errors[0].message
    assert len(outcome.errors[0].message) < 300
