"""
StreamIndex Models — Events, Operations and Results
===================================================

Value types passed between the pipeline stages:

    MutationEvent     one captured change from the feed (immutable)
    Upsert / Delete   write operations against a target collection
    ProcessingResult  outcome of one write operation
    RecordError       record-level failure raised before any write
    SyncMetrics       per-invocation summary
"""

import enum
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

from .attributes import TypedImage, TypedValue, decode
from .errors import AttributeDecodeError, RecordKeyError, SourceIdentifierError


class OperationKind(enum.Enum):
    """Mutation kinds emitted by the change feed."""

    INSERT = "INSERT"
    MODIFY = "MODIFY"
    REMOVE = "REMOVE"

    @classmethod
    def parse(cls, name: Optional[str]) -> Optional["OperationKind"]:
        """Return the kind for a feed event name, or None if unrecognised."""
        if not name:
            return None
        name = name.upper()
        if name == "UPDATE":
            return cls.MODIFY
        try:
            return cls(name)
        except ValueError:
            return None


class OperationGroup(enum.Enum):
    """How a mutation is applied to the index."""

    UPSERT = "upsert"
    DELETE = "delete"


def parse_source_table(identifier: Optional[str]) -> str:
    """
    Extract the table name from a feed-position identifier.

    The identifier has the form ".../<table>/...", e.g.
    "arn:aws:dynamodb:us-east-1:123456789012:table/Service/stream/2024-01-01T00:00:00.000".

    Raises:
        SourceIdentifierError: If no table segment is present
    """
    if not identifier or not isinstance(identifier, str):
        raise SourceIdentifierError(f"Missing source identifier: {identifier!r}")
    parts = identifier.split("/")
    if len(parts) < 2 or not parts[1].strip():
        raise SourceIdentifierError(f"Malformed source identifier: {identifier!r}")
    return parts[1]


def _key_to_string(value: Any) -> str:
    if isinstance(value, str) and value:
        return value
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else str(value)
    raise RecordKeyError(f"Primary key value is not a scalar id: {value!r}")


@dataclass(frozen=True)
class MutationEvent:
    """
    One captured change against the source record store.

    Attributes:
        operation_kind: Raw event name from the feed (INSERT, MODIFY, REMOVE)
        source_table: Table the change belongs to
        keys: Primary key attributes, typed
        new_image: Latest typed image (Insert/Update only)
        old_image: Previous typed image (unused by the engine)
        event_id: Feed event id, when present
    """

    operation_kind: str
    source_table: str
    keys: Mapping[str, TypedValue]
    new_image: Optional[TypedImage] = None
    old_image: Optional[TypedImage] = None
    event_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "MutationEvent":
        """
        Build an event from a raw stream record.

        Args:
            record: Stream record with eventName, eventSourceARN and a
                dynamodb section holding Keys/NewImage/OldImage

        Raises:
            SourceIdentifierError: Table name cannot be parsed
            RecordKeyError: The record carries no primary key
        """
        if not isinstance(record, dict):
            raise SourceIdentifierError(f"Stream record must be an object, got {type(record).__name__}")
        body = record.get("dynamodb") or {}
        keys = body.get("Keys")
        if not keys:
            raise RecordKeyError("Record missing primary key")
        return cls(
            operation_kind=str(record.get("eventName") or ""),
            source_table=parse_source_table(record.get("eventSourceARN")),
            keys=dict(keys),
            new_image=body.get("NewImage"),
            old_image=body.get("OldImage"),
            event_id=record.get("eventID"),
        )

    @property
    def kind(self) -> Optional[OperationKind]:
        return OperationKind.parse(self.operation_kind)

    def record_id(self) -> str:
        """
        Resolve the primary key to a single string id.

        Uses the "id" key attribute when present, otherwise the only key
        attribute. Composite keys without an "id" attribute are rejected.

        Raises:
            RecordKeyError: The key cannot be resolved
        """
        if "id" in self.keys:
            typed = self.keys["id"]
        elif len(self.keys) == 1:
            typed = next(iter(self.keys.values()))
        else:
            raise RecordKeyError(
                f"Cannot resolve a single id from key attributes {sorted(self.keys)}"
            )
        try:
            return _key_to_string(decode(typed))
        except AttributeDecodeError as exc:
            raise RecordKeyError(f"Malformed primary key: {exc}") from exc


@dataclass(frozen=True)
class Upsert:
    """Create-or-replace a document by id."""

    collection: str
    id: str
    document: Dict[str, Any]

    action = "index"

    def to_actions(self) -> List[Dict[str, Any]]:
        return [{"index": {"_index": self.collection, "_id": self.id}}, self.document]


@dataclass(frozen=True)
class Delete:
    """Delete a document by id."""

    collection: str
    id: str

    action = "delete"

    def to_actions(self) -> List[Dict[str, Any]]:
        return [{"delete": {"_index": self.collection, "_id": self.id}}]


WriteOperation = Union[Upsert, Delete]


@dataclass(frozen=True)
class ProcessingResult:
    """Outcome of a single write operation."""

    record_id: str
    success: bool
    error: Optional[str] = None
    retry_count: int = 0


@dataclass(frozen=True)
class RecordError:
    """A record that failed before reaching the index."""

    record_id: str
    stage: str
    message: str

    def to_result(self) -> ProcessingResult:
        return ProcessingResult(
            record_id=self.record_id,
            success=False,
            error=f"{self.stage}: {self.message}",
        )


@dataclass
class SyncMetrics:
    """Summary of one invocation."""

    processed_records: int = 0
    failed_records: int = 0
    batch_size: int = 0
    processing_time_ms: float = 0.0

    @property
    def successful_records(self) -> int:
        return self.processed_records - self.failed_records

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
