"""
StreamIndex — Change-Stream to Search-Index Sync
================================================

Mirrors inserts, updates and removes captured from an operational record
store's change stream into a search index, in near real time.

Pipeline:
    stream records → route by kind/table → decode + enrich → write operations
    → chunked, retried bulk writes → per-record results → SyncMetrics

Key Features:
- Typed attribute decoding (S / N / BOOL / SS / NS / L / M / NULL)
- Per-collection enrichment (listing score, time buckets, provider activity)
- Last-event-per-entity collapsing within a batch
- Bounded bulk chunks, concurrent dispatch, progressive retry
- Item-level partial failure reporting

Usage:
    from streamindex import BatchExecutor, SyncCoordinator, create_client

    client = create_client(["https://search.example.com:9200"], api_key="...")
    coordinator = SyncCoordinator(BatchExecutor(client), {"Service": "listings"})
    metrics = await coordinator.handle_batch(event["Records"])

License: MIT
"""

__version__ = "0.1.0"

from .attributes import decode, decode_image, encode, encode_image
from .builder import BuildOutcome, build_operations
from .client import create_client
from .config import SyncConfig
from .coordinator import SyncCoordinator
from .enrichment import enrich
from .executor import BatchExecutor
from .models import (
    Delete,
    MutationEvent,
    OperationGroup,
    OperationKind,
    ProcessingResult,
    RecordError,
    SyncMetrics,
    Upsert,
)
from .router import collapse_latest, route

__all__ = [
    "BatchExecutor",
    "BuildOutcome",
    "Delete",
    "MutationEvent",
    "OperationGroup",
    "OperationKind",
    "ProcessingResult",
    "RecordError",
    "SyncConfig",
    "SyncCoordinator",
    "SyncMetrics",
    "Upsert",
    "build_operations",
    "collapse_latest",
    "create_client",
    "decode",
    "decode_image",
    "encode",
    "encode_image",
    "enrich",
    "route",
]
