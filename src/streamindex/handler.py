"""
StreamIndex Handler — AWS Lambda Entry Point
============================================

Triggered by a DynamoDB Stream event source mapping:

    {"Records": [{"eventName": "INSERT", "eventSourceARN": "...table/Service/stream/...",
                  "dynamodb": {"Keys": {...}, "NewImage": {...}}}, ...]}

The engine (config, search client, executor, coordinator) is built on the
first invocation and reused by warm invocations. It runs on one event loop
kept for the life of the process, since the client's connection pool is
bound to the loop that opened it.

Batch-level failures propagate so the event source mapping can retry or
route the batch to its failure destination.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from .client import client_from_config
from .config import SyncConfig
from .coordinator import SyncCoordinator
from .executor import BatchExecutor
from .logs import configure_logging
from .metrics import CloudWatchMetricsSink, LoggingMetricsSink

logger = logging.getLogger(__name__)

_loop: Optional[asyncio.AbstractEventLoop] = None
_coordinator: Optional[SyncCoordinator] = None


def build_coordinator(config: SyncConfig, client: Any = None) -> SyncCoordinator:
    """
    Wire a coordinator from configuration.

    Args:
        config: Engine settings
        client: Search client to use (default: built from config)
    """
    executor = BatchExecutor(
        client if client is not None else client_from_config(config),
        max_chunk_size=config.max_chunk_size,
        max_concurrent_chunks=config.max_concurrent_chunks,
        max_attempts=config.max_attempts,
        retry_delays=config.retry_delays,
        request_timeout=config.request_timeout,
    )

    if config.metrics_sink == "cloudwatch":
        sink = CloudWatchMetricsSink(namespace=config.metrics_namespace)
    else:
        sink = LoggingMetricsSink()

    return SyncCoordinator(
        executor,
        config.table_map,
        metrics_sink=sink,
        collapse_per_entity=config.collapse_per_entity,
    )


def _get_loop() -> asyncio.AbstractEventLoop:
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
    return _loop


def _get_coordinator() -> SyncCoordinator:
    global _coordinator
    if _coordinator is None:
        configure_logging()
        _coordinator = build_coordinator(SyncConfig.from_env())
    return _coordinator


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Sync one batch of stream records into the search index.

    Returns:
        The batch's SyncMetrics as a dict
    """
    request_id = getattr(context, "aws_request_id", None)
    records = event.get("Records")
    if records is None:
        logger.error("Event has no Records", extra={"request_id": request_id})
        raise ValueError("Event has no Records")

    coordinator = _get_coordinator()
    metrics = _get_loop().run_until_complete(
        coordinator.handle_batch(records, request_id=request_id)
    )
    return metrics.to_dict()
