"""
StreamIndex Coordinator — One Invocation End to End
===================================================

    raw stream records
        → MutationEvent.from_record   (malformed records become failures)
        → collapse_latest             (last event per entity wins)
        → route                       (OperationGroup × table)
        → build_operations            (decode, enrich, map to collection)
        → BatchExecutor.execute       (all groups concurrently)
        → SyncMetrics                 (emitted to the metrics sink)

Record-level and chunk-level failures are recovered locally and counted.
Anything else is logged with context and re-raised so the invoking runtime
can apply its own redelivery policy.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .builder import CollectionMapping, build_operations
from .errors import RecordKeyError, SourceIdentifierError
from .executor import BatchExecutor, gather_or_cancel
from .metrics import LoggingMetricsSink
from .models import MutationEvent, ProcessingResult, RecordError, SyncMetrics
from .router import collapse_latest, route

logger = logging.getLogger(__name__)


def parse_records(raw_records: Iterable[Dict[str, Any]]):
    """
    Parse raw stream records into events.

    Returns:
        Tuple of (events, record errors)
    """
    events: List[MutationEvent] = []
    errors: List[RecordError] = []

    for position, raw in enumerate(raw_records):
        try:
            events.append(MutationEvent.from_record(raw))
        except (SourceIdentifierError, RecordKeyError) as exc:
            record_id = raw.get("eventID") if isinstance(raw, dict) else None
            record_id = record_id or f"record_{position}"
            logger.error(
                "Failed to parse record",
                extra={"record_id": record_id, "error": str(exc)},
            )
            errors.append(RecordError(record_id, "parse", str(exc)))

    return events, errors


class SyncCoordinator:
    """
    Orchestrates routing, building, execution and metrics for one batch.

    Example:
        coordinator = SyncCoordinator(BatchExecutor(client), {"Service": "listings"})
        metrics = await coordinator.handle_batch(event["Records"])
    """

    def __init__(
        self,
        executor: BatchExecutor,
        mapping: CollectionMapping,
        metrics_sink: Any = None,
        collapse_per_entity: bool = True
    ):
        """
        Args:
            executor: Bulk executor bound to the search client
            mapping: Source table → target collection
            metrics_sink: Object with `async emit(SyncMetrics)`
                (default: LoggingMetricsSink)
            collapse_per_entity: Keep only the last event per (table, id)
        """
        self.executor = executor
        self.mapping = dict(mapping)
        self.metrics_sink = metrics_sink or LoggingMetricsSink()
        self.collapse_per_entity = collapse_per_entity

    async def process_records(
        self,
        raw_records: List[Dict[str, Any]],
        now: Optional[datetime] = None
    ) -> List[ProcessingResult]:
        """
        Apply a batch of raw stream records and return every outcome.

        Args:
            raw_records: Stream records in arrival order
            now: Processing time stamped into documents (default: now)

        Returns:
            One ProcessingResult per written or failed record
        """
        now = now or datetime.now(timezone.utc)

        events, record_errors = parse_records(raw_records)
        if self.collapse_per_entity:
            events = collapse_latest(events)

        tasks = []
        for (group, table), group_events in route(events).items():
            outcome = build_operations(group, table, group_events, self.mapping, now=now)
            record_errors.extend(outcome.errors)
            tasks.append(self.executor.execute(outcome.operations))

        group_results = await gather_or_cancel(*tasks)

        results = [error.to_result() for error in record_errors]
        for batch in group_results:
            results.extend(batch)
        return results

    async def handle_batch(
        self,
        raw_records: List[Dict[str, Any]],
        request_id: Optional[str] = None
    ) -> SyncMetrics:
        """
        Process one inbound batch and report its metrics.

        Args:
            raw_records: Stream records in arrival order
            request_id: Invocation id carried into log lines

        Returns:
            SyncMetrics for the batch

        Raises:
            Exception: Any batch-level failure, after logging it
        """
        start_time = time.monotonic()

        try:
            logger.info(
                "Processing stream event",
                extra={"record_count": len(raw_records), "request_id": request_id},
            )

            results = await self.process_records(raw_records)

            failed = sum(1 for r in results if not r.success)
            metrics = SyncMetrics(
                processed_records=len(results),
                failed_records=failed,
                batch_size=len(raw_records),
                processing_time_ms=round((time.monotonic() - start_time) * 1000, 3),
            )
        except Exception:
            logger.exception(
                "Failed to process stream event",
                extra={"request_id": request_id},
            )
            raise

        await self._report(metrics, request_id)

        logger.info(
            "Stream processing completed",
            extra={
                "request_id": request_id,
                "total_records": len(raw_records),
                "successful_records": metrics.successful_records,
                "failed_records": metrics.failed_records,
                "processing_time_ms": metrics.processing_time_ms,
            },
        )
        return metrics

    async def _report(self, metrics: SyncMetrics, request_id: Optional[str]) -> None:
        # Writes are already applied here; sink failures are logged only.
        try:
            await self.metrics_sink.emit(metrics)
        except Exception:
            logger.exception("Failed to emit metrics", extra={"request_id": request_id})
