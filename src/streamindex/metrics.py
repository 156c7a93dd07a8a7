"""
StreamIndex Metrics — Per-Invocation Metric Sinks
=================================================

A sink receives one SyncMetrics per invocation.

    LoggingMetricsSink     structured log line (default)
    CloudWatchMetricsSink  CloudWatch custom metrics via boto3

boto3 is synchronous; CloudWatch calls run in a worker thread so the event
loop is never blocked.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from .models import SyncMetrics

logger = logging.getLogger(__name__)


class LoggingMetricsSink:
    """Emit metrics as a structured log line."""

    async def emit(self, metrics: SyncMetrics) -> None:
        logger.info("Processing metrics", extra={"metrics": metrics.to_dict()})


class CloudWatchMetricsSink:
    """
    Publish SyncMetrics as CloudWatch custom metrics.

    Example:
        sink = CloudWatchMetricsSink(namespace="StreamIndex")
        await sink.emit(metrics)
    """

    def __init__(
        self,
        namespace: str = "StreamIndex",
        dimensions: Optional[Dict[str, str]] = None,
        client: Any = None,
        region: Optional[str] = None
    ):
        """
        Args:
            namespace: CloudWatch namespace
            dimensions: Dimension name → value attached to every datum
            client: Pre-built cloudwatch client (default: created lazily)
            region: AWS region for the lazily created client
        """
        self.namespace = namespace
        self.dimensions = dimensions or {}
        self.region = region
        self._client = client

    def _get_client(self):
        if self._client is None:
            import boto3
            from botocore.config import Config

            self._client = boto3.client(
                "cloudwatch",
                region_name=self.region,
                config=Config(retries={"max_attempts": 3, "mode": "standard"}),
            )
        return self._client

    def metric_data(self, metrics: SyncMetrics) -> List[Dict[str, Any]]:
        dims = [{"Name": k, "Value": v} for k, v in self.dimensions.items()]
        values = [
            ("ProcessedRecords", metrics.processed_records, "Count"),
            ("FailedRecords", metrics.failed_records, "Count"),
            ("BatchSize", metrics.batch_size, "Count"),
            ("ProcessingTime", metrics.processing_time_ms, "Milliseconds"),
        ]
        return [
            {"MetricName": name, "Value": float(value), "Unit": unit, "Dimensions": dims}
            for name, value, unit in values
        ]

    async def emit(self, metrics: SyncMetrics) -> None:
        client = self._get_client()
        await asyncio.to_thread(
            client.put_metric_data,
            Namespace=self.namespace,
            MetricData=self.metric_data(metrics),
        )
        logger.info("Published metrics", extra={"namespace": self.namespace, "metrics": metrics.to_dict()})
