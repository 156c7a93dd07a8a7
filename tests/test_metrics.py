"""Tests for metric sinks."""

from unittest.mock import MagicMock

import pytest

from streamindex.metrics import CloudWatchMetricsSink, LoggingMetricsSink
from streamindex.models import SyncMetrics

METRICS = SyncMetrics(processed_records=10, failed_records=2, batch_size=12, processing_time_ms=84.5)


def test_metric_data():
    sink = CloudWatchMetricsSink(dimensions={"Function": "search-sync"}, client=MagicMock())
    data = sink.metric_data(METRICS)

    assert [(d["MetricName"], d["Value"], d["Unit"]) for d in data] == [
        ("ProcessedRecords", 10.0, "Count"),
        ("FailedRecords", 2.0, "Count"),
        ("BatchSize", 12.0, "Count"),
        ("ProcessingTime", 84.5, "Milliseconds"),
    ]
    assert all(d["Dimensions"] == [{"Name": "Function", "Value": "search-sync"}] for d in data)


@pytest.mark.asyncio
async def test_cloudwatch_emit_puts_metric_data():
    client = MagicMock()
    sink = CloudWatchMetricsSink(namespace="Search", client=client)

    await sink.emit(METRICS)

    client.put_metric_data.assert_called_once()
    kwargs = client.put_metric_data.call_args.kwargs
    assert kwargs["Namespace"] == "Search"
    assert len(kwargs["MetricData"]) == 4


@pytest.mark.asyncio
async def test_cloudwatch_errors_propagate():
    client = MagicMock()
    client.put_metric_data.side_effect = RuntimeError("throttled")

    with pytest.raises(RuntimeError):
        await CloudWatchMetricsSink(client=client).emit(METRICS)


@pytest.mark.asyncio
async def test_logging_sink(caplog):
    caplog.set_level("INFO", logger="streamindex")
    await LoggingMetricsSink().emit(METRICS)

    record = next(r for r in caplog.records if r.getMessage() == "Processing metrics")
    assert record.metrics["failed_records"] == 2
