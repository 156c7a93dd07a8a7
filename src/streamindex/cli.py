"""
StreamIndex CLI — Command-Line Interface
========================================

Command-line interface for replaying stream events and checking the cluster.

Usage:
    python -m streamindex ping
    python -m streamindex decode events.json
    python -m streamindex sync events.json --chunk-size 200
    python -m streamindex sync events.json --table-map "Service=listings,Booking=events"
"""

import argparse
import asyncio
import dataclasses
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import SyncConfig, parse_table_map
from .errors import ConfigurationError


def get_config(args) -> SyncConfig:
    """
    Environment config, overridden by command-line options.

    Raises:
        ConfigurationError: An environment variable or option is invalid
    """
    overrides: Dict[str, Any] = {}
    if args.hosts:
        overrides["hosts"] = args.hosts.split(",")
    if args.api_key:
        overrides["api_key"] = args.api_key
    if getattr(args, "table_map", None):
        overrides["table_map"] = parse_table_map(args.table_map)
    if getattr(args, "chunk_size", None) is not None:
        overrides["max_chunk_size"] = args.chunk_size
    # replace() re-runs __post_init__ validation
    return dataclasses.replace(SyncConfig.from_env(), **overrides)


def load_records(path: str) -> List[Dict[str, Any]]:
    """Read stream records from a JSON file ({"Records": [...]} or a list)."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("Records", [])
    if not isinstance(data, list):
        raise SystemExit(f"{path}: expected a list of records or {{\"Records\": [...]}}")
    return data


def cmd_ping(args):
    """Check that the cluster answers."""
    from .client import client_from_config

    async def ping() -> bool:
        client = client_from_config(get_config(args))
        try:
            return await client.ping()
        finally:
            await client.close()

    ok = asyncio.run(ping())
    print("Cluster reachable" if ok else "Cluster unreachable")
    return 0 if ok else 1


def cmd_decode(args):
    """Print the documents a batch would produce, without writing."""
    from .builder import build_operations
    from .coordinator import parse_records
    from .models import Upsert
    from .router import collapse_latest, route

    config = get_config(args)
    events, errors = parse_records(load_records(args.file))
    if config.collapse_per_entity:
        events = collapse_latest(events)

    now = datetime.now(timezone.utc)
    for (group, table), group_events in route(events).items():
        outcome = build_operations(group, table, group_events, config.table_map, now=now)
        errors.extend(outcome.errors)
        for op in outcome.operations:
            if isinstance(op, Upsert):
                print(json.dumps({"index": op.collection, "id": op.id, "document": op.document}, default=str))
            else:
                print(json.dumps({"delete": op.collection, "id": op.id}))

    for error in errors:
        print(f"ERROR [{error.stage}] {error.record_id}: {error.message}")
    return 1 if errors else 0


def cmd_sync(args):
    """Apply a batch of stream records to the index."""
    from .handler import build_coordinator

    config = get_config(args)
    records = load_records(args.file)

    async def run():
        coordinator = build_coordinator(config)
        try:
            return await coordinator.handle_batch(records, request_id=args.request_id)
        finally:
            await coordinator.executor.close()

    metrics = asyncio.run(run())

    print(f"\nBatch size: {metrics.batch_size}")
    print(f"Processed: {metrics.processed_records}")
    print(f"Failed: {metrics.failed_records}")
    print(f"Time: {metrics.processing_time_ms:.1f}ms")
    return 1 if metrics.failed_records else 0


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    from .logs import configure_logging

    parser = argparse.ArgumentParser(
        prog="streamindex",
        description="StreamIndex — change-stream to search-index sync"
    )

    # Global options
    parser.add_argument(
        "--hosts",
        help="Search engine hosts (comma-separated)",
        default=None
    )
    parser.add_argument(
        "--api-key",
        dest="api_key",
        help="Search engine API key",
        default=None
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        help="Log level (default: STREAMINDEX_LOG_LEVEL or INFO)",
        default=None
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("ping", help="Check cluster connectivity")

    decode_parser = subparsers.add_parser("decode", help="Show documents without writing")
    decode_parser.add_argument("file", help="JSON file of stream records")
    decode_parser.add_argument("--table-map", dest="table_map", help="Table=collection pairs")

    sync_parser = subparsers.add_parser("sync", help="Write stream records to the index")
    sync_parser.add_argument("file", help="JSON file of stream records")
    sync_parser.add_argument("--table-map", dest="table_map", help="Table=collection pairs")
    sync_parser.add_argument("--chunk-size", dest="chunk_size", type=int, help="Operations per bulk call")
    sync_parser.add_argument("--request-id", dest="request_id", default="cli", help="Id for log lines")

    # Parse and dispatch
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        if args.command == "ping":
            return cmd_ping(args)
        elif args.command == "decode":
            return cmd_decode(args)
        elif args.command == "sync":
            return cmd_sync(args)
    except ConfigurationError as exc:
        parser.error(str(exc))

    parser.print_help()
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
