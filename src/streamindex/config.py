"""
StreamIndex Config — Environment-Driven Settings
================================================

Environment variables (all optional):

    STREAMINDEX_HOSTS                  comma-separated node URLs
    STREAMINDEX_API_KEY                API key
    STREAMINDEX_USERNAME / _PASSWORD   basic auth
    STREAMINDEX_VERIFY_CERTS           "true" / "false"
    STREAMINDEX_TABLE_MAP              "Service=listings,Booking=events"
    STREAMINDEX_MAX_CHUNK_SIZE         operations per bulk call (500)
    STREAMINDEX_MAX_CONCURRENT_CHUNKS  bulk calls in flight (10)
    STREAMINDEX_MAX_ATTEMPTS           attempts per chunk (4)
    STREAMINDEX_RETRY_DELAYS_MS        "100,200,500,1000"
    STREAMINDEX_REQUEST_TIMEOUT        seconds per bulk call (30)
    STREAMINDEX_COLLAPSE_PER_ENTITY    keep only the last event per id (true)
    STREAMINDEX_METRICS_SINK           "log" or "cloudwatch"
    STREAMINDEX_METRICS_NAMESPACE      CloudWatch namespace
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from .errors import ConfigurationError

DEFAULT_HOSTS = ["http://localhost:9200"]

DEFAULT_TABLE_MAP: Dict[str, str] = {
    "Service": "listings",
    "Booking": "events",
    "UserProfile": "actors",
}

METRICS_SINKS = ("log", "cloudwatch")


def parse_table_map(raw: str) -> Dict[str, str]:
    """Parse "Table=collection,Other=collection" into a dict."""
    mapping: Dict[str, str] = {}
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        table, sep, collection = part.partition("=")
        if not sep or not table.strip() or not collection.strip():
            raise ConfigurationError(f"Invalid table mapping entry: {part!r}")
        mapping[table.strip()] = collection.strip()
    return mapping


def _bool(raw: str, name: str) -> bool:
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


def _int(raw: str, name: str, minimum: int = 1) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _float(raw: str, name: str) -> float:
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigurationError(f"{name} must be > 0, got {value}")
    return value


def _delays(raw: str, name: str) -> Tuple[float, ...]:
    try:
        delays = tuple(float(p) / 1000.0 for p in raw.split(",") if p.strip())
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be comma-separated milliseconds, got {raw!r}") from exc
    if any(d < 0 for d in delays):
        raise ConfigurationError(f"{name} must not contain negative delays")
    return delays


@dataclass
class SyncConfig:
    """Settings for one engine instance."""

    hosts: List[str] = field(default_factory=lambda: list(DEFAULT_HOSTS))
    api_key: Optional[str] = None
    basic_auth: Optional[Tuple[str, str]] = None
    verify_certs: bool = True
    table_map: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_TABLE_MAP))
    max_chunk_size: int = 500
    max_concurrent_chunks: int = 10
    max_attempts: int = 4
    retry_delays: Tuple[float, ...] = (0.1, 0.2, 0.5, 1.0)
    request_timeout: float = 30.0
    collapse_per_entity: bool = True
    metrics_sink: str = "log"
    metrics_namespace: str = "StreamIndex"

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.max_chunk_size < 1:
            raise ConfigurationError("max_chunk_size must be >= 1")
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be >= 1")
        if self.metrics_sink not in METRICS_SINKS:
            raise ConfigurationError(
                f"metrics_sink must be one of {METRICS_SINKS}, got {self.metrics_sink!r}"
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SyncConfig":
        """
        Build a config from STREAMINDEX_* environment variables.

        Args:
            environ: Mapping to read instead of os.environ

        Raises:
            ConfigurationError: A variable holds an invalid value
        """
        env = os.environ if environ is None else environ
        kwargs = {}

        def get(name: str) -> Optional[str]:
            value = env.get(f"STREAMINDEX_{name}")
            return value if value not in (None, "") else None

        if get("HOSTS"):
            kwargs["hosts"] = [h.strip() for h in get("HOSTS").split(",") if h.strip()]
        if get("API_KEY"):
            kwargs["api_key"] = get("API_KEY")
        if get("USERNAME") and get("PASSWORD"):
            kwargs["basic_auth"] = (get("USERNAME"), get("PASSWORD"))
        elif get("USERNAME") or get("PASSWORD"):
            raise ConfigurationError(
                "STREAMINDEX_USERNAME and STREAMINDEX_PASSWORD must be set together"
            )
        if get("VERIFY_CERTS"):
            kwargs["verify_certs"] = _bool(get("VERIFY_CERTS"), "STREAMINDEX_VERIFY_CERTS")
        if get("TABLE_MAP"):
            kwargs["table_map"] = parse_table_map(get("TABLE_MAP"))
        if get("MAX_CHUNK_SIZE"):
            kwargs["max_chunk_size"] = _int(get("MAX_CHUNK_SIZE"), "STREAMINDEX_MAX_CHUNK_SIZE")
        if get("MAX_CONCURRENT_CHUNKS"):
            kwargs["max_concurrent_chunks"] = _int(
                get("MAX_CONCURRENT_CHUNKS"), "STREAMINDEX_MAX_CONCURRENT_CHUNKS"
            )
        if get("MAX_ATTEMPTS"):
            kwargs["max_attempts"] = _int(get("MAX_ATTEMPTS"), "STREAMINDEX_MAX_ATTEMPTS")
        if get("RETRY_DELAYS_MS"):
            kwargs["retry_delays"] = _delays(get("RETRY_DELAYS_MS"), "STREAMINDEX_RETRY_DELAYS_MS")
        if get("REQUEST_TIMEOUT"):
            kwargs["request_timeout"] = _float(get("REQUEST_TIMEOUT"), "STREAMINDEX_REQUEST_TIMEOUT")
        if get("COLLAPSE_PER_ENTITY"):
            kwargs["collapse_per_entity"] = _bool(
                get("COLLAPSE_PER_ENTITY"), "STREAMINDEX_COLLAPSE_PER_ENTITY"
            )
        if get("METRICS_SINK"):
            kwargs["metrics_sink"] = get("METRICS_SINK").lower()
        if get("METRICS_NAMESPACE"):
            kwargs["metrics_namespace"] = get("METRICS_NAMESPACE")

        return cls(**kwargs)
