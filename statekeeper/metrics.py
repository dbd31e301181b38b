"""Prometheus metrics for statekeeper."""

import logging
import threading
from typing import Optional

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    start_http_server,
)

logger = logging.getLogger(__name__)

DEFAULT_METRICS_PORT = 9105

HEALTH_VALUES = {
    "unknown": 0,
    "unavailable": 1,
    "syncing": 2,
    "synced": 3,
}

# Process info
statekeeper_info = Info(
    "statekeeper",
    "Statekeeper process information",
)

# Client health
client_health = Gauge(
    "statekeeper_client_health",
    "Last known client health (0=unknown, 1=unavailable, 2=syncing, 3=synced)",
    ["kind", "role"],
)

client_sync_progress = Gauge(
    "statekeeper_client_sync_progress",
    "Last reported sync progress between 0 and 1",
    ["kind", "role"],
)

client_fallback_active = Gauge(
    "statekeeper_client_fallback_active",
    "Whether the fallback client is currently in use (1) or not (0)",
    ["kind"],
)

sync_waits = Counter(
    "statekeeper_sync_waits_total",
    "Total waits for a client to sync",
    ["kind", "result"],
)

# Snapshot metrics
snapshots_built = Counter(
    "statekeeper_snapshots_built_total",
    "Total network state snapshots built",
)

snapshot_failures = Counter(
    "statekeeper_snapshot_failures_total",
    "Total network state snapshot builds that failed",
    ["error_type"],
)

snapshot_build_time = Histogram(
    "statekeeper_snapshot_build_seconds",
    "Time to build a network state snapshot",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

latest_snapshot_slot = Gauge(
    "statekeeper_latest_snapshot_slot",
    "Resolved slot of the most recently published snapshot",
)

latest_snapshot_entities = Gauge(
    "statekeeper_latest_snapshot_entities",
    "Number of entities in the most recently published snapshot",
)

missing_slots_skipped = Counter(
    "statekeeper_missing_slots_skipped_total",
    "Total missed slots skipped while resolving a proposed block",
)

# RPC metrics
rpc_requests = Counter(
    "statekeeper_rpc_requests_total",
    "Total requests sent to backing clients",
    ["kind", "method"],
)

rpc_errors = Counter(
    "statekeeper_rpc_errors_total",
    "Total failed requests to backing clients",
    ["kind", "method", "error_type"],
)

rpc_latency = Histogram(
    "statekeeper_rpc_latency_seconds",
    "Backing client request latency",
    ["kind", "method"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)


_server_started = False
_server_lock = threading.Lock()


def start_metrics_server(port: int = DEFAULT_METRICS_PORT) -> bool:
    """Start the Prometheus metrics HTTP server.

    Args:
        port: Port to listen on (default 9105)

    Returns:
        True if server started successfully, False if already running
    """
    global _server_started

    with _server_lock:
        if _server_started:
            logger.warning("Metrics server already running")
            return False

        try:
            start_http_server(port)
            _server_started = True
            logger.info(f"Prometheus metrics server started on port {port}")
            return True
        except OSError as e:
            logger.error(f"Failed to start metrics server: {e}")
            return False


def set_info(version: str, network: str) -> None:
    """Set process information metric."""
    statekeeper_info.info({
        "version": version,
        "network": network,
    })


def update_client_status(kind: str, role: str, health: str, progress: Optional[float]) -> None:
    """Record the outcome of a client status probe."""
    client_health.labels(kind=kind, role=role).set(HEALTH_VALUES.get(health, 0))
    if progress is not None:
        client_sync_progress.labels(kind=kind, role=role).set(progress)


def update_fallback_active(kind: str, active: bool) -> None:
    """Record whether the fallback client is serving requests."""
    client_fallback_active.labels(kind=kind).set(1 if active else 0)


def record_sync_wait(kind: str, synced: bool) -> None:
    """Record the result of a sync wait."""
    sync_waits.labels(kind=kind, result="synced" if synced else "timeout").inc()


def record_snapshot(slot: int, entities: int, duration: float) -> None:
    """Record a successfully published snapshot."""
    snapshots_built.inc()
    snapshot_build_time.observe(duration)
    latest_snapshot_slot.set(slot)
    latest_snapshot_entities.set(entities)


def record_snapshot_failure(error_type: str) -> None:
    """Record a snapshot build that did not complete."""
    snapshot_failures.labels(error_type=error_type).inc()


def record_missing_slot() -> None:
    """Record a missed slot skipped during block resolution."""
    missing_slots_skipped.inc()


def record_rpc_call(kind: str, method: str, latency: float, error: Optional[str] = None) -> None:
    """Record a request to a backing client.

    Args:
        kind: Client kind ('execution' or 'beacon')
        method: RPC method or REST endpoint name
        latency: Request latency in seconds
        error: Error type if the call failed, None if successful
    """
    rpc_requests.labels(kind=kind, method=method).inc()
    rpc_latency.labels(kind=kind, method=method).observe(latency)
    if error:
        rpc_errors.labels(kind=kind, method=method, error_type=error).inc()
