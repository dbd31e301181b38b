"""Health tracking and primary/fallback failover for backing clients."""

from .endpoint import (
    BeaconEndpoint,
    ClientEndpoint,
    ClientHealth,
    ClientKind,
    EndpointRole,
    ExecutionEndpoint,
    SyncStatus,
    is_sync_within_threshold,
)
from .manager import ClientManager, StatusCheck
from .tracker import HealthTracker
from .requirements import (
    require_contract_loaded,
    require_synced,
    wait_contract_loaded,
    wait_synced,
)

__all__ = [
    "BeaconEndpoint",
    "ClientEndpoint",
    "ClientHealth",
    "ClientKind",
    "ClientManager",
    "EndpointRole",
    "ExecutionEndpoint",
    "HealthTracker",
    "StatusCheck",
    "SyncStatus",
    "is_sync_within_threshold",
    "require_contract_loaded",
    "require_synced",
    "wait_contract_loaded",
    "wait_synced",
]
