"""Beacon API client for communication with the consensus layer."""

from .exceptions import BeaconAPIError, BlockNotFoundError
from .types import BeaconBlock, BeaconConfig, BeaconHead, SyncingStatus, ValidatorStatus
from .client import BeaconClient

__all__ = [
    "BeaconClient",
    "BeaconAPIError",
    "BlockNotFoundError",
    "BeaconBlock",
    "BeaconConfig",
    "BeaconHead",
    "SyncingStatus",
    "ValidatorStatus",
]
