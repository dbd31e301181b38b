"""Network state snapshots anchored to a single beacon slot."""

from .slots import (
    epoch_for_slot,
    finalized_slot_for_epoch,
    slot_for_timestamp,
    timestamp_for_slot,
)
from .network_state import EntityDetails, EntityFilter, NetworkState, create_network_state
from .manager import NetworkStateManager

__all__ = [
    "EntityDetails",
    "EntityFilter",
    "NetworkState",
    "NetworkStateManager",
    "create_network_state",
    "epoch_for_slot",
    "finalized_slot_for_epoch",
    "slot_for_timestamp",
    "timestamp_for_slot",
]
