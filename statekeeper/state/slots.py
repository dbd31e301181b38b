"""Conversions between wall-clock time, slots and epochs."""

from ..beacon.types import BeaconConfig
from ..exceptions import ConfigurationError


def slot_for_timestamp(timestamp: int, config: BeaconConfig) -> int:
    """Return the slot containing a unix timestamp."""
    if timestamp < config.genesis_time:
        raise ConfigurationError(
            f"Timestamp {timestamp} is before genesis time {config.genesis_time}; "
            f"check the system clock and the configured network"
        )
    return (int(timestamp) - config.genesis_time) // config.seconds_per_slot


def timestamp_for_slot(slot: int, config: BeaconConfig) -> int:
    """Return the start time of a slot."""
    if slot < 0:
        raise ConfigurationError(f"Slot cannot be negative: {slot}")
    return config.genesis_time + slot * config.seconds_per_slot


def epoch_for_slot(slot: int, config: BeaconConfig) -> int:
    if slot < 0:
        raise ConfigurationError(f"Slot cannot be negative: {slot}")
    return slot // config.slots_per_epoch


def finalized_slot_for_epoch(epoch: int, config: BeaconConfig) -> int:
    """Return the last slot of an epoch, which is the slot that gets finalized."""
    if epoch < 0:
        raise ConfigurationError(f"Epoch cannot be negative: {epoch}")
    return epoch * config.slots_per_epoch + (config.slots_per_epoch - 1)
