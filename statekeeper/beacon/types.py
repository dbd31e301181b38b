"""Beacon API data types."""

from dataclasses import dataclass
from typing import Optional


def _parse_hex(value: Optional[str]) -> bytes:
    if not value:
        return b""
    return bytes.fromhex(value.replace("0x", ""))


@dataclass(frozen=True)
class BeaconConfig:
    """Chain timing parameters. Fetched once and never changed."""

    genesis_time: int
    seconds_per_slot: int
    slots_per_epoch: int
    genesis_fork_version: bytes = b"\x00" * 4

    @classmethod
    def from_dicts(cls, genesis: dict, spec: dict) -> "BeaconConfig":
        return cls(
            genesis_time=int(genesis["genesis_time"]),
            seconds_per_slot=int(spec["SECONDS_PER_SLOT"]),
            slots_per_epoch=int(spec["SLOTS_PER_EPOCH"]),
            genesis_fork_version=_parse_hex(genesis.get("genesis_fork_version")),
        )


@dataclass(frozen=True)
class BeaconHead:
    """Finality information for the chain head."""

    epoch: int
    finalized_epoch: int
    justified_epoch: int
    previous_justified_epoch: int

    @classmethod
    def from_dict(cls, data: dict, epoch: int) -> "BeaconHead":
        return cls(
            epoch=epoch,
            finalized_epoch=int(data.get("finalized", {}).get("epoch", 0)),
            justified_epoch=int(data.get("current_justified", {}).get("epoch", 0)),
            previous_justified_epoch=int(data.get("previous_justified", {}).get("epoch", 0)),
        )


@dataclass(frozen=True)
class SyncingStatus:
    """Response from /eth/v1/node/syncing."""

    is_syncing: bool
    head_slot: int
    sync_distance: int
    is_optimistic: bool = False
    el_offline: bool = False

    @property
    def progress(self) -> float:
        total = self.head_slot + self.sync_distance
        if total == 0:
            return 0.0
        return min(self.head_slot / total, 1.0)

    @classmethod
    def from_dict(cls, data: dict) -> "SyncingStatus":
        return cls(
            is_syncing=bool(data.get("is_syncing", False)),
            head_slot=int(data.get("head_slot", 0)),
            sync_distance=int(data.get("sync_distance", 0)),
            is_optimistic=bool(data.get("is_optimistic", False)),
            el_offline=bool(data.get("el_offline", False)),
        )


@dataclass(frozen=True)
class BeaconBlock:
    """The parts of a signed beacon block the state builder needs."""

    slot: int
    proposer_index: int
    root: bytes = b""
    has_execution_data: bool = False
    execution_block_number: int = 0
    execution_block_hash: bytes = b""
    fee_recipient: str = ""

    @classmethod
    def from_dict(cls, data: dict, root: Optional[str] = None) -> "BeaconBlock":
        """Parse the `data` object of /eth/v2/beacon/blocks/{block_id}."""
        message = data.get("message", {})
        body = message.get("body", {})
        payload = body.get("execution_payload")
        has_execution_data = bool(payload) and int(payload.get("block_number", 0)) > 0
        return cls(
            slot=int(message["slot"]),
            proposer_index=int(message.get("proposer_index", 0)),
            root=_parse_hex(root),
            has_execution_data=has_execution_data,
            execution_block_number=int(payload["block_number"]) if has_execution_data else 0,
            execution_block_hash=_parse_hex(payload.get("block_hash")) if has_execution_data else b"",
            fee_recipient=payload.get("fee_recipient", "") if has_execution_data else "",
        )


@dataclass(frozen=True)
class ValidatorStatus:
    """Attestation-layer view of one validator at a given state."""

    pubkey: bytes
    exists: bool
    index: int = 0
    status: str = ""
    balance: int = 0
    effective_balance: int = 0
    activation_epoch: int = 0
    exit_epoch: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "ValidatorStatus":
        validator = data.get("validator", {})
        return cls(
            pubkey=_parse_hex(validator.get("pubkey")),
            exists=True,
            index=int(data.get("index", 0)),
            status=data.get("status", ""),
            balance=int(data.get("balance", 0)),
            effective_balance=int(validator.get("effective_balance", 0)),
            activation_epoch=int(validator.get("activation_epoch", 0)),
            exit_epoch=int(validator.get("exit_epoch", 0)),
        )

    @classmethod
    def missing(cls, pubkey: bytes) -> "ValidatorStatus":
        return cls(pubkey=pubkey, exists=False)
