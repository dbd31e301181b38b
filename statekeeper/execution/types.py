"""Execution JSON-RPC data types."""

from dataclasses import dataclass
from typing import Optional


def _parse_quantity(value) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return int(value, 16)


@dataclass(frozen=True)
class BlockHeader:
    """Subset of an execution block header."""

    number: int
    timestamp: int
    hash: bytes = b""

    @classmethod
    def from_dict(cls, data: dict) -> "BlockHeader":
        return cls(
            number=_parse_quantity(data["number"]),
            timestamp=_parse_quantity(data["timestamp"]),
            hash=bytes.fromhex(data["hash"][2:]) if data.get("hash") else b"",
        )


@dataclass(frozen=True)
class SyncProgress:
    """Response from eth_syncing when the client is syncing."""

    starting_block: int
    current_block: int
    highest_block: int

    @property
    def progress(self) -> float:
        """Fraction of the sync range completed, clamped to [0, 1]."""
        span = self.highest_block - self.starting_block
        if span <= 0:
            return 1.0
        p = (self.current_block - self.starting_block) / span
        return max(0.0, min(p, 1.0))

    @property
    def is_complete(self) -> bool:
        return self.current_block >= self.highest_block

    @classmethod
    def from_result(cls, result) -> Optional["SyncProgress"]:
        """Parse eth_syncing; `false` means the client is not syncing."""
        if not result:
            return None
        return cls(
            starting_block=_parse_quantity(result.get("startingBlock")),
            current_block=_parse_quantity(result.get("currentBlock")),
            highest_block=_parse_quantity(result.get("highestBlock")),
        )
