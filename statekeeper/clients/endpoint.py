"""Configured client instances and their last known health."""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .. import metrics
from ..exceptions import TransportError

logger = logging.getLogger(__name__)

DEFAULT_RECENT_BLOCK_THRESHOLD = 300.0


class ClientKind(str, Enum):
    EXECUTION = "execution"
    BEACON = "beacon"


class EndpointRole(str, Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"


class ClientHealth(str, Enum):
    UNKNOWN = "unknown"
    SYNCING = "syncing"
    SYNCED = "synced"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class SyncStatus:
    """A point-in-time read of one endpoint. Stale as soon as it is returned."""

    is_working: bool = False
    is_synced: bool = False
    sync_progress: Optional[float] = None
    error: str = ""
    probed: bool = True

    @property
    def health(self) -> ClientHealth:
        if not self.probed:
            return ClientHealth.UNKNOWN
        if self.error or not self.is_working:
            return ClientHealth.UNAVAILABLE
        if self.is_synced:
            return ClientHealth.SYNCED
        return ClientHealth.SYNCING

    @classmethod
    def unknown(cls) -> "SyncStatus":
        return cls(probed=False)

    @classmethod
    def synced(cls) -> "SyncStatus":
        return cls(is_working=True, is_synced=True, sync_progress=1.0)

    @classmethod
    def syncing(cls, progress: Optional[float] = None) -> "SyncStatus":
        return cls(is_working=True, sync_progress=progress)

    @classmethod
    def unavailable(cls, reason: str) -> "SyncStatus":
        return cls(is_working=False, error=reason or "unknown error")

    def describe(self) -> str:
        health = self.health
        if health is ClientHealth.SYNCING and self.sync_progress is not None:
            return f"syncing ({self.sync_progress * 100:.2f}%)"
        if health is ClientHealth.UNAVAILABLE:
            return f"unavailable ({self.error})"
        return health.value


async def is_sync_within_threshold(client, threshold: float) -> tuple[bool, int]:
    """Check that the client's latest block is recent compared to the system clock.

    Returns (up_to_date, block_timestamp).
    """
    header = await client.header_by_number(None)
    age = time.time() - header.timestamp
    return age < threshold, header.timestamp


class ClientEndpoint:
    """One configured instance of a backing client.

    Created once at startup. The endpoint owns its last status; refresh()
    records transport failures as an unavailable status, while poll() lets
    them propagate.
    """

    kind: ClientKind

    def __init__(self, role: EndpointRole, client, name: str = ""):
        self.role = role
        self.client = client
        self.name = name or f"{role.value} {self.kind.value}"
        self.status = SyncStatus.unknown()

    @property
    def health(self) -> ClientHealth:
        return self.status.health

    async def refresh(self) -> SyncStatus:
        """Probe the client and store the result."""
        try:
            status = await self._probe()
        except TransportError as e:
            status = SyncStatus.unavailable(str(e))
        self.status = status
        metrics.update_client_status(
            self.kind.value, self.role.value, status.health.value, status.sync_progress
        )
        logger.debug(f"{self.name} client status: {status.describe()}")
        return status

    def mark_synced(self) -> None:
        self.status = SyncStatus.synced()
        metrics.update_client_status(self.kind.value, self.role.value, "synced", 1.0)

    async def _probe(self) -> SyncStatus:
        raise NotImplementedError

    async def poll(self) -> bool:
        """Fine-grained sync check used while waiting. True once caught up."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.role.value} {self.status.describe()}>"


class ExecutionEndpoint(ClientEndpoint):
    """An execution client endpoint.

    A client that reports no sync progress (or a finished progress object)
    is only considered synced if its latest block is recent.
    """

    kind = ClientKind.EXECUTION

    def __init__(
        self,
        role: EndpointRole,
        client,
        name: str = "",
        recent_block_threshold: float = DEFAULT_RECENT_BLOCK_THRESHOLD,
    ):
        super().__init__(role, client, name)
        self.recent_block_threshold = recent_block_threshold

    async def _probe(self) -> SyncStatus:
        progress = await self.client.sync_progress()
        if progress is not None and not progress.is_complete:
            return SyncStatus.syncing(progress.progress)

        up_to_date, block_time = await is_sync_within_threshold(
            self.client, self.recent_block_threshold
        )
        if up_to_date:
            return SyncStatus.synced()
        logger.debug(
            f"{self.name} client reports no sync in progress but its latest block "
            f"is {int(time.time() - block_time)}s old"
        )
        return SyncStatus.syncing(progress.progress if progress is not None else None)

    async def poll(self) -> bool:
        progress = await self.client.sync_progress()
        if progress is not None and not progress.is_complete:
            logger.info(f"{self.name} client syncing: {progress.progress * 100:.2f}%")
            return False

        up_to_date, block_time = await is_sync_within_threshold(
            self.client, self.recent_block_threshold
        )
        if not up_to_date:
            logger.info(
                f"{self.name} client is not syncing but its latest block is "
                f"{int(time.time() - block_time)}s old, waiting..."
            )
        return up_to_date


class BeaconEndpoint(ClientEndpoint):
    """A beacon (consensus) client endpoint."""

    kind = ClientKind.BEACON

    async def _probe(self) -> SyncStatus:
        sync = await self.client.get_sync_status()
        if not sync.is_syncing:
            return SyncStatus.synced()
        return SyncStatus.syncing(sync.progress)

    async def poll(self) -> bool:
        sync = await self.client.get_sync_status()
        if sync.is_syncing:
            logger.info(
                f"{self.name} client syncing: {sync.progress * 100:.2f}% "
                f"(distance {sync.sync_distance} slots)"
            )
            return False
        return True
