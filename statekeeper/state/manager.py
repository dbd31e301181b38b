"""Builds network state snapshots and publishes the latest one."""

import asyncio
import logging
import time
from typing import Optional

from .network_state import EntityFilter, NetworkState, create_network_state
from .slots import finalized_slot_for_epoch, slot_for_timestamp
from .. import metrics
from ..beacon.types import BeaconBlock, BeaconConfig
from ..clients import HealthTracker
from ..config import StateQuery
from ..exceptions import ConfigurationError, MissingDataError, StateKeeperError

logger = logging.getLogger(__name__)


class NetworkStateManager:
    """Creates snapshots of the network anchored to a single beacon slot.

    Builds may run concurrently and are independent of each other. Only the
    swap of the latest published snapshot is serialized.
    """

    def __init__(
        self,
        tracker: HealthTracker,
        query: StateQuery,
        beacon_config: BeaconConfig,
        slot_floor: int = 0,
    ):
        if slot_floor < 0:
            raise ConfigurationError(f"slot_floor cannot be negative: {slot_floor}")
        self.tracker = tracker
        self.query = query
        self.beacon_config = beacon_config
        self.slot_floor = slot_floor
        self._latest_state: Optional[NetworkState] = None
        self._update_lock = asyncio.Lock()

    @classmethod
    async def create(
        cls, tracker: HealthTracker, query: StateQuery, slot_floor: int = 0
    ) -> "NetworkStateManager":
        """Create a manager, fetching the beacon config once from the beacon client."""
        bc = await tracker.beacon_client()
        beacon_config = await bc.get_eth2_config()
        logger.info(
            f"Beacon config: genesis_time={beacon_config.genesis_time}, "
            f"seconds_per_slot={beacon_config.seconds_per_slot}, "
            f"slots_per_epoch={beacon_config.slots_per_epoch}"
        )
        return cls(tracker, query, beacon_config, slot_floor)

    async def get_head_slot(self) -> int:
        """Get the beacon slot of the latest execution block."""
        ec = await self.tracker.execution_client()
        header = await ec.header_by_number(None)
        return slot_for_timestamp(header.timestamp, self.beacon_config)

    async def get_finalized_slot(self, bc=None) -> int:
        """Get the last slot of the latest finalized epoch."""
        bc = bc or await self.tracker.beacon_client()
        head = await bc.get_beacon_head()
        return finalized_slot_for_epoch(head.finalized_epoch, self.beacon_config)

    async def get_latest_proposed_block(
        self, from_slot: int, floor: Optional[int] = None, bc=None
    ) -> BeaconBlock:
        """Get the block at a slot, or at the nearest earlier slot that has one.

        Walks down to `floor` (the manager's slot floor by default) and raises
        MissingDataError if every slot in between was missed.
        """
        floor = self.slot_floor if floor is None else floor
        if from_slot < floor:
            raise MissingDataError(
                f"Slot {from_slot} is below the minimum slot {floor}", from_slot
            )
        bc = bc or await self.tracker.beacon_client()

        for slot in range(from_slot, floor - 1, -1):
            block, exists = await bc.get_beacon_block(slot)
            if exists:
                return block
            logger.info(f"Slot {slot} was missing, trying the previous one...")
            metrics.record_missing_slot()

        raise MissingDataError(
            f"No beacon block found between slot {floor} and slot {from_slot}", from_slot
        )

    async def get_latest_beacon_block(self) -> BeaconBlock:
        """Get the latest proposed block at or before the head slot."""
        return await self.get_latest_proposed_block(await self.get_head_slot())

    async def get_latest_finalized_beacon_block(self) -> BeaconBlock:
        """Get the latest proposed block at or before the finalized slot."""
        bc = await self.tracker.beacon_client()
        slot = await self.get_finalized_slot(bc)
        return await self.get_latest_proposed_block(slot, bc=bc)

    async def build_snapshot(
        self, target_slot: int, entity_filter: Optional[EntityFilter] = None
    ) -> NetworkState:
        """Build a snapshot for a slot.

        Snapshots covering every entity are published as the latest state
        once fully assembled; filtered snapshots are returned only to the
        caller. A failed or cancelled build publishes nothing.
        """
        start_time = time.time()
        try:
            ec = await self.tracker.execution_client()
            bc = await self.tracker.beacon_client()
            block = await self.get_latest_proposed_block(target_slot, bc=bc)
            if block.slot != target_slot:
                logger.info(f"Using block from slot {block.slot} for target slot {target_slot}")
            state = await create_network_state(
                ec, bc, self.query, target_slot, block, self.beacon_config, entity_filter
            )
        except StateKeeperError as e:
            metrics.record_snapshot_failure(type(e).__name__)
            raise

        duration = time.time() - start_time
        logger.info(
            f"Built network state for slot {target_slot} (block slot {state.resolved_slot}, "
            f"execution block {state.execution_block_number}, "
            f"{len(state.entity_details)} entities) in {duration:.2f}s"
        )

        if entity_filter is None or entity_filter.addresses is None:
            await self._publish(state)
            metrics.record_snapshot(state.resolved_slot, len(state.entity_details), duration)
        return state

    async def _publish(self, state: NetworkState) -> None:
        async with self._update_lock:
            self._latest_state = state

    async def get_latest_state(self) -> Optional[NetworkState]:
        """Get the most recently published snapshot, or None if there is none."""
        async with self._update_lock:
            return self._latest_state

    async def get_head_state(self) -> NetworkState:
        """Get the state of the network at the latest execution block's slot."""
        return await self.build_snapshot(await self.get_head_slot())

    async def get_finalized_state(self) -> NetworkState:
        """Get the state of the network at the latest finalized slot."""
        return await self.build_snapshot(await self.get_finalized_slot())

    async def get_state_for_slot(self, slot: int) -> NetworkState:
        """Get the state of the network at a specific slot."""
        return await self.build_snapshot(slot)

    async def get_head_state_for_entity(
        self, address: str, include_network: bool = True
    ) -> NetworkState:
        """Get the head state for a single entity, plus network-wide fields if requested."""
        entity_filter = EntityFilter.single(address, include_network)
        return await self.build_snapshot(await self.get_head_slot(), entity_filter)
