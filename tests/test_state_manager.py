"""Tests for snapshot construction and publication."""

import asyncio
import time

import pytest

from statekeeper.abi import ContractField
from statekeeper.beacon.types import BeaconBlock, BeaconConfig, ValidatorStatus
from statekeeper.config import StateQuery
from statekeeper.exceptions import (
    ConfigurationError,
    MissingDataError,
    NotReadyError,
    TransportError,
)
from statekeeper.execution.types import SyncProgress
from statekeeper.state import EntityFilter, NetworkStateManager

from .conftest import FakeBeaconClient, FakeExecutionClient, encode_result, make_tracker

REGISTRY = "0x" + "11" * 20
STAKING = "0x" + "22" * 20


def node(i: int) -> str:
    return "0x" + i.to_bytes(20, "big").hex()


NODES = [node(1), node(2), node(3)]

QUERY = StateQuery(
    entity_count=ContractField("node_count", "getNodeCount()", target=REGISTRY),
    entity_at=ContractField("node_at", "getNodeAt(uint256)", "address", target=REGISTRY),
    entity_fields=(
        ContractField("stake", "getStake(address)", target=STAKING),
        ContractField("pubkey", "getPubkey(address)", "bytes", target=REGISTRY),
    ),
    network_fields=(ContractField("total_stake", "totalStake()", target=STAKING),),
    pubkey_field="pubkey",
    batch_size=2,
)


def pubkey(i: int) -> bytes:
    return bytes([i]) * 48


@pytest.fixture
def chain():
    """An execution client whose latest block lands 123s after genesis (slot 10)."""
    now = int(time.time()) - 6
    config = BeaconConfig(genesis_time=now - 123, seconds_per_slot=12, slots_per_epoch=32)
    el = FakeExecutionClient(timestamp=now)
    el.register("getNodeCount()", "uint256", lambda target, arg, block: len(NODES))
    el.register("getNodeAt(uint256)", "address", lambda target, arg, block: NODES[arg])
    # Values depend on the block so tests can tell which height was read.
    el.register("getStake(address)", "uint256", lambda target, arg, block: block + arg)
    el.register("getPubkey(address)", "bytes", lambda target, arg, block: pubkey(arg))
    el.register("totalStake()", "uint256", lambda target, arg, block: block * 3)
    cl = FakeBeaconClient(config)
    return el, cl, config


@pytest.fixture
def manager(chain) -> NetworkStateManager:
    el, cl, config = chain
    return NetworkStateManager(make_tracker(el, cl), QUERY, config)


class TestHeadState:
    @pytest.mark.asyncio
    async def test_falls_back_to_previous_slot(self, chain, manager):
        el, cl, _ = chain
        cl.add_block(9)

        state = await manager.get_head_state()

        assert state.slot == 10
        assert state.resolved_slot == 9
        assert state.execution_block_number == 10_009
        assert cl.block_requests == [10, 9]
        assert state.entities == NODES

    @pytest.mark.asyncio
    async def test_every_read_uses_resolved_block(self, chain, manager):
        el, cl, _ = chain
        cl.add_block(9)

        state = await manager.get_head_state()

        assert el.call_blocks == {hex(10_009)}
        assert state.network_details["total_stake"] == 3 * 10_009
        for i, address in enumerate(NODES, start=1):
            assert state.entity_details[address]["stake"] == 10_009 + i
        assert cl.validator_requests == [([pubkey(1), pubkey(2), pubkey(3)], 9)]

    @pytest.mark.asyncio
    async def test_skips_several_missed_slots(self, chain, manager):
        _, cl, _ = chain
        cl.add_block(7)

        state = await manager.get_head_state()

        assert state.resolved_slot == 7
        assert cl.block_requests == [10, 9, 8, 7]

    @pytest.mark.asyncio
    async def test_logs_missing_slots(self, chain, manager, caplog):
        _, cl, _ = chain
        cl.add_block(9)

        with caplog.at_level("INFO"):
            await manager.get_head_state()

        assert "Slot 10 was missing, trying the previous one..." in caplog.text

    @pytest.mark.asyncio
    async def test_entity_batches_respect_batch_size(self, chain, manager):
        el, cl, _ = chain
        cl.add_block(10)

        await manager.get_head_state()

        # Each batch holds at most two entities with two fields each.
        assert max(el.batches) <= 2 * len(QUERY.entity_fields)

    @pytest.mark.asyncio
    async def test_validator_statuses(self, chain, manager):
        _, cl, _ = chain
        cl.add_block(10)
        cl.validators[pubkey(2)] = ValidatorStatus(
            pubkey=pubkey(2), exists=True, index=77, status="active_ongoing"
        )

        state = await manager.get_head_state()

        assert state.validator_for(NODES[1], "pubkey").status == "active_ongoing"
        assert state.validator_for(NODES[1], "pubkey").index == 77
        assert not state.validator_for(NODES[0], "pubkey").exists
        assert state.validator_for(node(9), "pubkey") is None


class TestSlotResolution:
    @pytest.mark.asyncio
    async def test_nothing_above_floor(self, chain):
        el, cl, config = chain
        manager = NetworkStateManager(make_tracker(el, cl), QUERY, config, slot_floor=5)

        with pytest.raises(MissingDataError) as exc_info:
            await manager.get_head_state()

        assert exc_info.value.slot == 10
        assert cl.block_requests == [10, 9, 8, 7, 6, 5]
        assert await manager.get_latest_state() is None

    @pytest.mark.asyncio
    async def test_block_without_execution_payload(self, chain, manager):
        _, cl, _ = chain
        cl.blocks[10] = BeaconBlock(slot=10, proposer_index=1, has_execution_data=False)

        with pytest.raises(MissingDataError):
            await manager.get_head_state()

    @pytest.mark.asyncio
    async def test_target_below_floor(self, chain):
        el, cl, config = chain
        manager = NetworkStateManager(make_tracker(el, cl), QUERY, config, slot_floor=20)

        with pytest.raises(MissingDataError):
            await manager.get_state_for_slot(10)
        assert cl.block_requests == []

    def test_negative_floor(self, chain):
        el, cl, config = chain
        with pytest.raises(ConfigurationError):
            NetworkStateManager(make_tracker(el, cl), QUERY, config, slot_floor=-1)


class TestPublication:
    @pytest.mark.asyncio
    async def test_latest_state_starts_empty(self, manager):
        assert await manager.get_latest_state() is None

    @pytest.mark.asyncio
    async def test_publishes_complete_snapshot(self, chain, manager):
        _, cl, _ = chain
        cl.add_block(10)

        state = await manager.get_head_state()

        assert await manager.get_latest_state() is state

    @pytest.mark.asyncio
    async def test_repeat_builds_agree(self, chain, manager):
        _, cl, _ = chain
        cl.add_block(8)

        first = await manager.get_state_for_slot(9)
        second = await manager.get_state_for_slot(9)

        assert first.beacon_block == second.beacon_block
        assert first.execution_block_number == second.execution_block_number
        assert dict(first.network_details) == dict(second.network_details)
        assert {a: dict(d.fields) for a, d in first.entity_details.items()} == {
            a: dict(d.fields) for a, d in second.entity_details.items()
        }

    @pytest.mark.asyncio
    async def test_failed_build_keeps_previous_snapshot(self, chain, manager):
        el, cl, _ = chain
        cl.add_block(10)
        previous = await manager.get_head_state()

        el.fail = "connection reset"
        with pytest.raises(TransportError):
            await manager.get_state_for_slot(10)

        assert await manager.get_latest_state() is previous

    @pytest.mark.asyncio
    async def test_cancelled_build_publishes_nothing(self, chain):
        el, cl, config = chain
        cl.add_block(10)
        started = asyncio.Event()

        class StalledClient(FakeExecutionClient):
            async def batch_call(self, calls):
                started.set()
                await asyncio.Event().wait()

        stalled = StalledClient(timestamp=el.timestamp)
        manager = NetworkStateManager(make_tracker(stalled, cl), QUERY, config)

        task = asyncio.create_task(manager.get_state_for_slot(10))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert await manager.get_latest_state() is None
        assert not manager._update_lock.locked()

    @pytest.mark.asyncio
    async def test_concurrent_builds(self, chain, manager):
        _, cl, _ = chain
        cl.add_block(10)
        cl.add_block(8)

        head, older = await asyncio.gather(
            manager.get_head_state(), manager.get_state_for_slot(8)
        )

        assert head.resolved_slot == 10
        assert older.resolved_slot == 8
        assert await manager.get_latest_state() in (head, older)

    @pytest.mark.asyncio
    async def test_not_ready_client_blocks_build(self, chain):
        el, cl, config = chain
        cl.add_block(10)
        el.progress = SyncProgress(starting_block=0, current_block=5, highest_block=10)
        manager = NetworkStateManager(make_tracker(el, cl), QUERY, config)

        with pytest.raises(NotReadyError):
            await manager.get_head_state()
        assert await manager.get_latest_state() is None


class TestFilteredSnapshots:
    @pytest.mark.asyncio
    async def test_single_entity(self, chain, manager):
        _, cl, _ = chain
        cl.add_block(10)

        state = await manager.get_head_state_for_entity(NODES[1].upper().replace("0X", "0x"))

        assert state.entities == [NODES[1]]
        assert state.network_details["total_stake"] == 3 * 10_010
        assert await manager.get_latest_state() is None

    @pytest.mark.asyncio
    async def test_single_entity_without_network_fields(self, chain, manager):
        _, cl, _ = chain
        cl.add_block(10)

        state = await manager.get_head_state_for_entity(NODES[0], include_network=False)

        assert dict(state.network_details) == {}
        assert state.entity_details[NODES[0]]["stake"] == 10_011

    @pytest.mark.asyncio
    async def test_explicit_filter_covers_every_entity(self, chain, manager):
        _, cl, _ = chain
        cl.add_block(10)

        state = await manager.build_snapshot(10, EntityFilter(include_network=False))

        assert state.entities == NODES
        assert await manager.get_latest_state() is state


class TestFinalizedState:
    @pytest.mark.asyncio
    async def test_last_slot_of_finalized_epoch(self, chain, manager):
        _, cl, _ = chain
        cl.finalized_epoch = 2
        cl.add_block(94)

        state = await manager.get_finalized_state()

        assert state.slot == 95
        assert state.resolved_slot == 94
        assert cl.block_requests == [95, 94]


@pytest.mark.asyncio
async def test_create_fetches_beacon_config(chain):
    el, cl, config = chain
    manager = await NetworkStateManager.create(make_tracker(el, cl), QUERY)
    assert manager.beacon_config == config


@pytest.mark.asyncio
async def test_static_entity_list(chain):
    el, cl, config = chain
    cl.add_block(10)
    query = StateQuery(
        entities=(NODES[2], NODES[0]),
        entity_fields=(ContractField("stake", "getStake(address)", target=STAKING),),
    )
    manager = NetworkStateManager(make_tracker(el, cl), query, config)

    state = await manager.get_head_state()

    assert state.entities == [NODES[2], NODES[0]]
    assert dict(state.validator_details) == {}
    assert cl.validator_requests == []


@pytest.mark.asyncio
async def test_latest_block_lookups(chain, manager):
    _, cl, _ = chain
    cl.finalized_epoch = 0
    cl.add_block(9)
    cl.add_block(30)

    head = await manager.get_latest_beacon_block()
    finalized = await manager.get_latest_finalized_beacon_block()

    assert head.slot == 9
    assert finalized.slot == 30
    assert cl.block_requests == [10, 9, 31, 30]


class TestUndecodableReads:
    @pytest.mark.asyncio
    async def test_empty_entity_read_fails_the_build(self, chain, manager):
        el, cl, _ = chain
        cl.add_block(10)
        previous = await manager.get_head_state()
        el.register(
            "getPubkey(address)",
            "raw",
            lambda target, arg, block: "0x" if arg == 2 else encode_result("bytes", pubkey(arg)),
        )

        with pytest.raises(MissingDataError) as exc_info:
            await manager.get_head_state()

        assert "pubkey" in str(exc_info.value)
        assert str(10_010) in str(exc_info.value)
        assert await manager.get_latest_state() is previous

    @pytest.mark.asyncio
    async def test_empty_registry_member_fails_the_build(self, chain, manager):
        el, cl, _ = chain
        cl.add_block(10)
        el.register("getNodeAt(uint256)", "raw", lambda target, arg, block: "0x")

        with pytest.raises(MissingDataError) as exc_info:
            await manager.get_head_state()

        assert "node_at" in str(exc_info.value)
        assert REGISTRY in str(exc_info.value)
        assert await manager.get_latest_state() is None
