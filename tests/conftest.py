"""Shared fakes for statekeeper tests."""

from typing import Callable, Optional

import pytest

from statekeeper.abi import function_selector
from statekeeper.beacon.types import BeaconBlock, BeaconConfig, BeaconHead, SyncingStatus, ValidatorStatus
from statekeeper.clients import (
    BeaconEndpoint,
    ClientManager,
    EndpointRole,
    ExecutionEndpoint,
    HealthTracker,
)
from statekeeper.exceptions import TransportError
from statekeeper.execution.types import BlockHeader, SyncProgress

GENESIS_TIME = 1_606_824_023


def encode_result(output: str, value) -> str:
    """ABI-encode a single return value as a hex string. "raw" passes it through."""
    if output in ("uint256", "bool"):
        data = int(value).to_bytes(32, "big")
    elif output == "address":
        data = bytes.fromhex(value[2:]).rjust(32, b"\x00")
    elif output == "bytes32":
        data = bytes(value).ljust(32, b"\x00")
    elif output == "raw":
        return value
    elif output == "bytes":
        raw = bytes(value)
        padded = raw.ljust((len(raw) + 31) // 32 * 32, b"\x00")
        data = (32).to_bytes(32, "big") + len(raw).to_bytes(32, "big") + padded
    else:
        raise ValueError(output)
    return "0x" + data.hex()


class FakeExecutionClient:
    """In-memory stand-in for ExecutionClient."""

    def __init__(self, timestamp: int = 0, progress: Optional[SyncProgress] = None):
        self.timestamp = timestamp
        self.block_number = 1000
        self.progress = progress
        self.fail: Optional[str] = None
        self.code: dict[str, bytes] = {}
        self.handlers: dict[str, tuple[str, Callable]] = {}
        self.sync_progress_calls = 0
        self.header_calls = 0
        self.batches: list[int] = []
        self.call_blocks: set[str] = set()

    def _check(self) -> None:
        if self.fail:
            raise TransportError(self.fail, "http://fake-el")

    def register(self, signature: str, output: str, handler: Callable) -> None:
        """Serve eth_calls to `signature`. handler(target, arg, block) -> value."""
        selector = function_selector(signature).hex()
        self.handlers[selector] = (output, handler)

    async def header_by_number(self, number=None) -> BlockHeader:
        self.header_calls += 1
        self._check()
        return BlockHeader(number=self.block_number, timestamp=self.timestamp)

    async def sync_progress(self) -> Optional[SyncProgress]:
        self.sync_progress_calls += 1
        self._check()
        return self.progress

    async def code_at(self, address: str, block=None) -> bytes:
        self._check()
        return self.code.get(address.lower(), b"")

    async def batch_call(self, calls):
        self._check()
        self.batches.append(len(calls))
        results = []
        for method, params in calls:
            assert method == "eth_call"
            call, block = params
            self.call_blocks.add(block)
            data = call["data"][2:]
            output, handler = self.handlers[data[:8]]
            arg = int(data[8:72], 16) if len(data) > 8 else None
            results.append(encode_result(output, handler(call["to"], arg, int(block, 16))))
        return results

    async def close(self) -> None:
        pass


class FakeBeaconClient:
    """In-memory stand-in for BeaconClient."""

    def __init__(self, config: BeaconConfig, syncing: bool = False):
        self.config = config
        self.syncing = syncing
        self.sync_distance = 0
        self.head_slot = 0
        self.finalized_epoch = 0
        self.blocks: dict[int, BeaconBlock] = {}
        self.validators: dict[bytes, ValidatorStatus] = {}
        self.fail: Optional[str] = None
        self.block_requests: list = []
        self.validator_requests: list = []
        self.sync_status_calls = 0

    def _check(self) -> None:
        if self.fail:
            raise TransportError(self.fail, "http://fake-cl")

    def add_block(self, slot: int, execution_block_number: Optional[int] = None) -> BeaconBlock:
        block = BeaconBlock(
            slot=slot,
            proposer_index=slot % 7,
            root=slot.to_bytes(32, "big"),
            has_execution_data=True,
            execution_block_number=execution_block_number or 10_000 + slot,
        )
        self.blocks[slot] = block
        return block

    async def get_eth2_config(self) -> BeaconConfig:
        self._check()
        return self.config

    async def get_sync_status(self) -> SyncingStatus:
        self.sync_status_calls += 1
        self._check()
        return SyncingStatus(
            is_syncing=self.syncing,
            head_slot=self.head_slot,
            sync_distance=self.sync_distance,
        )

    async def get_beacon_head(self) -> BeaconHead:
        self._check()
        return BeaconHead(
            epoch=self.finalized_epoch + 2,
            finalized_epoch=self.finalized_epoch,
            justified_epoch=self.finalized_epoch + 1,
            previous_justified_epoch=self.finalized_epoch,
        )

    async def get_beacon_block(self, block_id):
        self.block_requests.append(block_id)
        self._check()
        block = self.blocks.get(int(block_id))
        return block, block is not None

    async def get_validator_statuses(self, pubkeys, state_id="head"):
        self.validator_requests.append((list(pubkeys), state_id))
        self._check()
        return {
            pk: self.validators.get(pk, ValidatorStatus.missing(pk)) for pk in pubkeys
        }

    async def close(self) -> None:
        pass


class RecordingSleep:
    """Replacement for asyncio.sleep that advances a fake clock."""

    def __init__(self, clock: "FakeClock", on_sleep: Optional[Callable[[int], None]] = None):
        self.clock = clock
        self.calls: list[float] = []
        self.on_sleep = on_sleep

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        self.clock.now += delay
        if self.on_sleep is not None:
            self.on_sleep(len(self.calls))


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def beacon_config() -> BeaconConfig:
    return BeaconConfig(genesis_time=GENESIS_TIME, seconds_per_slot=12, slots_per_epoch=32)


@pytest.fixture
def synced_el() -> FakeExecutionClient:
    import time
    return FakeExecutionClient(timestamp=int(time.time()) - 6)


@pytest.fixture
def synced_cl(beacon_config) -> FakeBeaconClient:
    return FakeBeaconClient(beacon_config)


def make_tracker(
    el_primary,
    cl_primary,
    el_fallback=None,
    cl_fallback=None,
    poll_interval: float = 0.01,
    status_refresh_interval: float = 60.0,
    contract_check_interval: float = 15.0,
) -> HealthTracker:
    execution = ClientManager(
        ExecutionEndpoint(EndpointRole.PRIMARY, el_primary),
        ExecutionEndpoint(EndpointRole.FALLBACK, el_fallback) if el_fallback else None,
        poll_interval=poll_interval,
        status_refresh_interval=status_refresh_interval,
    )
    beacon = ClientManager(
        BeaconEndpoint(EndpointRole.PRIMARY, cl_primary),
        BeaconEndpoint(EndpointRole.FALLBACK, cl_fallback) if cl_fallback else None,
        poll_interval=poll_interval,
        status_refresh_interval=status_refresh_interval,
    )
    return HealthTracker(
        execution, beacon, sync_timeout=1.0, contract_check_interval=contract_check_interval
    )
