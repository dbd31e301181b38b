"""Requirement checks that gate work on client readiness."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .endpoint import ClientKind
from .tracker import HealthTracker
from ..abi import normalize_address
from ..exceptions import NotReadyError

logger = logging.getLogger(__name__)


async def require_synced(
    tracker: HealthTracker, kind: ClientKind, timeout: Optional[float] = None
) -> None:
    """Wait briefly for a client to sync and raise NotReadyError if it does not."""
    kind = ClientKind(kind)
    if timeout is None:
        timeout = tracker.sync_timeout
    synced = await tracker.wait_until_synced(kind, timeout)
    if not synced:
        raise NotReadyError(
            kind.value,
            f"The {kind.value} client is currently syncing. Please try again later.",
        )


async def wait_synced(tracker: HealthTracker, kind: ClientKind) -> None:
    """Wait with no timeout for a client to sync."""
    await tracker.wait_until_synced(kind, 0)


async def get_contract_loaded(tracker: HealthTracker, address: str) -> bool:
    """Check whether code is deployed at an address."""
    address = normalize_address(address)
    client = await tracker.execution_client()
    code = await client.code_at(address)
    return len(code) > 0


async def require_contract_loaded(
    tracker: HealthTracker, address: str, name: str = "contract"
) -> None:
    """Require the execution client to be synced and a contract to be deployed."""
    address = normalize_address(address)
    await require_synced(tracker, ClientKind.EXECUTION)
    if not await get_contract_loaded(tracker, address):
        raise NotReadyError(
            ClientKind.EXECUTION.value,
            f"The {name} contract was not found at {address}; the configured address may be "
            f"incorrect, or the execution client may not be synced. Please try again later.",
        )


async def wait_contract_loaded(
    tracker: HealthTracker,
    address: str,
    name: str = "contract",
    interval: Optional[float] = None,
    verbose: bool = False,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Wait until a contract is deployed at an address.

    Checks every `interval` seconds, defaulting to the tracker's configured
    contract check interval.
    """
    if interval is None:
        interval = tracker.contract_check_interval
    address = normalize_address(address)
    await wait_synced(tracker, ClientKind.EXECUTION)
    while not await get_contract_loaded(tracker, address):
        if verbose:
            logger.info(f"The {name} contract was not found, retrying in {interval}s...")
        await sleep(interval)
