"""Batched contract reads pinned to a single execution block."""

import asyncio
import logging
from typing import Any, Callable, Optional, Sequence, TypeVar

from .abi import ContractField
from .exceptions import MissingDataError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 100
DEFAULT_CONCURRENCY = 6


class MultiCaller:
    """Queues eth_calls and sends them as one JSON-RPC batch.

    Every call is made against the same block so the values read by one
    caller are consistent with each other.
    """

    def __init__(self, client, block_number: int):
        self.client = client
        self.block_number = block_number
        self._calls: list[tuple[str, str, Callable[[bytes], None], str]] = []

    def __len__(self) -> int:
        return len(self._calls)

    def add_call(
        self, to: str, data: str, callback: Callable[[bytes], None], name: str = "call"
    ) -> None:
        """Queue a raw call; callback receives the return data.

        `name` identifies the call in errors raised when its result cannot
        be decoded.
        """
        self._calls.append((to, data, callback, name))

    def add_field(
        self,
        field: ContractField,
        sink: dict,
        address: Optional[str] = None,
        index: Optional[int] = None,
    ) -> None:
        """Queue a field read whose decoded value lands in sink[field.name]."""
        def store(result: bytes) -> None:
            sink[field.name] = field.decode(result)

        self.add_call(field.resolve_target(address), field.encode(address, index), store, field.name)

    async def flush(self) -> None:
        """Send all queued calls in one round trip and run their callbacks."""
        if not self._calls:
            return
        calls, self._calls = self._calls, []
        block = hex(self.block_number)
        results = await self.client.batch_call(
            [("eth_call", [{"to": to, "data": data}, block]) for to, data, _, _ in calls]
        )
        for (to, _, callback, name), result in zip(calls, results):
            try:
                callback(bytes.fromhex(result[2:]) if result else b"")
            except ValueError as e:
                raise MissingDataError(
                    f"Could not decode {name} from {to} at block {self.block_number}: {e}"
                ) from e


async def populate(
    client,
    block_number: int,
    items: Sequence[T],
    batch_size: int,
    callback: Callable[[MultiCaller, T], Any],
    concurrency: int = DEFAULT_CONCURRENCY,
) -> None:
    """Run `callback` for every item, grouping at most `batch_size` items per round trip.

    Up to `concurrency` batches are in flight at once. If any batch fails
    the others are cancelled and the error propagates.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    if not items:
        return

    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def run_batch(batch: Sequence[T]) -> None:
        async with semaphore:
            mc = MultiCaller(client, block_number)
            for item in batch:
                callback(mc, item)
            await mc.flush()

    batches = [items[i:i + batch_size] for i in range(0, len(items), batch_size)]
    logger.debug(f"Fetching {len(items)} items in {len(batches)} batches at block {block_number}")

    tasks = [asyncio.ensure_future(run_batch(batch)) for batch in batches]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
