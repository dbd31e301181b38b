"""JSON-RPC client for an execution layer node."""

import asyncio
import logging
import time
from typing import Optional, Any, Union

import aiohttp

from .exceptions import ExecutionAPIError
from .types import BlockHeader, SyncProgress
from .. import metrics
from ..exceptions import TransportError

logger = logging.getLogger(__name__)

BlockTag = Union[int, str, None]


def _block_param(block: BlockTag) -> str:
    if block is None:
        return "latest"
    if isinstance(block, int):
        return hex(block)
    return block


class ExecutionClient:
    """Client for the Ethereum execution JSON-RPC API."""

    def __init__(self, url: str, timeout: float = 30.0):
        self.url = url
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._request_id = 0

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure we have an active session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    def _next_id(self) -> int:
        self._request_id += 1
        return self._request_id

    async def _post(self, payload: Any, method: str) -> Any:
        session = await self._ensure_session()
        start_time = time.time()
        error_type = None

        try:
            async with session.post(
                self.url, json=payload, headers={"Content-Type": "application/json"}
            ) as response:
                if response.status != 200:
                    error_type = str(response.status)
                    text = await response.text()
                    raise ExecutionAPIError(response.status, text, self.url)
                try:
                    return await response.json()
                except ValueError as e:
                    error_type = "invalid_json"
                    raise ExecutionAPIError(-1, f"invalid JSON response: {e}", self.url) from e
        except aiohttp.ClientError as e:
            error_type = "connection_error"
            logger.debug(f"Execution API connection error on {method}: {e}")
            raise TransportError(f"Execution API connection error: {e}", self.url) from e
        except asyncio.TimeoutError as e:
            error_type = "timeout"
            raise TransportError(
                f"Execution API request timed out after {self.timeout}s", self.url
            ) from e
        finally:
            metrics.record_rpc_call("execution", method, time.time() - start_time, error_type)

    def _unwrap(self, data: dict) -> Any:
        if "error" in data:
            error = data["error"]
            raise ExecutionAPIError(error.get("code", -1), error.get("message", ""), self.url)
        return data.get("result")

    async def _call(self, method: str, params: list) -> Any:
        """Make a JSON-RPC call."""
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": self._next_id(),
        }
        logger.debug(f"Execution API call: {method}")
        data = await self._post(payload, method)
        return self._unwrap(data)

    async def batch_call(self, calls: list[tuple[str, list]]) -> list[Any]:
        """Send several JSON-RPC calls in one round trip.

        Results are returned in the order of `calls`. Any per-call error
        fails the whole batch.
        """
        if not calls:
            return []
        ids = []
        payload = []
        for method, params in calls:
            request_id = self._next_id()
            ids.append(request_id)
            payload.append({
                "jsonrpc": "2.0",
                "method": method,
                "params": params,
                "id": request_id,
            })

        data = await self._post(payload, "batch")
        if isinstance(data, dict):
            # Some clients answer a failed batch with a single error object
            self._unwrap(data)
            raise ExecutionAPIError(-1, "unexpected batch response", self.url)

        by_id = {entry.get("id"): entry for entry in data}
        results = []
        for request_id in ids:
            entry = by_id.get(request_id)
            if entry is None:
                raise ExecutionAPIError(-1, f"missing response for request {request_id}", self.url)
            results.append(self._unwrap(entry))
        return results

    async def header_by_number(self, number: BlockTag = None) -> BlockHeader:
        """Get a block header; None means the latest block."""
        result = await self._call("eth_getBlockByNumber", [_block_param(number), False])
        if result is None:
            raise ExecutionAPIError(-1, f"block {_block_param(number)} not found", self.url)
        return BlockHeader.from_dict(result)

    async def sync_progress(self) -> Optional[SyncProgress]:
        """Get sync progress, or None if the client reports it is not syncing."""
        result = await self._call("eth_syncing", [])
        return SyncProgress.from_result(result)

    async def code_at(self, address: str, block: BlockTag = None) -> bytes:
        """Get the contract code deployed at an address."""
        result = await self._call("eth_getCode", [address, _block_param(block)])
        return bytes.fromhex(result[2:]) if result else b""

    async def call(self, to: str, data: str, block: BlockTag = None) -> bytes:
        """Execute a read-only contract call."""
        result = await self._call("eth_call", [{"to": to, "data": data}, _block_param(block)])
        return bytes.fromhex(result[2:]) if result else b""

    async def chain_id(self) -> int:
        """Get the chain ID."""
        return int(await self._call("eth_chainId", []), 16)

    async def close(self) -> None:
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
