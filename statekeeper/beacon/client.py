"""Beacon API client for a consensus layer node."""

import asyncio
import logging
import time
from typing import Optional, Union

import aiohttp

from .exceptions import BeaconAPIError, BlockNotFoundError
from .types import BeaconBlock, BeaconConfig, BeaconHead, SyncingStatus, ValidatorStatus
from .. import metrics
from ..exceptions import TransportError

logger = logging.getLogger(__name__)

VALIDATOR_BATCH_SIZE = 600


class BeaconClient:
    """Client for the standard Beacon API (any conformant consensus client)."""

    def __init__(self, base_url: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._eth2_config: Optional[BeaconConfig] = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def _request(
        self,
        method: str,
        path: str,
        endpoint: str,
        json_body: Optional[dict] = None,
        allow_404: bool = False,
    ) -> Optional[dict]:
        """Send a request and return the decoded JSON body.

        Returns None on 404 when allow_404 is set; every other failure raises
        a TransportError subclass.
        """
        session = await self._ensure_session()
        url = f"{self.base_url}{path}"
        start_time = time.time()
        error_type = None

        try:
            async with session.request(
                method, url, json=json_body, headers={"Accept": "application/json"}
            ) as response:
                if response.status == 404:
                    if allow_404:
                        return None
                    error_type = "404"
                    raise BlockNotFoundError(f"Not found: {path}", url)
                if response.status != 200:
                    error_type = str(response.status)
                    text = await response.text()
                    raise BeaconAPIError(response.status, text, url)
                try:
                    return await response.json()
                except ValueError as e:
                    error_type = "invalid_json"
                    raise BeaconAPIError(response.status, f"invalid JSON response: {e}", url) from e
        except aiohttp.ClientError as e:
            error_type = "connection_error"
            logger.debug(f"Beacon API connection error on {endpoint}: {e}")
            raise TransportError(f"Beacon API connection error: {e}", url) from e
        except asyncio.TimeoutError as e:
            error_type = "timeout"
            raise TransportError(f"Beacon API request timed out after {self.timeout}s", url) from e
        finally:
            metrics.record_rpc_call("beacon", endpoint, time.time() - start_time, error_type)

    async def _get_data(self, path: str, endpoint: str) -> dict:
        body = await self._request("GET", path, endpoint)
        return body.get("data", {})

    async def get_genesis(self) -> dict:
        """Get genesis information."""
        return await self._get_data("/eth/v1/beacon/genesis", "genesis")

    async def get_spec(self) -> dict:
        """Get the chain spec/config."""
        return await self._get_data("/eth/v1/config/spec", "spec")

    async def get_eth2_config(self) -> BeaconConfig:
        """Get genesis time and slot timing. Cached after the first call."""
        if self._eth2_config is None:
            genesis = await self.get_genesis()
            spec = await self.get_spec()
            self._eth2_config = BeaconConfig.from_dicts(genesis, spec)
        return self._eth2_config

    async def get_sync_status(self) -> SyncingStatus:
        """Get the node's sync status."""
        data = await self._get_data("/eth/v1/node/syncing", "syncing")
        return SyncingStatus.from_dict(data)

    async def get_version(self) -> str:
        """Get the beacon node version string."""
        data = await self._get_data("/eth/v1/node/version", "version")
        return data.get("version", "unknown")

    async def get_finality_checkpoints(self, state_id: str = "head") -> dict:
        """Get finality checkpoints for a state."""
        return await self._get_data(
            f"/eth/v1/beacon/states/{state_id}/finality_checkpoints",
            "finality_checkpoints",
        )

    async def get_header(self, block_id: str) -> dict:
        """Get block header."""
        return await self._get_data(f"/eth/v1/beacon/headers/{block_id}", "headers")

    async def get_beacon_head(self) -> BeaconHead:
        """Get the current epoch and the finality checkpoints at head."""
        config = await self.get_eth2_config()
        header = await self.get_header("head")
        slot = int(header.get("header", {}).get("message", {}).get("slot", 0))
        checkpoints = await self.get_finality_checkpoints("head")
        return BeaconHead.from_dict(checkpoints, slot // config.slots_per_epoch)

    async def get_beacon_block(self, block_id: Union[int, str]) -> tuple[Optional[BeaconBlock], bool]:
        """Fetch a block by slot or block ID.

        Returns (block, True) if the block exists and (None, False) if the
        node reports it as missing. The root is resolved first and the block
        is then fetched by that root, so the two always belong together.
        """
        root_body = await self._request(
            "GET", f"/eth/v1/beacon/blocks/{block_id}/root", "block_root", allow_404=True
        )
        if root_body is None:
            return None, False
        root = root_body.get("data", {}).get("root")
        if not root:
            raise BeaconAPIError(200, f"No root returned for block {block_id}", self.base_url)

        # A 404 here means the block was reorged out after its root was resolved
        body = await self._request("GET", f"/eth/v2/beacon/blocks/{root}", "blocks")
        return BeaconBlock.from_dict(body.get("data", {}), root), True

    async def get_validator_statuses(
        self, pubkeys: list[bytes], state_id: Union[int, str] = "head"
    ) -> dict[bytes, ValidatorStatus]:
        """Get validator statuses for a set of pubkeys at a given state.

        Pubkeys the node does not know about are returned as missing.
        """
        statuses: dict[bytes, ValidatorStatus] = {}
        for i in range(0, len(pubkeys), VALIDATOR_BATCH_SIZE):
            batch = pubkeys[i:i + VALIDATOR_BATCH_SIZE]
            body = await self._request(
                "POST",
                f"/eth/v1/beacon/states/{state_id}/validators",
                "validators",
                json_body={"ids": ["0x" + pk.hex() for pk in batch]},
            )
            for entry in body.get("data", []):
                status = ValidatorStatus.from_dict(entry)
                statuses[status.pubkey] = status

        for pubkey in pubkeys:
            if pubkey not in statuses:
                statuses[pubkey] = ValidatorStatus.missing(pubkey)
        return statuses

    async def close(self) -> None:
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
