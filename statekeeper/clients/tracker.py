"""Health tracking for the execution and beacon clients."""

import logging
from typing import Optional, Union

from .endpoint import BeaconEndpoint, ClientKind, EndpointRole, ExecutionEndpoint
from .manager import ClientManager, StatusCheck
from ..beacon import BeaconClient
from ..exceptions import ConfigurationError
from ..execution import ExecutionClient

logger = logging.getLogger(__name__)

DEFAULT_SYNC_TIMEOUT = 16.0
DEFAULT_CONTRACT_CHECK_INTERVAL = 15.0


class HealthTracker:
    """Owns one ClientManager per kind of backing client."""

    def __init__(
        self,
        execution: ClientManager,
        beacon: ClientManager,
        sync_timeout: float = DEFAULT_SYNC_TIMEOUT,
        contract_check_interval: float = DEFAULT_CONTRACT_CHECK_INTERVAL,
    ):
        if execution.kind is not ClientKind.EXECUTION or beacon.kind is not ClientKind.BEACON:
            raise ConfigurationError("HealthTracker needs an execution and a beacon manager")
        self._managers = {
            ClientKind.EXECUTION: execution,
            ClientKind.BEACON: beacon,
        }
        self.sync_timeout = sync_timeout
        self.contract_check_interval = contract_check_interval

    @classmethod
    def from_config(cls, config) -> "HealthTracker":
        """Create client handles and endpoints from a Config."""
        execution_fallback = None
        if config.execution_fallback_url:
            execution_fallback = ExecutionEndpoint(
                EndpointRole.FALLBACK,
                ExecutionClient(config.execution_fallback_url, config.request_timeout),
                recent_block_threshold=config.recent_block_threshold,
            )
        beacon_fallback = None
        if config.beacon_fallback_url:
            beacon_fallback = BeaconEndpoint(
                EndpointRole.FALLBACK,
                BeaconClient(config.beacon_fallback_url, config.request_timeout),
            )

        execution = ClientManager(
            ExecutionEndpoint(
                EndpointRole.PRIMARY,
                ExecutionClient(config.execution_url, config.request_timeout),
                recent_block_threshold=config.recent_block_threshold,
            ),
            execution_fallback,
            poll_interval=config.poll_interval,
            status_refresh_interval=config.status_refresh_interval,
        )
        beacon = ClientManager(
            BeaconEndpoint(
                EndpointRole.PRIMARY,
                BeaconClient(config.beacon_url, config.request_timeout),
            ),
            beacon_fallback,
            poll_interval=config.poll_interval,
            status_refresh_interval=config.status_refresh_interval,
        )

        logger.info(f"Execution client: {config.execution_url}")
        if config.execution_fallback_url:
            logger.info(f"  Fallback: {config.execution_fallback_url}")
        logger.info(f"Beacon client: {config.beacon_url}")
        if config.beacon_fallback_url:
            logger.info(f"  Fallback: {config.beacon_fallback_url}")

        return cls(
            execution,
            beacon,
            sync_timeout=config.sync_timeout,
            contract_check_interval=config.contract_check_interval,
        )

    def manager(self, kind: Union[ClientKind, str]) -> ClientManager:
        try:
            return self._managers[ClientKind(kind)]
        except ValueError as e:
            raise ConfigurationError(f"Unknown client kind: {kind!r}") from e

    async def check_status(self, kind: Union[ClientKind, str]) -> StatusCheck:
        return await self.manager(kind).check_status()

    async def wait_until_synced(
        self, kind: Union[ClientKind, str], timeout: Optional[float] = 0
    ) -> bool:
        """Wait for a client of the given kind to sync; timeout 0 waits forever."""
        return await self.manager(kind).wait_until_synced(timeout or 0)

    async def execution_client(self):
        """The execution client handle to use right now."""
        return await self._managers[ClientKind.EXECUTION].get_client()

    async def beacon_client(self):
        """The beacon client handle to use right now."""
        return await self._managers[ClientKind.BEACON].get_client()

    async def close(self) -> None:
        for manager in self._managers.values():
            for endpoint in manager.endpoints:
                close = getattr(endpoint.client, "close", None)
                if close is not None:
                    await close()
