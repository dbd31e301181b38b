"""Primary/fallback selection and bounded sync waits for one kind of client."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .endpoint import ClientEndpoint, ClientKind, EndpointRole
from .. import metrics
from ..exceptions import ConfigurationError, NoAvailableClientError, NotReadyError

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_STATUS_REFRESH_INTERVAL = 60.0


@dataclass(frozen=True)
class StatusCheck:
    """Result of one status evaluation.

    When ready, `endpoint` is the instance to use. Otherwise `wait_on` is
    the instance worth waiting for.
    """

    ready: bool
    endpoint: Optional[ClientEndpoint] = None
    wait_on: Optional[ClientEndpoint] = None


class ClientManager:
    """Chooses between a primary and an optional fallback endpoint.

    Endpoints are evaluated in order, so the primary always wins when it is
    synced and the fallback is not probed at all in that case.
    """

    def __init__(
        self,
        primary: ClientEndpoint,
        fallback: Optional[ClientEndpoint] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        status_refresh_interval: float = DEFAULT_STATUS_REFRESH_INTERVAL,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if primary.role is not EndpointRole.PRIMARY:
            raise ConfigurationError(f"Expected a primary endpoint, got {primary.role.value}")
        if fallback is not None:
            if fallback.role is not EndpointRole.FALLBACK:
                raise ConfigurationError(f"Expected a fallback endpoint, got {fallback.role.value}")
            if fallback.kind is not primary.kind:
                raise ConfigurationError("Primary and fallback endpoints must be the same kind")

        self.kind: ClientKind = primary.kind
        self.endpoints: list[ClientEndpoint] = [primary] + ([fallback] if fallback else [])
        self.poll_interval = poll_interval
        self.status_refresh_interval = status_refresh_interval
        self._sleep = sleep
        self._clock = clock
        self._sync_lock = asyncio.Lock()
        self._active: Optional[ClientEndpoint] = None
        self._active_checked_at = 0.0

    @property
    def primary(self) -> ClientEndpoint:
        return self.endpoints[0]

    @property
    def fallback(self) -> Optional[ClientEndpoint]:
        return self.endpoints[1] if len(self.endpoints) > 1 else None

    @property
    def active(self) -> Optional[ClientEndpoint]:
        """The endpoint selected by the last successful evaluation."""
        return self._active

    def _select(self, endpoint: Optional[ClientEndpoint]) -> None:
        self._active = endpoint
        self._active_checked_at = self._clock()
        metrics.update_fallback_active(
            self.kind.value,
            endpoint is not None and endpoint.role is EndpointRole.FALLBACK,
        )

    def _log_degraded_primary(self) -> None:
        status = self.primary.status
        if status.error:
            logger.warning(
                f"Primary {self.kind.value} client is unavailable ({status.error}), "
                f"using fallback {self.kind.value} client..."
            )
        else:
            progress = (status.sync_progress or 0.0) * 100
            logger.warning(
                f"Primary {self.kind.value} client is still syncing ({progress:.2f}%), "
                f"using fallback {self.kind.value} client..."
            )

    async def check_status(self) -> StatusCheck:
        """Evaluate the endpoints and decide which one to use or wait on.

        Raises NoAvailableClientError when no endpoint is working.
        """
        for endpoint in self.endpoints:
            status = await endpoint.refresh()
            if status.is_synced:
                if endpoint.role is EndpointRole.FALLBACK:
                    self._log_degraded_primary()
                self._select(endpoint)
                return StatusCheck(ready=True, endpoint=endpoint)

        self._select(None)

        for endpoint in self.endpoints:
            status = endpoint.status
            if status.is_working and not status.error:
                progress = (status.sync_progress or 0.0) * 100
                if endpoint.role is EndpointRole.PRIMARY:
                    logger.info(
                        f"Fallback {self.kind.value} client is not configured or unavailable, "
                        f"waiting for primary {self.kind.value} client to finish syncing ({progress:.2f}%)"
                    )
                else:
                    logger.info(
                        f"Primary {self.kind.value} client is unavailable ({self.primary.status.error}), "
                        f"waiting for the fallback {self.kind.value} client to finish syncing ({progress:.2f}%)"
                    )
                return StatusCheck(ready=False, wait_on=endpoint)

        raise NoAvailableClientError(
            self.kind.value,
            self.primary.status.error,
            self.fallback.status.error if self.fallback else None,
        )

    async def get_client(self):
        """Return the client handle that is safe to query right now.

        The selection is reused until it is older than the status refresh
        interval. Raises NotReadyError if no endpoint is synced.
        """
        endpoint = self._active
        if endpoint is None or self._clock() - self._active_checked_at > self.status_refresh_interval:
            check = await self.check_status()
            if not check.ready:
                raise NotReadyError(
                    self.kind.value,
                    f"No {self.kind.value} client is synced yet "
                    f"(waiting on the {check.wait_on.role.value} client).",
                )
            endpoint = check.endpoint
        return endpoint.client

    async def wait_until_synced(self, timeout: float = 0) -> bool:
        """Wait until an endpoint is synced.

        A timeout of 0 waits forever. When a positive timeout is exceeded
        this returns False rather than raising. Only one waiter polls at a
        time; others queue on the lock and re-evaluate once it is free.
        """
        async with self._sync_lock:
            synced = await self._wait_locked(timeout)
        metrics.record_sync_wait(self.kind.value, synced)
        return synced

    async def _wait_locked(self, timeout: float) -> bool:
        check = await self.check_status()
        if check.ready:
            return True
        wait_on = check.wait_on

        start_time = self._clock()
        refresh_time = start_time

        while True:
            elapsed = self._clock() - start_time
            if timeout > 0 and elapsed >= timeout:
                logger.info(f"Timed out after {timeout}s waiting for the {self.kind.value} client to sync")
                return False

            if self._clock() - refresh_time > self.status_refresh_interval:
                logger.info(f"Refreshing primary / fallback {self.kind.value} client status...")
                refresh_time = self._clock()
                check = await self.check_status()
                if check.ready:
                    return True
                wait_on = check.wait_on

            if await wait_on.poll():
                logger.info(f"{wait_on.role.value.capitalize()} {self.kind.value} client is synced")
                wait_on.mark_synced()
                self._select(wait_on)
                return True

            delay = self.poll_interval
            if timeout > 0:
                remaining = timeout - (self._clock() - start_time)
                delay = max(0.0, min(delay, remaining))
            await self._sleep(delay)
