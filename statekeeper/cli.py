"""CLI entry point for statekeeper."""

import asyncio
import logging
import sys
from typing import Optional

import click

from .clients import ClientKind, HealthTracker
from .config import Config
from .exceptions import (
    ConfigurationError,
    MissingDataError,
    NoAvailableClientError,
    NotReadyError,
    StateKeeperError,
)
from .state import NetworkState, NetworkStateManager

logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    """Set up logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    if level.upper() != "DEBUG":
        logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


def load_config(
    config_path: Optional[str],
    execution_url: Optional[str],
    execution_fallback_url: Optional[str],
    beacon_url: Optional[str],
    beacon_fallback_url: Optional[str],
    log_level: str,
) -> Config:
    """Build a Config from an optional yaml file plus command line overrides."""
    config = Config.from_yaml(config_path) if config_path else Config()
    if execution_url:
        config.execution_url = execution_url
    if execution_fallback_url:
        config.execution_fallback_url = execution_fallback_url
    if beacon_url:
        config.beacon_url = beacon_url
    if beacon_fallback_url:
        config.beacon_fallback_url = beacon_fallback_url
    config.log_level = log_level
    return config


def describe_state(state: NetworkState) -> str:
    lines = [
        f"Target slot:      {state.slot}",
        f"Block slot:       {state.resolved_slot}",
        f"Execution block:  {state.execution_block_number}",
        f"Entities:         {len(state.entity_details)}",
        f"Validators:       {len(state.validator_details)}",
    ]
    for name, value in state.network_details.items():
        lines.append(f"  {name}: {value}")
    return "\n".join(lines)


def run(coro) -> None:
    """Run a command coroutine and turn statekeeper errors into exit codes."""
    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        logger.info("Shutting down")
        sys.exit(0)
    except (NotReadyError, NoAvailableClientError) as e:
        logger.warning(str(e))
        sys.exit(2)
    except StateKeeperError as e:
        logger.error(str(e))
        sys.exit(1)


@click.group()
@click.version_option(package_name="statekeeper")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True),
    help="Path to a yaml configuration file",
    envvar="STATEKEEPER_CONFIG",
)
@click.option(
    "--execution-url",
    help="Primary execution client JSON-RPC URL",
    envvar="STATEKEEPER_EXECUTION_URL",
)
@click.option(
    "--execution-fallback-url",
    help="Fallback execution client JSON-RPC URL",
    envvar="STATEKEEPER_EXECUTION_FALLBACK_URL",
)
@click.option(
    "--beacon-url",
    help="Primary beacon node API URL",
    envvar="STATEKEEPER_BEACON_URL",
)
@click.option(
    "--beacon-fallback-url",
    help="Fallback beacon node API URL",
    envvar="STATEKEEPER_BEACON_FALLBACK_URL",
)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level",
    envvar="STATEKEEPER_LOG_LEVEL",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Optional[str],
    execution_url: Optional[str],
    execution_fallback_url: Optional[str],
    beacon_url: Optional[str],
    beacon_fallback_url: Optional[str],
    log_level: str,
):
    """Statekeeper - consistent network state from primary/fallback Ethereum clients."""
    setup_logging(log_level)
    try:
        ctx.obj = load_config(
            config_path,
            execution_url,
            execution_fallback_url,
            beacon_url,
            beacon_fallback_url,
            log_level,
        )
    except ConfigurationError as e:
        raise click.UsageError(str(e)) from e


async def _status(config: Config) -> None:
    tracker = HealthTracker.from_config(config)
    try:
        for kind in ClientKind:
            manager = tracker.manager(kind)
            try:
                check = await manager.check_status()
                summary = "ready" if check.ready else f"waiting on {check.wait_on.role.value}"
            except NoAvailableClientError as e:
                summary = f"no client available: {e}"
            click.echo(f"{kind.value}: {summary}")
            for endpoint in manager.endpoints:
                if endpoint.status.probed:
                    click.echo(f"  {endpoint.role.value}: {endpoint.status.describe()}")
                else:
                    click.echo(f"  {endpoint.role.value}: not checked")
    finally:
        await tracker.close()


@cli.command()
@click.pass_obj
def status(config: Config):
    """Show the health of the configured clients."""
    run(_status(config))


async def _wait_sync(config: Config, kind: str, timeout: float) -> None:
    tracker = HealthTracker.from_config(config)
    try:
        synced = await tracker.wait_until_synced(kind, timeout)
    finally:
        await tracker.close()
    if not synced:
        raise NotReadyError(kind, f"The {kind} client did not finish syncing within {timeout}s.")
    click.echo(f"{kind} client is synced")


@cli.command("wait-sync")
@click.argument("kind", type=click.Choice([k.value for k in ClientKind]))
@click.option(
    "--timeout",
    default=0.0,
    type=float,
    help="Seconds to wait (0 waits forever)",
)
@click.pass_obj
def wait_sync(config: Config, kind: str, timeout: float):
    """Wait for the execution or beacon client to sync."""
    run(_wait_sync(config, kind, timeout))


async def _snapshot(config: Config, target: str, slot: Optional[int], entity: Optional[str]) -> None:
    tracker = HealthTracker.from_config(config)
    try:
        for kind in ClientKind:
            await tracker.wait_until_synced(kind, config.sync_timeout)
        manager = await NetworkStateManager.create(tracker, config.state)
        if entity:
            state = await manager.get_head_state_for_entity(entity)
        elif slot is not None:
            state = await manager.get_state_for_slot(slot)
        elif target == "finalized":
            state = await manager.get_finalized_state()
        else:
            state = await manager.get_head_state()
        click.echo(describe_state(state))
    finally:
        await tracker.close()


@cli.command()
@click.option(
    "--target",
    default="head",
    type=click.Choice(["head", "finalized"]),
    help="Which slot to build the snapshot for",
)
@click.option("--slot", type=int, help="Build the snapshot for a specific slot")
@click.option("--entity", help="Only read fields for this entity address")
@click.pass_obj
def snapshot(config: Config, target: str, slot: Optional[int], entity: Optional[str]):
    """Build a network state snapshot and print a summary."""
    run(_snapshot(config, target, slot, entity))


async def _watch(config: Config, interval: float) -> None:
    from . import metrics, __version__

    metrics.start_metrics_server(config.metrics_port)
    metrics.set_info(version=__version__, network=config.network)

    tracker = HealthTracker.from_config(config)
    try:
        for kind in ClientKind:
            await tracker.wait_until_synced(kind, 0)
        manager = await NetworkStateManager.create(tracker, config.state)

        while True:
            try:
                for kind in ClientKind:
                    if not await tracker.wait_until_synced(kind, config.sync_timeout):
                        raise NotReadyError(kind.value, f"The {kind.value} client is still syncing")
                state = await manager.get_head_state()
                logger.info(
                    f"Head state updated: slot {state.slot}, "
                    f"{len(state.entity_details)} entities"
                )
            except (NotReadyError, NoAvailableClientError) as e:
                logger.warning(f"Skipping this cycle: {e}")
            except (ConfigurationError, MissingDataError) as e:
                logger.error(f"Snapshot failed and likely needs attention: {e}")
            except StateKeeperError as e:
                logger.error(f"Snapshot failed: {e}")
            await asyncio.sleep(interval)
    finally:
        await tracker.close()


@cli.command()
@click.option(
    "--interval",
    default=60.0,
    type=float,
    help="Seconds between head snapshots",
    envvar="STATEKEEPER_WATCH_INTERVAL",
)
@click.pass_obj
def watch(config: Config, interval: float):
    """Build head snapshots on an interval and export metrics."""
    run(_watch(config, interval))


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
