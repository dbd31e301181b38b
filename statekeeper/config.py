"""Configuration for statekeeper."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from .abi import ContractField, normalize_address
from .exceptions import ConfigurationError
from .multicall import DEFAULT_BATCH_SIZE, DEFAULT_CONCURRENCY

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateQuery:
    """What a snapshot reads from the chain.

    Entities are either listed statically or enumerated on chain with a
    count field and an indexed accessor (e.g. getNodeCount() / getNodeAt(uint256)).
    """

    entities: tuple[str, ...] = ()
    entity_count: Optional[ContractField] = None
    entity_at: Optional[ContractField] = None
    entity_fields: tuple[ContractField, ...] = ()
    network_fields: tuple[ContractField, ...] = ()
    pubkey_field: Optional[str] = None
    batch_size: int = DEFAULT_BATCH_SIZE
    concurrency: int = DEFAULT_CONCURRENCY

    def __post_init__(self):
        object.__setattr__(
            self, "entities", tuple(normalize_address(a) for a in self.entities)
        )
        if (self.entity_count is None) != (self.entity_at is None):
            raise ConfigurationError("entity_count and entity_at must be configured together")
        if self.entity_count is not None and self.entity_count.arg_types:
            raise ConfigurationError("entity_count must not take arguments")
        if self.entity_at is not None and self.entity_at.arg_types != ["uint256"]:
            raise ConfigurationError("entity_at must take a single uint256 index")
        for f in self.network_fields:
            if f.target is None or f.arg_types:
                raise ConfigurationError(
                    f"Network field {f.name!r} needs a target and no arguments"
                )
        names = [f.name for f in self.entity_fields]
        if len(names) != len(set(names)):
            raise ConfigurationError("Entity field names must be unique")
        if self.pubkey_field is not None and self.pubkey_field not in names:
            raise ConfigurationError(f"pubkey_field {self.pubkey_field!r} is not an entity field")
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be positive, got {self.batch_size}")

    @property
    def enumerates_on_chain(self) -> bool:
        return self.entity_at is not None

    @classmethod
    def from_dict(cls, data: dict) -> "StateQuery":
        registry = data.get("registry") or {}
        return cls(
            entities=tuple(data.get("entities", [])),
            entity_count=ContractField.from_dict(registry["count"]) if "count" in registry else None,
            entity_at=ContractField.from_dict(registry["member"]) if "member" in registry else None,
            entity_fields=tuple(ContractField.from_dict(f) for f in data.get("entity_fields", [])),
            network_fields=tuple(ContractField.from_dict(f) for f in data.get("network_fields", [])),
            pubkey_field=data.get("pubkey_field"),
            batch_size=int(data.get("batch_size", DEFAULT_BATCH_SIZE)),
            concurrency=int(data.get("concurrency", DEFAULT_CONCURRENCY)),
        )


@dataclass
class Config:
    """Process configuration."""

    execution_url: str = "http://localhost:8545"
    execution_fallback_url: str = ""
    beacon_url: str = "http://localhost:5052"
    beacon_fallback_url: str = ""
    request_timeout: float = 30.0
    poll_interval: float = 5.0
    status_refresh_interval: float = 60.0
    sync_timeout: float = 16.0
    recent_block_threshold: float = 300.0
    contract_check_interval: float = 15.0
    metrics_port: int = 9105
    log_level: str = "INFO"
    network: str = "mainnet"
    state: StateQuery = field(default_factory=StateQuery)

    def __post_init__(self):
        if not self.execution_url:
            raise ConfigurationError("An execution client URL is required")
        if not self.beacon_url:
            raise ConfigurationError("A beacon client URL is required")
        for name in (
            "poll_interval",
            "status_refresh_interval",
            "recent_block_threshold",
            "contract_check_interval",
        ):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if self.sync_timeout < 0:
            raise ConfigurationError("sync_timeout cannot be negative")

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load configuration from a yaml file."""
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigurationError(f"Could not read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid yaml in {path}: {e}") from e

        logger.debug(f"Loaded config from {path}")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        execution = data.get("execution") or {}
        beacon = data.get("beacon") or {}
        health = data.get("health") or {}
        kwargs = {
            "execution_url": execution.get("primary", cls.execution_url),
            "execution_fallback_url": execution.get("fallback") or "",
            "beacon_url": beacon.get("primary", cls.beacon_url),
            "beacon_fallback_url": beacon.get("fallback") or "",
            "state": StateQuery.from_dict(data.get("state") or {}),
        }
        for key in (
            "request_timeout",
            "poll_interval",
            "status_refresh_interval",
            "sync_timeout",
            "recent_block_threshold",
            "contract_check_interval",
        ):
            if key in health:
                kwargs[key] = float(health[key])
        for key in ("metrics_port", "log_level", "network"):
            if key in data:
                kwargs[key] = data[key]
        return cls(**kwargs)
