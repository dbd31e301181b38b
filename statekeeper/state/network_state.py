"""Network state snapshot types and construction."""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence

from .slots import timestamp_for_slot
from ..abi import normalize_address
from ..beacon.types import BeaconBlock, BeaconConfig, ValidatorStatus
from ..config import StateQuery
from ..exceptions import MissingDataError
from ..multicall import MultiCaller, populate

logger = logging.getLogger(__name__)


def _frozen(mapping: dict) -> Mapping:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class EntityDetails:
    """Fields read for one entity."""

    address: str
    fields: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "fields", _frozen(self.fields))

    def __getitem__(self, name: str) -> Any:
        return self.fields[name]

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)


@dataclass(frozen=True)
class EntityFilter:
    """Which entities a snapshot covers.

    No addresses means every known entity. Network-wide fields are read
    unless include_network is False.
    """

    addresses: Optional[tuple[str, ...]] = None
    include_network: bool = True

    def __post_init__(self):
        if self.addresses is not None:
            object.__setattr__(
                self, "addresses", tuple(normalize_address(a) for a in self.addresses)
            )

    @classmethod
    def single(cls, address: str, include_network: bool = True) -> "EntityFilter":
        return cls(addresses=(address,), include_network=include_network)


@dataclass(frozen=True)
class NetworkState:
    """A height-consistent snapshot of the network.

    `slot` is the slot that was asked for; `beacon_block` is the block at
    that slot or the nearest earlier slot that had one. Every execution
    read was made at `execution_block_number` and every beacon read at the
    block's slot.
    """

    slot: int
    beacon_block: BeaconBlock
    beacon_config: BeaconConfig
    execution_block_number: int
    network_details: Mapping[str, Any] = field(default_factory=dict)
    entity_details: Mapping[str, EntityDetails] = field(default_factory=dict)
    validator_details: Mapping[bytes, ValidatorStatus] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "network_details", _frozen(self.network_details))
        object.__setattr__(self, "entity_details", _frozen(self.entity_details))
        object.__setattr__(self, "validator_details", _frozen(self.validator_details))

    @property
    def resolved_slot(self) -> int:
        return self.beacon_block.slot

    @property
    def block_time(self) -> int:
        """Start time of the resolved slot."""
        return timestamp_for_slot(self.resolved_slot, self.beacon_config)

    @property
    def entities(self) -> list[str]:
        return list(self.entity_details.keys())

    def validator_for(self, address: str, pubkey_field: str) -> Optional[ValidatorStatus]:
        details = self.entity_details.get(normalize_address(address))
        if details is None:
            return None
        pubkey = details.get(pubkey_field)
        if not pubkey:
            return None
        return self.validator_details.get(bytes(pubkey))


async def _enumerate_entities(ec, query: StateQuery, block_number: int) -> list[str]:
    """List the entity addresses known at a block, in registry order."""
    if not query.enumerates_on_chain:
        return list(query.entities)

    counts: dict = {}
    mc = MultiCaller(ec, block_number)
    mc.add_field(query.entity_count, counts)
    await mc.flush()
    count = int(counts[query.entity_count.name])
    logger.debug(f"Registry reports {count} entities at block {block_number}")

    indices = list(range(count))
    found: dict[int, str] = {}

    def add_index(caller: MultiCaller, index: int) -> None:
        def store(result: bytes) -> None:
            found[index] = query.entity_at.decode(result)

        caller.add_call(
            query.entity_at.resolve_target(None),
            query.entity_at.encode(index=index),
            store,
            query.entity_at.name,
        )

    await populate(ec, block_number, indices, query.batch_size, add_index, query.concurrency)

    addresses = []
    seen = set()
    for index in indices:
        address = normalize_address(found[index])
        if address not in seen:
            seen.add(address)
            addresses.append(address)
    for address in query.entities:
        if address not in seen:
            seen.add(address)
            addresses.append(address)
    return addresses


async def create_network_state(
    ec,
    bc,
    query: StateQuery,
    target_slot: int,
    beacon_block: BeaconBlock,
    beacon_config: BeaconConfig,
    entity_filter: Optional[EntityFilter] = None,
) -> NetworkState:
    """Fetch everything a snapshot needs, pinned to one resolved block.

    `ec` and `bc` are the client handles chosen for this build; the same
    handles are used for every read so the snapshot never mixes heights
    from different instances.
    """
    if not beacon_block.has_execution_data:
        raise MissingDataError(
            f"Beacon block at slot {beacon_block.slot} has no execution payload",
            beacon_block.slot,
        )
    block_number = beacon_block.execution_block_number
    entity_filter = entity_filter or EntityFilter()

    network_details: dict = {}
    if entity_filter.include_network and query.network_fields:
        mc = MultiCaller(ec, block_number)
        for network_field in query.network_fields:
            mc.add_field(network_field, network_details)
        await mc.flush()

    if entity_filter.addresses is None:
        addresses: Sequence[str] = await _enumerate_entities(ec, query, block_number)
    else:
        addresses = list(dict.fromkeys(entity_filter.addresses))

    field_values: dict[str, dict] = {address: {} for address in addresses}
    positions = {address: i for i, address in enumerate(addresses)}

    def add_entity(caller: MultiCaller, address: str) -> None:
        sink = field_values[address]
        for entity_field in query.entity_fields:
            caller.add_field(entity_field, sink, address=address, index=positions[address])

    if query.entity_fields:
        await populate(ec, block_number, addresses, query.batch_size, add_entity, query.concurrency)

    validator_details: dict = {}
    if query.pubkey_field is not None:
        pubkeys = []
        for address in addresses:
            pubkey = field_values[address].get(query.pubkey_field)
            if pubkey:
                pubkeys.append(bytes(pubkey))
        if pubkeys:
            validator_details = await bc.get_validator_statuses(pubkeys, beacon_block.slot)

    entity_details = {
        address: EntityDetails(address=address, fields=field_values[address])
        for address in addresses
    }

    return NetworkState(
        slot=target_slot,
        beacon_block=beacon_block,
        beacon_config=beacon_config,
        execution_block_number=block_number,
        network_details=network_details,
        entity_details=entity_details,
        validator_details=validator_details,
    )
