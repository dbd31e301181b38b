"""Minimal ABI encoding for read-only contract calls."""

import re
from dataclasses import dataclass
from typing import Any, Optional

from Crypto.Hash import keccak

from .exceptions import ConfigurationError

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
SIGNATURE_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\(([a-z0-9,]*)\)$")

ARG_TYPES = ("address", "uint256")
OUTPUT_TYPES = ("uint256", "int256", "bool", "address", "bytes32", "bytes", "string")

WORD = 32


def normalize_address(address: str) -> str:
    """Validate an address and return it lowercased."""
    if not isinstance(address, str) or not ADDRESS_RE.match(address):
        raise ConfigurationError(f"Malformed address: {address!r}")
    return address.lower()


def function_selector(signature: str) -> bytes:
    """First four bytes of the Keccak-256 hash of a function signature."""
    h = keccak.new(digest_bits=256)
    h.update(signature.encode("ascii"))
    return h.digest()[:4]


def parse_signature(signature: str) -> tuple[str, list[str]]:
    match = SIGNATURE_RE.match(signature.replace(" ", ""))
    if not match:
        raise ConfigurationError(f"Malformed function signature: {signature!r}")
    name, params = match.groups()
    arg_types = [p for p in params.split(",") if p]
    for arg_type in arg_types:
        if arg_type not in ARG_TYPES:
            raise ConfigurationError(
                f"Unsupported argument type {arg_type!r} in {signature!r}"
            )
    return name, arg_types


def encode_word(arg_type: str, value: Any) -> bytes:
    if arg_type == "address":
        return bytes.fromhex(normalize_address(value)[2:]).rjust(WORD, b"\x00")
    if arg_type == "uint256":
        if value < 0:
            raise ValueError(f"uint256 cannot be negative: {value}")
        return int(value).to_bytes(WORD, "big")
    raise ConfigurationError(f"Unsupported argument type {arg_type!r}")


def decode_output(output_type: str, data: bytes) -> Any:
    """Decode a single return value."""
    if output_type in ("bytes", "string"):
        if len(data) < 2 * WORD:
            raise ValueError(f"Return data too short for {output_type}: {len(data)} bytes")
        offset = int.from_bytes(data[:WORD], "big")
        length = int.from_bytes(data[offset:offset + WORD], "big")
        raw = data[offset + WORD:offset + WORD + length]
        return raw.decode("utf-8") if output_type == "string" else raw

    if len(data) < WORD:
        raise ValueError(f"Return data too short for {output_type}: {len(data)} bytes")
    word = data[:WORD]
    if output_type == "uint256":
        return int.from_bytes(word, "big")
    if output_type == "int256":
        return int.from_bytes(word, "big", signed=True)
    if output_type == "bool":
        return int.from_bytes(word, "big") != 0
    if output_type == "address":
        return "0x" + word[12:].hex()
    if output_type == "bytes32":
        return word
    raise ConfigurationError(f"Unsupported output type {output_type!r}")


@dataclass(frozen=True)
class ContractField:
    """A single value read from a contract view function.

    Address arguments receive the entity's address and uint256 arguments its
    enumeration index. With no target the call goes to the entity itself.
    """

    name: str
    signature: str
    output: str = "uint256"
    target: Optional[str] = None

    def __post_init__(self):
        parse_signature(self.signature)
        if self.output not in OUTPUT_TYPES:
            raise ConfigurationError(
                f"Unsupported output type {self.output!r} for field {self.name!r}"
            )
        if self.target is not None:
            object.__setattr__(self, "target", normalize_address(self.target))

    @property
    def arg_types(self) -> list[str]:
        return parse_signature(self.signature)[1]

    def encode(self, address: Optional[str] = None, index: Optional[int] = None) -> str:
        """Build hex calldata for this field."""
        _, arg_types = parse_signature(self.signature)
        data = function_selector(self.signature.replace(" ", ""))
        for arg_type in arg_types:
            if arg_type == "address":
                if address is None:
                    raise ConfigurationError(f"Field {self.name!r} needs an address argument")
                data += encode_word(arg_type, address)
            else:
                if index is None:
                    raise ConfigurationError(f"Field {self.name!r} needs an index argument")
                data += encode_word(arg_type, index)
        return "0x" + data.hex()

    def decode(self, data: bytes) -> Any:
        return decode_output(self.output, data)

    def resolve_target(self, address: Optional[str]) -> str:
        if self.target is not None:
            return self.target
        if address is None:
            raise ConfigurationError(f"Field {self.name!r} has no target contract")
        return normalize_address(address)

    @classmethod
    def from_dict(cls, data: dict) -> "ContractField":
        try:
            return cls(
                name=data["name"],
                signature=data["signature"],
                output=data.get("output", "uint256"),
                target=data.get("target"),
            )
        except KeyError as e:
            raise ConfigurationError(f"Contract field is missing {e}") from e
