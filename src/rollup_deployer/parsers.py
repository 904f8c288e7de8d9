"""Contracts toolchain artifact parsers for rollup-deployer library."""

import json
from dataclasses import dataclass, field
from typing import Any, Dict

from eth_utils import to_checksum_address

from .exceptions import BackendError
from .types import Addresses


@dataclass
class AllocAccount:
    """Account state entry of an allocation dump."""

    balance: int = 0
    nonce: int = 0
    code: bytes = b""
    storage: Dict[bytes, bytes] = field(default_factory=dict)


def _parse_quantity(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    raise ValueError(f"invalid quantity {value!r}")


def _parse_bytes(value: Any) -> bytes:
    if not value:
        return b""
    if value.startswith("0x"):
        value = value[2:]
    return bytes.fromhex(value)


def _parse_word(value: str) -> bytes:
    # Storage keys and values may be short quantities; left-pad to 32 bytes
    digits = value[2:] if value.startswith("0x") else value
    raw = _parse_bytes(digits.rjust(len(digits) + len(digits) % 2, "0"))
    if len(raw) > 32:
        raise ValueError(f"storage word longer than 32 bytes: {value}")
    return raw.rjust(32, b"\x00")


def parse_addresses(data: bytes) -> Addresses:
    """
    Parse the addresses record written by the contracts deploy script.

    Args:
        data: Raw JSON bytes of deployment.json

    Returns:
        Addresses record (contracts missing from the file keep the zero address)

    Raises:
        BackendError: If the file is not a JSON object of addresses
    """
    try:
        raw = json.loads(data)
        addresses = Addresses.from_dict(raw)
    except ValueError as e:
        raise BackendError(f"failed to decode addresses file: {e}") from e

    if addresses.is_empty():
        raise BackendError("addresses file contains no known contract addresses")
    return addresses


def parse_forge_allocs(data: bytes) -> Dict[str, AllocAccount]:
    """
    Parse a forge state dump into account allocations.

    Accepts both the bare {address: account} map written by vm.dumpState and
    the {"accounts": {...}} wrapper.

    Args:
        data: Raw JSON bytes of the allocation dump

    Returns:
        Dictionary mapping checksummed address -> AllocAccount

    Raises:
        BackendError: If the dump cannot be decoded
    """
    try:
        raw = json.loads(data)
    except ValueError as e:
        raise BackendError(f"failed to decode allocs: {e}") from e

    if not isinstance(raw, dict):
        raise BackendError("allocs must be a JSON object")
    if isinstance(raw.get("accounts"), dict):
        raw = raw["accounts"]

    result: Dict[str, AllocAccount] = {}
    for address, account in raw.items():
        try:
            storage = {
                _parse_word(k): _parse_word(v)
                for k, v in (account.get("storage") or {}).items()
            }
            result[to_checksum_address(address)] = AllocAccount(
                balance=_parse_quantity(account.get("balance")),
                nonce=_parse_quantity(account.get("nonce")),
                code=_parse_bytes(account.get("code")),
                storage=storage,
            )
        except (AttributeError, TypeError, ValueError) as e:
            raise BackendError(f"invalid alloc entry for {address}: {e}") from e

    return result
