"""Data types and dataclasses for rollup-deployer library."""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Type, TypeVar

from eth_utils import is_hex, to_checksum_address

from .constants import ZERO_ADDRESS
from .exceptions import ConfigValidationError, IntentValidationError

R = TypeVar("R")

MAX_CHAIN_ID = 2**64


def json_field(key: str, kind: str, default: Any = None, omitempty: bool = False) -> Any:
    """
    Declare a dataclass field together with its JSON key and value kind.

    Kinds:
    - "address": checksummed 20-byte hex string
    - "hash": 0x-prefixed 32-byte hex string
    - "int": JSON number (accepts hex strings on decode)
    - "bigint": 0x-prefixed hex quantity (accepts numbers on decode)
    - "bool", "str": passed through after a type check
    """
    return field(default=default, metadata={"json": key, "kind": kind, "omitempty": omitempty})


def _encode_value(kind: str, value: Any) -> Any:
    if value is None:
        return None
    if kind == "bigint":
        return hex(value)
    return value


def _decode_value(kind: str, key: str, value: Any) -> Any:
    if value is None:
        return None
    if kind == "address":
        try:
            return to_checksum_address(value)
        except (TypeError, ValueError) as e:
            raise ConfigValidationError(f"{key}: invalid address {value!r}") from e
    if kind == "hash":
        if not isinstance(value, str) or not is_hex(value) or len(value) != 66:
            raise ConfigValidationError(f"{key}: invalid 32-byte hash {value!r}")
        return value.lower()
    if kind in ("int", "bigint"):
        if isinstance(value, bool):
            raise ConfigValidationError(f"{key}: expected integer, got bool")
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            try:
                return int(value, 16) if value.startswith("0x") else int(value)
            except ValueError as e:
                raise ConfigValidationError(f"{key}: invalid integer {value!r}") from e
        raise ConfigValidationError(f"{key}: expected integer, got {type(value).__name__}")
    if kind == "bool":
        if not isinstance(value, bool):
            raise ConfigValidationError(f"{key}: expected bool, got {type(value).__name__}")
        return value
    if kind == "str":
        if not isinstance(value, str):
            raise ConfigValidationError(f"{key}: expected string, got {type(value).__name__}")
        return value
    raise ConfigValidationError(f"{key}: unsupported field kind {kind}")


def encode_record(record: Any) -> Dict[str, Any]:
    """
    Encode a json_field dataclass into a JSON-compatible dictionary.

    Args:
        record: Dataclass instance declared with json_field() fields

    Returns:
        Dictionary keyed by JSON field names
    """
    result: Dict[str, Any] = {}
    for f in fields(record):
        value = getattr(record, f.name)
        if value is None and f.metadata["omitempty"]:
            continue
        result[f.metadata["json"]] = _encode_value(f.metadata["kind"], value)
    return result


def decode_record(cls: Type[R], data: Dict[str, Any], strict: bool = True) -> R:
    """
    Decode a dictionary produced by encode_record() back into a dataclass.

    Args:
        cls: Dataclass type declared with json_field() fields
        data: Decoded JSON object
        strict: Reject keys that do not correspond to a field

    Returns:
        Instance of cls; keys absent from data keep their field defaults

    Raises:
        ConfigValidationError: On unknown keys (strict mode) or bad value types
    """
    if not isinstance(data, dict):
        raise ConfigValidationError(f"{cls.__name__}: expected JSON object")

    by_key = {f.metadata["json"]: f for f in fields(cls)}
    if strict:
        unknown = sorted(set(data) - set(by_key))
        if unknown:
            raise ConfigValidationError(
                f"{cls.__name__}: unknown field(s): {', '.join(unknown)}"
            )

    kwargs: Dict[str, Any] = {}
    for key, f in by_key.items():
        if key in data:
            kwargs[f.name] = _decode_value(f.metadata["kind"], key, data[key])
    return cls(**kwargs)


@dataclass(frozen=True)
class ChainIntent:
    """Minimal declarative description of the rollup chain to provision."""

    l1_chain_id: int
    l2_chain_id: int
    use_fault_proofs: bool = False
    use_alt_da: bool = False
    fund_dev_accounts: bool = False
    overrides: Dict[str, Any] = field(default_factory=dict)

    def check(self) -> None:
        """
        Validate the intent before any derivation work starts.

        Raises:
            IntentValidationError: If a chain id is unset or out of range, or both
                                   fault proofs and alt-DA are requested
        """
        if not self.l1_chain_id:
            raise IntentValidationError("l1ChainID must be set")
        if not self.l2_chain_id:
            raise IntentValidationError("l2ChainID must be set")
        for key, value in (("l1ChainID", self.l1_chain_id), ("l2ChainID", self.l2_chain_id)):
            if not 0 < value < MAX_CHAIN_ID:
                raise IntentValidationError(f"{key} must be a positive uint64, got {value}")
        # Role keys use the anchor chain id as a non-hardened HD path index
        if self.l1_chain_id >= 2**31:
            raise IntentValidationError(
                f"l1ChainID {self.l1_chain_id} cannot be used for role key derivation"
            )
        if self.use_fault_proofs and self.use_alt_da:
            raise IntentValidationError("cannot use both fault proofs and alt-DA")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "l1ChainID": self.l1_chain_id,
            "l2ChainID": self.l2_chain_id,
            "useFaultProofs": self.use_fault_proofs,
            "useAltDA": self.use_alt_da,
            "fundDevAccounts": self.fund_dev_accounts,
            "overrides": dict(self.overrides),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChainIntent":
        if not isinstance(data, dict):
            raise IntentValidationError("chain intent must be a JSON object")
        try:
            return cls(
                l1_chain_id=int(data.get("l1ChainID") or 0),
                l2_chain_id=int(data.get("l2ChainID") or 0),
                use_fault_proofs=bool(data.get("useFaultProofs", False)),
                use_alt_da=bool(data.get("useAltDA", False)),
                fund_dev_accounts=bool(data.get("fundDevAccounts", False)),
                overrides=dict(data.get("overrides") or {}),
            )
        except (TypeError, ValueError) as e:
            raise IntentValidationError(f"malformed chain intent: {e}") from e


@dataclass(frozen=True)
class Addresses:
    """Contract addresses produced by a successful contracts deployment."""

    address_manager: str = json_field("AddressManager", "address", ZERO_ADDRESS)
    anchor_state_registry: str = json_field("AnchorStateRegistry", "address", ZERO_ADDRESS)
    anchor_state_registry_proxy: str = json_field("AnchorStateRegistryProxy", "address", ZERO_ADDRESS)
    delayed_weth: str = json_field("DelayedWETH", "address", ZERO_ADDRESS)
    delayed_weth_proxy: str = json_field("DelayedWETHProxy", "address", ZERO_ADDRESS)
    dispute_game_factory: str = json_field("DisputeGameFactory", "address", ZERO_ADDRESS)
    dispute_game_factory_proxy: str = json_field("DisputeGameFactoryProxy", "address", ZERO_ADDRESS)
    l1_cross_domain_messenger: str = json_field("L1CrossDomainMessenger", "address", ZERO_ADDRESS)
    l1_cross_domain_messenger_proxy: str = json_field("L1CrossDomainMessengerProxy", "address", ZERO_ADDRESS)
    l1_erc721_bridge: str = json_field("L1ERC721Bridge", "address", ZERO_ADDRESS)
    l1_erc721_bridge_proxy: str = json_field("L1ERC721BridgeProxy", "address", ZERO_ADDRESS)
    l1_standard_bridge: str = json_field("L1StandardBridge", "address", ZERO_ADDRESS)
    l1_standard_bridge_proxy: str = json_field("L1StandardBridgeProxy", "address", ZERO_ADDRESS)
    l2_output_oracle: str = json_field("L2OutputOracle", "address", ZERO_ADDRESS)
    l2_output_oracle_proxy: str = json_field("L2OutputOracleProxy", "address", ZERO_ADDRESS)
    mips: str = json_field("Mips", "address", ZERO_ADDRESS)
    optimism_mintable_erc20_factory: str = json_field("OptimismMintableERC20Factory", "address", ZERO_ADDRESS)
    optimism_mintable_erc20_factory_proxy: str = json_field(
        "OptimismMintableERC20FactoryProxy", "address", ZERO_ADDRESS
    )
    optimism_portal: str = json_field("OptimismPortal", "address", ZERO_ADDRESS)
    optimism_portal2: str = json_field("OptimismPortal2", "address", ZERO_ADDRESS)
    optimism_portal_proxy: str = json_field("OptimismPortalProxy", "address", ZERO_ADDRESS)
    preimage_oracle: str = json_field("PreimageOracle", "address", ZERO_ADDRESS)
    protocol_versions: str = json_field("ProtocolVersions", "address", ZERO_ADDRESS)
    protocol_versions_proxy: str = json_field("ProtocolVersionsProxy", "address", ZERO_ADDRESS)
    proxy_admin: str = json_field("ProxyAdmin", "address", ZERO_ADDRESS)
    safe_proxy_factory: str = json_field("SafeProxyFactory", "address", ZERO_ADDRESS)
    safe_singleton: str = json_field("SafeSingleton", "address", ZERO_ADDRESS)
    superchain_config: str = json_field("SuperchainConfig", "address", ZERO_ADDRESS)
    superchain_config_proxy: str = json_field("SuperchainConfigProxy", "address", ZERO_ADDRESS)
    system_config: str = json_field("SystemConfig", "address", ZERO_ADDRESS)
    system_config_proxy: str = json_field("SystemConfigProxy", "address", ZERO_ADDRESS)
    system_owner_safe: str = json_field("SystemOwnerSafe", "address", ZERO_ADDRESS)
    data_availability_challenge: str = json_field(
        "DataAvailabilityChallenge", "address", ZERO_ADDRESS
    )
    data_availability_challenge_proxy: str = json_field(
        "DataAvailabilityChallengeProxy", "address", ZERO_ADDRESS
    )

    def to_dict(self) -> Dict[str, Any]:
        return encode_record(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Addresses":
        # The toolchain writes extra bookkeeping entries next to the named set
        return decode_record(cls, data, strict=False)

    def is_empty(self) -> bool:
        return all(v == ZERO_ADDRESS for v in self.to_dict().values())


@dataclass(frozen=True)
class BlockRef:
    """Reference to an anchor chain block."""

    hash: str
    number: int
    parent_hash: str
    timestamp: int

    @classmethod
    def from_rpc(cls, result: Dict[str, Any]) -> "BlockRef":
        """
        Build a block reference from an eth_getBlockBy* result object.

        Raises:
            KeyError: If the RPC result is missing required fields
        """
        return cls(
            hash=result["hash"].lower(),
            number=int(result["number"], 16),
            parent_hash=result["parentHash"].lower(),
            timestamp=int(result["timestamp"], 16),
        )
