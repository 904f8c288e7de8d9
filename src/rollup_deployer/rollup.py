"""Rollup configuration record for rollup-deployer library."""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .constants import L2_FORKS, ZERO_ADDRESS, ZERO_HASH
from .deploy_config import DeployConfig
from .exceptions import ConfigValidationError
from .types import Addresses, BlockRef


def encode_ecotone_scalar(base_fee_scalar: int, blob_base_fee_scalar: int) -> str:
    """
    Encode the L1 fee scalars into the 32-byte system config scalar.

    Layout: version byte 0x01, zero padding, blob base fee scalar in bytes
    24..28 and base fee scalar in bytes 28..32 (both big-endian uint32).
    """
    for value in (base_fee_scalar, blob_base_fee_scalar):
        if not 0 <= value < 2**32:
            raise ConfigValidationError(f"fee scalar {value} does not fit in uint32")
    scalar = bytearray(32)
    scalar[0] = 1
    scalar[24:28] = blob_base_fee_scalar.to_bytes(4, "big")
    scalar[28:32] = base_fee_scalar.to_bytes(4, "big")
    return "0x" + scalar.hex()


@dataclass(frozen=True)
class AltDAConfig:
    """Alternative data availability parameters of a rollup."""

    da_challenge_contract_address: str
    da_commitment_type: str
    da_challenge_window: int
    da_resolve_window: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "da_challenge_contract_address": self.da_challenge_contract_address,
            "da_commitment_type": self.da_commitment_type,
            "da_challenge_window": self.da_challenge_window,
            "da_resolve_window": self.da_resolve_window,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AltDAConfig":
        return cls(
            da_challenge_contract_address=data["da_challenge_contract_address"],
            da_commitment_type=data["da_commitment_type"],
            da_challenge_window=data["da_challenge_window"],
            da_resolve_window=data["da_resolve_window"],
        )


@dataclass(frozen=True)
class RollupConfig:
    """Client-facing description of how to derive the rollup from the anchor chain."""

    genesis_l1_hash: str
    genesis_l1_number: int
    genesis_l2_hash: str
    genesis_l2_number: int
    genesis_l2_time: int
    batcher_addr: str
    overhead: str
    scalar: str
    gas_limit: int
    block_time: int
    max_sequencer_drift: int
    seq_window_size: int
    channel_timeout: int
    l1_chain_id: int
    l2_chain_id: int
    batch_inbox_address: str
    deposit_contract_address: str
    l1_system_config_address: str
    protocol_versions_address: str
    regolith_time: Optional[int] = None
    canyon_time: Optional[int] = None
    delta_time: Optional[int] = None
    ecotone_time: Optional[int] = None
    fjord_time: Optional[int] = None
    granite_time: Optional[int] = None
    alt_da: Optional[AltDAConfig] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "genesis": {
                "l1": {"hash": self.genesis_l1_hash, "number": self.genesis_l1_number},
                "l2": {"hash": self.genesis_l2_hash, "number": self.genesis_l2_number},
                "l2_time": self.genesis_l2_time,
                "system_config": {
                    "batcherAddr": self.batcher_addr,
                    "overhead": self.overhead,
                    "scalar": self.scalar,
                    "gasLimit": self.gas_limit,
                },
            },
            "block_time": self.block_time,
            "max_sequencer_drift": self.max_sequencer_drift,
            "seq_window_size": self.seq_window_size,
            "channel_timeout": self.channel_timeout,
            "l1_chain_id": self.l1_chain_id,
            "l2_chain_id": self.l2_chain_id,
        }
        for fork in L2_FORKS:
            value = getattr(self, f"{fork}_time")
            if value is not None:
                result[f"{fork}_time"] = value
        result["batch_inbox_address"] = self.batch_inbox_address
        result["deposit_contract_address"] = self.deposit_contract_address
        result["l1_system_config_address"] = self.l1_system_config_address
        result["protocol_versions_address"] = self.protocol_versions_address
        if self.alt_da is not None:
            result["alt_da"] = self.alt_da.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RollupConfig":
        """
        Decode a rollup config JSON object.

        Raises:
            KeyError: If a required member is missing
        """
        genesis = data["genesis"]
        system_config = genesis["system_config"]
        return cls(
            genesis_l1_hash=genesis["l1"]["hash"],
            genesis_l1_number=genesis["l1"]["number"],
            genesis_l2_hash=genesis["l2"]["hash"],
            genesis_l2_number=genesis["l2"]["number"],
            genesis_l2_time=genesis["l2_time"],
            batcher_addr=system_config["batcherAddr"],
            overhead=system_config["overhead"],
            scalar=system_config["scalar"],
            gas_limit=system_config["gasLimit"],
            block_time=data["block_time"],
            max_sequencer_drift=data["max_sequencer_drift"],
            seq_window_size=data["seq_window_size"],
            channel_timeout=data["channel_timeout"],
            l1_chain_id=data["l1_chain_id"],
            l2_chain_id=data["l2_chain_id"],
            batch_inbox_address=data["batch_inbox_address"],
            deposit_contract_address=data["deposit_contract_address"],
            l1_system_config_address=data["l1_system_config_address"],
            protocol_versions_address=data["protocol_versions_address"],
            alt_da=AltDAConfig.from_dict(data["alt_da"]) if data.get("alt_da") else None,
            **{f"{fork}_time": data.get(f"{fork}_time") for fork in L2_FORKS},
        )

    def check(self) -> None:
        """
        Run the structural validation of the rollup config.

        Raises:
            ConfigValidationError: On the first failed requirement
        """
        if self.block_time == 0:
            raise ConfigValidationError("block time cannot be 0")
        if self.channel_timeout == 0:
            raise ConfigValidationError("channel timeout must be set")
        if self.seq_window_size < 2:
            raise ConfigValidationError("sequencing window size must be at least 2")
        if self.max_sequencer_drift == 0:
            raise ConfigValidationError("max sequencer drift must be set")
        if self.genesis_l1_hash == ZERO_HASH:
            raise ConfigValidationError("genesis L1 hash cannot be empty")
        if self.genesis_l2_hash == ZERO_HASH:
            raise ConfigValidationError("genesis L2 hash cannot be empty")
        if self.genesis_l2_time == 0:
            raise ConfigValidationError("missing L2 genesis time")
        if self.batcher_addr == ZERO_ADDRESS:
            raise ConfigValidationError("missing genesis system config batcher address")
        if self.scalar == ZERO_HASH:
            raise ConfigValidationError("missing genesis system config scalar")
        if self.gas_limit == 0:
            raise ConfigValidationError("missing genesis system config gas limit")
        if self.batch_inbox_address == ZERO_ADDRESS:
            raise ConfigValidationError("missing batch inbox address")
        if self.deposit_contract_address == ZERO_ADDRESS:
            raise ConfigValidationError("missing deposit contract address")
        if self.l1_system_config_address == ZERO_ADDRESS:
            raise ConfigValidationError("missing L1 system config address")
        if not self.l1_chain_id:
            raise ConfigValidationError("L1 chain ID must not be nil")
        if not self.l2_chain_id:
            raise ConfigValidationError("L2 chain ID must not be nil")
        if self.l1_chain_id == self.l2_chain_id:
            raise ConfigValidationError("L1 and L2 chain IDs must be different")

        previous: Optional[int] = None
        for fork in L2_FORKS:
            value = getattr(self, f"{fork}_time")
            if value is None:
                continue
            if previous is not None and value < previous:
                raise ConfigValidationError(f"{fork} time must not be before the previous fork")
            previous = value

        if self.alt_da is not None:
            if self.alt_da.da_challenge_contract_address == ZERO_ADDRESS:
                raise ConfigValidationError("missing DA challenge contract address")
            if self.alt_da.da_challenge_window == 0:
                raise ConfigValidationError("missing DA challenge window")
            if self.alt_da.da_resolve_window == 0:
                raise ConfigValidationError("missing DA resolve window")

    def fork_active_at_genesis(self, fork: str) -> bool:
        value = getattr(self, f"{fork}_time")
        return value is not None and value <= self.genesis_l2_time


def derive_rollup_config(
    config: DeployConfig,
    addresses: Addresses,
    l1_block: BlockRef,
    l2_genesis_hash: str,
    l2_genesis_number: int,
) -> RollupConfig:
    """
    Derive the rollup config for a freshly built L2 genesis.

    Args:
        config: Deploy config of the rollup
        addresses: Deployed L1 contract addresses
        l1_block: Anchor block the L2 chain starts from
        l2_genesis_hash: Hash of the L2 genesis block
        l2_genesis_number: Number of the L2 genesis block

    Returns:
        RollupConfig (not yet validated)
    """
    genesis_time = l1_block.timestamp
    fork_times = {}
    for fork in L2_FORKS:
        offset = config.fork_time_offset(fork)
        fork_times[f"{fork}_time"] = None if offset is None else genesis_time + offset

    alt_da = None
    if config.use_alt_da:
        alt_da = AltDAConfig(
            da_challenge_contract_address=addresses.data_availability_challenge_proxy,
            da_commitment_type=config.da_commitment_type,
            da_challenge_window=config.da_challenge_window,
            da_resolve_window=config.da_resolve_window,
        )

    return RollupConfig(
        genesis_l1_hash=l1_block.hash,
        genesis_l1_number=l1_block.number,
        genesis_l2_hash=l2_genesis_hash,
        genesis_l2_number=l2_genesis_number,
        genesis_l2_time=genesis_time,
        batcher_addr=config.batch_sender_address,
        overhead=ZERO_HASH,
        scalar=encode_ecotone_scalar(
            config.gas_price_oracle_base_fee_scalar,
            config.gas_price_oracle_blob_base_fee_scalar,
        ),
        gas_limit=config.l2_genesis_block_gas_limit,
        block_time=config.l2_block_time,
        max_sequencer_drift=config.max_sequencer_drift,
        seq_window_size=config.sequencer_window_size,
        channel_timeout=config.channel_timeout,
        l1_chain_id=config.l1_chain_id,
        l2_chain_id=config.l2_chain_id,
        batch_inbox_address=config.batch_inbox_address,
        deposit_contract_address=addresses.optimism_portal_proxy,
        l1_system_config_address=addresses.system_config_proxy,
        protocol_versions_address=addresses.protocol_versions_proxy,
        alt_da=alt_da,
        **fork_times,
    )
