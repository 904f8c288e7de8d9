"""Deploy configuration record for rollup-deployer library."""

import json
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

from .constants import L2_FORKS, ZERO_ADDRESS, ZERO_HASH
from .exceptions import ConfigValidationError
from .types import decode_record, encode_record, json_field

WITHDRAWAL_NETWORKS = ("local", "remote")
DA_COMMITMENT_TYPES = ("KeccakCommitment", "GenericCommitment")


@dataclass(frozen=True)
class DeployConfig:
    """
    Fully resolved parameters for deploying and initializing a rollup.

    JSON keys match the deploy-config format consumed by the contracts
    toolchain. Instances are produced by the configuration deriver and never
    hand-edited; customization goes through intent overrides.
    """

    # Core chain parameters
    l1_chain_id: int = json_field("l1ChainID", "int", 0)
    l2_chain_id: int = json_field("l2ChainID", "int", 0)
    l2_block_time: int = json_field("l2BlockTime", "int", 0)
    finalization_period_seconds: int = json_field("finalizationPeriodSeconds", "int", 0)
    max_sequencer_drift: int = json_field("maxSequencerDrift", "int", 0)
    sequencer_window_size: int = json_field("sequencerWindowSize", "int", 0)
    channel_timeout: int = json_field("channelTimeout", "int", 0)
    p2p_sequencer_address: str = json_field("p2pSequencerAddress", "address", ZERO_ADDRESS)
    batch_inbox_address: str = json_field("batchInboxAddress", "address", ZERO_ADDRESS)
    batch_sender_address: str = json_field("batchSenderAddress", "address", ZERO_ADDRESS)
    system_config_start_block: int = json_field("systemConfigStartBlock", "int", 0)
    l1_starting_block_tag: Optional[str] = json_field("l1StartingBlockTag", "hash", None)

    # Output oracle
    l2_output_oracle_submission_interval: int = json_field("l2OutputOracleSubmissionInterval", "int", 0)
    l2_output_oracle_starting_block_number: int = json_field("l2OutputOracleStartingBlockNumber", "int", 0)
    l2_output_oracle_starting_timestamp: int = json_field("l2OutputOracleStartingTimestamp", "int", 0)
    l2_output_oracle_proposer: str = json_field("l2OutputOracleProposer", "address", ZERO_ADDRESS)
    l2_output_oracle_challenger: str = json_field("l2OutputOracleChallenger", "address", ZERO_ADDRESS)

    # Ownership
    proxy_admin_owner: str = json_field("proxyAdminOwner", "address", ZERO_ADDRESS)
    final_system_owner: str = json_field("finalSystemOwner", "address", ZERO_ADDRESS)
    superchain_config_guardian: str = json_field("superchainConfigGuardian", "address", ZERO_ADDRESS)
    required_protocol_version: str = json_field("requiredProtocolVersion", "hash", ZERO_HASH)
    recommended_protocol_version: str = json_field("recommendedProtocolVersion", "hash", ZERO_HASH)

    # Fee vaults
    base_fee_vault_recipient: str = json_field("baseFeeVaultRecipient", "address", ZERO_ADDRESS)
    l1_fee_vault_recipient: str = json_field("l1FeeVaultRecipient", "address", ZERO_ADDRESS)
    sequencer_fee_vault_recipient: str = json_field("sequencerFeeVaultRecipient", "address", ZERO_ADDRESS)
    base_fee_vault_withdrawal_network: str = json_field("baseFeeVaultWithdrawalNetwork", "str", "local")
    l1_fee_vault_withdrawal_network: str = json_field("l1FeeVaultWithdrawalNetwork", "str", "local")
    sequencer_fee_vault_withdrawal_network: str = json_field(
        "sequencerFeeVaultWithdrawalNetwork", "str", "local"
    )

    # Governance
    enable_governance: bool = json_field("enableGovernance", "bool", False)
    governance_token_symbol: str = json_field("governanceTokenSymbol", "str", "")
    governance_token_name: str = json_field("governanceTokenName", "str", "")
    governance_token_owner: str = json_field("governanceTokenOwner", "address", ZERO_ADDRESS)

    # L2 genesis block
    l2_genesis_block_number: int = json_field("l2GenesisBlockNumber", "int", 0)
    l2_genesis_block_gas_limit: int = json_field("l2GenesisBlockGasLimit", "int", 0)
    l2_genesis_block_base_fee_per_gas: Optional[int] = json_field(
        "l2GenesisBlockBaseFeePerGas", "bigint", None
    )
    l2_genesis_regolith_time_offset: Optional[int] = json_field(
        "l2GenesisRegolithTimeOffset", "int", None, omitempty=True
    )
    l2_genesis_canyon_time_offset: Optional[int] = json_field(
        "l2GenesisCanyonTimeOffset", "int", None, omitempty=True
    )
    l2_genesis_delta_time_offset: Optional[int] = json_field(
        "l2GenesisDeltaTimeOffset", "int", None, omitempty=True
    )
    l2_genesis_ecotone_time_offset: Optional[int] = json_field(
        "l2GenesisEcotoneTimeOffset", "int", None, omitempty=True
    )
    l2_genesis_fjord_time_offset: Optional[int] = json_field(
        "l2GenesisFjordTimeOffset", "int", None, omitempty=True
    )
    l2_genesis_granite_time_offset: Optional[int] = json_field(
        "l2GenesisGraniteTimeOffset", "int", None, omitempty=True
    )

    # Fee market
    eip1559_denominator: int = json_field("eip1559Denominator", "int", 0)
    eip1559_denominator_canyon: int = json_field("eip1559DenominatorCanyon", "int", 0)
    eip1559_elasticity: int = json_field("eip1559Elasticity", "int", 0)
    gas_price_oracle_base_fee_scalar: int = json_field("gasPriceOracleBaseFeeScalar", "int", 0)
    gas_price_oracle_blob_base_fee_scalar: int = json_field("gasPriceOracleBlobBaseFeeScalar", "int", 0)

    fund_dev_accounts: bool = json_field("fundDevAccounts", "bool", False)

    # Fault proofs
    use_fault_proofs: bool = json_field("useFaultProofs", "bool", False)
    fault_game_absolute_prestate: str = json_field("faultGameAbsolutePrestate", "hash", ZERO_HASH)
    fault_game_max_depth: int = json_field("faultGameMaxDepth", "int", 0)
    fault_game_clock_extension: int = json_field("faultGameClockExtension", "int", 0)
    fault_game_max_clock_duration: int = json_field("faultGameMaxClockDuration", "int", 0)
    fault_game_genesis_block: int = json_field("faultGameGenesisBlock", "int", 0)
    fault_game_genesis_output_root: str = json_field("faultGameGenesisOutputRoot", "hash", ZERO_HASH)
    fault_game_split_depth: int = json_field("faultGameSplitDepth", "int", 0)
    fault_game_withdrawal_delay: int = json_field("faultGameWithdrawalDelay", "int", 0)
    preimage_oracle_min_proposal_size: int = json_field("preimageOracleMinProposalSize", "int", 0)
    preimage_oracle_challenge_period: int = json_field("preimageOracleChallengePeriod", "int", 0)

    # Alternative data availability
    use_alt_da: bool = json_field("useAltDA", "bool", False)
    da_commitment_type: str = json_field("daCommitmentType", "str", "")
    da_challenge_window: int = json_field("daChallengeWindow", "int", 0)
    da_resolve_window: int = json_field("daResolveWindow", "int", 0)
    da_bond_size: int = json_field("daBondSize", "int", 0)
    da_resolver_refund_percentage: int = json_field("daResolverRefundPercentage", "int", 0)

    def to_dict(self) -> Dict[str, Any]:
        return encode_record(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeployConfig":
        """
        Decode a deploy-config JSON object.

        Raises:
            ConfigValidationError: On unknown keys or values of the wrong type
        """
        return decode_record(cls, data, strict=True)

    def fork_time_offset(self, fork: str) -> Optional[int]:
        """Get the genesis time offset of a named L2 fork, or None if not scheduled."""
        if fork not in L2_FORKS:
            raise ValueError(f"unknown fork: {fork}")
        return getattr(self, f"l2_genesis_{fork}_time_offset")

    def check(self) -> None:
        """
        Run the structural self-consistency check.

        Raises:
            ConfigValidationError: On the first failed requirement
        """
        nonzero_ints = [
            "l1_chain_id",
            "l2_chain_id",
            "l2_block_time",
            "finalization_period_seconds",
            "max_sequencer_drift",
            "sequencer_window_size",
            "channel_timeout",
            "l2_output_oracle_submission_interval",
            "l2_genesis_block_gas_limit",
            "eip1559_denominator",
            "eip1559_denominator_canyon",
            "eip1559_elasticity",
        ]
        for name in nonzero_ints:
            if not getattr(self, name):
                raise ConfigValidationError(f"{_json_key(name)} must be set")

        nonzero_addresses = [
            "p2p_sequencer_address",
            "batch_inbox_address",
            "batch_sender_address",
            "proxy_admin_owner",
            "final_system_owner",
            "superchain_config_guardian",
            "base_fee_vault_recipient",
            "l1_fee_vault_recipient",
            "sequencer_fee_vault_recipient",
        ]
        if not self.use_fault_proofs:
            nonzero_addresses += ["l2_output_oracle_proposer", "l2_output_oracle_challenger"]
        if self.enable_governance:
            nonzero_addresses.append("governance_token_owner")
        for name in nonzero_addresses:
            if getattr(self, name) == ZERO_ADDRESS:
                raise ConfigValidationError(f"{_json_key(name)} cannot be the zero address")

        if self.l1_chain_id == self.l2_chain_id:
            raise ConfigValidationError("l1ChainID and l2ChainID must differ")
        if self.l1_starting_block_tag is None:
            raise ConfigValidationError("l1StartingBlockTag must be set")
        if self.l2_genesis_block_base_fee_per_gas is None:
            raise ConfigValidationError("l2GenesisBlockBaseFeePerGas must be set")

        for name in (
            "base_fee_vault_withdrawal_network",
            "l1_fee_vault_withdrawal_network",
            "sequencer_fee_vault_withdrawal_network",
        ):
            if getattr(self, name) not in WITHDRAWAL_NETWORKS:
                raise ConfigValidationError(
                    f"{_json_key(name)} must be one of {', '.join(WITHDRAWAL_NETWORKS)}"
                )

        if self.enable_governance and not (self.governance_token_symbol and self.governance_token_name):
            raise ConfigValidationError("governance token name and symbol must be set")

        if self.use_fault_proofs and self.use_alt_da:
            raise ConfigValidationError("useFaultProofs and useAltDA are mutually exclusive")

        if self.use_fault_proofs:
            for name in (
                "fault_game_max_depth",
                "fault_game_max_clock_duration",
                "fault_game_split_depth",
                "preimage_oracle_challenge_period",
            ):
                if not getattr(self, name):
                    raise ConfigValidationError(f"{_json_key(name)} must be set when using fault proofs")
            if self.fault_game_absolute_prestate == ZERO_HASH:
                raise ConfigValidationError("faultGameAbsolutePrestate must be set when using fault proofs")
            if self.fault_game_split_depth >= self.fault_game_max_depth:
                raise ConfigValidationError("faultGameSplitDepth must be lower than faultGameMaxDepth")

        if self.use_alt_da:
            if self.da_commitment_type not in DA_COMMITMENT_TYPES:
                raise ConfigValidationError(
                    f"daCommitmentType must be one of {', '.join(DA_COMMITMENT_TYPES)}"
                )
            if self.da_commitment_type == "KeccakCommitment":
                if not self.da_challenge_window:
                    raise ConfigValidationError("daChallengeWindow must be set")
                if not self.da_resolve_window:
                    raise ConfigValidationError("daResolveWindow must be set")
                if self.da_resolver_refund_percentage > 100:
                    raise ConfigValidationError("daResolverRefundPercentage must be at most 100")

        # Fork offsets must be non-decreasing in activation order
        previous: Optional[int] = None
        for fork in L2_FORKS:
            offset = self.fork_time_offset(fork)
            if offset is None:
                continue
            if offset < 0:
                raise ConfigValidationError(f"{fork} time offset cannot be negative")
            if previous is not None and offset < previous:
                raise ConfigValidationError(f"{fork} cannot activate before the previous fork")
            previous = offset


def _json_key(name: str) -> str:
    for f in fields(DeployConfig):
        if f.name == name:
            return f.metadata["json"]
    return name


def apply_overrides(config: DeployConfig, overrides: Dict[str, Any]) -> DeployConfig:
    """
    Merge override values into a deploy config.

    The config is rendered to a generic JSON document, override keys replace
    existing keys, and the document is decoded back into a DeployConfig.

    Args:
        config: Base deploy config
        overrides: Mapping of deploy-config JSON keys to replacement values

    Returns:
        New DeployConfig with the overridden fields replaced

    Raises:
        ConfigValidationError: If an override key is unknown, a value has the
                               wrong type, or overrides are not JSON values
    """
    document = config.to_dict()
    document.update(overrides)
    try:
        document = json.loads(json.dumps(document))
    except (TypeError, ValueError) as e:
        raise ConfigValidationError(f"overrides are not JSON-serializable: {e}") from e
    return DeployConfig.from_dict(document)
