"""Deploy config derivation for rollup-deployer library."""

import logging
from typing import Any, Dict, List, Optional

from eth_utils import to_checksum_address

from .constants import (
    DEFAULT_ALT_DA_PARAMS,
    DEFAULT_DEPLOY_PARAMS,
    DEFAULT_FAULT_PROOF_PARAMS,
    OP_STACK_SUPPORT,
    ZERO_ADDRESS,
)
from .deploy_config import DeployConfig, apply_overrides
from .exceptions import ConfigValidationError, KeyDerivationError
from .keygen import MnemonicKeyGenerator, Role
from .rpc import RPCClient
from .types import ChainIntent


class _RoleResolver:
    """
    Resolves role addresses while capturing the first derivation failure.

    Every lookup is attempted so the final error lists all failed roles; a
    failed lookup yields the zero address until the error is raised.
    """

    def __init__(self, keygen: MnemonicKeyGenerator, chain_id: int):
        self._keygen = keygen
        self._chain_id = chain_id
        self.first_error: Optional[KeyDerivationError] = None
        self.failed: List[str] = []

    def __call__(self, role: Role) -> str:
        try:
            return self._keygen.address(role, self._chain_id)
        except KeyDerivationError as e:
            if self.first_error is None:
                self.first_error = e
            self.failed.append(role.name)
            return ZERO_ADDRESS

    def raise_if_failed(self) -> None:
        if self.first_error is not None:
            raise KeyDerivationError(
                f"failed to derive address for {', '.join(self.failed)}: {self.first_error}"
            ) from self.first_error


def batch_inbox_address(chain_id: int) -> str:
    """
    Derive the batch inbox address for a rollup chain.

    The address is 0x42 followed by zero bytes, with the chain id written
    big-endian into the trailing bytes. The leading 0x42 is never overwritten.

    Args:
        chain_id: Rollup chain id

    Returns:
        Checksummed batch inbox address
    """
    addr = bytearray(20)
    addr[0] = 0x42
    chain_bytes = chain_id.to_bytes((chain_id.bit_length() + 7) // 8, "big")[-19:]
    addr[20 - len(chain_bytes):] = chain_bytes
    return to_checksum_address(bytes(addr))


def _role_params(addr_for: _RoleResolver) -> Dict[str, Any]:
    return {
        "proxy_admin_owner": addr_for(Role.L2_PROXY_ADMIN_OWNER),
        "final_system_owner": addr_for(Role.L1_PROXY_ADMIN_OWNER),
        "base_fee_vault_recipient": addr_for(Role.BASE_FEE_VAULT_RECIPIENT),
        "l1_fee_vault_recipient": addr_for(Role.L1_FEE_VAULT_RECIPIENT),
        "sequencer_fee_vault_recipient": addr_for(Role.SEQUENCER_FEE_VAULT_RECIPIENT),
        "governance_token_owner": addr_for(Role.L2_PROXY_ADMIN_OWNER),
        "p2p_sequencer_address": addr_for(Role.SEQUENCER_P2P),
        "batch_sender_address": addr_for(Role.BATCHER),
        "superchain_config_guardian": addr_for(Role.SUPERCHAIN_CONFIG_GUARDIAN),
        "l2_output_oracle_challenger": addr_for(Role.CHALLENGER),
        "l2_output_oracle_proposer": addr_for(Role.PROPOSER),
    }


def _policy_params(intent: ChainIntent) -> Dict[str, Any]:
    d = DEFAULT_DEPLOY_PARAMS
    return {
        "l1_chain_id": intent.l1_chain_id,
        "l2_chain_id": intent.l2_chain_id,
        "l2_block_time": d["l2_block_time"],
        "finalization_period_seconds": d["finalization_period_seconds"],
        "max_sequencer_drift": d["max_sequencer_drift"],
        "sequencer_window_size": d["sequencer_window_size"],
        "channel_timeout": d["channel_timeout"],
        "batch_inbox_address": batch_inbox_address(intent.l2_chain_id),
        "system_config_start_block": d["system_config_start_block"],
        "l2_output_oracle_submission_interval": d["l2_output_oracle_submission_interval"],
        "l2_output_oracle_starting_block_number": d["l2_output_oracle_starting_block_number"],
        "l2_output_oracle_starting_timestamp": d["l2_output_oracle_starting_timestamp"],
        "required_protocol_version": OP_STACK_SUPPORT,
        "recommended_protocol_version": OP_STACK_SUPPORT,
        "base_fee_vault_withdrawal_network": d["withdrawal_network"],
        "l1_fee_vault_withdrawal_network": d["withdrawal_network"],
        "sequencer_fee_vault_withdrawal_network": d["withdrawal_network"],
        "enable_governance": True,
        "governance_token_symbol": d["governance_token_symbol"],
        "governance_token_name": d["governance_token_name"],
        "l2_genesis_block_gas_limit": d["l2_genesis_block_gas_limit"],
        "l2_genesis_block_base_fee_per_gas": d["l2_genesis_block_base_fee_per_gas"],
        "eip1559_denominator": d["eip1559_denominator"],
        "eip1559_denominator_canyon": d["eip1559_denominator_canyon"],
        "eip1559_elasticity": d["eip1559_elasticity"],
        "gas_price_oracle_base_fee_scalar": d["gas_price_oracle_base_fee_scalar"],
        "gas_price_oracle_blob_base_fee_scalar": d["gas_price_oracle_blob_base_fee_scalar"],
    }


def new_deploy_config(
    keygen: MnemonicKeyGenerator,
    l1_rpc: RPCClient,
    intent: ChainIntent,
    logger: Optional[logging.Logger] = None,
) -> DeployConfig:
    """
    Derive a validated deploy config from a chain intent.

    Args:
        keygen: Role key generator
        l1_rpc: Read connection to the anchor chain
        intent: Chain intent to derive from
        logger: Logger to use (defaults to the module logger)

    Returns:
        DeployConfig that passed its self-check

    Raises:
        IntentValidationError: If the intent is invalid (before any RPC call)
        RPCError: If the anchor chain head cannot be fetched
        KeyDerivationError: If one or more roles cannot be derived
        ConfigValidationError: If overrides are invalid or the result fails its check
    """
    log = logger or logging.getLogger(__name__)
    intent.check()

    l1_start = l1_rpc.block_by_number(None)
    log.info("pinned L1 starting block %s (number %d)", l1_start.hash, l1_start.number)

    # Roles are namespaced by the anchor chain id
    addr_for = _RoleResolver(keygen, intent.l1_chain_id)
    params = _policy_params(intent)
    params.update(_role_params(addr_for))
    params["l1_starting_block_tag"] = l1_start.hash

    if intent.fund_dev_accounts:
        params["fund_dev_accounts"] = True

    if intent.use_fault_proofs:
        params["use_fault_proofs"] = True
        params.update(DEFAULT_FAULT_PROOF_PARAMS)

    if intent.use_alt_da:
        params["use_alt_da"] = True
        params.update(DEFAULT_ALT_DA_PARAMS)

    addr_for.raise_if_failed()

    cfg = DeployConfig(**params)

    if intent.overrides:
        log.info("applying %d deploy config override(s)", len(intent.overrides))
        try:
            cfg = apply_overrides(cfg, intent.overrides)
        except ConfigValidationError as e:
            raise ConfigValidationError(f"failed to apply overrides: {e}") from e

    try:
        cfg.check()
    except ConfigValidationError as e:
        raise ConfigValidationError(f"deploy config failed validation: {e}") from e

    return cfg

