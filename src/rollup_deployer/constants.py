"""Configuration constants for rollup-deployer library."""

# Deterministic deployment proxy (CREATE2 factory) used by the contracts
# toolchain for deterministic contract placement.
CREATE2_DEPLOYER_ADDRESS = "0x4e59b44847b379578588920cA78FbF26c0B4956C"
CREATE2_DEPLOYER_CODE_SIZE = 69
# Pre-signed (chain id agnostic) deployment transaction for the factory
CREATE2_DEPLOYER_RAW_TX = (
    "0xf8a58085174876e800830186a08080b853604580600e600039806000f350fe7fffffffffffffffffffffffffffffffffffffffffffffffffffffffffffffffe03601600081602082378035828234f58015156039578182fd5b8082525050506014600cf31ba02222222222222222222222222222222222222222222222222222222222222222a02222222222222222222222222222222222222222222222222222222222222222"
)
BOOTSTRAP_POLL_INTERVAL = 1.0  # seconds

# Contracts toolchain layout
CONTRACTS_IMAGE = "ethereumoptimism/contracts-bedrock:latest"
CONTRACTS_WORKDIR = "/workspace/optimism/packages/contracts-bedrock"
CONTRACTS_PACKAGE_DIR = ("packages", "contracts-bedrock")
ADDRESSES_ARTIFACT = "deployments/deployment.json"
ALLOCS_ARTIFACT = "state-dump-{chain_id}-{fork}.json"
ALLOCS_FORK = "granite"
DEPLOY_SCRIPT = "deploy.sh"
L2_GENESIS_SCRIPT = "scripts/L2Genesis.s.sol:L2Genesis"
L2_GENESIS_SIG = "runWithStateDump()"

# Paths inside the contracts container
CONTAINER_STATE_PATH = "/infile.json"
CONTAINER_ADDRESSES_PATH = "/addresses.json"
CONTAINER_DEPLOY_CONFIG_PATH = f"{CONTRACTS_WORKDIR}/deploy-config/deploy-config.json"

# Environment variables understood by the contracts toolchain
ENV_DEPLOY_RPC_URL = "DEPLOY_ETH_RPC_URL"
ENV_DEPLOY_PRIVATE_KEY = "DEPLOY_PRIVATE_KEY"
ENV_DEPLOY_STATE_PATH = "DEPLOY_STATE_PATH"
ENV_CONTRACT_ADDRESSES_PATH = "CONTRACT_ADDRESSES_PATH"
ENV_DEPLOY_CONFIG_PATH = "DEPLOY_CONFIG_PATH"

# Environment variables read by the command line interface
CLI_ENV_PREFIX = "DEPLOYER"
CLI_ENV_L1_RPC_URL = "L1_RPC_URL"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_HASH = "0x" + "00" * 32

# Protocol policy defaults applied by the configuration deriver
DEFAULT_DEPLOY_PARAMS = {
    "l2_genesis_block_gas_limit": 30_000_000,
    "l2_genesis_block_base_fee_per_gas": 1_000_000_000,
    "l2_block_time": 2,
    "finalization_period_seconds": 12,
    "max_sequencer_drift": 600,
    "sequencer_window_size": 3600,
    "channel_timeout": 300,
    "system_config_start_block": 0,
    "eip1559_denominator": 50,
    "eip1559_denominator_canyon": 250,
    "eip1559_elasticity": 6,
    "gas_price_oracle_base_fee_scalar": 0,
    "gas_price_oracle_blob_base_fee_scalar": 1_000_000,
    "l2_output_oracle_submission_interval": 10,
    "l2_output_oracle_starting_block_number": 0,
    "l2_output_oracle_starting_timestamp": 0,
    "withdrawal_network": "local",
    "governance_token_symbol": "OP",
    "governance_token_name": "Optimism",
}

DEFAULT_FAULT_PROOF_PARAMS = {
    "fault_game_absolute_prestate": (
        "0x03c7ae758795765c6664a5d39bf63841c71ff191e9189522bad8ebff5d4eca98"
    ),
    "fault_game_max_depth": 44,
    "fault_game_clock_extension": 0,
    "fault_game_max_clock_duration": 1200,
    "fault_game_genesis_block": 0,
    "fault_game_genesis_output_root": ZERO_HASH,
    "fault_game_split_depth": 14,
    "fault_game_withdrawal_delay": 600,
    "preimage_oracle_min_proposal_size": 1_800_000,
    "preimage_oracle_challenge_period": 300,
}

DEFAULT_ALT_DA_PARAMS = {
    "da_commitment_type": "KeccakCommitment",
    "da_challenge_window": 140,
    "da_resolve_window": 160,
    "da_bond_size": 1_000_000,
    "da_resolver_refund_percentage": 0,
}

# Protocol version v0 encoding of 8.0.0 (major in bytes 16..20)
OP_STACK_SUPPORT = "0x" + "00" * 16 + "00000008" + "00" * 12

# L2 genesis
SEQUENCER_FEE_VAULT_ADDRESS = "0x4200000000000000000000000000000000000011"
GENESIS_EXTRA_DATA = b"BEDROCK"
L2_FORKS = ("regolith", "canyon", "delta", "ecotone", "fjord", "granite")
