"""Unit tests for the deploy config record and override merging."""

from dataclasses import replace

import pytest
from eth_utils import to_checksum_address

from rollup_deployer.deploy_config import DeployConfig, apply_overrides
from rollup_deployer.exceptions import ConfigValidationError

ADDR_A = "0x1111111111111111111111111111111111111111"
ADDR_B = "0x2222222222222222222222222222222222222222"
INBOX = to_checksum_address("0x420000000000000000000000000000000000002a")


@pytest.fixture
def base_config() -> DeployConfig:
    """Minimal config that passes its self-check."""
    return DeployConfig(
        l1_chain_id=1,
        l2_chain_id=42,
        l2_block_time=2,
        finalization_period_seconds=12,
        max_sequencer_drift=600,
        sequencer_window_size=3600,
        channel_timeout=300,
        p2p_sequencer_address=ADDR_A,
        batch_inbox_address=INBOX,
        batch_sender_address=ADDR_A,
        l1_starting_block_tag="0x" + "ab" * 32,
        l2_output_oracle_submission_interval=10,
        l2_output_oracle_proposer=ADDR_A,
        l2_output_oracle_challenger=ADDR_B,
        proxy_admin_owner=ADDR_A,
        final_system_owner=ADDR_A,
        superchain_config_guardian=ADDR_A,
        base_fee_vault_recipient=ADDR_A,
        l1_fee_vault_recipient=ADDR_A,
        sequencer_fee_vault_recipient=ADDR_A,
        l2_genesis_block_gas_limit=30_000_000,
        l2_genesis_block_base_fee_per_gas=1_000_000_000,
        eip1559_denominator=50,
        eip1559_denominator_canyon=250,
        eip1559_elasticity=6,
    )


class TestCodec:
    """Test JSON encoding and decoding."""

    def test_round_trip(self, base_config):
        """Test that to_dict/from_dict reproduces the config."""
        assert DeployConfig.from_dict(base_config.to_dict()) == base_config

    def test_uses_deploy_config_keys(self, base_config):
        """Test that JSON keys follow the toolchain deploy-config names."""
        data = base_config.to_dict()

        assert data["l1ChainID"] == 1
        assert data["l2ChainID"] == 42
        assert data["l1StartingBlockTag"] == "0x" + "ab" * 32
        assert data["l2GenesisBlockBaseFeePerGas"] == "0x3b9aca00"

    def test_unset_fork_offsets_are_omitted(self, base_config):
        """Test that unscheduled fork offsets do not appear in the document."""
        data = replace(base_config, l2_genesis_ecotone_time_offset=0).to_dict()

        assert data["l2GenesisEcotoneTimeOffset"] == 0
        assert "l2GenesisFjordTimeOffset" not in data

    def test_unknown_key_rejected(self, base_config):
        """Test that decoding rejects keys that are not config fields."""
        data = base_config.to_dict()
        data["notAField"] = 1

        with pytest.raises(ConfigValidationError, match="notAField"):
            DeployConfig.from_dict(data)

    def test_addresses_are_checksummed(self, base_config):
        """Test that decoded addresses are normalized to checksum form."""
        data = base_config.to_dict()
        data["batchInboxAddress"] = data["batchInboxAddress"].lower()

        decoded = DeployConfig.from_dict(data)
        assert decoded.batch_inbox_address == INBOX

    def test_wrong_type_rejected(self, base_config):
        """Test that a value of the wrong kind fails to decode."""
        data = base_config.to_dict()
        data["fundDevAccounts"] = "yes"

        with pytest.raises(ConfigValidationError, match="fundDevAccounts"):
            DeployConfig.from_dict(data)


class TestApplyOverrides:
    """Test override merging."""

    def test_replaces_exactly_the_overridden_fields(self, base_config):
        """Test that the merge equals the base with only the given fields replaced."""
        merged = apply_overrides(
            base_config, {"l2BlockTime": 1, "l2OutputOracleChallenger": ADDR_A}
        )

        assert merged == replace(base_config, l2_block_time=1, l2_output_oracle_challenger=ADDR_A)

    def test_empty_overrides_are_identity(self, base_config):
        """Test that no overrides leave the config unchanged."""
        assert apply_overrides(base_config, {}) == base_config

    def test_unknown_override_key_fails(self, base_config):
        """Test that unknown override keys cause a decode failure."""
        with pytest.raises(ConfigValidationError, match="unknown field"):
            apply_overrides(base_config, {"l2BlockTme": 1})

    def test_non_json_override_fails(self, base_config):
        """Test that values that are not JSON are rejected."""
        with pytest.raises(ConfigValidationError, match="JSON"):
            apply_overrides(base_config, {"l2BlockTime": object()})


class TestCheck:
    """Test the structural self-check."""

    def test_valid_config_passes(self, base_config):
        """Test that a complete config passes."""
        base_config.check()

    def test_zero_required_int_fails(self, base_config):
        """Test that a required integer left at zero fails."""
        with pytest.raises(ConfigValidationError, match="l2BlockTime"):
            replace(base_config, l2_block_time=0).check()

    def test_zero_address_fails(self, base_config):
        """Test that a required address left at zero fails."""
        zero = "0x0000000000000000000000000000000000000000"
        with pytest.raises(ConfigValidationError, match="batchSenderAddress"):
            replace(base_config, batch_sender_address=zero).check()

    def test_output_oracle_roles_optional_with_fault_proofs(self, base_config):
        """Test that proposer/challenger are not required when fault proofs are used."""
        zero = "0x0000000000000000000000000000000000000000"
        config = replace(
            base_config,
            use_fault_proofs=True,
            l2_output_oracle_proposer=zero,
            l2_output_oracle_challenger=zero,
            fault_game_absolute_prestate="0x" + "03" * 32,
            fault_game_max_depth=44,
            fault_game_max_clock_duration=1200,
            fault_game_split_depth=14,
            preimage_oracle_challenge_period=300,
        )
        config.check()

    def test_same_chain_ids_fail(self, base_config):
        """Test that identical chain ids are rejected."""
        with pytest.raises(ConfigValidationError, match="must differ"):
            replace(base_config, l2_chain_id=1).check()

    def test_missing_starting_block_fails(self, base_config):
        """Test that the anchor starting block must be pinned."""
        with pytest.raises(ConfigValidationError, match="l1StartingBlockTag"):
            replace(base_config, l1_starting_block_tag=None).check()

    def test_fault_proofs_and_alt_da_exclusive(self, base_config):
        """Test that both feature flags together fail."""
        with pytest.raises(ConfigValidationError, match="mutually exclusive"):
            replace(base_config, use_fault_proofs=True, use_alt_da=True).check()

    def test_split_depth_below_max_depth(self, base_config):
        """Test that the fault game split depth must be below the max depth."""
        config = replace(
            base_config,
            use_fault_proofs=True,
            fault_game_absolute_prestate="0x" + "03" * 32,
            fault_game_max_depth=10,
            fault_game_max_clock_duration=1200,
            fault_game_split_depth=10,
            preimage_oracle_challenge_period=300,
        )
        with pytest.raises(ConfigValidationError, match="faultGameSplitDepth"):
            config.check()

    def test_alt_da_commitment_type(self, base_config):
        """Test that an unknown DA commitment type fails."""
        with pytest.raises(ConfigValidationError, match="daCommitmentType"):
            replace(base_config, use_alt_da=True, da_commitment_type="Other").check()

    def test_fork_offsets_must_be_ordered(self, base_config):
        """Test that a fork cannot activate before an earlier fork."""
        config = replace(
            base_config, l2_genesis_delta_time_offset=10, l2_genesis_ecotone_time_offset=5
        )
        with pytest.raises(ConfigValidationError, match="ecotone"):
            config.check()

    def test_fork_time_offset_lookup(self, base_config):
        """Test fork offset lookup by name."""
        config = replace(base_config, l2_genesis_canyon_time_offset=0)

        assert config.fork_time_offset("canyon") == 0
        assert config.fork_time_offset("granite") is None
        with pytest.raises(ValueError):
            config.fork_time_offset("shanghai")
