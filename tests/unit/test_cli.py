"""Unit tests for the command line entry point."""

import argparse

import pytest

from rollup_deployer import cli, pipeline
from rollup_deployer.exceptions import OperationCancelledError
from rollup_deployer.state import read_deployment_state

ENV_VARS = [
    "L1_RPC_URL",
    "DEPLOYER_INFILE",
    "DEPLOYER_OUTFILE",
    "DEPLOYER_MNEMONIC",
    "DEPLOYER_PRIVATE_KEY",
    "DEPLOYER_BACKEND",
    "DEPLOYER_IMAGE",
    "DEPLOYER_MONOREPO_DIR",
    "DEPLOYER_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def state_file(tmp_path):
    path = tmp_path / "state.json"
    assert cli.main(["init", "--l1-chain-id", "1", "--l2-chain-id", "42", "--outfile", str(path)]) == 0
    return path


class TestParseOverride:
    """Test KEY=VALUE override parsing."""

    def test_json_value(self):
        """Test that JSON values are decoded."""
        assert cli._parse_override("l2BlockTime=4") == ("l2BlockTime", 4)
        assert cli._parse_override("enableGovernance=true") == ("enableGovernance", True)

    def test_plain_string(self):
        """Test that non-JSON values are kept as strings."""
        assert cli._parse_override("governanceTokenSymbol=OP") == ("governanceTokenSymbol", "OP")

    def test_value_may_contain_equals(self):
        """Test that only the first '=' separates key and value."""
        assert cli._parse_override("governanceTokenName=a=b") == ("governanceTokenName", "a=b")

    @pytest.mark.parametrize("value", ["novalue", "=4"])
    def test_malformed(self, value):
        """Test that pairs without a key or separator are rejected."""
        with pytest.raises(argparse.ArgumentTypeError):
            cli._parse_override(value)


class TestInitCommand:
    """Test the init subcommand."""

    def test_writes_intent(self, tmp_path):
        """Test that init writes an intent-only state document."""
        path = tmp_path / "out" / "state.json"

        code = cli.main(
            [
                "init",
                "--l1-chain-id", "1",
                "--l2-chain-id", "42",
                "--use-fault-proofs",
                "--override", "l2BlockTime=4",
                "--override", "governanceTokenSymbol=OP",
                "--outfile", str(path),
            ]
        )

        assert code == 0
        state = read_deployment_state(path)
        assert state.intent.l2_chain_id == 42
        assert state.intent.use_fault_proofs
        assert state.intent.overrides == {"l2BlockTime": 4, "governanceTokenSymbol": "OP"}
        assert state.deploy_config is None

    def test_outfile_from_environment(self, tmp_path, monkeypatch):
        """Test that the outfile falls back to DEPLOYER_OUTFILE."""
        path = tmp_path / "env-state.json"
        monkeypatch.setenv("DEPLOYER_OUTFILE", str(path))

        assert cli.main(["init", "--l1-chain-id", "1", "--l2-chain-id", "42"]) == 0
        assert path.exists()

    def test_missing_outfile(self):
        """Test that init without an outfile fails."""
        assert cli.main(["init", "--l1-chain-id", "1", "--l2-chain-id", "42"]) == cli.EXIT_FAILURE

    def test_conflicting_intent(self, tmp_path):
        """Test that an invalid intent fails without writing a file."""
        path = tmp_path / "state.json"

        code = cli.main(
            [
                "init",
                "--l1-chain-id", "1",
                "--l2-chain-id", "42",
                "--use-fault-proofs",
                "--use-alt-da",
                "--outfile", str(path),
            ]
        )

        assert code == cli.EXIT_FAILURE
        assert not path.exists()

    def test_negative_chain_id(self, tmp_path):
        """Test that a negative rollup chain id fails without writing a file."""
        path = tmp_path / "state.json"

        code = cli.main(["init", "--l1-chain-id", "1", "--l2-chain-id", "-42", "--outfile", str(path)])

        assert code == cli.EXIT_FAILURE
        assert not path.exists()

    def test_outfile_is_directory(self, tmp_path):
        """Test that an outfile naming a directory is a failure, not a crash."""
        code = cli.main(["init", "--l1-chain-id", "1", "--l2-chain-id", "42", "--outfile", str(tmp_path)])

        assert code == cli.EXIT_FAILURE
        assert tmp_path.is_dir()

    def test_malformed_override_is_usage_error(self, tmp_path):
        """Test that a malformed override exits with a usage error."""
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["init", "--l1-chain-id", "1", "--l2-chain-id", "42", "--override", "bad"])

        assert excinfo.value.code == 2


class TestConfigureCommand:
    """Test the configure subcommand."""

    def test_configure_from_environment(self, state_file, fake_l1, rpc_url, mnemonic, monkeypatch):
        """Test that RPC URL and mnemonic are read from the environment."""
        monkeypatch.setenv("L1_RPC_URL", rpc_url)
        monkeypatch.setenv("DEPLOYER_MNEMONIC", mnemonic)

        assert cli.main(["configure", "--infile", str(state_file)]) == 0

        state = read_deployment_state(state_file)
        assert state.deploy_config.l2_chain_id == 42
        assert state.deploy_config.l1_starting_block_tag == fake_l1.head["hash"]

    def test_missing_rpc_url(self, state_file, mnemonic):
        """Test that configure without an RPC URL fails."""
        code = cli.main(["configure", "--infile", str(state_file), "--mnemonic", mnemonic])

        assert code == cli.EXIT_FAILURE

    def test_missing_state_file(self, tmp_path, rpc_url, mnemonic):
        """Test that a missing state file fails."""
        code = cli.main(
            [
                "configure",
                "--infile", str(tmp_path / "absent.json"),
                "--l1-rpc-url", rpc_url,
                "--mnemonic", mnemonic,
            ]
        )

        assert code == cli.EXIT_FAILURE


class TestDeployCommand:
    """Test the deploy subcommand."""

    def test_invalid_private_key(self, state_file, rpc_url):
        """Test that a malformed private key fails before any work."""
        code = cli.main(
            [
                "deploy",
                "--infile", str(state_file),
                "--l1-rpc-url", rpc_url,
                "--private-key", "0x1234",
            ]
        )

        assert code == cli.EXIT_FAILURE

    def test_requires_deploy_config(self, state_file, rpc_url, private_key):
        """Test that deploying an unconfigured state fails and leaves it untouched."""
        before = state_file.read_text()

        code = cli.main(
            [
                "deploy",
                "--infile", str(state_file),
                "--l1-rpc-url", rpc_url,
                "--private-key", private_key,
            ]
        )

        assert code == cli.EXIT_FAILURE
        assert state_file.read_text() == before

    def test_local_backend_requires_monorepo(self, state_file, rpc_url, private_key):
        """Test that the local backend needs --monorepo-dir."""
        code = cli.main(
            [
                "deploy",
                "--infile", str(state_file),
                "--l1-rpc-url", rpc_url,
                "--private-key", private_key,
                "--backend", "local",
            ]
        )

        assert code == cli.EXIT_FAILURE

    def test_cancelled_exit_code(self, state_file, rpc_url, private_key, monkeypatch):
        """Test that cancellation maps to exit code 130."""

        def cancelled(opts, cancel=None, **kwargs):
            raise OperationCancelledError("deploy: cancelled")

        monkeypatch.setattr(pipeline, "deploy", cancelled)

        code = cli.main(
            [
                "deploy",
                "--infile", str(state_file),
                "--l1-rpc-url", rpc_url,
                "--private-key", private_key,
            ]
        )

        assert code == cli.EXIT_CANCELLED

    def test_options_forwarded(self, state_file, rpc_url, private_key, monkeypatch, tmp_path):
        """Test that command line options reach the pipeline."""
        seen = {}

        def record(opts, cancel=None, **kwargs):
            seen["opts"] = opts
            seen["cancel"] = cancel

        monkeypatch.setattr(pipeline, "deploy", record)
        monkeypatch.setenv("DEPLOYER_IMAGE", "contracts:dev")

        code = cli.main(
            [
                "--log-level", "debug",
                "deploy",
                "--infile", str(state_file),
                "--outfile", str(tmp_path / "next.json"),
                "--l1-rpc-url", rpc_url,
                "--private-key", private_key,
            ]
        )

        assert code == 0
        opts = seen["opts"]
        assert opts.image == "contracts:dev"
        assert opts.outfile == str(tmp_path / "next.json")
        assert opts.backend == "docker"
        assert not seen["cancel"].is_set()


class TestGenesisCommand:
    """Test the genesis subcommand."""

    def test_requires_addresses(self, state_file, rpc_url):
        """Test that genesis before deploy fails."""
        code = cli.main(["genesis", "--infile", str(state_file), "--l1-rpc-url", rpc_url])

        assert code == cli.EXIT_FAILURE

    def test_no_verify_anchor_flag(self, state_file, rpc_url, monkeypatch):
        """Test that --no-verify-anchor disables the anchor check."""
        seen = {}
        monkeypatch.setattr(pipeline, "genesis", lambda opts, **kwargs: seen.setdefault("opts", opts))

        code = cli.main(
            ["genesis", "--infile", str(state_file), "--l1-rpc-url", rpc_url, "--no-verify-anchor"]
        )

        assert code == 0
        assert seen["opts"].verify_anchor is False
        assert seen["opts"].outfile == str(state_file)
