"""Deployment state document I/O for rollup-deployer library."""

import base64
import binascii
import json
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .deploy_config import DeployConfig
from .exceptions import DeployerError, StateDecodeError, StateNotFoundError, StateWriteError
from .rollup import RollupConfig
from .types import Addresses, ChainIntent


@dataclass
class DeploymentState:
    """
    Aggregate persisted across pipeline stages.

    Later fields are only populated once the stage producing them completed:
    deploy_config by Configure, addresses by Deploy, genesis_files and
    rollup_configs by Genesis. Genesis files are compressed genesis blobs keyed
    by rollup chain id.
    """

    intent: ChainIntent
    deploy_config: Optional[DeployConfig] = None
    addresses: Optional[Addresses] = None
    genesis_files: Dict[int, bytes] = field(default_factory=dict)
    rollup_configs: Dict[int, RollupConfig] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"intent": self.intent.to_dict()}
        if self.deploy_config is not None:
            result["deployConfig"] = self.deploy_config.to_dict()
        if self.addresses is not None:
            result["addresses"] = self.addresses.to_dict()
        if self.genesis_files:
            result["genesisFiles"] = {
                str(chain_id): base64.b64encode(blob).decode("ascii")
                for chain_id, blob in sorted(self.genesis_files.items())
            }
        if self.rollup_configs:
            result["rollupConfigs"] = {
                str(chain_id): cfg.to_dict()
                for chain_id, cfg in sorted(self.rollup_configs.items())
            }
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeploymentState":
        """
        Decode a state document.

        Raises:
            StateDecodeError: If the document is not a valid state document
        """
        if not isinstance(data, dict):
            raise StateDecodeError("state document must be a JSON object")
        if not data.get("intent"):
            raise StateDecodeError("state document has no intent")

        try:
            intent = ChainIntent.from_dict(data["intent"])
            deploy_config = None
            if data.get("deployConfig") is not None:
                deploy_config = DeployConfig.from_dict(data["deployConfig"])
            addresses = None
            if data.get("addresses") is not None:
                addresses = Addresses.from_dict(data["addresses"])
            genesis_files = {
                int(chain_id): base64.b64decode(blob, validate=True)
                for chain_id, blob in (data.get("genesisFiles") or {}).items()
            }
            rollup_configs = {
                int(chain_id): RollupConfig.from_dict(cfg)
                for chain_id, cfg in (data.get("rollupConfigs") or {}).items()
            }
        except (DeployerError, KeyError, TypeError, ValueError, binascii.Error) as e:
            raise StateDecodeError(f"invalid state document: {e}") from e

        return cls(
            intent=intent,
            deploy_config=deploy_config,
            addresses=addresses,
            genesis_files=genesis_files,
            rollup_configs=rollup_configs,
        )


def read_deployment_state(path: Union[Path, str]) -> DeploymentState:
    """
    Load a deployment state document from disk.

    Args:
        path: Path to the JSON state document

    Returns:
        Decoded DeploymentState

    Raises:
        StateNotFoundError: If the file does not exist
        StateDecodeError: If the file cannot be read or is not a valid state
            document
    """
    state_path = Path(path)
    try:
        with open(state_path) as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise StateNotFoundError(f"state file not found at {state_path}") from e
    except OSError as e:
        raise StateDecodeError(f"failed to read state file {state_path}: {e}") from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise StateDecodeError(f"failed to decode state file {state_path}: {e}") from e

    return DeploymentState.from_dict(data)


def write_deployment_state(path: Union[Path, str], state: DeploymentState) -> None:
    """
    Persist a deployment state document.

    The document is written to a temporary file next to the target and then
    moved into place, so a crash never leaves a truncated state file.

    Args:
        path: Destination path (parent directories are created)
        state: State to write

    Raises:
        StateWriteError: If the document cannot be written to path
    """
    state_path = Path(path)
    try:
        state_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{state_path.name}.", suffix=".tmp", dir=state_path.parent
        )
    except OSError as e:
        raise StateWriteError(f"failed to write state file {state_path}: {e}") from e

    try:
        with os.fdopen(fd, "w") as f:
            json.dump(state.to_dict(), f, indent=2)
            f.write("\n")
        os.replace(tmp_name, state_path)
    except BaseException as e:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        if isinstance(e, OSError):
            raise StateWriteError(f"failed to write state file {state_path}: {e}") from e
        raise
