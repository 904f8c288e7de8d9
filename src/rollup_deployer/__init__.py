"""
rollup-deployer: Python library for provisioning rollup chains from a chain intent
"""

from importlib.metadata import PackageNotFoundError, version

from .backends import DockerBackend, LocalBackend, new_backend
from .deploy_config import DeployConfig
from .exceptions import (
    AnchorBlockMismatchError,
    ArtifactNotFoundError,
    BackendError,
    BootstrapError,
    ConfigValidationError,
    DeployerError,
    ImageUnavailableError,
    IntentValidationError,
    KeyDerivationError,
    MissingPrerequisiteError,
    OperationCancelledError,
    RPCConnectionError,
    RPCError,
    RPCResponseError,
    StageError,
    StateDecodeError,
    StateNotFoundError,
    StateWriteError,
    ToolchainExitError,
)
from .keygen import MnemonicKeyGenerator, Role
from .pipeline import (
    ApplyOpts,
    ConfigureOpts,
    DeployOpts,
    GenesisOpts,
    InitOpts,
    apply,
    configure,
    deploy,
    genesis,
    init,
)
from .rollup import RollupConfig
from .state import DeploymentState, read_deployment_state, write_deployment_state
from .types import Addresses, ChainIntent

try:
    __version__ = version("rollup-deployer")
except PackageNotFoundError:
    __version__ = None

__all__ = [
    "init",
    "configure",
    "deploy",
    "genesis",
    "apply",
    "InitOpts",
    "ConfigureOpts",
    "DeployOpts",
    "GenesisOpts",
    "ApplyOpts",
    "ChainIntent",
    "Addresses",
    "DeployConfig",
    "RollupConfig",
    "DeploymentState",
    "read_deployment_state",
    "write_deployment_state",
    "MnemonicKeyGenerator",
    "Role",
    "DockerBackend",
    "LocalBackend",
    "new_backend",
    "DeployerError",
    "IntentValidationError",
    "ConfigValidationError",
    "MissingPrerequisiteError",
    "StateNotFoundError",
    "StateDecodeError",
    "StateWriteError",
    "RPCError",
    "RPCConnectionError",
    "RPCResponseError",
    "KeyDerivationError",
    "BootstrapError",
    "BackendError",
    "ImageUnavailableError",
    "ToolchainExitError",
    "ArtifactNotFoundError",
    "OperationCancelledError",
    "AnchorBlockMismatchError",
    "StageError",
]
