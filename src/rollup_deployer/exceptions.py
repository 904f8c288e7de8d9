"""Custom exception classes for rollup-deployer library."""

from typing import Optional


class DeployerError(Exception):
    """Base exception for rollup deployment errors."""

    pass


class IntentValidationError(DeployerError, ValueError):
    """Raised when a chain intent is malformed or self-contradictory."""

    pass


class ConfigValidationError(DeployerError, ValueError):
    """Raised when a deploy config or rollup config fails its self-check."""

    pass


class MissingPrerequisiteError(DeployerError, ValueError):
    """Raised when a stage runs before the state fields it depends on exist."""

    pass


class StateNotFoundError(DeployerError, FileNotFoundError):
    """Raised when the deployment state document is not found."""

    pass


class StateDecodeError(DeployerError, ValueError):
    """Raised when the deployment state document cannot be decoded."""

    pass


class StateWriteError(DeployerError, OSError):
    """Raised when the deployment state document cannot be written."""

    pass


class KeyDerivationError(DeployerError, ValueError):
    """Raised when seed material is malformed or a role cannot be derived."""

    pass


class RPCError(DeployerError, RuntimeError):
    """Base exception for anchor chain RPC failures."""

    pass


class RPCConnectionError(RPCError):
    """Raised when the RPC endpoint is unreachable or answers with an HTTP error."""

    pass


class RPCResponseError(RPCError):
    """Raised when the RPC endpoint returns an error object or an unusable result."""

    pass


class BootstrapError(DeployerError, RuntimeError):
    """Raised when the deterministic deployer bootstrap transaction fails."""

    pass


class BackendError(DeployerError, RuntimeError):
    """Base exception for execution backend failures."""

    pass


class ImageUnavailableError(BackendError):
    """Raised when the toolchain image is missing and cannot be pulled."""

    pass


class ToolchainExitError(BackendError):
    """Raised when the toolchain process or container exits unsuccessfully."""

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        self.exit_code = exit_code


class ArtifactNotFoundError(BackendError, FileNotFoundError):
    """Raised when the expected toolchain artifact was not produced."""

    pass


class AnchorBlockMismatchError(DeployerError, RuntimeError):
    """Raised when the pinned anchor block is no longer on the canonical chain."""

    pass


class OperationCancelledError(DeployerError):
    """Raised when an operation is aborted through its cancellation signal."""

    pass


class StageError(DeployerError):
    """Raised when a pipeline stage fails; wraps the originating cause."""

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"{stage}: {cause}")
        self.stage = stage
        self.cause = cause
