"""Contracts toolchain execution backends for rollup-deployer library."""

import io
import json
import logging
import os
import posixpath
import subprocess
import sys
import tarfile
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Dict, List, Optional, Protocol, Union

import docker
import requests
from docker.errors import APIError, DockerException, ImageNotFound, NotFound
from docker.types import Mount

from .constants import (
    ADDRESSES_ARTIFACT,
    ALLOCS_ARTIFACT,
    ALLOCS_FORK,
    CONTAINER_ADDRESSES_PATH,
    CONTAINER_DEPLOY_CONFIG_PATH,
    CONTAINER_STATE_PATH,
    CONTRACTS_IMAGE,
    CONTRACTS_PACKAGE_DIR,
    CONTRACTS_WORKDIR,
    DEPLOY_SCRIPT,
    ENV_CONTRACT_ADDRESSES_PATH,
    ENV_DEPLOY_CONFIG_PATH,
    ENV_DEPLOY_PRIVATE_KEY,
    ENV_DEPLOY_RPC_URL,
    ENV_DEPLOY_STATE_PATH,
    L2_GENESIS_SCRIPT,
    L2_GENESIS_SIG,
)
from .exceptions import (
    ArtifactNotFoundError,
    BackendError,
    ImageUnavailableError,
    MissingPrerequisiteError,
    OperationCancelledError,
    ToolchainExitError,
)
from .parsers import parse_addresses
from .state import DeploymentState, write_deployment_state
from .types import Addresses

BACKEND_DOCKER = "docker"
BACKEND_LOCAL = "local"
BACKENDS = (BACKEND_DOCKER, BACKEND_LOCAL)


@dataclass
class DeployContractsOpts:
    """Inputs of a contracts deployment run."""

    l1_rpc_url: str
    state: DeploymentState
    private_key_hex: str


@dataclass
class GenerateAllocsOpts:
    """Inputs of an L2 allocation dump run."""

    l2_chain_id: int
    state: DeploymentState


class ContractsBackend(Protocol):
    """Runs the contracts toolchain and extracts its artifacts."""

    def deploy(
        self, opts: DeployContractsOpts, cancel: Optional[threading.Event] = None
    ) -> Addresses:
        ...

    def generate_allocs(
        self, opts: GenerateAllocsOpts, cancel: Optional[threading.Event] = None
    ) -> bytes:
        ...


def _allocs_artifact(l2_chain_id: int) -> str:
    return ALLOCS_ARTIFACT.format(chain_id=l2_chain_id, fork=ALLOCS_FORK)


def _allocs_command(l2_chain_id: int) -> List[str]:
    return [
        "forge",
        "script",
        L2_GENESIS_SCRIPT,
        "--sig",
        L2_GENESIS_SIG,
        "--chain-id",
        str(l2_chain_id),
    ]


def _require_genesis_inputs(state: DeploymentState) -> None:
    if state.addresses is None:
        raise MissingPrerequisiteError("addresses not found in state")
    if state.deploy_config is None:
        raise MissingPrerequisiteError("deploy config not found in state")


def _write_genesis_inputs(state: DeploymentState, tmp_dir: Path) -> tuple[Path, Path]:
    """
    Write the addresses and deploy config files consumed by the L2 genesis script.

    Returns:
        Tuple of (addresses_path, deploy_config_path)
    """
    addresses_path = tmp_dir / "addresses.json"
    deploy_config_path = tmp_dir / "deploy-config.json"
    with open(addresses_path, "w") as f:
        json.dump(state.addresses.to_dict(), f, indent=2)
    with open(deploy_config_path, "w") as f:
        json.dump(state.deploy_config.to_dict(), f, indent=2)
    return addresses_path, deploy_config_path


class DockerBackend:
    """Runs the contracts toolchain inside a container built from a toolchain image."""

    def __init__(
        self,
        image: str = CONTRACTS_IMAGE,
        client: Optional[docker.DockerClient] = None,
        stop_timeout: int = 0,
        poll_interval: float = 0.5,
        stdout: Optional[IO[str]] = None,
        stderr: Optional[IO[str]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the backend.

        Args:
            image: Toolchain image reference
            client: Docker client (defaults to docker.from_env())
            stop_timeout: Grace period in seconds when stopping a cancelled container
            poll_interval: Seconds between container status polls
            stdout: Stream receiving container stdout (defaults to sys.stdout)
            stderr: Stream receiving container stderr (defaults to sys.stderr)
            logger: Logger to use (defaults to the module logger)

        Raises:
            BackendError: If no Docker client can be created
        """
        if client is None:
            try:
                client = docker.from_env()
            except DockerException as e:
                raise BackendError(f"failed to create docker client: {e}") from e

        self.image = image
        self._client = client
        self._stop_timeout = stop_timeout
        self._poll_interval = poll_interval
        self._stdout = stdout or sys.stdout
        self._stderr = stderr or sys.stderr
        self._log = logger or logging.getLogger(__name__)

    def deploy(
        self, opts: DeployContractsOpts, cancel: Optional[threading.Event] = None
    ) -> Addresses:
        """
        Deploy the contract set from a container.

        Raises:
            ImageUnavailableError: If the image is missing and cannot be pulled
            ToolchainExitError: If the container exits with a non-zero status
            ArtifactNotFoundError: If the addresses file was not produced
            OperationCancelledError: If cancelled while the container runs
        """
        cancel = cancel or threading.Event()
        self.ensure_image()

        with tempfile.TemporaryDirectory(prefix="rollup-deployer-") as tmp:
            self._log.info("writing deployment state to temporary file")
            state_path = Path(tmp) / "infile.json"
            write_deployment_state(state_path, opts.state)

            data = self._run_and_extract(
                environment={
                    ENV_DEPLOY_RPC_URL: opts.l1_rpc_url,
                    ENV_DEPLOY_PRIVATE_KEY: opts.private_key_hex,
                    ENV_DEPLOY_STATE_PATH: CONTAINER_STATE_PATH,
                },
                mounts={CONTAINER_STATE_PATH: state_path},
                command=None,
                artifact=posixpath.join(CONTRACTS_WORKDIR, ADDRESSES_ARTIFACT),
                cancel=cancel,
            )

        self._log.info("contracts deployed, decoding addresses file")
        return parse_addresses(data)

    def generate_allocs(
        self, opts: GenerateAllocsOpts, cancel: Optional[threading.Event] = None
    ) -> bytes:
        """
        Produce the L2 allocation dump from a container.

        Raises:
            MissingPrerequisiteError: If addresses or deploy config are absent
            ImageUnavailableError: If the image is missing and cannot be pulled
            ToolchainExitError: If the container exits with a non-zero status
            ArtifactNotFoundError: If the allocation dump was not produced
            OperationCancelledError: If cancelled while the container runs
        """
        cancel = cancel or threading.Event()
        _require_genesis_inputs(opts.state)
        self.ensure_image()

        with tempfile.TemporaryDirectory(prefix="rollup-deployer-") as tmp:
            self._log.info("writing addresses and deploy config to temporary files")
            addresses_path, deploy_config_path = _write_genesis_inputs(opts.state, Path(tmp))

            return self._run_and_extract(
                environment={
                    ENV_CONTRACT_ADDRESSES_PATH: CONTAINER_ADDRESSES_PATH,
                    ENV_DEPLOY_CONFIG_PATH: CONTAINER_DEPLOY_CONFIG_PATH,
                },
                mounts={
                    CONTAINER_ADDRESSES_PATH: addresses_path,
                    CONTAINER_DEPLOY_CONFIG_PATH: deploy_config_path,
                },
                command=_allocs_command(opts.l2_chain_id),
                artifact=posixpath.join(CONTRACTS_WORKDIR, _allocs_artifact(opts.l2_chain_id)),
                cancel=cancel,
            )

    def ensure_image(self) -> None:
        """
        Pull the toolchain image unless it is present locally.

        Raises:
            ImageUnavailableError: If the image cannot be inspected or pulled
        """
        try:
            self._client.images.get(self.image)
            return
        except ImageNotFound:
            self._log.info("contracts image %s does not exist locally, pulling", self.image)
        except (APIError, requests.RequestException) as e:
            raise ImageUnavailableError(f"failed to check if image exists: {e}") from e

        try:
            self._client.images.pull(self.image)
        except (APIError, requests.RequestException) as e:
            raise ImageUnavailableError(f"failed to pull image {self.image}: {e}") from e

    def _run_and_extract(
        self,
        environment: Dict[str, str],
        mounts: Dict[str, Path],
        command: Optional[List[str]],
        artifact: str,
        cancel: threading.Event,
    ) -> bytes:
        self._log.info("creating contracts container")
        try:
            container = self._client.containers.create(
                self.image,
                command=command,
                environment=environment,
                mounts=[
                    Mount(target, str(source), type="bind", read_only=True)
                    for target, source in mounts.items()
                ],
            )
        except (APIError, requests.RequestException) as e:
            raise BackendError(f"failed to create container: {e}") from e

        try:
            self._run_container(container, cancel)
            self._log.info("reading %s from container", posixpath.basename(artifact))
            return self._read_file(container, artifact)
        finally:
            try:
                container.remove(force=True)
            except (APIError, requests.RequestException) as e:
                self._log.warning("failed to remove container %s: %s", container.id, e)

    def _run_container(self, container, cancel: threading.Event) -> None:
        self._log.info("starting container %s", container.id)
        try:
            container.start()
        except (APIError, requests.RequestException) as e:
            raise BackendError(f"failed to start container: {e}") from e

        streamer = threading.Thread(
            target=self._stream_logs, args=(container,), name="container-logs", daemon=True
        )
        streamer.start()
        try:
            self._await_exit(container, cancel)
        finally:
            streamer.join(timeout=5)
        self._log.info("container %s complete", container.id)

    def _stream_logs(self, container) -> None:
        try:
            stream = container.attach(stdout=True, stderr=True, stream=True, logs=True, demux=True)
            for out, err in stream:
                if out:
                    self._stdout.write(out.decode("utf-8", errors="replace"))
                    self._stdout.flush()
                if err:
                    self._stderr.write(err.decode("utf-8", errors="replace"))
                    self._stderr.flush()
        except (DockerException, requests.RequestException, ValueError) as e:
            self._log.error("error streaming logs from container %s: %s", container.id, e)

    def _await_exit(self, container, cancel: threading.Event) -> None:
        try:
            while True:
                if cancel.wait(self._poll_interval):
                    self._stop(container)
                    raise OperationCancelledError(f"container {container.id} stopped on cancellation")
                container.reload()
                if container.status not in ("created", "running", "restarting"):
                    break
            result = container.wait()
        except (APIError, requests.RequestException) as e:
            raise BackendError(f"error awaiting container: {e}") from e

        error = result.get("Error")
        if error and error.get("Message"):
            raise BackendError(f"error in container: {error['Message']}")

        status = result.get("StatusCode", -1)
        if status != 0:
            raise ToolchainExitError(f"container exited with status {status}", status)

    def _stop(self, container) -> None:
        self._log.info("context cancelled, stopping container %s", container.id)
        try:
            container.stop(timeout=self._stop_timeout)
            # Drain the exit so the container is not left behind running
            container.wait()
        except (APIError, requests.RequestException) as e:
            self._log.error("error stopping container %s: %s", container.id, e)

    def _read_file(self, container, path: str) -> bytes:
        try:
            chunks, _ = container.get_archive(path)
            archive = io.BytesIO(b"".join(chunks))
        except NotFound as e:
            raise ArtifactNotFoundError(f"{path} not found in container") from e
        except (APIError, requests.RequestException) as e:
            raise BackendError(f"failed to copy {path} from container: {e}") from e

        name = posixpath.basename(path)
        try:
            with tarfile.open(fileobj=archive, mode="r") as tar:
                for member in tar:
                    if member.isfile() and member.name == name:
                        f = tar.extractfile(member)
                        return f.read()
        except tarfile.TarError as e:
            raise BackendError(f"failed to read tar stream: {e}") from e

        raise ArtifactNotFoundError(f"{name} not found in tar stream")


class LocalBackend:
    """Runs the contracts toolchain as a local subprocess from a monorepo checkout."""

    def __init__(
        self,
        monorepo_dir: Union[Path, str],
        poll_interval: float = 0.1,
        stdout: Optional[IO[str]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the backend.

        Args:
            monorepo_dir: Root of the monorepo holding packages/contracts-bedrock
            poll_interval: Seconds between process status polls
            stdout: Stream receiving combined process output (defaults to sys.stdout)
            logger: Logger to use (defaults to the module logger)
        """
        self.monorepo_dir = Path(monorepo_dir).absolute()
        self.contracts_dir = self.monorepo_dir.joinpath(*CONTRACTS_PACKAGE_DIR)
        self._poll_interval = poll_interval
        self._stdout = stdout or sys.stdout
        self._log = logger or logging.getLogger(__name__)

    def deploy(
        self, opts: DeployContractsOpts, cancel: Optional[threading.Event] = None
    ) -> Addresses:
        """
        Deploy the contract set by running the deploy script.

        Raises:
            BackendError: If the toolchain directory is missing or the script cannot start
            ToolchainExitError: If the script exits with a non-zero status
            ArtifactNotFoundError: If the addresses file was not produced
            OperationCancelledError: If cancelled while the script runs
        """
        cancel = cancel or threading.Event()
        artifact = self.contracts_dir / ADDRESSES_ARTIFACT

        with tempfile.TemporaryDirectory(prefix="rollup-deployer-") as tmp:
            self._log.info("writing deployment state to temporary file")
            state_path = Path(tmp) / "infile.json"
            write_deployment_state(state_path, opts.state)

            self._run(
                ["bash", DEPLOY_SCRIPT],
                {
                    ENV_DEPLOY_RPC_URL: opts.l1_rpc_url,
                    ENV_DEPLOY_PRIVATE_KEY: opts.private_key_hex,
                    ENV_DEPLOY_STATE_PATH: str(state_path),
                },
                artifact,
                cancel,
            )

        self._log.info("contracts deployed, decoding addresses file")
        return parse_addresses(self._read_file(artifact))

    def generate_allocs(
        self, opts: GenerateAllocsOpts, cancel: Optional[threading.Event] = None
    ) -> bytes:
        """
        Produce the L2 allocation dump by running the L2 genesis forge script.

        Raises:
            MissingPrerequisiteError: If addresses or deploy config are absent
            BackendError: If the toolchain directory is missing or forge cannot start
            ToolchainExitError: If forge exits with a non-zero status
            ArtifactNotFoundError: If the allocation dump was not produced
            OperationCancelledError: If cancelled while forge runs
        """
        cancel = cancel or threading.Event()
        _require_genesis_inputs(opts.state)
        artifact = self.contracts_dir / _allocs_artifact(opts.l2_chain_id)

        with tempfile.TemporaryDirectory(prefix="rollup-deployer-") as tmp:
            self._log.info("writing addresses and deploy config to temporary files")
            addresses_path, deploy_config_path = _write_genesis_inputs(opts.state, Path(tmp))

            self._run(
                _allocs_command(opts.l2_chain_id),
                {
                    ENV_CONTRACT_ADDRESSES_PATH: str(addresses_path),
                    ENV_DEPLOY_CONFIG_PATH: str(deploy_config_path),
                },
                artifact,
                cancel,
            )

        return self._read_file(artifact)

    def _run(
        self,
        command: List[str],
        extra_env: Dict[str, str],
        artifact: Path,
        cancel: threading.Event,
    ) -> None:
        if not self.contracts_dir.is_dir():
            raise BackendError(f"contracts directory not found: {self.contracts_dir}")

        # A leftover artifact from an earlier run must not be mistaken for output
        if artifact.exists():
            self._log.info("removing stale artifact %s", artifact)
            artifact.unlink()

        env = os.environ.copy()
        env.update(extra_env)

        self._log.info("running %s in %s", " ".join(command[:2]), self.contracts_dir)
        try:
            proc = subprocess.Popen(
                command,
                cwd=self.contracts_dir,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
            )
        except OSError as e:
            raise BackendError(f"failed to start {command[0]}: {e}") from e

        streamer = threading.Thread(
            target=self._stream_output, args=(proc.stdout,), name="toolchain-output", daemon=True
        )
        streamer.start()
        try:
            while proc.poll() is None:
                if cancel.wait(self._poll_interval):
                    self._log.info("context cancelled, killing %s (pid %d)", command[0], proc.pid)
                    proc.kill()
                    proc.wait()
                    raise OperationCancelledError(f"{command[0]} killed on cancellation")
        finally:
            streamer.join(timeout=5)
            proc.stdout.close()

        if proc.returncode != 0:
            raise ToolchainExitError(
                f"{command[0]} exited with status {proc.returncode}", proc.returncode
            )

    def _stream_output(self, pipe: IO[str]) -> None:
        try:
            for line in pipe:
                self._stdout.write(line)
                self._stdout.flush()
        except (OSError, ValueError) as e:
            self._log.error("error streaming toolchain output: %s", e)

    def _read_file(self, path: Path) -> bytes:
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise ArtifactNotFoundError(f"{path} not found after toolchain run") from e


def new_backend(
    kind: str,
    image: str = CONTRACTS_IMAGE,
    monorepo_dir: Optional[Union[Path, str]] = None,
    logger: Optional[logging.Logger] = None,
) -> ContractsBackend:
    """
    Create an execution backend by name.

    Args:
        kind: "docker" or "local"
        image: Toolchain image (docker backend)
        monorepo_dir: Monorepo checkout (local backend)
        logger: Logger handed to the backend

    Raises:
        ValueError: If kind is unknown or local backend lacks monorepo_dir
        BackendError: If the docker client cannot be created
    """
    if kind == BACKEND_DOCKER:
        return DockerBackend(image=image, logger=logger)
    if kind == BACKEND_LOCAL:
        if not monorepo_dir:
            raise ValueError("monorepo directory must be specified for the local backend")
        return LocalBackend(monorepo_dir, logger=logger)
    raise ValueError(f"unknown backend {kind!r}, expected one of {', '.join(BACKENDS)}")
