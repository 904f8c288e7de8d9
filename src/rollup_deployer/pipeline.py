"""Main API for rollup-deployer library."""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional

from eth_account import Account
from eth_utils import is_hex

from .backends import (
    BACKEND_DOCKER,
    BACKEND_LOCAL,
    BACKENDS,
    ContractsBackend,
    DeployContractsOpts,
    GenerateAllocsOpts,
    new_backend,
)
from .bootstrap import BootstrapChecker
from .configurator import new_deploy_config
from .constants import BOOTSTRAP_POLL_INTERVAL, CONTRACTS_IMAGE
from .exceptions import (
    AnchorBlockMismatchError,
    ConfigValidationError,
    DeployerError,
    MissingPrerequisiteError,
    OperationCancelledError,
    StageError,
)
from .genesis import build_l2_genesis, compress_genesis
from .keygen import MnemonicKeyGenerator
from .parsers import parse_forge_allocs
from .rollup import derive_rollup_config
from .rpc import RPCClient
from .state import DeploymentState, read_deployment_state, write_deployment_state
from .types import BlockRef, ChainIntent

# Order of the secp256k1 group
_SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


@contextmanager
def _stage(name: str) -> Iterator[None]:
    """Prefix failures raised inside a pipeline stage with the stage name."""
    try:
        yield
    except OperationCancelledError as e:
        raise OperationCancelledError(f"{name}: {e}") from e
    except StageError:
        raise
    except (DeployerError, OSError) as e:
        raise StageError(name, e) from e


def normalize_private_key(private_key: str) -> str:
    """
    Validate a hex-encoded secp256k1 private key.

    Args:
        private_key: 32-byte key as hex, with or without 0x prefix

    Returns:
        Key as 0x-prefixed lowercase hex

    Raises:
        ValueError: If the value is not a valid secp256k1 private key
    """
    key = private_key.strip()
    if not key.startswith("0x"):
        key = "0x" + key
    if len(key) != 66 or not is_hex(key):
        raise ValueError("private key must be 32 bytes of hex")
    if not 0 < int(key, 16) < _SECP256K1_N:
        raise ValueError("private key is outside the secp256k1 range")
    return key.lower()


def _check_backend(backend: str, image: str, monorepo_dir: Optional[str]) -> None:
    if backend not in BACKENDS:
        raise ValueError(f"backend must be one of {', '.join(BACKENDS)}")
    if backend == BACKEND_DOCKER and not image:
        raise ValueError("image must be specified")
    if backend == BACKEND_LOCAL and not monorepo_dir:
        raise ValueError("monorepo-dir must be specified for the local backend")


@dataclass
class InitOpts:
    """Options for writing an initial state document."""

    outfile: str
    l1_chain_id: int
    l2_chain_id: int
    use_fault_proofs: bool = False
    use_alt_da: bool = False
    fund_dev_accounts: bool = False
    overrides: Dict[str, Any] = field(default_factory=dict)

    def check(self) -> None:
        if not self.outfile:
            raise ValueError("outfile must be specified")


@dataclass
class ConfigureOpts:
    """Options for the Configure stage. The outfile defaults to the infile."""

    l1_rpc_url: str
    infile: str
    mnemonic: str
    outfile: str = ""

    def __post_init__(self):
        self.outfile = self.outfile or self.infile

    def check(self) -> None:
        if not self.l1_rpc_url:
            raise ValueError("l1-rpc-url must be specified")
        if not self.infile:
            raise ValueError("infile must be specified")
        if not self.mnemonic:
            raise ValueError("mnemonic must be specified")


@dataclass
class DeployOpts:
    """Options for the Deploy stage. The outfile defaults to the infile."""

    l1_rpc_url: str
    infile: str
    private_key: str
    outfile: str = ""
    backend: str = BACKEND_DOCKER
    image: str = CONTRACTS_IMAGE
    monorepo_dir: Optional[str] = None
    bootstrap_poll_interval: float = BOOTSTRAP_POLL_INTERVAL

    def __post_init__(self):
        self.outfile = self.outfile or self.infile

    def check(self) -> None:
        if not self.l1_rpc_url:
            raise ValueError("l1-rpc-url must be specified")
        if not self.infile:
            raise ValueError("infile must be specified")
        if not self.private_key:
            raise ValueError("private key must be specified")
        try:
            normalize_private_key(self.private_key)
        except ValueError as e:
            raise ValueError(f"failed to parse private key: {e}") from e
        _check_backend(self.backend, self.image, self.monorepo_dir)


@dataclass
class GenesisOpts:
    """
    Options for the Genesis stage. The outfile defaults to the infile.

    verify_anchor re-checks that the anchor block pinned by Configure is still
    canonical before building on it.
    """

    l1_rpc_url: str
    infile: str
    outfile: str = ""
    backend: str = BACKEND_DOCKER
    image: str = CONTRACTS_IMAGE
    monorepo_dir: Optional[str] = None
    verify_anchor: bool = True

    def __post_init__(self):
        self.outfile = self.outfile or self.infile

    def check(self) -> None:
        if not self.l1_rpc_url:
            raise ValueError("l1-rpc-url must be specified")
        if not self.infile:
            raise ValueError("infile must be specified")
        _check_backend(self.backend, self.image, self.monorepo_dir)


@dataclass
class ApplyOpts:
    """Options for running Configure, Deploy and Genesis against one state file."""

    l1_rpc_url: str
    infile: str
    mnemonic: str
    private_key: str
    outfile: str = ""
    backend: str = BACKEND_DOCKER
    image: str = CONTRACTS_IMAGE
    monorepo_dir: Optional[str] = None
    verify_anchor: bool = True
    bootstrap_poll_interval: float = BOOTSTRAP_POLL_INTERVAL

    def __post_init__(self):
        self.outfile = self.outfile or self.infile

    def configure_opts(self) -> ConfigureOpts:
        return ConfigureOpts(
            l1_rpc_url=self.l1_rpc_url,
            infile=self.infile,
            outfile=self.outfile,
            mnemonic=self.mnemonic,
        )

    def deploy_opts(self) -> DeployOpts:
        return DeployOpts(
            l1_rpc_url=self.l1_rpc_url,
            infile=self.outfile,
            outfile=self.outfile,
            private_key=self.private_key,
            backend=self.backend,
            image=self.image,
            monorepo_dir=self.monorepo_dir,
            bootstrap_poll_interval=self.bootstrap_poll_interval,
        )

    def genesis_opts(self) -> GenesisOpts:
        return GenesisOpts(
            l1_rpc_url=self.l1_rpc_url,
            infile=self.outfile,
            outfile=self.outfile,
            backend=self.backend,
            image=self.image,
            monorepo_dir=self.monorepo_dir,
            verify_anchor=self.verify_anchor,
        )

    def check(self) -> None:
        self.configure_opts().check()
        self.deploy_opts().check()
        self.genesis_opts().check()


def init(opts: InitOpts, logger: Optional[logging.Logger] = None) -> DeploymentState:
    """
    Write an initial state document holding only the chain intent.

    Args:
        opts: Init options
        logger: Logger to use (defaults to the module logger)

    Returns:
        The written DeploymentState

    Raises:
        ValueError: If an option is missing
        StageError: If the intent is invalid or the state cannot be written
    """
    opts.check()
    log = logger or logging.getLogger(__name__)

    with _stage("init"):
        intent = ChainIntent(
            l1_chain_id=opts.l1_chain_id,
            l2_chain_id=opts.l2_chain_id,
            use_fault_proofs=opts.use_fault_proofs,
            use_alt_da=opts.use_alt_da,
            fund_dev_accounts=opts.fund_dev_accounts,
            overrides=dict(opts.overrides),
        )
        intent.check()
        state = DeploymentState(intent=intent)
        log.info("writing initial deployment state to %s", opts.outfile)
        write_deployment_state(opts.outfile, state)

    return state


def configure(
    opts: ConfigureOpts,
    rpc: Optional[RPCClient] = None,
    keygen: Optional[MnemonicKeyGenerator] = None,
    logger: Optional[logging.Logger] = None,
) -> DeploymentState:
    """
    Derive the deploy config from the state's intent and persist it.

    Addresses and genesis output from an earlier run were built against the
    previous config and are dropped when it is replaced.

    Args:
        opts: Configure options
        rpc: Anchor chain client (defaults to one built from opts.l1_rpc_url)
        keygen: Role key generator (defaults to one built from opts.mnemonic)
        logger: Logger to use (defaults to the module logger)

    Returns:
        The written DeploymentState

    Raises:
        ValueError: If an option is missing
        StageError: Wrapping any failure of the stage; the outfile is untouched
    """
    opts.check()
    log = logger or logging.getLogger(__name__)

    with _stage("configure"):
        log.info("reading deployment state from %s", opts.infile)
        state = read_deployment_state(opts.infile)

        if keygen is None:
            keygen = MnemonicKeyGenerator(opts.mnemonic, logger=log)
        if rpc is None:
            rpc = RPCClient(opts.l1_rpc_url, logger=log)

        if state.deploy_config is not None:
            log.warning("state already holds a deploy config, it will be replaced")
        if state.addresses is not None or state.genesis_files or state.rollup_configs:
            log.warning("discarding deployed addresses and genesis output built from the previous config")
        state.addresses = None
        state.genesis_files = {}
        state.rollup_configs = {}

        state.deploy_config = new_deploy_config(keygen, rpc, state.intent, logger=log)

        log.info("writing deployment state to %s", opts.outfile)
        write_deployment_state(opts.outfile, state)

    return state


def deploy(
    opts: DeployOpts,
    rpc: Optional[RPCClient] = None,
    backend: Optional[ContractsBackend] = None,
    cancel: Optional[threading.Event] = None,
    logger: Optional[logging.Logger] = None,
) -> DeploymentState:
    """
    Bootstrap the CREATE2 deployer, deploy the contracts and persist their addresses.

    Args:
        opts: Deploy options
        rpc: Anchor chain client (defaults to one built from opts.l1_rpc_url)
        backend: Execution backend (defaults to the one selected by opts.backend)
        cancel: Cancellation signal
        logger: Logger to use (defaults to the module logger)

    Returns:
        The written DeploymentState

    Raises:
        ValueError: If an option is missing or the private key is malformed
        OperationCancelledError: If cancelled; the outfile is untouched
        StageError: Wrapping any failure of the stage; the outfile is untouched
    """
    opts.check()
    log = logger or logging.getLogger(__name__)
    cancel = cancel or threading.Event()
    private_key = normalize_private_key(opts.private_key)

    with _stage("deploy"):
        log.info("reading deployment state from %s", opts.infile)
        state = read_deployment_state(opts.infile)
        if state.deploy_config is None:
            raise MissingPrerequisiteError("no deploy config found in state - run configure first")

        if rpc is None:
            rpc = RPCClient(opts.l1_rpc_url, logger=log)

        checker = BootstrapChecker(rpc, poll_interval=opts.bootstrap_poll_interval, logger=log)
        checker.ensure(cancel)

        if backend is None:
            backend = new_backend(
                opts.backend, image=opts.image, monorepo_dir=opts.monorepo_dir, logger=log
            )

        log.info("deploying contracts from %s", Account.from_key(private_key).address)
        state.addresses = backend.deploy(
            DeployContractsOpts(
                l1_rpc_url=opts.l1_rpc_url,
                state=state,
                private_key_hex=private_key,
            ),
            cancel,
        )

        log.info("writing deployment state to %s", opts.outfile)
        write_deployment_state(opts.outfile, state)

    return state


def _verify_anchor(rpc: RPCClient, anchor: BlockRef) -> None:
    canonical = rpc.block_by_number(anchor.number)
    if canonical.hash != anchor.hash:
        raise AnchorBlockMismatchError(
            f"anchor block {anchor.hash} is no longer canonical at height "
            f"{anchor.number} (found {canonical.hash})"
        )


def genesis(
    opts: GenesisOpts,
    rpc: Optional[RPCClient] = None,
    backend: Optional[ContractsBackend] = None,
    cancel: Optional[threading.Event] = None,
    logger: Optional[logging.Logger] = None,
) -> DeploymentState:
    """
    Build the L2 genesis and rollup config and merge them into the state.

    Args:
        opts: Genesis options
        rpc: Anchor chain client (defaults to one built from opts.l1_rpc_url)
        backend: Execution backend (defaults to the one selected by opts.backend)
        cancel: Cancellation signal
        logger: Logger to use (defaults to the module logger)

    Returns:
        The written DeploymentState

    Raises:
        ValueError: If an option is missing
        OperationCancelledError: If cancelled; the outfile is untouched
        StageError: Wrapping any failure of the stage; the outfile is untouched
    """
    opts.check()
    log = logger or logging.getLogger(__name__)
    cancel = cancel or threading.Event()

    with _stage("genesis"):
        log.info("reading deployment state from %s", opts.infile)
        state = read_deployment_state(opts.infile)
        if state.addresses is None:
            raise MissingPrerequisiteError("no addresses found in state - contracts must be deployed first")
        if state.deploy_config is None:
            raise MissingPrerequisiteError("no deploy config found in state - run configure first")

        config = state.deploy_config
        chain_id = config.l2_chain_id

        if backend is None:
            backend = new_backend(
                opts.backend, image=opts.image, monorepo_dir=opts.monorepo_dir, logger=log
            )

        log.info("generating L2 allocs for chain %d", chain_id)
        alloc_data = backend.generate_allocs(
            GenerateAllocsOpts(l2_chain_id=chain_id, state=state), cancel
        )
        allocs = parse_forge_allocs(alloc_data)

        if rpc is None:
            rpc = RPCClient(opts.l1_rpc_url, logger=log)

        log.info("fetching L2 start block %s on L1", config.l1_starting_block_tag)
        l1_block = rpc.block_by_hash(config.l1_starting_block_tag)
        if opts.verify_anchor:
            _verify_anchor(rpc, l1_block)

        log.info("building L2 genesis")
        l2_genesis = build_l2_genesis(config, allocs, l1_block)
        rollup_config = derive_rollup_config(
            config, state.addresses, l1_block, l2_genesis.block_hash, l2_genesis.number
        )
        try:
            rollup_config.check()
        except ConfigValidationError as e:
            raise ConfigValidationError(f"generated rollup config does not pass validation: {e}") from e

        log.info("L2 genesis block %s (state root %s)", l2_genesis.block_hash, l2_genesis.state_root)
        state.genesis_files[chain_id] = compress_genesis(l2_genesis)
        state.rollup_configs[chain_id] = rollup_config

        log.info("writing deployment state to %s", opts.outfile)
        write_deployment_state(opts.outfile, state)

    return state


def apply(
    opts: ApplyOpts,
    rpc: Optional[RPCClient] = None,
    keygen: Optional[MnemonicKeyGenerator] = None,
    backend: Optional[ContractsBackend] = None,
    cancel: Optional[threading.Event] = None,
    logger: Optional[logging.Logger] = None,
) -> DeploymentState:
    """
    Run Configure, Deploy and Genesis in order.

    Configure reads opts.infile; every stage writes opts.outfile and the
    following stage re-reads it from disk.

    Returns:
        The DeploymentState written by the Genesis stage

    Raises:
        ValueError: If an option is missing
        OperationCancelledError: If cancelled between or during stages
        StageError: Wrapping the failure of the first stage that failed
    """
    opts.check()
    log = logger or logging.getLogger(__name__)
    cancel = cancel or threading.Event()

    configure(opts.configure_opts(), rpc=rpc, keygen=keygen, logger=log)
    if cancel.is_set():
        raise OperationCancelledError("deploy: cancelled before start")
    deploy(opts.deploy_opts(), rpc=rpc, backend=backend, cancel=cancel, logger=log)
    if cancel.is_set():
        raise OperationCancelledError("genesis: cancelled before start")
    return genesis(opts.genesis_opts(), rpc=rpc, backend=backend, cancel=cancel, logger=log)
