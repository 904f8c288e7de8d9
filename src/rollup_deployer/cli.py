"""Command line entry point for rollup-deployer."""

import argparse
import json
import logging
import os
import signal
import sys
import threading
from typing import Any, Dict, List, Optional, Sequence

from . import pipeline
from .backends import BACKEND_DOCKER, BACKENDS
from .constants import CLI_ENV_L1_RPC_URL, CLI_ENV_PREFIX, CONTRACTS_IMAGE
from .exceptions import DeployerError, OperationCancelledError

log = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_CANCELLED = 130


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(f"{CLI_ENV_PREFIX}_{name}", default)


def _parse_override(value: str) -> tuple[str, Any]:
    key, sep, raw = value.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"override must be KEY=VALUE, got {value!r}")
    try:
        return key, json.loads(raw)
    except ValueError:
        return key, raw


def _add_state_args(parser: argparse.ArgumentParser, infile: bool = True) -> None:
    if infile:
        parser.add_argument(
            "--infile",
            default=_env("INFILE"),
            help="Input deployment state file (env: DEPLOYER_INFILE)",
        )
    parser.add_argument(
        "--outfile",
        default=_env("OUTFILE"),
        help="Output deployment state file, defaults to the infile (env: DEPLOYER_OUTFILE)",
    )


def _add_rpc_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--l1-rpc-url",
        default=os.environ.get(CLI_ENV_L1_RPC_URL),
        help="Anchor chain RPC URL (env: L1_RPC_URL)",
    )


def _add_backend_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--backend",
        choices=BACKENDS,
        default=_env("BACKEND", BACKEND_DOCKER),
        help="Contracts toolchain backend (env: DEPLOYER_BACKEND)",
    )
    parser.add_argument(
        "--image",
        default=_env("IMAGE", CONTRACTS_IMAGE),
        help="Contracts toolchain image for the docker backend (env: DEPLOYER_IMAGE)",
    )
    parser.add_argument(
        "--monorepo-dir",
        default=_env("MONOREPO_DIR"),
        help="Monorepo checkout for the local backend (env: DEPLOYER_MONOREPO_DIR)",
    )


def _add_mnemonic_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--mnemonic",
        default=_env("MNEMONIC"),
        help="Seed phrase for role keys (env: DEPLOYER_MNEMONIC)",
    )


def _add_private_key_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--private-key",
        default=_env("PRIVATE_KEY"),
        help="Hex private key of the contracts deployer (env: DEPLOYER_PRIVATE_KEY)",
    )


def _add_verify_anchor_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--no-verify-anchor",
        dest="verify_anchor",
        action="store_false",
        help="Skip the check that the pinned L1 starting block is still canonical",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rollup-deployer",
        description="Provision a rollup chain: configure, deploy contracts, build genesis",
    )
    parser.add_argument(
        "--log-level",
        default=_env("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Logging level (env: DEPLOYER_LOG_LEVEL)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init", help="Write an initial state document from a chain intent")
    init.add_argument("--l1-chain-id", type=int, required=True, help="Anchor chain id")
    init.add_argument("--l2-chain-id", type=int, required=True, help="Rollup chain id")
    init.add_argument("--use-fault-proofs", action="store_true", help="Enable fault proofs")
    init.add_argument("--use-alt-da", action="store_true", help="Enable alternative data availability")
    init.add_argument("--fund-dev-accounts", action="store_true", help="Fund development accounts on L2")
    init.add_argument(
        "--override",
        dest="overrides",
        action="append",
        type=_parse_override,
        default=[],
        metavar="KEY=VALUE",
        help="Deploy config override; VALUE is parsed as JSON when possible (repeatable)",
    )
    _add_state_args(init, infile=False)

    configure = sub.add_parser("configure", help="Derive the deploy config")
    _add_rpc_arg(configure)
    _add_state_args(configure)
    _add_mnemonic_arg(configure)

    deploy = sub.add_parser("deploy", help="Deploy the L1 contracts")
    _add_rpc_arg(deploy)
    _add_state_args(deploy)
    _add_private_key_arg(deploy)
    _add_backend_args(deploy)

    genesis = sub.add_parser("genesis", help="Build the L2 genesis and rollup config")
    _add_rpc_arg(genesis)
    _add_state_args(genesis)
    _add_backend_args(genesis)
    _add_verify_anchor_arg(genesis)

    apply = sub.add_parser("apply", help="Run configure, deploy and genesis in order")
    _add_rpc_arg(apply)
    _add_state_args(apply)
    _add_mnemonic_arg(apply)
    _add_private_key_arg(apply)
    _add_backend_args(apply)
    _add_verify_anchor_arg(apply)

    return parser


def _overrides(pairs: List[tuple[str, Any]]) -> Dict[str, Any]:
    return {key: value for key, value in pairs}


def _run(args: argparse.Namespace, cancel: threading.Event) -> None:
    if args.command == "init":
        pipeline.init(
            pipeline.InitOpts(
                outfile=args.outfile or "",
                l1_chain_id=args.l1_chain_id,
                l2_chain_id=args.l2_chain_id,
                use_fault_proofs=args.use_fault_proofs,
                use_alt_da=args.use_alt_da,
                fund_dev_accounts=args.fund_dev_accounts,
                overrides=_overrides(args.overrides),
            )
        )
        return

    if args.command == "configure":
        pipeline.configure(
            pipeline.ConfigureOpts(
                l1_rpc_url=args.l1_rpc_url or "",
                infile=args.infile or "",
                outfile=args.outfile or "",
                mnemonic=args.mnemonic or "",
            )
        )
        return

    if args.command == "deploy":
        pipeline.deploy(
            pipeline.DeployOpts(
                l1_rpc_url=args.l1_rpc_url or "",
                infile=args.infile or "",
                outfile=args.outfile or "",
                private_key=args.private_key or "",
                backend=args.backend,
                image=args.image,
                monorepo_dir=args.monorepo_dir,
            ),
            cancel=cancel,
        )
        return

    if args.command == "genesis":
        pipeline.genesis(
            pipeline.GenesisOpts(
                l1_rpc_url=args.l1_rpc_url or "",
                infile=args.infile or "",
                outfile=args.outfile or "",
                backend=args.backend,
                image=args.image,
                monorepo_dir=args.monorepo_dir,
                verify_anchor=args.verify_anchor,
            ),
            cancel=cancel,
        )
        return

    if args.command == "apply":
        pipeline.apply(
            pipeline.ApplyOpts(
                l1_rpc_url=args.l1_rpc_url or "",
                infile=args.infile or "",
                outfile=args.outfile or "",
                mnemonic=args.mnemonic or "",
                private_key=args.private_key or "",
                backend=args.backend,
                image=args.image,
                monorepo_dir=args.monorepo_dir,
                verify_anchor=args.verify_anchor,
            ),
            cancel=cancel,
        )
        return

    raise AssertionError(f"Unhandled command: {args.command}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    cancel = threading.Event()
    previous = None
    if threading.current_thread() is threading.main_thread():

        def _on_sigint(signum, frame):
            log.warning("interrupt received, cancelling")
            cancel.set()

        previous = signal.signal(signal.SIGINT, _on_sigint)

    try:
        _run(args, cancel)
    except OperationCancelledError as e:
        log.error("cancelled: %s", e)
        return EXIT_CANCELLED
    except (DeployerError, ValueError) as e:
        log.error("%s", e)
        return EXIT_FAILURE
    finally:
        if previous is not None:
            signal.signal(signal.SIGINT, previous)

    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main(sys.argv[1:]))
