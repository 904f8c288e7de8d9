"""Shared pytest fixtures for rollup-deployer tests."""

import json
from dataclasses import fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest
import responses

from rollup_deployer.backends import DeployContractsOpts, GenerateAllocsOpts
from rollup_deployer.configurator import batch_inbox_address
from rollup_deployer.constants import CREATE2_DEPLOYER_ADDRESS
from rollup_deployer.deploy_config import DeployConfig
from rollup_deployer.keygen import MnemonicKeyGenerator
from rollup_deployer.parsers import parse_addresses
from rollup_deployer.rpc import RPCClient
from rollup_deployer.types import Addresses, ChainIntent

RPC_URL = "http://localhost:8545"
TEST_MNEMONIC = "test test test test test test test test test test test junk"
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcbb5fa7d8f8a2ff80"

# Runtime code of the deterministic deployment proxy (69 bytes)
CREATE2_DEPLOYER_CODE = (
    "0x7fffffffffffffffffffffffffffffffffffffffffffffffffffffffffffffffe0"
    "3601600081602082378035828234f58015156039578182fd5b8082525050506014600cf3"
)


def make_block(number: int, timestamp: int, tag: str) -> Dict[str, Any]:
    """Build an eth_getBlockByNumber style result with a recognizable hash."""
    return {
        "hash": "0x" + tag * 32,
        "number": hex(number),
        "parentHash": "0x" + "00" * 31 + f"{number - 1:02x}"[-2:],
        "timestamp": hex(timestamp),
    }


class FakeL1Node:
    """
    In-memory anchor chain answering JSON-RPC requests routed by responses.

    Blocks are indexed by hash and by canonical number; eth_getCode answers
    from the code map; a submitted transaction gets its receipt after
    receipt_delay polls.
    """

    def __init__(self):
        self.head: Optional[Dict[str, Any]] = None
        self.by_hash: Dict[str, Dict[str, Any]] = {}
        self.canonical: Dict[int, Dict[str, Any]] = {}
        self.code: Dict[str, str] = {}
        self.sent: List[str] = []
        self.calls: List[str] = []
        self.receipt_status = "0x1"
        self.receipt_delay = 0
        self._receipt_polls = 0

    def add_block(self, block: Dict[str, Any], canonical: bool = True, head: bool = True) -> None:
        self.by_hash[block["hash"]] = block
        if canonical:
            self.canonical[int(block["number"], 16)] = block
        if head:
            self.head = block

    def deploy_create2(self) -> None:
        self.code[CREATE2_DEPLOYER_ADDRESS.lower()] = CREATE2_DEPLOYER_CODE

    def methods(self, name: str) -> int:
        return self.calls.count(name)

    def _dispatch(self, method: str, params: List[Any]) -> Any:
        if method == "eth_chainId":
            return "0x1"
        if method == "eth_getBlockByNumber":
            if params[0] == "latest":
                return self.head
            return self.canonical.get(int(params[0], 16))
        if method == "eth_getBlockByHash":
            return self.by_hash.get(params[0])
        if method == "eth_getCode":
            return self.code.get(params[0].lower(), "0x")
        if method == "eth_sendRawTransaction":
            self.sent.append(params[0])
            return "0x" + "cd" * 32
        if method == "eth_getTransactionReceipt":
            self._receipt_polls += 1
            if self._receipt_polls <= self.receipt_delay:
                return None
            if self.receipt_status == "0x1":
                self.deploy_create2()
            return {"transactionHash": params[0], "status": self.receipt_status, "blockNumber": "0x65"}
        raise KeyError(method)

    def handle(self, request):
        body = json.loads(request.body)
        self.calls.append(body["method"])
        try:
            result = self._dispatch(body["method"], body["params"])
            payload = {"jsonrpc": "2.0", "id": body["id"], "result": result}
        except KeyError:
            payload = {
                "jsonrpc": "2.0",
                "id": body["id"],
                "error": {"code": -32601, "message": "method not found"},
            }
        return (200, {}, json.dumps(payload))


class FakeBackend:
    """Execution backend returning canned artifacts and recording its inputs."""

    def __init__(self, addresses: bytes, allocs: bytes):
        self._addresses = addresses
        self._allocs = allocs
        self.deploy_calls: List[DeployContractsOpts] = []
        self.alloc_calls: List[GenerateAllocsOpts] = []

    def deploy(self, opts: DeployContractsOpts, cancel=None) -> Addresses:
        self.deploy_calls.append(opts)
        return parse_addresses(self._addresses)

    def generate_allocs(self, opts: GenerateAllocsOpts, cancel=None) -> bytes:
        self.alloc_calls.append(opts)
        return self._allocs


@pytest.fixture
def rpc_url() -> str:
    return RPC_URL


@pytest.fixture
def mnemonic() -> str:
    return TEST_MNEMONIC


@pytest.fixture
def private_key() -> str:
    return TEST_PRIVATE_KEY


@pytest.fixture(scope="session")
def keygen() -> MnemonicKeyGenerator:
    """Shared key generator; derivation results are cached per path."""
    return MnemonicKeyGenerator(TEST_MNEMONIC)


@pytest.fixture
def l1_head() -> Dict[str, Any]:
    return make_block(100, 1_700_000_000, "ab")


@pytest.fixture
def fake_l1(l1_head: Dict[str, Any]) -> FakeL1Node:
    """Fake anchor chain with one head block, served at RPC_URL."""
    node = FakeL1Node()
    node.add_block(l1_head)
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        rsps.add_callback(
            responses.POST, RPC_URL, callback=node.handle, content_type="application/json"
        )
        yield node


@pytest.fixture
def rpc(fake_l1: FakeL1Node) -> RPCClient:
    return RPCClient(RPC_URL)


@pytest.fixture
def intent() -> ChainIntent:
    return ChainIntent(l1_chain_id=1, l2_chain_id=42)


@pytest.fixture
def addresses_json() -> Dict[str, str]:
    """Deployment record with a distinct non-zero address for every contract."""
    result = {
        f.metadata["json"]: "0x" + f"{0x1000 + i:040x}"
        for i, f in enumerate(fields(Addresses))
    }
    # Bookkeeping entries the toolchain writes alongside the named set
    result["Create2Deployer"] = "0x" + "99" * 20
    return result


@pytest.fixture
def allocs_json() -> Dict[str, Any]:
    """Small forge state dump with a predeploy-style account and a funded EOA."""
    return {
        "0x4200000000000000000000000000000000000015": {
            "balance": "0x0",
            "nonce": "0x0",
            "code": "0x6080604052",
            "storage": {
                "0x0": "0x1",
                "0x0000000000000000000000000000000000000000000000000000000000000001": "0x0",
            },
        },
        "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266": {
            "balance": "0x21e19e0c9bab2400000",
            "nonce": "0x0",
            "code": "0x",
            "storage": {},
        },
    }


@pytest.fixture
def fake_backend(addresses_json: Dict[str, str], allocs_json: Dict[str, Any]) -> FakeBackend:
    return FakeBackend(
        json.dumps(addresses_json).encode(), json.dumps(allocs_json).encode()
    )


@pytest.fixture
def write_json(tmp_path: Path) -> Callable[[str, Any], Path]:
    """Write a JSON document under tmp_path and return its path."""

    def _write(name: str, data: Any) -> Path:
        path = tmp_path / name
        path.write_text(json.dumps(data, indent=2))
        return path

    return _write


@pytest.fixture
def deploy_config() -> DeployConfig:
    """Validated deploy config for chain 42 anchored on the l1_head block."""
    owner = "0x1111111111111111111111111111111111111111"
    return DeployConfig(
        l1_chain_id=1,
        l2_chain_id=42,
        l2_block_time=2,
        finalization_period_seconds=12,
        max_sequencer_drift=600,
        sequencer_window_size=3600,
        channel_timeout=300,
        p2p_sequencer_address=owner,
        batch_inbox_address=batch_inbox_address(42),
        batch_sender_address="0x2222222222222222222222222222222222222222",
        l1_starting_block_tag="0x" + "ab" * 32,
        l2_output_oracle_submission_interval=10,
        l2_output_oracle_proposer=owner,
        l2_output_oracle_challenger=owner,
        proxy_admin_owner=owner,
        final_system_owner=owner,
        superchain_config_guardian=owner,
        base_fee_vault_recipient=owner,
        l1_fee_vault_recipient=owner,
        sequencer_fee_vault_recipient=owner,
        l2_genesis_block_gas_limit=30_000_000,
        l2_genesis_block_base_fee_per_gas=1_000_000_000,
        eip1559_denominator=50,
        eip1559_denominator_canyon=250,
        eip1559_elasticity=6,
        gas_price_oracle_blob_base_fee_scalar=1_000_000,
    )


@pytest.fixture
def block_factory() -> Callable[[int, int, str], Dict[str, Any]]:
    return make_block
