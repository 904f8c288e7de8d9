"""L2 genesis block construction for rollup-deployer library."""

import gzip
import json
import dataclasses
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import rlp
from eth_utils import keccak, to_checksum_address
from trie import HexaryTrie

from .constants import GENESIS_EXTRA_DATA, L2_FORKS, SEQUENCER_FEE_VAULT_ADDRESS, ZERO_HASH
from .deploy_config import DeployConfig
from .exceptions import ConfigValidationError
from .parsers import AllocAccount
from .types import BlockRef

EMPTY_TRIE_ROOT = keccak(rlp.encode(b""))
EMPTY_UNCLE_HASH = keccak(rlp.encode([]))
EMPTY_CODE_HASH = keccak(b"")

# Pre-merge forks activated at block 0 on every OP-style L2
_GENESIS_BLOCK_FORKS = (
    "homesteadBlock",
    "eip150Block",
    "eip155Block",
    "eip158Block",
    "byzantiumBlock",
    "constantinopleBlock",
    "petersburgBlock",
    "istanbulBlock",
    "muirGlacierBlock",
    "berlinBlock",
    "londonBlock",
    "arrowGlacierBlock",
    "grayGlacierBlock",
    "mergeNetsplitBlock",
    "bedrockBlock",
)


@dataclass(frozen=True)
class BlockHeader:
    """
    Execution block header in RLP field order.

    The trailing fields belong to later upgrades and are left out of the
    encoding when None: base_fee from London, withdrawals_root from Shanghai
    and the blob fields plus parent_beacon_root from Cancun.
    """

    parent_hash: bytes
    uncles_hash: bytes
    coinbase: bytes
    state_root: bytes
    transactions_root: bytes
    receipts_root: bytes
    logs_bloom: bytes
    difficulty: int
    number: int
    gas_limit: int
    gas_used: int
    timestamp: int
    extra_data: bytes
    mix_hash: bytes
    nonce: bytes
    base_fee: Optional[int] = None
    withdrawals_root: Optional[bytes] = None
    blob_gas_used: Optional[int] = None
    excess_blob_gas: Optional[int] = None
    parent_beacon_root: Optional[bytes] = None

    def fields(self) -> List[Any]:
        values = [getattr(self, f.name) for f in dataclasses.fields(self)]
        while values[-1] is None:
            values.pop()
        return values

    def hash(self) -> bytes:
        return keccak(rlp.encode(self.fields()))


@dataclass(frozen=True)
class L2Genesis:
    """Built L2 genesis: the geth-format document plus its block identity."""

    document: Dict[str, Any]
    block_hash: str
    number: int
    state_root: str

    @property
    def chain_id(self) -> int:
        return self.document["config"]["chainId"]


def state_root(allocs: Dict[str, AllocAccount]) -> bytes:
    """
    Compute the Merkle-Patricia state root of an allocation set.

    Args:
        allocs: Mapping of address -> account state

    Returns:
        32-byte state root
    """
    accounts = HexaryTrie(db={})
    for address, account in allocs.items():
        storage = HexaryTrie(db={})
        for slot, value in account.storage.items():
            word = int.from_bytes(value, "big")
            if word == 0:
                continue
            storage.set(keccak(slot), rlp.encode(word))

        code_hash = keccak(account.code) if account.code else EMPTY_CODE_HASH
        leaf = rlp.encode([account.nonce, account.balance, storage.root_hash, code_hash])
        accounts.set(keccak(_address_bytes(address)), leaf)

    return accounts.root_hash


def _address_bytes(address: str) -> bytes:
    return bytes.fromhex(address[2:] if address.startswith("0x") else address)


def _fork_times(config: DeployConfig, genesis_time: int) -> Dict[str, int]:
    times = {}
    for fork in L2_FORKS:
        offset = config.fork_time_offset(fork)
        if offset is not None:
            times[fork] = genesis_time + offset
    return times


def _chain_config(config: DeployConfig, fork_times: Dict[str, int]) -> Dict[str, Any]:
    chain_config: Dict[str, Any] = {"chainId": config.l2_chain_id}
    for name in _GENESIS_BLOCK_FORKS:
        chain_config[name] = 0

    # L1 upgrade names map onto the OP forks that carried them
    if "canyon" in fork_times:
        chain_config["shanghaiTime"] = fork_times["canyon"]
    if "ecotone" in fork_times:
        chain_config["cancunTime"] = fork_times["ecotone"]
    for fork, value in fork_times.items():
        chain_config[f"{fork}Time"] = value

    chain_config["terminalTotalDifficulty"] = 0
    chain_config["terminalTotalDifficultyPassed"] = True
    chain_config["optimism"] = {
        "eip1559Elasticity": config.eip1559_elasticity,
        "eip1559Denominator": config.eip1559_denominator,
        "eip1559DenominatorCanyon": config.eip1559_denominator_canyon,
    }
    return chain_config


def _alloc_document(allocs: Dict[str, AllocAccount]) -> Dict[str, Any]:
    result = {}
    for address in sorted(allocs, key=str.lower):
        account = allocs[address]
        entry: Dict[str, Any] = {"balance": hex(account.balance)}
        if account.nonce:
            entry["nonce"] = hex(account.nonce)
        if account.code:
            entry["code"] = "0x" + account.code.hex()
        if account.storage:
            entry["storage"] = {
                "0x" + slot.hex(): "0x" + value.hex()
                for slot, value in sorted(account.storage.items())
            }
        result[address.lower()[2:]] = entry
    return result


def _genesis_header(
    config: DeployConfig,
    root: bytes,
    genesis_time: int,
    fork_times: Dict[str, int],
) -> BlockHeader:
    header = BlockHeader(
        parent_hash=bytes(32),
        uncles_hash=EMPTY_UNCLE_HASH,
        coinbase=_address_bytes(SEQUENCER_FEE_VAULT_ADDRESS),
        state_root=root,
        transactions_root=EMPTY_TRIE_ROOT,
        receipts_root=EMPTY_TRIE_ROOT,
        logs_bloom=bytes(256),
        difficulty=0,
        number=config.l2_genesis_block_number,
        gas_limit=config.l2_genesis_block_gas_limit,
        gas_used=0,
        timestamp=genesis_time,
        extra_data=GENESIS_EXTRA_DATA,
        mix_hash=bytes(32),
        nonce=bytes(8),
        base_fee=config.l2_genesis_block_base_fee_per_gas,
    )
    if fork_times.get("canyon", genesis_time + 1) <= genesis_time:
        header = dataclasses.replace(header, withdrawals_root=EMPTY_TRIE_ROOT)
    if fork_times.get("ecotone", genesis_time + 1) <= genesis_time:
        header = dataclasses.replace(
            header, blob_gas_used=0, excess_blob_gas=0, parent_beacon_root=bytes(32)
        )
    return header


def build_l2_genesis(
    config: DeployConfig, allocs: Dict[str, AllocAccount], l1_block: BlockRef
) -> L2Genesis:
    """
    Build the L2 genesis block on top of an anchor chain block.

    The genesis timestamp is the anchor block's timestamp; fork offsets from
    the deploy config are added to it to get absolute activation times.

    Args:
        config: Validated deploy config
        allocs: Decoded allocation dump
        l1_block: Anchor block the rollup starts from

    Returns:
        L2Genesis with the geth-format genesis document and its block hash

    Raises:
        ConfigValidationError: If the deploy config lacks genesis parameters
    """
    if config.l2_genesis_block_base_fee_per_gas is None:
        raise ConfigValidationError("l2GenesisBlockBaseFeePerGas must be set")
    if not config.l2_genesis_block_gas_limit:
        raise ConfigValidationError("l2GenesisBlockGasLimit must be set")

    genesis_time = l1_block.timestamp
    fork_times = _fork_times(config, genesis_time)
    root = state_root(allocs)
    block_hash = _genesis_header(config, root, genesis_time, fork_times).hash()

    document = {
        "config": _chain_config(config, fork_times),
        "nonce": "0x0",
        "timestamp": hex(genesis_time),
        "extraData": "0x" + GENESIS_EXTRA_DATA.hex(),
        "gasLimit": hex(config.l2_genesis_block_gas_limit),
        "difficulty": "0x0",
        "mixHash": ZERO_HASH,
        "coinbase": to_checksum_address(SEQUENCER_FEE_VAULT_ADDRESS),
        "alloc": _alloc_document(allocs),
        "number": hex(config.l2_genesis_block_number),
        "gasUsed": "0x0",
        "parentHash": ZERO_HASH,
        "baseFeePerGas": hex(config.l2_genesis_block_base_fee_per_gas),
    }

    return L2Genesis(
        document=document,
        block_hash="0x" + block_hash.hex(),
        number=config.l2_genesis_block_number,
        state_root="0x" + root.hex(),
    )


def compress_genesis(genesis: L2Genesis) -> bytes:
    """Serialize a genesis document to gzip-compressed JSON."""
    raw = json.dumps(genesis.document).encode("utf-8") + b"\n"
    return gzip.compress(raw, mtime=0)


def decompress_genesis(blob: bytes) -> Dict[str, Any]:
    """
    Decode a genesis blob produced by compress_genesis().

    Raises:
        ValueError: If the blob is not gzip-compressed JSON
    """
    try:
        return json.loads(gzip.decompress(blob))
    except (OSError, EOFError) as e:
        raise ValueError(f"genesis blob is not gzip data: {e}") from e
