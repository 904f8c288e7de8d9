"""Anchor chain JSON-RPC client for rollup-deployer library."""

import itertools
import logging
from typing import Any, Dict, List, Optional, Union

import requests

from .exceptions import RPCConnectionError, RPCResponseError
from .types import BlockRef

BlockTag = Union[int, str]


def _block_param(block: Optional[BlockTag]) -> str:
    if block is None:
        return "latest"
    if isinstance(block, int):
        return hex(block)
    return block


class RPCClient:
    """Minimal read/write JSON-RPC client for the anchor chain."""

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the client.

        Args:
            rpc_url: HTTP(S) JSON-RPC endpoint
            timeout: Per-request timeout in seconds
            session: Optional requests session to reuse
            logger: Logger to use (defaults to the module logger)
        """
        self.rpc_url = rpc_url
        self._timeout = timeout
        self._session = session or requests.Session()
        self._log = logger or logging.getLogger(__name__)
        self._ids = itertools.count(1)

    def call(self, method: str, params: List[Any]) -> Any:
        """
        Perform a single JSON-RPC request.

        Args:
            method: RPC method name
            params: Positional parameters

        Returns:
            The "result" member of the response (may be None)

        Raises:
            RPCConnectionError: If a network or HTTP error occurs
            RPCResponseError: If the RPC returns an error object or no result
        """
        payload = {"jsonrpc": "2.0", "method": method, "params": params, "id": next(self._ids)}
        self._log.debug("rpc call %s", method)
        try:
            response = self._session.post(self.rpc_url, json=payload, timeout=self._timeout)
        except requests.RequestException as e:
            raise RPCConnectionError(f"Network error during {method}: {e}") from e

        # Check for HTTP errors
        if response.status_code != 200:
            raise RPCConnectionError(
                f"{method} failed with HTTP status {response.status_code}"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise RPCResponseError(f"{method} returned a non-JSON body") from e

        # Check for RPC errors
        if "error" in body:
            raise RPCResponseError(f"{method} RPC error: {body['error']}")
        if "result" not in body:
            raise RPCResponseError(f"{method} response has no result")

        return body["result"]

    def chain_id(self) -> int:
        return int(self.call("eth_chainId", []), 16)

    def block_by_number(self, block: Optional[BlockTag] = None) -> BlockRef:
        """
        Fetch a block header by number (defaults to the current head).

        Raises:
            RPCResponseError: If the block does not exist
        """
        param = _block_param(block)
        result = self.call("eth_getBlockByNumber", [param, False])
        if result is None:
            raise RPCResponseError(f"block {param} not found")
        return self._block_ref(result)

    def block_by_hash(self, block_hash: str) -> BlockRef:
        """
        Fetch a block header by hash.

        Raises:
            RPCResponseError: If the block does not exist
        """
        result = self.call("eth_getBlockByHash", [block_hash, False])
        if result is None:
            raise RPCResponseError(f"block {block_hash} not found")
        return self._block_ref(result)

    def get_code(self, address: str, block: Optional[BlockTag] = None) -> bytes:
        result = self.call("eth_getCode", [address, _block_param(block)])
        return bytes.fromhex(result[2:] if result.startswith("0x") else result)

    def send_raw_transaction(self, raw_tx: str) -> str:
        """
        Submit a signed transaction.

        Returns:
            Transaction hash reported by the node
        """
        return self.call("eth_sendRawTransaction", [raw_tx])

    def transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Get a transaction receipt, or None while the transaction is pending."""
        return self.call("eth_getTransactionReceipt", [tx_hash])

    @staticmethod
    def _block_ref(result: Dict[str, Any]) -> BlockRef:
        try:
            return BlockRef.from_rpc(result)
        except (KeyError, TypeError, ValueError) as e:
            raise RPCResponseError(f"malformed block in RPC response: {e}") from e
