"""Deterministic deployer bootstrap for rollup-deployer library."""

import logging
import threading
from typing import Any, Dict, Optional

from .constants import (
    BOOTSTRAP_POLL_INTERVAL,
    CREATE2_DEPLOYER_ADDRESS,
    CREATE2_DEPLOYER_CODE_SIZE,
    CREATE2_DEPLOYER_RAW_TX,
)
from .exceptions import BootstrapError, OperationCancelledError
from .rpc import RPCClient


class BootstrapChecker:
    """Ensures the CREATE2 deployer helper contract exists on the anchor chain."""

    def __init__(
        self,
        rpc: RPCClient,
        poll_interval: float = BOOTSTRAP_POLL_INTERVAL,
        address: str = CREATE2_DEPLOYER_ADDRESS,
        raw_tx: str = CREATE2_DEPLOYER_RAW_TX,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the checker.

        Args:
            rpc: Anchor chain RPC client
            poll_interval: Seconds between receipt polls
            address: Canonical helper contract address
            raw_tx: Pre-signed transaction that deploys the helper
            logger: Logger to use (defaults to the module logger)
        """
        self._rpc = rpc
        self._poll_interval = poll_interval
        self._address = address
        self._raw_tx = raw_tx
        self._log = logger or logging.getLogger(__name__)

    def is_deployed(self) -> bool:
        code = self._rpc.get_code(self._address)
        if code and len(code) != CREATE2_DEPLOYER_CODE_SIZE:
            self._log.warning(
                "unexpected code size %d at %s (expected %d)",
                len(code),
                self._address,
                CREATE2_DEPLOYER_CODE_SIZE,
            )
        return len(code) > 0

    def ensure(self, cancel: Optional[threading.Event] = None) -> Optional[str]:
        """
        Make sure the helper contract is deployed.

        The bootstrap transaction is submitted at most once per call; after
        submission the receipt is polled at a fixed interval until it is
        mined or the call is cancelled.

        Args:
            cancel: Cancellation signal checked between polls

        Returns:
            Hash of the bootstrap transaction, or None if the helper was
            already deployed

        Raises:
            BootstrapError: If the bootstrap transaction reverted
            OperationCancelledError: If cancelled while waiting for the receipt
            RPCError: If the anchor chain cannot be reached
        """
        cancel = cancel or threading.Event()

        if self.is_deployed():
            self._log.info("CREATE2 deployer already deployed at %s", self._address)
            return None

        if cancel.is_set():
            raise OperationCancelledError("bootstrap cancelled before submission")

        self._log.info("CREATE2 deployer missing, submitting bootstrap transaction")
        tx_hash = self._rpc.send_raw_transaction(self._raw_tx)
        self._log.info("bootstrap transaction submitted: %s", tx_hash)

        receipt = self._await_receipt(tx_hash, cancel)
        if int(receipt.get("status", "0x0"), 16) != 1:
            raise BootstrapError(f"bootstrap transaction {tx_hash} reverted")

        self._log.info("CREATE2 deployer deployed in block %s", receipt.get("blockNumber"))
        return tx_hash

    def _await_receipt(self, tx_hash: str, cancel: threading.Event) -> Dict[str, Any]:
        while True:
            receipt = self._rpc.transaction_receipt(tx_hash)
            if receipt is not None:
                return receipt
            self._log.debug("waiting for bootstrap receipt %s", tx_hash)
            if cancel.wait(self._poll_interval):
                raise OperationCancelledError(
                    f"cancelled while waiting for bootstrap transaction {tx_hash}"
                )
