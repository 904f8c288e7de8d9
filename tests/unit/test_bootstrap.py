"""Unit tests for the CREATE2 deployer bootstrap."""

import threading

import pytest

from rollup_deployer.bootstrap import BootstrapChecker
from rollup_deployer.constants import CREATE2_DEPLOYER_RAW_TX
from rollup_deployer.exceptions import BootstrapError, OperationCancelledError


class TestBootstrapChecker:
    """Test the idempotent bootstrap check."""

    def test_noop_when_already_deployed(self, rpc, fake_l1):
        """Test that an existing helper contract needs no transaction."""
        fake_l1.deploy_create2()

        assert BootstrapChecker(rpc, poll_interval=0).ensure() is None
        assert fake_l1.sent == []

    def test_second_invocation_sends_nothing(self, rpc, fake_l1):
        """Test that bootstrapping twice submits exactly one transaction."""
        checker = BootstrapChecker(rpc, poll_interval=0)

        first = checker.ensure()
        second = checker.ensure()

        assert first == "0x" + "cd" * 32
        assert second is None
        assert fake_l1.sent == [CREATE2_DEPLOYER_RAW_TX]

    def test_polls_until_receipt(self, rpc, fake_l1):
        """Test that pending receipts are polled without resubmitting."""
        fake_l1.receipt_delay = 3

        BootstrapChecker(rpc, poll_interval=0).ensure()

        assert fake_l1.methods("eth_getTransactionReceipt") == 4
        assert fake_l1.methods("eth_sendRawTransaction") == 1

    def test_reverted_receipt_is_fatal(self, rpc, fake_l1):
        """Test that a failed receipt raises BootstrapError."""
        fake_l1.receipt_status = "0x0"

        with pytest.raises(BootstrapError, match="reverted"):
            BootstrapChecker(rpc, poll_interval=0).ensure()

    def test_cancel_while_polling(self, rpc, fake_l1):
        """Test that cancelling mid-poll stops without resubmitting."""
        fake_l1.receipt_delay = 10**6
        cancel = threading.Event()
        timer = threading.Timer(0.2, cancel.set)
        timer.start()

        try:
            with pytest.raises(OperationCancelledError):
                BootstrapChecker(rpc, poll_interval=0.01).ensure(cancel)
        finally:
            timer.cancel()

        assert len(fake_l1.sent) == 1

    def test_cancelled_before_submission(self, rpc, fake_l1):
        """Test that a pre-set cancellation submits nothing."""
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(OperationCancelledError):
            BootstrapChecker(rpc, poll_interval=0).ensure(cancel)

        assert fake_l1.sent == []
