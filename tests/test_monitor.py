"""Tests for x402_lifecycle.core.monitor."""

from __future__ import annotations

import threading
from typing import List
from unittest.mock import MagicMock

import pytest

from x402_lifecycle.core.chain import ChainReader
from x402_lifecycle.core.errors import ChainError
from x402_lifecycle.core.models import (
    MonitorState,
    PaymentState,
    PaymentStatus,
    Receipt,
    ReceiptStatus,
)
from x402_lifecycle.core.monitor import (
    ConfirmationMonitor,
    check_payment_status,
    evaluate_receipt,
)

from .conftest import TX_HASH


def _receipt(status: ReceiptStatus = ReceiptStatus.SUCCESS, block: int = 100) -> Receipt:
    return Receipt(status=status, block_number=block)


@pytest.fixture()
def fake_chain() -> MagicMock:
    chain = MagicMock(spec=ChainReader)
    chain.get_receipt.return_value = None
    chain.get_block_height.return_value = 100
    return chain


# ===================================================================
# Single-poll rule
# ===================================================================


class TestEvaluateReceipt:
    def test_absent_receipt_is_pending(self) -> None:
        status = evaluate_receipt(TX_HASH, None, None)
        assert status.status is PaymentState.PENDING
        assert status.transaction_hash == TX_HASH
        assert status.confirmations is None

    def test_confirmed_after_one_block(self) -> None:
        status = evaluate_receipt(TX_HASH, _receipt(block=100), 102)
        assert status.status is PaymentState.CONFIRMED
        assert status.confirmations == 2

    def test_zero_confirmations_stays_pending(self) -> None:
        status = evaluate_receipt(TX_HASH, _receipt(block=100), 100)
        assert status.status is PaymentState.PENDING
        assert status.confirmations == 0

    def test_reverted_is_failed(self) -> None:
        status = evaluate_receipt(TX_HASH, _receipt(ReceiptStatus.REVERTED), 102)
        assert status.status is PaymentState.FAILED
        assert status.error

    def test_required_confirmations(self) -> None:
        status = evaluate_receipt(TX_HASH, _receipt(block=100), 102, required_confirmations=3)
        assert status.status is PaymentState.PENDING

    def test_height_behind_receipt_clamps_to_zero(self) -> None:
        status = evaluate_receipt(TX_HASH, _receipt(block=100), 99)
        assert status.confirmations == 0


class TestCheckPaymentStatus:
    def test_skips_height_when_not_mined(self, fake_chain: MagicMock) -> None:
        status = check_payment_status(fake_chain, TX_HASH)
        assert status.status is PaymentState.PENDING
        fake_chain.get_block_height.assert_not_called()

    def test_confirmed(self, fake_chain: MagicMock) -> None:
        fake_chain.get_receipt.return_value = _receipt(block=100)
        fake_chain.get_block_height.return_value = 102
        status = check_payment_status(fake_chain, TX_HASH)
        assert status.status is PaymentState.CONFIRMED
        assert status.confirmations == 2

    def test_reverted_skips_height(self, fake_chain: MagicMock) -> None:
        fake_chain.get_receipt.return_value = _receipt(ReceiptStatus.REVERTED)
        fake_chain.get_block_height.side_effect = ChainError("height unavailable")
        status = check_payment_status(fake_chain, TX_HASH)
        assert status.status is PaymentState.FAILED
        fake_chain.get_block_height.assert_not_called()

    def test_chain_error_propagates(self, fake_chain: MagicMock) -> None:
        fake_chain.get_receipt.side_effect = ChainError("down")
        with pytest.raises(ChainError):
            check_payment_status(fake_chain, TX_HASH)


# ===================================================================
# Poll loop
# ===================================================================


class TestConfirmationMonitor:
    def _monitor(self, chain: MagicMock, **kwargs) -> ConfirmationMonitor:
        kwargs.setdefault("poll_interval", 0.0)
        kwargs.setdefault("max_attempts", 30)
        return ConfirmationMonitor(chain, TX_HASH, **kwargs)

    def test_pending_then_confirmed(self, fake_chain: MagicMock) -> None:
        fake_chain.get_receipt.side_effect = [None, _receipt(block=100)]
        fake_chain.get_block_height.return_value = 101
        seen: List[PaymentStatus] = []
        confirmed = MagicMock()

        monitor = self._monitor(
            fake_chain,
            on_status=lambda _m, status: seen.append(status),
            on_confirmed=confirmed,
        )
        assert monitor.run() is MonitorState.CONFIRMED
        assert [s.status for s in seen] == [PaymentState.PENDING, PaymentState.CONFIRMED]
        assert monitor.attempts == 2
        confirmed.assert_called_once_with(monitor)

    def test_reverted_is_terminal_failure(self, fake_chain: MagicMock) -> None:
        fake_chain.get_receipt.return_value = _receipt(ReceiptStatus.REVERTED)
        confirmed = MagicMock()
        monitor = self._monitor(fake_chain, on_confirmed=confirmed)

        assert monitor.run() is MonitorState.FAILED
        assert monitor.attempts == 1
        assert monitor.last_status.status is PaymentState.FAILED
        confirmed.assert_not_called()

    def test_times_out_after_budget(self, fake_chain: MagicMock) -> None:
        finished = MagicMock()
        monitor = self._monitor(fake_chain, on_finished=finished)

        assert monitor.run() is MonitorState.TIMED_OUT
        assert monitor.attempts == 30
        assert fake_chain.get_receipt.call_count == 30
        assert "timed out" in monitor.error
        finished.assert_called_once_with(monitor)

    def test_timeout_distinct_from_failure(self, fake_chain: MagicMock) -> None:
        fake_chain.get_receipt.return_value = _receipt(block=100)
        fake_chain.get_block_height.return_value = 100
        monitor = self._monitor(fake_chain, max_attempts=3)
        assert monitor.run() is MonitorState.TIMED_OUT
        assert monitor.last_status.status is PaymentState.PENDING

    def test_chain_errors_are_inconclusive(self, fake_chain: MagicMock) -> None:
        fake_chain.get_receipt.side_effect = [
            ChainError("down"),
            ChainError("still down"),
            _receipt(block=100),
        ]
        fake_chain.get_block_height.return_value = 105
        seen: List[PaymentStatus] = []
        monitor = self._monitor(fake_chain, on_status=lambda _m, s: seen.append(s))

        assert monitor.run() is MonitorState.CONFIRMED
        assert monitor.attempts == 3
        assert len(seen) == 1

    def test_chain_errors_count_toward_budget(self, fake_chain: MagicMock) -> None:
        fake_chain.get_receipt.side_effect = ChainError("down")
        monitor = self._monitor(fake_chain, max_attempts=5)
        assert monitor.run() is MonitorState.TIMED_OUT
        assert monitor.attempts == 5

    def test_callback_error_does_not_stop_monitor(self, fake_chain: MagicMock) -> None:
        fake_chain.get_receipt.side_effect = [None, _receipt(block=100)]
        fake_chain.get_block_height.return_value = 101
        broken = MagicMock(side_effect=RuntimeError("listener bug"))
        monitor = self._monitor(fake_chain, on_status=broken)
        assert monitor.run() is MonitorState.CONFIRMED
        assert broken.call_count == 2

    def test_cancel_stops_polling_within_interval(self, fake_chain: MagicMock) -> None:
        polled = threading.Event()

        def _get_receipt(_tx_hash):
            polled.set()
            return None

        fake_chain.get_receipt.side_effect = _get_receipt
        seen: List[PaymentStatus] = []
        finished = MagicMock()
        monitor = self._monitor(
            fake_chain,
            poll_interval=30.0,
            on_status=lambda _m, s: seen.append(s),
            on_finished=finished,
        ).start()

        assert polled.wait(5)
        monitor.cancel()
        assert monitor.wait(5)
        assert not monitor.running
        assert monitor.cancelled
        assert monitor.state is MonitorState.PENDING
        assert fake_chain.get_receipt.call_count == 1
        finished.assert_not_called()

    def test_cancel_during_initial_delay(self, fake_chain: MagicMock) -> None:
        monitor = self._monitor(fake_chain, initial_delay=30.0).start()
        monitor.cancel()
        assert monitor.wait(5)
        fake_chain.get_receipt.assert_not_called()

    def test_cancel_after_terminal_keeps_state(self, fake_chain: MagicMock) -> None:
        fake_chain.get_receipt.return_value = _receipt(ReceiptStatus.REVERTED)
        monitor = self._monitor(fake_chain)
        monitor.run()
        monitor.cancel()
        assert monitor.state is MonitorState.FAILED

    def test_start_twice(self, fake_chain: MagicMock) -> None:
        monitor = self._monitor(fake_chain, initial_delay=30.0).start()
        with pytest.raises(RuntimeError):
            monitor.start()
        monitor.cancel()

    def test_from_settings(self, fake_chain: MagicMock, settings) -> None:
        monitor = ConfirmationMonitor.from_settings(fake_chain, TX_HASH, settings)
        assert monitor.poll_interval == settings.poll_interval
        assert monitor.max_attempts == 30
        assert monitor.required_confirmations == 1

    def test_rejects_empty_budget(self, fake_chain: MagicMock) -> None:
        with pytest.raises(ValueError):
            ConfirmationMonitor(fake_chain, TX_HASH, max_attempts=0)
