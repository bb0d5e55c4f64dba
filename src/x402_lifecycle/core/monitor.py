"""
Confirmation tracking for submitted payments.

:func:`check_payment_status` is the single-poll rule shared by on-demand
status checks and the :class:`ConfirmationMonitor` background loop.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from .chain import ChainReader
from .config import LifecycleSettings
from .errors import ChainError
from .models import MonitorState, PaymentState, PaymentStatus, Receipt, ReceiptStatus

__all__ = [
    "ConfirmationMonitor",
    "check_payment_status",
    "evaluate_receipt",
]

logger = logging.getLogger(__name__)

StatusCallback = Callable[["ConfirmationMonitor", PaymentStatus], None]
MonitorCallback = Callable[["ConfirmationMonitor"], None]


def evaluate_receipt(
    tx_hash: str,
    receipt: Optional[Receipt],
    block_height: Optional[int],
    *,
    required_confirmations: int = 1,
) -> PaymentStatus:
    if receipt is None or receipt.status is ReceiptStatus.PENDING:
        return PaymentStatus(status=PaymentState.PENDING, transaction_hash=tx_hash)

    confirmations = 0
    if block_height is not None:
        confirmations = max(0, block_height - receipt.block_number)

    if receipt.status is ReceiptStatus.REVERTED:
        return PaymentStatus(
            status=PaymentState.FAILED,
            transaction_hash=tx_hash,
            confirmations=confirmations,
            error="Transaction reverted on chain",
        )

    if confirmations >= required_confirmations:
        state = PaymentState.CONFIRMED
    else:
        state = PaymentState.PENDING
    return PaymentStatus(status=state, transaction_hash=tx_hash, confirmations=confirmations)


def check_payment_status(
    chain: ChainReader,
    tx_hash: str,
    *,
    required_confirmations: int = 1,
) -> PaymentStatus:
    """
    Poll the chain once for ``tx_hash``.

    Raises :class:`ChainError` when the node cannot be read; callers treat
    that as an inconclusive poll rather than a failed payment.
    """
    receipt = chain.get_receipt(tx_hash)
    if receipt is None:
        return evaluate_receipt(tx_hash, None, None)
    if receipt.status is ReceiptStatus.REVERTED:
        # A revert is final at any depth.
        return evaluate_receipt(tx_hash, receipt, None)
    height = chain.get_block_height()
    return evaluate_receipt(
        tx_hash,
        receipt,
        height,
        required_confirmations=required_confirmations,
    )


class ConfirmationMonitor:
    """
    Background thread that polls a transaction until it settles.

    The loop stops on ``confirmed`` or ``failed``, or reports ``timed_out``
    once ``max_attempts`` polls have run without a terminal result. Polls
    that raise :class:`ChainError` still count toward the budget.
    Cancellation is cooperative and is observed before every poll and every
    sleep; no callback fires once :meth:`cancel` has been called.
    """

    def __init__(
        self,
        chain: ChainReader,
        tx_hash: str,
        *,
        poll_interval: float = 10.0,
        max_attempts: int = 30,
        initial_delay: float = 0.0,
        required_confirmations: int = 1,
        on_status: Optional[StatusCallback] = None,
        on_confirmed: Optional[MonitorCallback] = None,
        on_finished: Optional[MonitorCallback] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.chain = chain
        self.tx_hash = tx_hash
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.required_confirmations = required_confirmations
        self._on_status = on_status
        self._on_confirmed = on_confirmed
        self._on_finished = on_finished

        self._stop_event = threading.Event()
        self._done_event = threading.Event()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._state = MonitorState.PENDING
        self._attempts = 0
        self._last_status: Optional[PaymentStatus] = None
        self._error: Optional[str] = None

    @classmethod
    def from_settings(
        cls,
        chain: ChainReader,
        tx_hash: str,
        settings: LifecycleSettings,
        **callbacks: Optional[Callable[..., None]],
    ) -> "ConfirmationMonitor":
        return cls(
            chain,
            tx_hash,
            poll_interval=settings.poll_interval,
            max_attempts=settings.max_poll_attempts,
            initial_delay=settings.initial_poll_delay,
            required_confirmations=settings.required_confirmations,
            **callbacks,
        )

    @property
    def state(self) -> MonitorState:
        with self._lock:
            return self._state

    @property
    def attempts(self) -> int:
        with self._lock:
            return self._attempts

    @property
    def last_status(self) -> Optional[PaymentStatus]:
        with self._lock:
            return self._last_status

    @property
    def error(self) -> Optional[str]:
        with self._lock:
            return self._error

    @property
    def cancelled(self) -> bool:
        return self._stop_event.is_set()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "ConfirmationMonitor":
        if self._thread is not None:
            raise RuntimeError("Monitor has already been started")
        self._thread = threading.Thread(
            target=self.run,
            name=f"x402-monitor-{self.tx_hash[:10]}",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "Monitoring transaction %s (poll every %ss, up to %d polls)",
            self.tx_hash,
            self.poll_interval,
            self.max_attempts,
        )
        return self

    def cancel(self) -> None:
        if not self._stop_event.is_set():
            self._stop_event.set()
            logger.debug("Cancelled monitor for %s", self.tx_hash)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the loop has exited; returns ``False`` on timeout."""
        return self._done_event.wait(timeout)

    def _notify(self, callback: Optional[Callable[..., None]], *args: object) -> None:
        if callback is None or self._stop_event.is_set():
            return
        try:
            callback(self, *args)
        except Exception:
            logger.exception("Monitor callback failed for %s", self.tx_hash)

    def _finish(self, state: MonitorState, error: Optional[str] = None) -> None:
        with self._lock:
            if self._stop_event.is_set() or self._state.is_terminal:
                return
            self._state = state
            self._error = error
        if state is MonitorState.CONFIRMED:
            logger.info("Transaction %s confirmed", self.tx_hash)
            self._notify(self._on_confirmed)
        elif state is MonitorState.FAILED:
            logger.info("Transaction %s failed: %s", self.tx_hash, error)
        else:
            logger.warning("Monitoring of %s timed out: %s", self.tx_hash, error)
        self._notify(self._on_finished)

    def _poll_once(self) -> Optional[PaymentStatus]:
        with self._lock:
            self._attempts += 1
            attempt = self._attempts
        try:
            status = check_payment_status(
                self.chain,
                self.tx_hash,
                required_confirmations=self.required_confirmations,
            )
        except ChainError as exc:
            logger.warning(
                "Inconclusive poll %d/%d for %s: %s",
                attempt,
                self.max_attempts,
                self.tx_hash,
                exc,
            )
            return None
        logger.debug(
            "Poll %d/%d for %s: %s (%s confirmations)",
            attempt,
            self.max_attempts,
            self.tx_hash,
            status.status.value,
            status.confirmations,
        )
        return status

    def run(self) -> MonitorState:
        """Run the poll loop on the current thread and return the final state."""
        try:
            if self.initial_delay > 0 and self._stop_event.wait(self.initial_delay):
                return self.state

            while not self._stop_event.is_set():
                status = self._poll_once()
                if status is not None and not self._stop_event.is_set():
                    with self._lock:
                        self._last_status = status
                    self._notify(self._on_status, status)
                    if status.status is PaymentState.CONFIRMED:
                        self._finish(MonitorState.CONFIRMED)
                        break
                    if status.status is PaymentState.FAILED:
                        self._finish(MonitorState.FAILED, status.error)
                        break

                if self.attempts >= self.max_attempts:
                    self._finish(
                        MonitorState.TIMED_OUT,
                        f"Payment monitoring timed out after {self.max_attempts} polls",
                    )
                    break

                if self._stop_event.wait(self.poll_interval):
                    break
            return self.state
        finally:
            self._done_event.set()
