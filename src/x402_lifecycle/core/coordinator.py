"""
Facade that sequences validation, submission and confirmation tracking for
one payment session at a time.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from eth_account.signers.local import LocalAccount

from .chain import ChainReader
from .client import PaymentSubmitter
from .config import LifecycleSettings
from .errors import ChainError, LifecycleError
from .models import (
    MonitorState,
    PaymentConfig,
    PaymentResult,
    PaymentState,
    PaymentStatus,
    SessionState,
)
from .monitor import ConfirmationMonitor, check_payment_status
from .validation import validate_payment_config

__all__ = ["PaymentLifecycleCoordinator"]

logger = logging.getLogger(__name__)

StatusListener = Callable[[PaymentStatus], None]


class PaymentLifecycleCoordinator:
    """
    Owns the state of a single payment session.

    :meth:`initiate_payment` validates and submits on the caller's thread and
    returns as soon as a transaction hash is known; confirmation is tracked by
    a :class:`ConfirmationMonitor` thread whose progress is visible through
    :attr:`payment_status` and the optional ``on_status`` listener.

    The chain reader and submitter carry no session state and may be shared
    between coordinators.
    """

    def __init__(
        self,
        settings: LifecycleSettings,
        chain: ChainReader,
        submitter: PaymentSubmitter,
        *,
        on_status: Optional[StatusListener] = None,
    ) -> None:
        self.settings = settings
        self.chain = chain
        self.submitter = submitter
        self.on_status = on_status

        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._monitor: Optional[ConfirmationMonitor] = None
        self._payment_result: Optional[PaymentResult] = None
        self._payment_status: Optional[PaymentStatus] = None
        self._error: Optional[str] = None
        self._usdc_balance = "0"
        self._session = 0
        self._submitting = False
        self._balance_reads = 0

    # -- observable state -------------------------------------------------

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def is_loading(self) -> bool:
        return self.state is SessionState.SUBMITTING

    @property
    def payment_result(self) -> Optional[PaymentResult]:
        with self._lock:
            return self._payment_result

    @property
    def payment_status(self) -> Optional[PaymentStatus]:
        with self._lock:
            return self._payment_status

    @property
    def error(self) -> Optional[str]:
        with self._lock:
            return self._error

    @property
    def usdc_balance(self) -> str:
        with self._lock:
            return self._usdc_balance

    @property
    def is_loading_balance(self) -> bool:
        with self._lock:
            return self._balance_reads > 0

    @property
    def monitor(self) -> Optional[ConfirmationMonitor]:
        with self._lock:
            return self._monitor

    @property
    def signer(self) -> Optional[LocalAccount]:
        return self.submitter.signer

    def set_signer(self, signer: Optional[LocalAccount]) -> None:
        with self._lock:
            if self._submitting:
                raise RuntimeError("Cannot replace the signer while a payment is being submitted")
            self.submitter.set_signer(signer)

    # -- session control --------------------------------------------------

    def _cancel_monitor(self) -> None:
        with self._lock:
            monitor, self._monitor = self._monitor, None
        if monitor is not None:
            monitor.cancel()

    def _clear(self) -> None:
        self._payment_result = None
        self._payment_status = None
        self._error = None

    def clear_error(self) -> None:
        with self._lock:
            self._error = None

    def reset(self) -> None:
        self._cancel_monitor()
        with self._lock:
            self._session += 1
            self._clear()
            self._state = SessionState.IDLE

    def initiate_payment(self, config: PaymentConfig) -> PaymentResult:
        self._cancel_monitor()
        with self._lock:
            if self._submitting:
                return PaymentResult.failure("A payment is already being submitted")
            self._session += 1
            session = self._session
            self._clear()

            try:
                validate_payment_config(config)
            except LifecycleError as exc:
                return self._fail(str(exc))

            self._submitting = True
            self._state = SessionState.SUBMITTING

        try:
            tx_hash = self.submitter.submit(config)
        except LifecycleError as exc:
            logger.warning("Payment to %s failed: %s", config.recipient, exc)
            with self._lock:
                if self._session != session:
                    return PaymentResult.failure(str(exc))
                return self._fail(str(exc))
        finally:
            with self._lock:
                self._submitting = False

        result = PaymentResult.ok(tx_hash)
        monitor = ConfirmationMonitor.from_settings(
            self.chain,
            tx_hash,
            self.settings,
            on_status=self._handle_status,
            on_confirmed=self._handle_confirmed,
            on_finished=self._handle_finished,
        )
        with self._lock:
            if self._session != session:
                logger.info("Session was reset during submission; not monitoring %s", tx_hash)
                return result
            self._payment_result = result
            self._payment_status = PaymentStatus(
                status=PaymentState.PENDING, transaction_hash=tx_hash
            )
            self._monitor = monitor
            self._state = SessionState.MONITORING
        monitor.start()
        return result

    def _fail(self, message: str) -> PaymentResult:
        result = PaymentResult.failure(message)
        self._payment_result = result
        self._error = message
        self._state = SessionState.IDLE
        return result

    def wait_for_settlement(self, timeout: Optional[float] = None) -> Optional[PaymentStatus]:
        """
        Block until the active monitor stops, then return the latest status.
        """
        monitor = self.monitor
        if monitor is not None and not monitor.wait(timeout):
            return None
        return self.payment_status

    # -- monitor callbacks ------------------------------------------------

    def _is_active(self, monitor: ConfirmationMonitor) -> bool:
        return self._monitor is monitor and not monitor.cancelled

    def _record_status(self, status: PaymentStatus) -> bool:
        # Caller holds the lock. Only the session's own transaction is
        # recorded, and a terminal status is never replaced.
        result = self._payment_result
        if result is None or result.transaction_hash != status.transaction_hash:
            return False
        current = self._payment_status
        if current is not None and current.is_terminal:
            return False
        self._payment_status = status
        if status.error:
            self._error = status.error
        return True

    def _handle_status(self, monitor: ConfirmationMonitor, status: PaymentStatus) -> None:
        with self._lock:
            if not self._is_active(monitor) or not self._record_status(status):
                return
        if self.on_status is not None:
            self.on_status(status)

    @contextmanager
    def _reading_balance(self) -> Iterator[None]:
        with self._lock:
            self._balance_reads += 1
        try:
            yield
        finally:
            with self._lock:
                self._balance_reads -= 1

    def _handle_confirmed(self, monitor: ConfirmationMonitor) -> None:
        if self.signer is None:
            return
        with self._reading_balance():
            balance = self.chain.get_formatted_balance(self.signer.address)
            with self._lock:
                if self._is_active(monitor):
                    self._usdc_balance = balance

    def _handle_finished(self, monitor: ConfirmationMonitor) -> None:
        with self._lock:
            if not self._is_active(monitor):
                return
            if monitor.state is MonitorState.TIMED_OUT:
                self._error = monitor.error
            self._state = SessionState.SETTLED

    # -- reads ------------------------------------------------------------

    def check_payment_status(self, tx_hash: str) -> PaymentStatus:
        """
        Poll ``tx_hash`` once.

        The result updates :attr:`payment_status` only when it concerns the
        current session's transaction and that status is not yet terminal.
        An inconclusive check (RPC failure) is returned to the caller as
        ``pending`` with ``error`` set and leaves the session untouched.
        """
        try:
            status = check_payment_status(
                self.chain,
                tx_hash,
                required_confirmations=self.settings.required_confirmations,
            )
        except ChainError as exc:
            logger.warning("Status check for %s was inconclusive: %s", tx_hash, exc)
            return PaymentStatus(
                status=PaymentState.PENDING,
                transaction_hash=tx_hash,
                error=str(exc),
            )
        with self._lock:
            self._record_status(status)
        return status

    def get_usdc_balance(self, address: str) -> str:
        return self.chain.get_formatted_balance(address)

    def refresh_balance(self, address: Optional[str] = None) -> str:
        if address is None:
            if self.signer is None:
                return self.usdc_balance
            address = self.signer.address
        with self._reading_balance():
            balance = self.get_usdc_balance(address)
            with self._lock:
                self._usdc_balance = balance
        return balance

    def estimate_payment_gas(self, config: PaymentConfig) -> int:
        sender = self.signer.address if self.signer is not None else None
        return self.chain.estimate_gas(config, sender=sender)
