"""
Value objects passed between the lifecycle components and their callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

__all__ = [
    "MonitorState",
    "PaymentConfig",
    "PaymentResult",
    "PaymentState",
    "PaymentStatus",
    "Receipt",
    "ReceiptStatus",
    "SessionState",
]


class PaymentState(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class ReceiptStatus(str, Enum):
    SUCCESS = "success"
    REVERTED = "reverted"
    PENDING = "pending"


class MonitorState(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self is not MonitorState.PENDING


class SessionState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    MONITORING = "monitoring"
    SETTLED = "settled"


@dataclass(frozen=True)
class PaymentConfig:
    """
    A single payment request.

    ``amount`` is a decimal string in token units (``"0.01"`` is one cent of
    USDC). ``metadata`` is opaque and forwarded verbatim to the endpoint.
    """

    amount: str
    recipient: str
    description: Optional[str] = None
    metadata: Optional[Mapping[str, Any]] = None


@dataclass(frozen=True)
class PaymentResult:
    success: bool
    transaction_hash: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, transaction_hash: str) -> "PaymentResult":
        return cls(success=True, transaction_hash=transaction_hash)

    @classmethod
    def failure(cls, error: str) -> "PaymentResult":
        return cls(success=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": self.success}
        if self.transaction_hash is not None:
            body["transactionHash"] = self.transaction_hash
        if self.error is not None:
            body["error"] = self.error
        return body


@dataclass(frozen=True)
class PaymentStatus:
    status: PaymentState
    transaction_hash: Optional[str] = None
    confirmations: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not PaymentState.PENDING

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"status": self.status.value}
        if self.transaction_hash is not None:
            body["transactionHash"] = self.transaction_hash
        if self.confirmations is not None:
            body["confirmations"] = self.confirmations
        if self.error is not None:
            body["error"] = self.error
        return body


@dataclass(frozen=True)
class Receipt:
    status: ReceiptStatus
    block_number: int
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)
