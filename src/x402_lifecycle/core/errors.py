"""
Exception hierarchy shared by the payment lifecycle components.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "ChainError",
    "ConfigError",
    "InvalidAddress",
    "InvalidAmount",
    "LifecycleError",
    "MissingPaymentProof",
    "NetworkError",
    "PaymentChallengeError",
    "SignerNotConfigured",
    "SubmitError",
    "ValidationError",
]


class LifecycleError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(LifecycleError):
    """Raised when the supplied settings are invalid; ``.key`` names the variable."""

    def __init__(self, message: str, key: Optional[str] = None) -> None:
        super().__init__(message)
        self.key = key


class ValidationError(LifecycleError):
    """A payment request was rejected before any network access."""

    def __init__(self, message: str, value: Optional[str] = None) -> None:
        super().__init__(message)
        self.value = value


class InvalidAmount(ValidationError):
    pass


class InvalidAddress(ValidationError):
    pass


class SignerNotConfigured(LifecycleError):
    """No signer is available to authorize the payment."""


class SubmitError(LifecycleError):
    """Submitting the payment to the x402 endpoint failed."""


class NetworkError(SubmitError):
    """Transport-level failure: timeout, connection error or non-2xx reply."""


class PaymentChallengeError(SubmitError):
    """The server's 402 challenge cannot be satisfied by this payment."""


class MissingPaymentProof(SubmitError):
    """The final response carried no decodable transaction identifier."""


class ChainError(LifecycleError):
    """A read against the chain node failed."""
