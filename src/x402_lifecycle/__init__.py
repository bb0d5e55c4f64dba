"""
Client-side lifecycle manager for x402 pay-per-request USDC payments.

The module re-exports the pieces integrators need so they can
``from x402_lifecycle import ...`` without navigating the package.
"""

from .api import create_coordinator
from .core import (
    ChainError,
    ChainReader,
    ConfigError,
    ConfirmationMonitor,
    InvalidAddress,
    InvalidAmount,
    LifecycleError,
    LifecycleSettings,
    MissingPaymentProof,
    MonitorState,
    NetworkError,
    PaymentChallengeError,
    PaymentConfig,
    PaymentLifecycleCoordinator,
    PaymentResult,
    PaymentState,
    PaymentStatus,
    PaymentSubmitter,
    SessionState,
    SignerNotConfigured,
    ValidationError,
    X402Transport,
    check_payment_status,
    format_token_amount,
    load_settings,
    validate_payment_config,
)

__version__ = "0.1.0"

__all__ = (
    "ChainError",
    "ChainReader",
    "ConfigError",
    "ConfirmationMonitor",
    "InvalidAddress",
    "InvalidAmount",
    "LifecycleError",
    "LifecycleSettings",
    "MissingPaymentProof",
    "MonitorState",
    "NetworkError",
    "PaymentChallengeError",
    "PaymentConfig",
    "PaymentLifecycleCoordinator",
    "PaymentResult",
    "PaymentState",
    "PaymentStatus",
    "PaymentSubmitter",
    "SessionState",
    "SignerNotConfigured",
    "ValidationError",
    "X402Transport",
    "check_payment_status",
    "create_coordinator",
    "format_token_amount",
    "load_settings",
    "validate_payment_config",
)
