"""
Core primitives that implement the payment lifecycle.
"""

from .chain import ChainReader, format_token_amount
from .client import PaymentSubmitter, X402Transport
from .config import DEFAULT_TOKEN_ADDRESS, LifecycleSettings, load_settings
from .coordinator import PaymentLifecycleCoordinator
from .environment import LifecycleEnvironment, build_environment, load_env_file, read_env_file
from .errors import (
    ChainError,
    ConfigError,
    InvalidAddress,
    InvalidAmount,
    LifecycleError,
    MissingPaymentProof,
    NetworkError,
    PaymentChallengeError,
    SignerNotConfigured,
    SubmitError,
    ValidationError,
)
from .models import (
    MonitorState,
    PaymentConfig,
    PaymentResult,
    PaymentState,
    PaymentStatus,
    Receipt,
    ReceiptStatus,
    SessionState,
)
from .monitor import ConfirmationMonitor, check_payment_status, evaluate_receipt
from .payloads import (
    build_authorization_payload,
    build_payment_payload,
    decode_payment_response,
    encode_payment_header,
    select_payment_requirements,
)
from .validation import parse_amount, validate_payment_config

__all__ = [
    "ChainError",
    "ChainReader",
    "ConfigError",
    "ConfirmationMonitor",
    "DEFAULT_TOKEN_ADDRESS",
    "InvalidAddress",
    "InvalidAmount",
    "LifecycleEnvironment",
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
    "Receipt",
    "ReceiptStatus",
    "SessionState",
    "SignerNotConfigured",
    "SubmitError",
    "ValidationError",
    "X402Transport",
    "build_authorization_payload",
    "build_environment",
    "build_payment_payload",
    "check_payment_status",
    "decode_payment_response",
    "encode_payment_header",
    "evaluate_receipt",
    "format_token_amount",
    "load_env_file",
    "load_settings",
    "parse_amount",
    "read_env_file",
    "select_payment_requirements",
    "validate_payment_config",
]
