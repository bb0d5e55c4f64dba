"""
Pre-flight checks for :class:`PaymentConfig`.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from eth_utils import is_hex_address

from .errors import InvalidAddress, InvalidAmount
from .models import PaymentConfig

__all__ = ["parse_amount", "validate_payment_config"]

ADDRESS_LENGTH = 42


def parse_amount(raw: str) -> Decimal:
    """
    Parse a token amount, raising :class:`InvalidAmount` unless it is a finite
    number strictly greater than zero.
    """
    if raw is None or not str(raw).strip():
        raise InvalidAmount(f"Invalid payment amount: {raw!r}", value=raw)
    try:
        amount = Decimal(str(raw).strip())
    except InvalidOperation as exc:
        raise InvalidAmount(f"Invalid payment amount: {raw!r}", value=raw) from exc
    if not amount.is_finite():
        raise InvalidAmount(f"Invalid payment amount: {raw!r}", value=raw)
    if amount <= 0:
        raise InvalidAmount(
            f"Payment amount must be greater than 0, got {raw!r}", value=raw
        )
    return amount


def _check_recipient(recipient: str) -> None:
    if not recipient or not recipient.startswith("0x"):
        raise InvalidAddress(f"Invalid recipient address: {recipient!r}", value=recipient)
    if len(recipient) != ADDRESS_LENGTH:
        raise InvalidAddress(
            f"Recipient address must be {ADDRESS_LENGTH} characters long, got {len(recipient)}",
            value=recipient,
        )
    if not is_hex_address(recipient):
        raise InvalidAddress(
            f"Recipient address is not hex-encoded: {recipient!r}", value=recipient
        )


def validate_payment_config(config: PaymentConfig) -> None:
    parse_amount(config.amount)
    _check_recipient(config.recipient)
