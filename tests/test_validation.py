"""Tests for x402_lifecycle.core.validation."""

from __future__ import annotations

from decimal import Decimal

import pytest

from x402_lifecycle.core.errors import InvalidAddress, InvalidAmount
from x402_lifecycle.core.models import PaymentConfig
from x402_lifecycle.core.validation import parse_amount, validate_payment_config

from .conftest import RECIPIENT


class TestParseAmount:
    @pytest.mark.parametrize("raw", ["", "   ", "0", "-1", "abc", "NaN", "Infinity", "0.000"])
    def test_rejects(self, raw: str) -> None:
        with pytest.raises(InvalidAmount) as excinfo:
            parse_amount(raw)
        assert "amount" in str(excinfo.value)
        assert excinfo.value.value == raw

    @pytest.mark.parametrize(
        "raw, expected",
        [("0.01", Decimal("0.01")), ("1", Decimal("1")), (" 2.5 ", Decimal("2.5")), ("1e-2", Decimal("0.01"))],
    )
    def test_accepts(self, raw: str, expected: Decimal) -> None:
        assert parse_amount(raw) == expected


class TestValidatePaymentConfig:
    @pytest.mark.parametrize("recipient", ["", "invalid", "0x123", "not_hex_address", "0x" + "zz" * 20])
    def test_rejects_recipient(self, recipient: str) -> None:
        with pytest.raises(InvalidAddress) as excinfo:
            validate_payment_config(PaymentConfig(amount="0.01", recipient=recipient))
        assert "address" in str(excinfo.value)

    def test_amount_checked_before_recipient(self) -> None:
        with pytest.raises(InvalidAmount):
            validate_payment_config(PaymentConfig(amount="0", recipient="bad"))

    def test_valid_config(self) -> None:
        validate_payment_config(
            PaymentConfig(
                amount="0.01",
                recipient=RECIPIENT,
                description="Test payment",
                metadata={"orderId": 7},
            )
        )

    def test_lowercase_recipient_accepted(self) -> None:
        validate_payment_config(PaymentConfig(amount="1", recipient=RECIPIENT.lower()))
