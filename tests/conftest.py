"""Shared fixtures for the x402-lifecycle test suite."""

from __future__ import annotations

import base64
import json
from typing import Any, Dict, Optional
from unittest.mock import MagicMock

import pytest
from eth_account import Account

from x402_lifecycle.core.chain import ChainReader
from x402_lifecycle.core.client import PaymentSubmitter
from x402_lifecycle.core.config import DEFAULT_TOKEN_ADDRESS, LifecycleSettings
from x402_lifecycle.core.coordinator import PaymentLifecycleCoordinator


# ---------------------------------------------------------------------------
# Constants reused across tests
# ---------------------------------------------------------------------------

TEST_ENDPOINT = "http://payments.test"
PAYMENT_URL = f"{TEST_ENDPOINT}/payment"
TEST_RPC = "http://rpc.test"
PAYER_KEY = "0x" + "11" * 32
RECIPIENT = "0x742d35Cc6634C0532925a3b8D4C9db96C4b4d8b6"
TX_HASH = "0x" + "ab" * 32


def payment_requirements(**overrides: Any) -> Dict[str, Any]:
    requirements: Dict[str, Any] = {
        "scheme": "exact",
        "network": "base",
        "maxAmountRequired": "10000",
        "resource": PAYMENT_URL,
        "description": "Test payment",
        "mimeType": "application/json",
        "payTo": RECIPIENT,
        "maxTimeoutSeconds": 60,
        "asset": DEFAULT_TOKEN_ADDRESS,
        "extra": {"name": "USD Coin", "version": "2"},
    }
    requirements.update(overrides)
    return requirements


def challenge_body(**overrides: Any) -> Dict[str, Any]:
    return {
        "x402Version": 1,
        "error": "X-PAYMENT header is required",
        "accepts": [payment_requirements(**overrides)],
    }


def payment_response_header(transaction: Optional[str] = TX_HASH, **extra: Any) -> str:
    body: Dict[str, Any] = {"success": True, "network": "base", "payer": "0xpayer"}
    if transaction is not None:
        body["transaction"] = transaction
    body.update(extra)
    return base64.b64encode(json.dumps(body).encode("utf-8")).decode("ascii")


def receipt(status: int = 1, block_number: int = 100) -> Dict[str, Any]:
    return {"status": status, "blockNumber": block_number, "transactionHash": TX_HASH}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def settings() -> LifecycleSettings:
    """Settings with zero-length poll intervals so monitors finish instantly."""
    return LifecycleSettings(
        payment_endpoint=TEST_ENDPOINT,
        rpc_url=TEST_RPC,
        payer_private_key=PAYER_KEY,
        poll_interval=0.0,
        initial_poll_delay=0.0,
        max_poll_attempts=30,
    )


@pytest.fixture()
def signer():
    return Account.from_key(PAYER_KEY)


@pytest.fixture()
def web3() -> MagicMock:
    """Stand-in for the ``web3.Web3`` surface the chain reader touches."""
    fake = MagicMock()
    fake.eth.get_transaction_receipt.return_value = None
    fake.eth.get_block_number.return_value = 100
    fake.eth.contract.return_value.functions.transfer.return_value.estimate_gas.return_value = 50_000
    fake.eth.contract.return_value.functions.balanceOf.return_value.call.return_value = 0
    return fake


@pytest.fixture()
def chain(settings: LifecycleSettings, web3: MagicMock) -> ChainReader:
    return ChainReader(settings, web3=web3)


@pytest.fixture()
def submitter(settings: LifecycleSettings, signer) -> PaymentSubmitter:
    return PaymentSubmitter(settings, signer=signer)


@pytest.fixture()
def coordinator(settings, chain, submitter):
    instance = PaymentLifecycleCoordinator(settings, chain, submitter)
    yield instance
    instance.reset()
