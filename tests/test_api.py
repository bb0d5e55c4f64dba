"""Tests for x402_lifecycle.api.create_coordinator."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from x402_lifecycle import __version__, create_coordinator
from x402_lifecycle.core.client import PaymentSubmitter
from x402_lifecycle.core.models import SessionState

from .conftest import PAYER_KEY, TEST_RPC


def test_version() -> None:
    assert __version__ == "0.1.0"


def test_signer_derived_from_settings(settings, web3: MagicMock, signer) -> None:
    coordinator = create_coordinator(settings=settings, web3=web3)
    assert coordinator.signer.address == signer.address
    assert coordinator.chain.web3 is web3
    assert coordinator.state is SessionState.IDLE


def test_settings_resolved_from_keywords(web3: MagicMock, signer) -> None:
    coordinator = create_coordinator(
        env_file=None,
        base={},
        web3=web3,
        rpc_url=TEST_RPC,
        payer_private_key=PAYER_KEY,
        max_poll_attempts=3,
    )
    assert coordinator.settings.rpc_url == TEST_RPC
    assert coordinator.settings.max_poll_attempts == 3
    assert coordinator.signer.address == signer.address


def test_no_key_means_no_signer(web3: MagicMock) -> None:
    coordinator = create_coordinator(env_file=None, base={}, web3=web3)
    assert coordinator.signer is None


def test_shared_services(settings, chain, signer) -> None:
    submitter = PaymentSubmitter(settings)
    first = create_coordinator(settings=settings, chain=chain, submitter=submitter, signer=signer)
    second = create_coordinator(settings=settings, chain=chain, submitter=submitter)
    assert first.chain is second.chain
    assert second.signer is signer


def test_settings_and_values_conflict(settings) -> None:
    with pytest.raises(ValueError):
        create_coordinator(settings=settings, rpc_url=TEST_RPC)
