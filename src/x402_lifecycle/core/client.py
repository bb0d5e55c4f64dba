"""
HTTP side of a payment: the x402-aware transport and the submitter that turns
a :class:`PaymentConfig` into an on-chain transaction hash.
"""

from __future__ import annotations

import json
import logging
import secrets
from typing import Any, Dict, Mapping, Optional

import requests
from eth_account.signers.local import LocalAccount

from .config import LifecycleSettings
from .errors import (
    MissingPaymentProof,
    NetworkError,
    PaymentChallengeError,
    SignerNotConfigured,
)
from .models import PaymentConfig
from .payloads import (
    PAYMENT_HEADER,
    PAYMENT_RESPONSE_HEADER,
    build_payment_payload,
    decode_payment_response,
    encode_payment_header,
    select_payment_requirements,
    to_base_units,
)
from .validation import parse_amount

__all__ = [
    "PaymentSubmitter",
    "X402Transport",
]

logger = logging.getLogger(__name__)

PAYMENT_PATH = "/payment"


def _describe_failure(response: requests.Response) -> str:
    return f"Payment endpoint responded with {response.status_code}: {response.text}"


class X402Transport:
    """
    ``requests`` wrapper that answers ``402 Payment Required`` challenges.

    The first POST goes out unpaid. A 402 reply is parsed for its payment
    requirements, checked against what the caller agreed to pay, signed with
    the configured signer and retried once with the ``X-PAYMENT`` header.
    """

    def __init__(
        self,
        settings: LifecycleSettings,
        *,
        signer: Optional[LocalAccount] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self._signer = signer

    @property
    def signer(self) -> Optional[LocalAccount]:
        return self._signer

    def set_signer(self, signer: Optional[LocalAccount]) -> None:
        self._signer = signer

    def _send(
        self,
        url: str,
        body: Mapping[str, Any],
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        try:
            return self.session.post(
                url,
                json=body,
                headers=headers,
                timeout=self.settings.submit_timeout,
            )
        except requests.Timeout as exc:
            raise NetworkError(
                f"Payment request to {url} timed out after {self.settings.submit_timeout}s"
            ) from exc
        except requests.RequestException as exc:
            raise NetworkError(f"Payment request to {url} failed: {exc}") from exc

    def _check_requirements(
        self,
        requirements: Mapping[str, Any],
        *,
        max_amount: int,
        recipient: str,
    ) -> None:
        asset = str(requirements.get("asset", ""))
        if asset.lower() != self.settings.token_address.lower():
            raise PaymentChallengeError(
                f"Server requested payment in {asset}, expected {self.settings.token_address}"
            )
        pay_to = str(requirements.get("payTo", ""))
        if pay_to.lower() != recipient.lower():
            raise PaymentChallengeError(
                f"Server requested payment to {pay_to}, expected {recipient}"
            )
        try:
            required = int(requirements.get("maxAmountRequired"))
        except (TypeError, ValueError) as exc:
            raise PaymentChallengeError(
                f"Invalid maxAmountRequired in payment requirements: {requirements}"
            ) from exc
        if required > max_amount:
            raise PaymentChallengeError(
                f"Server requested {required} base units, more than the {max_amount} authorized"
            )

    def _parse_challenge(self, response: requests.Response) -> Dict[str, Any]:
        try:
            challenge = response.json()
        except json.JSONDecodeError as exc:
            raise PaymentChallengeError(
                f"402 response body is not JSON: {response.text}"
            ) from exc
        if not isinstance(challenge, dict):
            raise PaymentChallengeError(f"402 response body is not an object: {challenge}")
        return challenge

    def post(
        self,
        path: str,
        body: Mapping[str, Any],
        *,
        max_amount: int,
        recipient: str,
    ) -> requests.Response:
        url = f"{self.settings.payment_endpoint}{path}"
        logger.info("Submitting payment request to %s", url)
        response = self._send(url, body)

        if response.status_code != 402:
            if not response.ok:
                raise NetworkError(_describe_failure(response))
            return response

        if self._signer is None:
            raise SignerNotConfigured(
                "Signer not configured; call set_signer() before submitting payments"
            )

        challenge = self._parse_challenge(response)
        requirements = select_payment_requirements(challenge, network=self.settings.network)
        self._check_requirements(requirements, max_amount=max_amount, recipient=recipient)
        logger.info(
            "Received payment challenge from %s for %s base units on %s",
            url,
            requirements.get("maxAmountRequired"),
            requirements.get("network"),
        )

        payment_payload = build_payment_payload(
            self._signer,
            requirements,
            chain_id=self.settings.chain_id,
            token_name=self.settings.token_name,
            token_version=self.settings.token_version,
            backdate_seconds=self.settings.authorization_backdate,
        )
        retry = self._send(
            url,
            body,
            headers={PAYMENT_HEADER: encode_payment_header(payment_payload)},
        )
        if retry.status_code == 402:
            raise NetworkError(f"Payment authorization was rejected: {retry.text}")
        if not retry.ok:
            raise NetworkError(_describe_failure(retry))
        return retry


class PaymentSubmitter:
    """
    Submit a payment and return the transaction hash from the server's proof.

    Holds no per-payment state, so one instance can serve several
    coordinators.
    """

    def __init__(
        self,
        settings: LifecycleSettings,
        *,
        transport: Optional[X402Transport] = None,
        signer: Optional[LocalAccount] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.settings = settings
        self.transport = transport or X402Transport(settings, signer=signer, session=session)
        if transport is not None and signer is not None:
            self.transport.set_signer(signer)

    @property
    def signer(self) -> Optional[LocalAccount]:
        return self.transport.signer

    def set_signer(self, signer: Optional[LocalAccount]) -> None:
        self.transport.set_signer(signer)

    def build_request_body(self, config: PaymentConfig) -> Dict[str, Any]:
        return {
            "amount": config.amount,
            "token": self.settings.token_address,
            "recipient": config.recipient,
            "description": config.description,
            "metadata": dict(config.metadata) if config.metadata is not None else None,
            "chainId": self.settings.chain_id,
        }

    def submit(self, config: PaymentConfig) -> str:
        if self.signer is None:
            raise SignerNotConfigured(
                "Signer not configured; call set_signer() before submitting payments"
            )

        amount = parse_amount(config.amount)
        max_amount = to_base_units(amount, self.settings.token_decimals)

        response = self.transport.post(
            PAYMENT_PATH,
            self.build_request_body(config),
            max_amount=max_amount,
            recipient=config.recipient,
        )

        proof = decode_payment_response(response.headers.get(PAYMENT_RESPONSE_HEADER))
        transaction = proof.get("transaction") if proof else None
        if isinstance(transaction, str) and transaction:
            logger.info(
                "Payment of %s to %s settled in transaction %s",
                config.amount,
                config.recipient,
                transaction,
            )
            return transaction

        if proof and proof.get("success") is False:
            raise MissingPaymentProof(
                f"Payment settlement failed: {proof.get('errorReason', 'unknown reason')}"
            )

        if self.settings.allow_unproven_payments:
            placeholder = "0x" + secrets.token_hex(32)
            logger.warning(
                "Payment response carried no transaction proof; reporting placeholder hash %s",
                placeholder,
            )
            return placeholder

        raise MissingPaymentProof("Payment response carried no transaction proof")
