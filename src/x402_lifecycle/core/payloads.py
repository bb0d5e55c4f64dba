"""
Helpers for the x402 payment headers exchanged with a paid endpoint.

A ``402 Payment Required`` reply lists the accepted payment requirements; the
client answers with a signed ERC-3009 ``TransferWithAuthorization`` carried
base64-encoded in the ``X-PAYMENT`` header, and the server returns its
settlement proof the same way in ``X-PAYMENT-RESPONSE``.
"""

from __future__ import annotations

import base64
import binascii
import json
import secrets
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional

from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount
from eth_utils import to_checksum_address
from hexbytes import HexBytes

from .errors import InvalidAmount, PaymentChallengeError

__all__ = [
    "PAYMENT_HEADER",
    "PAYMENT_RESPONSE_HEADER",
    "X402_VERSION",
    "build_authorization_payload",
    "build_payment_payload",
    "decode_payment_response",
    "encode_payment_header",
    "select_payment_requirements",
    "to_base_units",
]

X402_VERSION = 1
PAYMENT_HEADER = "X-PAYMENT"
PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"

_TRANSFER_WITH_AUTHORIZATION = [
    {"name": "from", "type": "address"},
    {"name": "to", "type": "address"},
    {"name": "value", "type": "uint256"},
    {"name": "validAfter", "type": "uint256"},
    {"name": "validBefore", "type": "uint256"},
    {"name": "nonce", "type": "bytes32"},
]

_EIP712_DOMAIN = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]


def to_base_units(amount: Decimal, decimals: int) -> int:
    scaled = amount * (Decimal(10) ** decimals)
    try:
        integral = scaled.to_integral_exact()
    except InvalidOperation as exc:
        raise InvalidAmount(
            f"Payment amount {amount} cannot be represented with {decimals} decimals",
            value=str(amount),
        ) from exc

    if integral != scaled:
        raise InvalidAmount(
            f"Payment amount {amount} cannot be represented with {decimals} decimals",
            value=str(amount),
        )
    return int(integral)


def select_payment_requirements(
    challenge: Mapping[str, Any],
    *,
    network: str,
    scheme: str = "exact",
) -> Dict[str, Any]:
    """
    Pick the requirement entry from a 402 body that this client can pay.
    """
    accepts = challenge.get("accepts")
    if not isinstance(accepts, list) or not accepts:
        raise PaymentChallengeError(
            f"402 response did not list any payment requirements: {challenge}"
        )
    for requirements in accepts:
        if not isinstance(requirements, Mapping):
            continue
        if requirements.get("scheme") == scheme and requirements.get("network") == network:
            return dict(requirements)
    offered = sorted(
        f"{item.get('scheme')}/{item.get('network')}"
        for item in accepts
        if isinstance(item, Mapping)
    )
    raise PaymentChallengeError(
        f"No '{scheme}' payment requirement for network '{network}' (offered: {offered})"
    )


def build_authorization_payload(
    signer: LocalAccount,
    requirements: Mapping[str, Any],
    *,
    chain_id: int,
    token_name: str,
    token_version: str,
    backdate_seconds: int = 600,
    now: Optional[int] = None,
    nonce: Optional[bytes] = None,
) -> Dict[str, Any]:
    """
    Sign the ERC-3009 TransferWithAuthorization described by ``requirements``.

    The EIP-712 domain name and version come from the requirement's ``extra``
    block when the server supplies them, otherwise from the configured token.
    """
    now = int(time.time()) if now is None else now
    nonce_bytes = nonce if nonce is not None else secrets.token_bytes(32)
    valid_after = now - backdate_seconds
    valid_before = now + int(requirements.get("maxTimeoutSeconds") or 60)

    payer = to_checksum_address(signer.address)
    pay_to = to_checksum_address(requirements["payTo"])
    value = int(requirements["maxAmountRequired"])
    extra = requirements.get("extra") or {}

    message = {
        "from": payer,
        "to": pay_to,
        "value": value,
        "validAfter": valid_after,
        "validBefore": valid_before,
        "nonce": HexBytes(nonce_bytes),
    }
    domain = {
        "name": extra.get("name", token_name),
        "version": extra.get("version", token_version),
        "chainId": chain_id,
        "verifyingContract": to_checksum_address(requirements["asset"]),
    }
    typed_data = {
        "types": {
            "EIP712Domain": _EIP712_DOMAIN,
            "TransferWithAuthorization": _TRANSFER_WITH_AUTHORIZATION,
        },
        "primaryType": "TransferWithAuthorization",
        "domain": domain,
        "message": message,
    }

    signable = encode_typed_data(full_message=typed_data)
    signature = signer.sign_message(signable).signature

    return {
        "signature": "0x" + bytes(signature).hex(),
        "authorization": {
            "from": payer,
            "to": pay_to,
            "value": str(value),
            "validAfter": str(valid_after),
            "validBefore": str(valid_before),
            "nonce": "0x" + nonce_bytes.hex(),
        },
    }


def build_payment_payload(
    signer: LocalAccount,
    requirements: Mapping[str, Any],
    **kwargs: Any,
) -> Dict[str, Any]:
    """Build the JSON document carried in the ``X-PAYMENT`` header."""
    return {
        "x402Version": X402_VERSION,
        "scheme": requirements.get("scheme", "exact"),
        "network": requirements["network"],
        "payload": build_authorization_payload(signer, requirements, **kwargs),
    }


def encode_payment_header(payment_payload: Mapping[str, Any]) -> str:
    raw = json.dumps(payment_payload, separators=(",", ":")).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def decode_payment_response(header: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Decode an ``X-PAYMENT-RESPONSE`` header.

    Returns ``None`` when the header is absent or is not a base64-encoded JSON
    object; the caller decides what a missing proof means.
    """
    if not header:
        return None
    try:
        decoded = base64.b64decode(header, validate=True)
        payload = json.loads(decoded.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None
    if not isinstance(payload, dict):
        return None
    return payload
