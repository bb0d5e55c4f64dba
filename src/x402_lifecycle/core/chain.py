"""
Read-only access to the chain node: receipts, block height, token balance and
gas estimates.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, TypeVar

import requests
from eth_utils import to_checksum_address
from web3 import Web3
from web3.exceptions import TransactionNotFound, Web3Exception

from .config import LifecycleSettings
from .errors import ChainError, ValidationError
from .models import PaymentConfig, Receipt, ReceiptStatus
from .payloads import to_base_units
from .validation import parse_amount, validate_payment_config

__all__ = [
    "ChainReader",
    "ERC20_ABI",
    "format_token_amount",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Minimal ERC-20 ABI
ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "value", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

_RPC_ERRORS = (Web3Exception, requests.RequestException, ValueError, OSError)

_RECEIPT_STATUS = {
    1: ReceiptStatus.SUCCESS,
    0: ReceiptStatus.REVERTED,
}


def format_token_amount(raw: int, decimals: int) -> str:
    """
    Render a raw token amount in whole-token units without trailing zeros.

    >>> format_token_amount(990000, 6)
    '0.99'
    """
    value = Decimal(int(raw)).scaleb(-decimals).normalize()
    return format(value, "f")


class ChainReader:
    """
    Stateless reader over a ``web3`` connection.

    ``get_receipt`` and ``get_block_height`` raise :class:`ChainError` on
    failure. The balance and gas helpers used for display mask failures with
    safe defaults and log a warning instead.
    """

    def __init__(
        self,
        settings: LifecycleSettings,
        *,
        web3: Optional[Web3] = None,
    ) -> None:
        self.settings = settings
        self.web3 = web3 or Web3(
            Web3.HTTPProvider(
                settings.rpc_url,
                request_kwargs={"timeout": settings.submit_timeout},
            )
        )
        self.token_address = to_checksum_address(settings.token_address)
        self._token = self.web3.eth.contract(address=self.token_address, abi=ERC20_ABI)

    def _read(self, description: str, call: Callable[[], T]) -> T:
        try:
            return call()
        except _RPC_ERRORS as exc:
            raise ChainError(f"Failed to {description}: {exc}") from exc

    def get_receipt(self, tx_hash: str) -> Optional[Receipt]:
        try:
            raw = self.web3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        except _RPC_ERRORS as exc:
            raise ChainError(f"Failed to fetch receipt for {tx_hash}: {exc}") from exc

        if not raw or raw.get("blockNumber") is None:
            return None
        try:
            status = _RECEIPT_STATUS[int(raw.get("status"))]
        except (KeyError, TypeError, ValueError) as exc:
            raise ChainError(
                f"Unexpected receipt status {raw.get('status')!r} for {tx_hash}"
            ) from exc
        return Receipt(status=status, block_number=int(raw["blockNumber"]), raw=dict(raw))

    def get_block_height(self) -> int:
        return int(self._read("read block height", lambda: self.web3.eth.get_block_number()))

    def get_decimals(self) -> int:
        return self.settings.token_decimals

    def get_balance(self, address: str) -> int:
        checksum = to_checksum_address(address)
        return int(
            self._read(
                f"read token balance of {checksum}",
                lambda: self._token.functions.balanceOf(checksum).call(),
            )
        )

    def get_formatted_balance(self, address: str) -> str:
        try:
            raw = self.get_balance(address)
        except (ChainError, ValueError) as exc:
            logger.warning("Balance lookup for %s failed, reporting 0: %s", address, exc)
            return "0"
        return format_token_amount(raw, self.get_decimals())

    def estimate_gas(self, config: PaymentConfig, sender: Optional[str] = None) -> int:
        try:
            validate_payment_config(config)
            amount = to_base_units(parse_amount(config.amount), self.get_decimals())
            transfer = self._token.functions.transfer(
                to_checksum_address(config.recipient),
                amount,
            )
            transaction: Dict[str, Any] = {"value": 0}
            if sender:
                transaction["from"] = to_checksum_address(sender)
            estimate = self._read("estimate gas", lambda: transfer.estimate_gas(transaction))
        except (ChainError, ValidationError) as exc:
            logger.warning(
                "Gas estimation failed, using default %s: %s",
                self.settings.default_gas_estimate,
                exc,
            )
            return self.settings.default_gas_estimate
        return int(estimate) + self.settings.gas_buffer
