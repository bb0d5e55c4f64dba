"""
Settings for the payment lifecycle services.

Token identity, chain, endpoints and timing budgets are configuration rather
than logic, so every value here can be overridden through the environment, a
``.env`` file or keyword arguments to :func:`load_settings`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_utils import is_hex, is_hex_address, to_checksum_address

from .environment import build_environment
from .errors import ConfigError

__all__ = [
    "DEFAULT_TOKEN_ADDRESS",
    "LifecycleSettings",
    "load_settings",
]

logger = logging.getLogger(__name__)

# USDC on Base mainnet.
DEFAULT_TOKEN_ADDRESS = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"

_PARAMETER_TO_ENV_KEY = {
    "payment_endpoint": "X402_PAYMENT_ENDPOINT",
    "rpc_url": "X402_RPC_URL",
    "payer_private_key": "X402_PAYER_PRIVATE_KEY",
    "token_address": "X402_TOKEN_ADDRESS",
    "token_decimals": "X402_TOKEN_DECIMALS",
    "token_name": "X402_TOKEN_NAME",
    "token_version": "X402_TOKEN_VERSION",
    "chain_id": "X402_CHAIN_ID",
    "network": "X402_NETWORK",
    "submit_timeout": "X402_SUBMIT_TIMEOUT_SECONDS",
    "poll_interval": "X402_POLL_INTERVAL_SECONDS",
    "initial_poll_delay": "X402_INITIAL_POLL_DELAY_SECONDS",
    "max_poll_attempts": "X402_MAX_POLL_ATTEMPTS",
    "required_confirmations": "X402_REQUIRED_CONFIRMATIONS",
    "gas_buffer": "X402_GAS_BUFFER",
    "default_gas_estimate": "X402_DEFAULT_GAS_ESTIMATE",
    "authorization_backdate": "X402_AUTHORIZATION_BACKDATE_SECONDS",
    "allow_unproven_payments": "X402_ALLOW_UNPROVEN_PAYMENTS",
}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _collect_overrides(explicit: Mapping[str, Any]) -> Dict[str, str]:
    overrides: Dict[str, str] = {}
    for key, value in explicit.items():
        if value is None:
            continue
        try:
            env_key = _PARAMETER_TO_ENV_KEY[key]
        except KeyError as exc:
            raise TypeError(f"Unknown setting '{key}'") from exc
        overrides[env_key] = _stringify(value)
    return overrides


def _normalize_private_key(raw_key: str) -> str:
    key = raw_key.strip()
    if not key:
        raise ConfigError(
            "X402_PAYER_PRIVATE_KEY must not be empty", key="X402_PAYER_PRIVATE_KEY"
        )
    if not key.startswith("0x"):
        key = "0x" + key
    if len(key) != 66 or not is_hex(key):
        raise ConfigError(
            "X402_PAYER_PRIVATE_KEY must be 32 bytes (64 hex chars)", key="X402_PAYER_PRIVATE_KEY"
        )
    return key


def _normalize_address(raw_address: str, field_name: str) -> str:
    value = raw_address.strip()
    if not value:
        raise ConfigError(f"{field_name} must not be empty", key=field_name)
    if not value.startswith("0x"):
        value = "0x" + value
    if not is_hex_address(value):
        raise ConfigError(f"{field_name} is not a valid EVM address", key=field_name)
    return to_checksum_address(value)


def _int_value(values: Mapping[str, str], key: str, default: int, *, minimum: int = 0) -> int:
    raw = values.get(key)
    if raw is None or raw == "":
        return default
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got '{raw}'", key=key) from exc
    if parsed < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {parsed}", key=key)
    return parsed


def _float_value(values: Mapping[str, str], key: str, default: float) -> float:
    raw = values.get(key)
    if raw is None or raw == "":
        return default
    try:
        parsed = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got '{raw}'", key=key) from exc
    if parsed < 0:
        raise ConfigError(f"{key} must not be negative, got {parsed}", key=key)
    return parsed


def _bool_value(values: Mapping[str, str], key: str, default: bool) -> bool:
    raw = values.get(key)
    if raw is None or raw == "":
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"{key} must be a boolean, got '{raw}'", key=key)


@dataclass(frozen=True)
class LifecycleSettings:
    payment_endpoint: str = "https://api.x402.com"
    rpc_url: str = "https://mainnet.base.org"
    payer_private_key: Optional[str] = None
    token_address: str = DEFAULT_TOKEN_ADDRESS
    token_decimals: int = 6
    token_name: str = "USD Coin"
    token_version: str = "2"
    chain_id: int = 8453
    network: str = "base"
    submit_timeout: float = 30.0
    poll_interval: float = 10.0
    initial_poll_delay: float = 2.0
    max_poll_attempts: int = 30
    required_confirmations: int = 1
    gas_buffer: int = 20_000
    default_gas_estimate: int = 100_000
    authorization_backdate: int = 600
    allow_unproven_payments: bool = False

    def __repr__(self) -> str:
        # Keep the key out of logs and tracebacks.
        key_state = "set" if self.payer_private_key else "unset"
        return (
            f"LifecycleSettings(payment_endpoint={self.payment_endpoint!r}, "
            f"rpc_url={self.rpc_url!r}, network={self.network!r}, "
            f"chain_id={self.chain_id}, token_address={self.token_address!r}, "
            f"payer_private_key=<{key_state}>)"
        )

    def build_signer(self) -> Optional[LocalAccount]:
        """Return the configured signing account, or ``None`` when no key is set."""
        if not self.payer_private_key:
            return None
        return Account.from_key(self.payer_private_key)

    @classmethod
    def from_mapping(cls, values: Mapping[str, str]) -> "LifecycleSettings":
        defaults = cls()

        private_key = values.get("X402_PAYER_PRIVATE_KEY")
        if private_key:
            private_key = _normalize_private_key(private_key)
        else:
            private_key = None

        token_address = _normalize_address(
            values.get("X402_TOKEN_ADDRESS") or defaults.token_address,
            "X402_TOKEN_ADDRESS",
        )

        required_confirmations = _int_value(
            values, "X402_REQUIRED_CONFIRMATIONS", defaults.required_confirmations, minimum=1
        )

        return cls(
            payment_endpoint=(
                values.get("X402_PAYMENT_ENDPOINT") or defaults.payment_endpoint
            ).rstrip("/"),
            rpc_url=values.get("X402_RPC_URL") or defaults.rpc_url,
            payer_private_key=private_key,
            token_address=token_address,
            token_decimals=_int_value(values, "X402_TOKEN_DECIMALS", defaults.token_decimals),
            token_name=values.get("X402_TOKEN_NAME") or defaults.token_name,
            token_version=values.get("X402_TOKEN_VERSION") or defaults.token_version,
            chain_id=_int_value(values, "X402_CHAIN_ID", defaults.chain_id, minimum=1),
            network=values.get("X402_NETWORK") or defaults.network,
            submit_timeout=_float_value(
                values, "X402_SUBMIT_TIMEOUT_SECONDS", defaults.submit_timeout
            ),
            poll_interval=_float_value(
                values, "X402_POLL_INTERVAL_SECONDS", defaults.poll_interval
            ),
            initial_poll_delay=_float_value(
                values, "X402_INITIAL_POLL_DELAY_SECONDS", defaults.initial_poll_delay
            ),
            max_poll_attempts=_int_value(
                values, "X402_MAX_POLL_ATTEMPTS", defaults.max_poll_attempts, minimum=1
            ),
            required_confirmations=required_confirmations,
            gas_buffer=_int_value(values, "X402_GAS_BUFFER", defaults.gas_buffer),
            default_gas_estimate=_int_value(
                values, "X402_DEFAULT_GAS_ESTIMATE", defaults.default_gas_estimate
            ),
            authorization_backdate=_int_value(
                values,
                "X402_AUTHORIZATION_BACKDATE_SECONDS",
                defaults.authorization_backdate,
            ),
            allow_unproven_payments=_bool_value(
                values, "X402_ALLOW_UNPROVEN_PAYMENTS", defaults.allow_unproven_payments
            ),
        )

    @classmethod
    def from_env(
        cls,
        *,
        env_file: Optional[str] = ".env",
        overrides: Optional[Mapping[str, str]] = None,
        base: Optional[Mapping[str, str]] = None,
        **settings: Any,
    ) -> "LifecycleSettings":
        merged_overrides = dict(overrides or {})
        merged_overrides.update(_collect_overrides(settings))

        environment = build_environment(
            env_file=env_file,
            base=base,
            overrides=merged_overrides,
        )
        for key, origin in environment.settings_keys().items():
            logger.debug("%s taken from %s", key, origin)
        try:
            return cls.from_mapping(environment.variables)
        except ConfigError as exc:
            origin = environment.origin(exc.key) if exc.key else None
            if origin is None:
                raise
            raise ConfigError(f"{exc} (set via {origin})", key=exc.key) from exc


def load_settings(
    *,
    env_file: Optional[str] = ".env",
    overrides: Optional[Mapping[str, str]] = None,
    base: Optional[Mapping[str, str]] = None,
    **settings: Any,
) -> LifecycleSettings:
    """
    Convenience wrapper that mirrors :meth:`LifecycleSettings.from_env`.

    Keyword arguments use the field names of :class:`LifecycleSettings`
    (``rpc_url="http://localhost:8545"``, ``poll_interval=1``) and win over
    both the environment and the ``.env`` file.
    """
    return LifecycleSettings.from_env(
        env_file=env_file,
        overrides=overrides,
        base=base,
        **settings,
    )
