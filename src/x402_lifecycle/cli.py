"""
Command-line interface for exercising the payment lifecycle.
"""

from __future__ import annotations

import argparse
import json
import logging
from typing import Any, Dict, Iterable, Sequence, Tuple

from .api import create_coordinator
from .core.config import load_settings
from .core.coordinator import PaymentLifecycleCoordinator
from .core.errors import ConfigError
from .core.models import PaymentConfig, PaymentState, SessionState


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _key_value(value: str) -> Tuple[str, str]:
    if "=" not in value:
        raise argparse.ArgumentTypeError("Values must look like KEY=VALUE")
    key, val = value.split("=", 1)
    key = key.strip()
    if not key:
        raise argparse.ArgumentTypeError("Key must not be empty")
    return key, val


def _collect_pairs(pairs: Iterable[Tuple[str, str]]) -> Dict[str, str]:
    collected: Dict[str, str] = {}
    for key, value in pairs:
        collected[key] = value
    return collected


def _emit(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="x402-lifecycle",
        description="Submit and track x402 USDC payments",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Path to the .env file containing X402_* settings (default: .env)",
    )
    parser.add_argument(
        "--set",
        action="append",
        type=_key_value,
        metavar="KEY=VALUE",
        default=None,
        help="Override an environment variable without editing the .env file",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level (default: INFO)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    pay = subparsers.add_parser("pay", help="Submit a payment and wait for confirmation")
    pay.add_argument("--amount", required=True, help="Amount in token units (e.g. 0.01)")
    pay.add_argument("--recipient", required=True, help="Recipient address (0x...)")
    pay.add_argument("--description", default=None, help="Optional payment description")
    pay.add_argument(
        "--meta",
        action="append",
        type=_key_value,
        metavar="KEY=VALUE",
        default=None,
        help="Attach a metadata entry (repeatable)",
    )
    pay.add_argument(
        "--no-wait",
        action="store_true",
        help="Return as soon as the transaction hash is known",
    )

    status = subparsers.add_parser("status", help="Check the status of a transaction once")
    status.add_argument("tx_hash", help="Transaction hash to check")

    balance = subparsers.add_parser("balance", help="Show the USDC balance of an address")
    balance.add_argument(
        "address",
        nargs="?",
        default=None,
        help="Address to query (defaults to the configured payer)",
    )

    gas = subparsers.add_parser("estimate-gas", help="Estimate gas for a payment")
    gas.add_argument("--amount", required=True)
    gas.add_argument("--recipient", required=True)

    return parser


def _run_pay(coordinator: PaymentLifecycleCoordinator, args: argparse.Namespace) -> int:
    config = PaymentConfig(
        amount=args.amount,
        recipient=args.recipient,
        description=args.description,
        metadata=_collect_pairs(args.meta or ()) or None,
    )
    result = coordinator.initiate_payment(config)
    _emit(result.to_dict())
    if not result.success:
        logging.error("Payment failed: %s", result.error)
        return 1
    if args.no_wait:
        return 0

    status = coordinator.wait_for_settlement()
    if status is not None:
        _emit(status.to_dict())
    if coordinator.state is not SessionState.SETTLED or status is None:
        logging.error("Payment did not settle: %s", coordinator.error)
        return 1
    if status.status is not PaymentState.CONFIRMED:
        logging.error("Payment was not confirmed: %s", coordinator.error or status.error)
        return 1

    logging.info("Payment confirmed in %s", status.transaction_hash)
    _emit({"balance": coordinator.usdc_balance})
    return 0


def _run_status(coordinator: PaymentLifecycleCoordinator, args: argparse.Namespace) -> int:
    status = coordinator.check_payment_status(args.tx_hash)
    _emit(status.to_dict())
    return 1 if status.status is PaymentState.FAILED else 0


def _run_balance(coordinator: PaymentLifecycleCoordinator, args: argparse.Namespace) -> int:
    address = args.address
    if address is None:
        if coordinator.signer is None:
            logging.error("No address given and no payer key configured")
            return 1
        address = coordinator.signer.address
    _emit({"address": address, "balance": coordinator.get_usdc_balance(address)})
    return 0


def _run_estimate_gas(coordinator: PaymentLifecycleCoordinator, args: argparse.Namespace) -> int:
    config = PaymentConfig(amount=args.amount, recipient=args.recipient)
    _emit({"gas": coordinator.estimate_payment_gas(config)})
    return 0


_COMMANDS = {
    "pay": _run_pay,
    "status": _run_status,
    "balance": _run_balance,
    "estimate-gas": _run_estimate_gas,
}


def run_cli(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.log_level)
    overrides = _collect_pairs(args.set or ())

    try:
        settings = load_settings(env_file=args.env_file, overrides=overrides)
    except (ConfigError, ValueError) as exc:
        logging.error("Invalid configuration: %s", exc)
        return 1

    coordinator = create_coordinator(settings=settings)
    try:
        return _COMMANDS[args.command](coordinator, args)
    finally:
        coordinator.reset()


def main() -> None:
    raise SystemExit(run_cli())
