"""
Minimal script that uses the public API to pay and follow a payment to
confirmation.
"""

from __future__ import annotations

import argparse
import logging
import sys

from x402_lifecycle import (
    ConfigError,
    PaymentConfig,
    PaymentStatus,
    create_coordinator,
    load_settings,
)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Send an x402 payment and wait for it to settle")
    parser.add_argument("--env-file", default=".env", help="Path to the .env file with X402_* settings")
    parser.add_argument("--amount", default="0.01", help="Amount in USDC (default: 0.01)")
    parser.add_argument("--recipient", required=True, help="Recipient address")
    parser.add_argument("--description", default="Example x402 payment")
    parser.add_argument("--timeout", type=float, default=330.0, help="Seconds to wait for settlement")
    return parser.parse_args()


def _print_status(status: PaymentStatus) -> None:
    print(f"  {status.status.value}: confirmations={status.confirmations}")


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    try:
        settings = load_settings(env_file=args.env_file)
    except ConfigError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1

    coordinator = create_coordinator(settings=settings, on_status=_print_status)
    if coordinator.signer is None:
        print("Set X402_PAYER_PRIVATE_KEY to sign payments", file=sys.stderr)
        return 1

    print(f"Gas estimate: {coordinator.estimate_payment_gas(PaymentConfig(args.amount, args.recipient))}")

    result = coordinator.initiate_payment(
        PaymentConfig(
            amount=args.amount,
            recipient=args.recipient,
            description=args.description,
            metadata={"source": "examples/send_payment.py"},
        )
    )
    if not result.success:
        print(f"Payment failed: {result.error}", file=sys.stderr)
        return 1

    print(f"Submitted transaction {result.transaction_hash}")
    final = coordinator.wait_for_settlement(timeout=args.timeout)
    if final is None or coordinator.error:
        print(f"Payment did not confirm: {coordinator.error}", file=sys.stderr)
        return 1

    print(f"Final status: {final.status.value}")
    print(f"Balance now: {coordinator.refresh_balance()} USDC")
    return 0


if __name__ == "__main__":
    sys.exit(main())
