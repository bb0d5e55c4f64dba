"""
Public, high-level helpers for building a payment lifecycle coordinator.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

import requests
from eth_account.signers.local import LocalAccount
from web3 import Web3

from .core.chain import ChainReader
from .core.client import PaymentSubmitter
from .core.config import LifecycleSettings, load_settings
from .core.coordinator import PaymentLifecycleCoordinator, StatusListener

__all__ = [
    "create_coordinator",
]


def create_coordinator(
    *,
    settings: Optional[LifecycleSettings] = None,
    signer: Optional[LocalAccount] = None,
    session: Optional[requests.Session] = None,
    web3: Optional[Web3] = None,
    chain: Optional[ChainReader] = None,
    submitter: Optional[PaymentSubmitter] = None,
    on_status: Optional[StatusListener] = None,
    env_file: Optional[str] = ".env",
    overrides: Optional[Mapping[str, str]] = None,
    base: Optional[Mapping[str, str]] = None,
    **setting_values: Any,
) -> PaymentLifecycleCoordinator:
    """
    Construct a :class:`PaymentLifecycleCoordinator` and its services.

    Callers either supply ready-made :class:`LifecycleSettings` or let the
    helper resolve them from the environment. ``chain`` and ``submitter`` can
    be passed in to share one reader and one submitter between coordinators.
    The signer defaults to the one derived from ``X402_PAYER_PRIVATE_KEY``.
    """
    if settings is not None:
        if overrides or base is not None or setting_values:
            raise ValueError(
                "Provide either pre-built LifecycleSettings or individual settings, not both."
            )
        cfg = settings
    else:
        cfg = load_settings(
            env_file=env_file,
            overrides=overrides,
            base=base,
            **setting_values,
        )

    if submitter is None:
        submitter = PaymentSubmitter(
            cfg,
            signer=signer if signer is not None else cfg.build_signer(),
            session=session,
        )
    elif signer is not None:
        submitter.set_signer(signer)

    if chain is None:
        chain = ChainReader(cfg, web3=web3)

    return PaymentLifecycleCoordinator(cfg, chain, submitter, on_status=on_status)
