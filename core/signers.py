from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount

from core.errors import ValidationError

logger = logging.getLogger(__name__)

# secp256k1 group order; valid keys are 1 .. n-1
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


def account_from_key(private_key: str) -> LocalAccount:
    pk = (private_key or "").strip()
    if not pk:
        raise ValidationError("Private key is required")
    if not pk.lower().startswith("0x"):
        pk = "0x" + pk
    if len(pk) != 66:
        raise ValidationError("Invalid private key format. Expected 0x followed by 64 hex characters.")
    try:
        secret = int(pk, 16)
    except ValueError as e:
        raise ValidationError("Invalid private key format: not hexadecimal", details=str(e)) from e
    if not 0 < secret < SECP256K1_N:
        raise ValidationError("Invalid private key: out of range for secp256k1")
    try:
        return Account.from_key(pk)
    except Exception as e:
        raise ValidationError("Invalid private key format", details=str(e)) from e


class SignerRegistry:
    """
    In-memory registry of signing accounts, keyed by address.

    Accounts are only held for the duration of a ``scoped`` block; the
    entry is removed on every exit path.
    """

    def __init__(self) -> None:
        self._accounts: Dict[str, LocalAccount] = {}
        self._lock = threading.Lock()

    def add(self, private_key: str) -> LocalAccount:
        account = account_from_key(private_key)
        with self._lock:
            self._accounts[account.address.lower()] = account
        return account

    def get(self, address: str) -> Optional[LocalAccount]:
        with self._lock:
            return self._accounts.get(address.lower())

    def remove(self, address: str) -> None:
        with self._lock:
            self._accounts.pop(address.lower(), None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._accounts)

    @contextmanager
    def scoped(self, private_key: str) -> Iterator[LocalAccount]:
        account = self.add(private_key)
        try:
            yield account
        finally:
            try:
                self.remove(account.address)
            except Exception as e:
                # Never mask the primary error
                logger.error("Failed to remove signer %s from registry: %s", account.address, e)
