"""
Per-address transaction sequencing.

The sequencer keeps the last nonce it handed out for each signing address
and reconciles it against the node's pending nonce on every call:

- nothing cached, or the cache is behind the node  -> adopt the node's value
- cache is ahead (node hasn't indexed our last tx)  -> cache + 1

Calls for the same address are serialised by a per-address lock; calls for
different addresses never wait on each other.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Optional

from core.errors import NonceReconciliationError

logger = logging.getLogger(__name__)


class NonceSequencer:
    def __init__(self, fetch_pending_nonce: Callable[[str], int]) -> None:
        self._fetch = fetch_pending_nonce
        self._last_issued: Dict[str, int] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    @staticmethod
    def _key(address: str) -> str:
        return address.lower()

    def _lock_for(self, address: str) -> threading.Lock:
        key = self._key(address)
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def next(self, address: str) -> int:
        key = self._key(address)
        with self._lock_for(address):
            last = self._last_issued.get(key)
            try:
                chain_nonce = int(self._fetch(address))
            except Exception as e:
                if last is not None:
                    issued = last + 1
                    logger.warning("Pending nonce read failed for %s (%s); continuing from cache with %d", address, e, issued)
                    self._last_issued[key] = issued
                    return issued
                logger.warning("Pending nonce read failed for %s (%s); retrying unconditional read", address, e)
                try:
                    issued = int(self._fetch(address))
                except Exception as e2:
                    raise NonceReconciliationError(f"Could not obtain a nonce for {address}", details=str(e2)) from e2
                self._last_issued[key] = issued
                return issued

            if last is None or last < chain_nonce:
                issued = chain_nonce
            else:
                issued = last + 1
            self._last_issued[key] = issued
            logger.debug("Issued nonce %d for %s (node pending=%d, cached=%s)", issued, address, chain_nonce, last)
            return issued

    def peek(self, address: str) -> Optional[int]:
        with self._lock_for(address):
            return self._last_issued.get(self._key(address))

    def invalidate(self, address: str) -> None:
        """Forget the cached nonce so the next call re-adopts the node's pending view."""
        with self._lock_for(address):
            self._last_issued.pop(self._key(address), None)
        logger.info("Nonce cache invalidated for %s", address)
