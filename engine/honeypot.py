"""
Best-effort honeypot heuristic.

This is an advisory signal, not a security check: it only looks at the
deployed bytecode and will miss most malicious tokens. A ``False`` result
means "nothing obvious found", never "safe".
"""
from __future__ import annotations

import logging
from typing import Iterable

from core.config import HONEYPOT_MARKERS

logger = logging.getLogger(__name__)


class HoneypotHeuristic:
    def __init__(self, client, code_size_limit: int = 24_999, markers: Iterable[bytes] = HONEYPOT_MARKERS) -> None:
        self.client = client
        self.code_size_limit = int(code_size_limit)
        self.markers = tuple(m.lower() for m in markers)

    def looks_risky(self, token_address: str) -> bool:
        try:
            code = bytes(self.client.get_code(token_address))
        except Exception as e:
            logger.warning("Error checking %s for honeypot patterns: %s", token_address, e)
            return False
        if len(code) > self.code_size_limit:
            logger.info("Token %s has unusually large bytecode (%d bytes)", token_address, len(code))
            return True
        lowered = code.lower()
        if self.markers and all(m in lowered for m in self.markers):
            logger.info("Token %s bytecode contains transfer-blocking markers", token_address)
            return True
        return False
