"""
Error taxonomy for the swap engine.

Every error carries a short human-readable ``category`` and the raw
underlying message in ``details`` so outer surfaces (CLI, HTTP wrappers)
can show both.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class SwapError(Exception):
    category = "Swap failed"

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details if details is not None else message
        # Pipeline state the order was in when this was raised (set by the executor)
        self.state: Optional[str] = None


class ValidationError(SwapError):
    """Malformed address, amount or parameter. Raised before any chain write."""
    category = "Invalid input"


class ConversionError(ValidationError):
    category = "Invalid amount"


class InsufficientBalanceError(SwapError):
    category = "Insufficient balance"


class NoLiquidityPoolError(SwapError):
    category = "No valid liquidity pool"


class QuoteDegradedError(SwapError):
    """The only available quote was the minimal fallback and policy forbids trading on it."""
    category = "No reliable price estimate"


class ApprovalFailureError(SwapError):
    category = "Token approval failed"


class HoneypotSuspectedError(SwapError):
    category = "Token flagged as possible honeypot"


class GasEstimationError(SwapError):
    """Recovered internally with a fixed gas limit; never reaches callers."""
    category = "Gas estimation failed"


class NonceReconciliationError(SwapError):
    category = "Nonce unavailable"


class ContractRevertError(SwapError):
    category = "Transaction reverted"

    def __init__(self, message: str, reason: Optional[str] = None, tx_hash: Optional[str] = None, details: Optional[str] = None) -> None:
        super().__init__(message, details=details)
        self.reason = reason
        self.tx_hash = tx_hash


class BroadcastRejectedError(ContractRevertError):
    """The node refused the signed transaction; it never reached the mempool."""
    category = "Transaction rejected by node"


def describe_error(exc: BaseException) -> Dict[str, Any]:
    """Return ``{"error": <category>, "details": <raw message>}`` for any exception."""
    if isinstance(exc, SwapError):
        out: Dict[str, Any] = {"error": exc.category, "details": exc.details}
        if exc.state:
            out["state"] = exc.state
        if isinstance(exc, ContractRevertError) and exc.reason:
            out["reason"] = exc.reason
        return out
    return {"error": SwapError.category, "details": str(exc)}
