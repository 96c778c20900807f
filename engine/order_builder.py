"""
Order construction and submission.

Builds the router ``exactInput`` transaction for a single-hop path, handles
the approval that must land before a sell, estimates gas with a fixed
fallback, and signs/broadcasts with a sequencer-issued nonce.
"""
from __future__ import annotations

import logging
import time
from typing import Dict, Optional

from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import ContractLogicError

from core.errors import ApprovalFailureError, BroadcastRejectedError, ContractRevertError, GasEstimationError, ValidationError
from core.models import MAX_UINT256, FeeTier, SwapDirection, SwapOrder
from core.nonce import NonceSequencer

logger = logging.getLogger(__name__)


def encode_path(token_in: str, fee_tier: int, token_out: str) -> bytes:
    """Pack a single-hop V3 path: 20-byte address, 3-byte big-endian fee, 20-byte address."""
    for token in (token_in, token_out):
        if not isinstance(token, str) or not Web3.is_address(token):
            raise ValidationError(f"Invalid token address in path: {token!r}")
    try:
        fee = FeeTier(int(fee_tier))
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid fee tier in path: {fee_tier!r}") from e
    return (
        bytes.fromhex(token_in[2:])
        + int(fee).to_bytes(3, byteorder="big")
        + bytes.fromhex(token_out[2:])
    )


class SwapOrderBuilder:
    def __init__(self, client, sequencer: NonceSequencer, config) -> None:
        self.client = client
        self.sequencer = sequencer
        self.config = config

    def deadline(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        return int(now) + int(self.config.deadline_minutes) * 60

    def build_order(self, direction: SwapDirection, token_in: str, token_out: str, fee_tier: FeeTier, amount_in: int, min_out: int, recipient: str) -> SwapOrder:
        return SwapOrder(
            direction=direction,
            input_amount=int(amount_in),
            min_output=int(min_out),
            fee_tier=FeeTier(fee_tier),
            path=encode_path(token_in, fee_tier, token_out),
            recipient=recipient,
            deadline=self.deadline(),
        )

    # ----------------------------
    # Approval
    # ----------------------------
    def ensure_allowance(self, account: LocalAccount, token: str, amount: int) -> Optional[str]:
        """Approve the router for an unlimited amount if the allowance is short. Blocks until mined."""
        spender = self.client.router_address
        try:
            allowance = int(self.client.get_allowance(token, account.address, spender))
        except Exception as e:
            raise ApprovalFailureError(f"Token approval failed: could not read allowance: {e}", details=str(e)) from e
        if allowance >= int(amount):
            logger.info("Token already approved for PancakeSwap V3 router")
            return None

        logger.info("Approving tokens for PancakeSwap V3 router...")
        try:
            nonce = self.sequencer.next(account.address)
            tx = self.client.build_approve_transaction(
                token, spender, MAX_UINT256, self._tx_params(account.address, nonce, gas=int(self.config.approve_gas))
            )
            tx_hash = self.client.send_transaction(tx, account)
        except Exception as e:
            self.sequencer.invalidate(account.address)
            raise ApprovalFailureError(
                f"Token approval failed: {e}. This token may have transfer restrictions or be a honeypot.",
                details=str(e),
            ) from e
        try:
            receipt = self.client.wait_for_receipt(tx_hash, timeout=self.config.receipt_timeout)
        except Exception as e:
            raise ApprovalFailureError(f"Token approval was not confirmed: {e}", details=str(e)) from e
        if int(receipt.get("status", 0)) != 1:
            raise ApprovalFailureError(
                "Token approval reverted. This token may have transfer restrictions or be a honeypot.",
                details=f"approval tx {tx_hash} status={receipt.get('status')}",
            )
        logger.info("Token approval successful! Hash: %s", tx_hash)
        return tx_hash

    # ----------------------------
    # Swap transaction
    # ----------------------------
    def _tx_params(self, sender: str, nonce: int, gas: Optional[int] = None) -> Dict:
        params = {
            "chainId": self.client.chain_id,
            "from": sender,
            "nonce": int(nonce),
            "gasPrice": int(self.client.get_gas_price()),
        }
        if gas is not None:
            params["gas"] = int(gas)
        return params

    def build_swap_transaction(self, order: SwapOrder, account: LocalAccount, nonce: int) -> Dict:
        params = self._tx_params(account.address, nonce, gas=int(self.config.default_swap_gas))
        if order.direction is SwapDirection.BUY_WITH_NATIVE:
            params["value"] = int(order.input_amount)
        return self.client.build_exact_input_transaction(order, params)

    def estimate_gas(self, tx: Dict) -> int:
        """Node estimate (or the fixed default on failure) plus the configured buffer."""
        probe = {k: v for k, v in tx.items() if k != "gas"}
        try:
            gas = int(self.client.estimate_gas(probe))
        except Exception as e:
            err = GasEstimationError(f"Gas estimation failed: {e}")
            logger.warning("%s; using default gas limit %d", err, self.config.default_swap_gas)
            gas = int(self.config.default_swap_gas)
        return gas * (100 + int(self.config.gas_buffer_percent)) // 100

    # ----------------------------
    # Submission
    # ----------------------------
    def submit(self, tx: Dict, account: LocalAccount) -> str:
        try:
            tx_hash = self.client.send_transaction(tx, account)
        except ContractLogicError as e:
            # Refused at send time, so the nonce was never consumed
            self.sequencer.invalidate(account.address)
            raise ContractRevertError(f"Transaction reverted: {e}", reason=_revert_reason(e), details=str(e)) from e
        except Exception as e:
            self.sequencer.invalidate(account.address)
            raise BroadcastRejectedError(f"Transaction rejected by node: {e}", details=str(e)) from e
        logger.info("Transaction broadcast: %s (nonce %s)", tx_hash, tx.get("nonce"))

        if not self.config.wait_for_receipt:
            return tx_hash
        receipt = self.client.wait_for_receipt(tx_hash, timeout=self.config.receipt_timeout)
        if int(receipt.get("status", 0)) != 1:
            reason = self.client.replay_revert_reason(tx, receipt.get("blockNumber"))
            msg = f"Transaction reverted: {reason}" if reason else "Transaction reverted"
            raise ContractRevertError(msg, reason=reason, tx_hash=tx_hash, details=f"{msg} (tx {tx_hash})")
        return tx_hash


def _revert_reason(error: ContractLogicError) -> Optional[str]:
    message = getattr(error, "message", None) or (error.args[0] if error.args else None)
    if not message:
        return None
    text = str(message)
    prefix = "execution reverted:"
    if text.startswith(prefix):
        return text[len(prefix):].strip() or None
    return text
