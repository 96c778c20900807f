"""
The order pipeline.

One parameterised flow serves buy/sell with either tier strategy:

    INIT -> RESOLVE_TOKEN -> SELECT_FEE_TIER -> RISK_CHECK -> QUOTE
         -> COMPUTE_MIN_OUTPUT -> APPROVE -> BUILD_TRANSACTION
         -> ESTIMATE_GAS -> SUBMIT -> DONE | FAILED

Any ``SwapError`` raised along the way is stamped with the state it was
raised in before it propagates.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from core.config import NATIVE_DECIMALS, NATIVE_SYMBOL, EngineConfig
from core.errors import (
    ConversionError,
    HoneypotSuspectedError,
    InsufficientBalanceError,
    QuoteDegradedError,
    SwapError,
    ValidationError,
)
from core.models import FeeTier, SwapDirection, SwapPath, SwapResult, TokenDescriptor
from core.nonce import NonceSequencer
from core.signers import SignerRegistry
from core.units import from_base_units, to_base_units
from engine.fee_tiers import AutoTierSelection, FeeTierSelector, PinnedTierSelection, PoolValidator
from engine.honeypot import HoneypotHeuristic
from engine.order_builder import SwapOrderBuilder
from engine.pricing import PriceQuoter, min_output, slippage_percent_to_bps

logger = logging.getLogger(__name__)


class OrderState(str, Enum):
    INIT = "INIT"
    RESOLVE_TOKEN = "RESOLVE_TOKEN"
    SELECT_FEE_TIER = "SELECT_FEE_TIER"
    RISK_CHECK = "RISK_CHECK"
    QUOTE = "QUOTE"
    COMPUTE_MIN_OUTPUT = "COMPUTE_MIN_OUTPUT"
    APPROVE = "APPROVE"
    BUILD_TRANSACTION = "BUILD_TRANSACTION"
    ESTIMATE_GAS = "ESTIMATE_GAS"
    SUBMIT = "SUBMIT"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass
class _OrderProgress:
    state: OrderState = OrderState.INIT

    def advance(self, state: OrderState) -> None:
        logger.debug("Order state %s -> %s", self.state.value, state.value)
        self.state = state


class SwapExecutor:
    def __init__(
        self,
        client,
        config: EngineConfig,
        sequencer: Optional[NonceSequencer] = None,
        signers: Optional[SignerRegistry] = None,
    ) -> None:
        self.client = client
        self.config = config
        self.sequencer = sequencer or NonceSequencer(client.get_pending_nonce)
        self.signers = signers or SignerRegistry()
        self.selector = FeeTierSelector(client)
        self.validator = PoolValidator(client, config.min_pool_liquidity)
        self.quoter = PriceQuoter(client, config.estimate_haircut_percent, config.minimal_fallback_output)
        self.honeypot = HoneypotHeuristic(client, config.honeypot_code_size_limit, config.honeypot_markers)
        self.builder = SwapOrderBuilder(client, self.sequencer, config)

    def tier_strategy(self, fee_tier: Optional[Union[FeeTier, int]] = None):
        if fee_tier is None:
            return AutoTierSelection(self.selector, self.validator)
        try:
            return PinnedTierSelection(self.validator, FeeTier.parse(fee_tier))
        except ValueError as e:
            raise ValidationError(str(e)) from e

    def execute(
        self,
        private_key: str,
        token: str,
        amount,
        direction: Union[SwapDirection, str],
        slippage_percent: Optional[float] = None,
        fee_tier: Optional[Union[FeeTier, int]] = None,
        allow_minimal_quote: Optional[bool] = None,
    ) -> SwapResult:
        progress = _OrderProgress()
        try:
            try:
                direction = SwapDirection(direction)
            except ValueError as e:
                raise ValidationError(f"Unknown swap direction: {direction!r}") from e
            if slippage_percent is None:
                slippage_percent = self.config.default_slippage_percent
            slippage_bps = slippage_percent_to_bps(slippage_percent)
            strategy = self.tier_strategy(fee_tier)
            if allow_minimal_quote is None:
                allow_minimal_quote = self.config.allow_minimal_fallback_quote

            with self.signers.scoped(private_key) as account:
                return self._run(progress, account, token, amount, direction, slippage_bps, strategy, allow_minimal_quote)
        except SwapError as e:
            if e.state is None:
                e.state = progress.state.value
            logger.error("%s order failed in state %s: %s", direction, e.state, e.message)
            progress.state = OrderState.FAILED
            raise

    def _run(self, progress: _OrderProgress, account, token: str, amount, direction: SwapDirection,
             slippage_bps: int, strategy, allow_minimal_quote: bool) -> SwapResult:
        wrapped_native = self.client.to_checksum(self.config.wrapped_native_address)
        buying = direction is SwapDirection.BUY_WITH_NATIVE

        progress.advance(OrderState.RESOLVE_TOKEN)
        info = self._resolve_token(token)
        if info.address.lower() == wrapped_native.lower():
            raise ValidationError("Cannot swap WBNB against BNB on this route")
        amount_in = self._amount_in(amount, NATIVE_DECIMALS if buying else info.decimals)
        self._check_balance(account.address, info, amount_in, buying)

        progress.advance(OrderState.SELECT_FEE_TIER)
        pool = strategy.resolve(info.address, wrapped_native)
        logger.info("Using fee tier %s%% (pool %s)", pool.fee_tier.percent, pool.pool_address)

        progress.advance(OrderState.RISK_CHECK)
        if self.config.honeypot_check and self.honeypot.looks_risky(info.address):
            raise HoneypotSuspectedError(
                f"Token {info.symbol} ({info.address}) shows honeypot characteristics; refusing to trade it."
            )

        progress.advance(OrderState.QUOTE)
        token_in, token_out = (wrapped_native, info.address) if buying else (info.address, wrapped_native)
        quote = self.quoter.quote(SwapPath(token_in, pool.fee_tier, token_out), amount_in, pool)
        if quote.is_minimal and not allow_minimal_quote:
            raise QuoteDegradedError(
                "Could not obtain a price from the quoter or the pool state; refusing to trade without a price estimate."
            )
        if quote.is_degraded:
            logger.warning("Proceeding with degraded quote (%s): %d", quote.source.value, quote.expected_output)

        progress.advance(OrderState.COMPUTE_MIN_OUTPUT)
        min_out = min_output(quote.expected_output, slippage_bps)
        logger.info("Expected output %d, minimum output %d (slippage %d bps)", quote.expected_output, min_out, slippage_bps)

        progress.advance(OrderState.APPROVE)
        approval_tx_hash = None
        if not buying:
            approval_tx_hash = self.builder.ensure_allowance(account, info.address, amount_in)

        progress.advance(OrderState.BUILD_TRANSACTION)
        order = self.builder.build_order(direction, token_in, token_out, pool.fee_tier, amount_in, min_out, account.address)
        nonce = self.sequencer.next(account.address)
        try:
            tx = self.builder.build_swap_transaction(order, account, nonce)
            progress.advance(OrderState.ESTIMATE_GAS)
            tx["gas"] = self.builder.estimate_gas(tx)
        except Exception:
            # The nonce never left this process
            self.sequencer.invalidate(account.address)
            raise
        logger.info("Swap transaction built: nonce %d, gas limit %d", nonce, tx["gas"])

        progress.advance(OrderState.SUBMIT)
        tx_hash = self.builder.submit(tx, account)

        progress.advance(OrderState.DONE)
        logger.info("%s of %s confirmed: %s", direction.value, info.symbol, tx_hash)
        return SwapResult(
            tx_hash=tx_hash,
            direction=direction,
            token=info,
            fee_tier=pool.fee_tier,
            quote=quote,
            min_output=min_out,
            nonce=nonce,
            output_decimals=info.decimals if buying else NATIVE_DECIMALS,
            approval_tx_hash=approval_tx_hash,
        )

    def _resolve_token(self, token: str) -> TokenDescriptor:
        if isinstance(token, str) and token.strip().lower() == "bnb":
            raise ValidationError("Choose a BEP-20 token; BNB is the other side of every swap")
        try:
            return self.client.get_token_info(token)
        except SwapError:
            raise
        except Exception as e:
            raise ValidationError(f"Failed to get token info for {token}: {e}", details=str(e)) from e

    @staticmethod
    def _amount_in(amount, decimals: int) -> int:
        amount_in = int(to_base_units(amount, decimals))
        if amount_in <= 0:
            raise ConversionError(f"Amount must be greater than zero (got {amount!r})")
        return amount_in

    def _check_balance(self, address: str, info: TokenDescriptor, amount_in: int, buying: bool) -> None:
        if buying:
            balance = int(self.client.get_native_balance(address))
            symbol, decimals = NATIVE_SYMBOL, NATIVE_DECIMALS
        else:
            balance = int(self.client.get_balance(info.address, address))
            symbol, decimals = info.symbol, info.decimals
        if balance < amount_in:
            raise InsufficientBalanceError(
                f"Insufficient {symbol} balance. "
                f"Have: {from_base_units(balance, decimals)} {symbol}, Need: {from_base_units(amount_in, decimals)} {symbol}"
            )
