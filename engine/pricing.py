"""
Price quoting and slippage bounds.

Quotes come from a three-level chain, each level tried only when the one
before it failed:

1. the on-chain QuoterV2 (``quoteExactInput``)
2. a spot-price estimate from the pool's ``sqrtPriceX96`` with a haircut
3. a fixed minimal amount, tagged ``MINIMAL_FALLBACK``

All arithmetic is on Python ints / Fractions.
"""
from __future__ import annotations

import logging
from fractions import Fraction
from typing import Optional

from core.errors import ValidationError
from core.models import PoolHandle, Quote, QuoteSource, SwapPath, sort_tokens
from engine.order_builder import encode_path

logger = logging.getLogger(__name__)

Q192 = 2 ** 192
BPS_DENOMINATOR = 10_000
MIN_SLIPPAGE_BPS = 10
MAX_SLIPPAGE_BPS = 10_000


def estimate_output_from_sqrt_price(
    amount_in: int,
    sqrt_price_x96: int,
    token_in_is_token0: bool,
    decimals_in: int,
    decimals_out: int,
    haircut_percent: int = 10,
) -> int:
    """
    Estimate the output of ``amount_in`` at the pool's spot price.

    sqrtPriceX96² / 2^192 is token1 per token0 in base units; it is turned
    into a whole-token price with the decimal difference, applied to the
    whole-token input and converted back to output base units. The result
    is reduced by ``haircut_percent`` for fees and price impact.
    Raises ``ZeroDivisionError`` / ``ValueError`` on an unusable price.
    """
    if amount_in < 0 or sqrt_price_x96 <= 0:
        raise ValueError(f"Unusable pool price state: sqrtPriceX96={sqrt_price_x96}")
    raw_price = Fraction(sqrt_price_x96 * sqrt_price_x96, Q192)
    if raw_price == 0:
        raise ZeroDivisionError("Price calculation failed: sqrtPriceSquared is zero")
    if token_in_is_token0:
        d0, d1 = decimals_in, decimals_out
    else:
        d0, d1 = decimals_out, decimals_in
    price_token1_per_token0 = raw_price * Fraction(10) ** (d0 - d1)
    price = price_token1_per_token0 if token_in_is_token0 else 1 / price_token1_per_token0
    whole_in = Fraction(amount_in, 10 ** decimals_in)
    out = whole_in * price * 10 ** decimals_out
    out = out * (100 - haircut_percent) / 100
    return int(out)  # int() floors a non-negative Fraction


class PriceQuoter:
    def __init__(self, client, haircut_percent: int = 10, minimal_output: int = 1000) -> None:
        self.client = client
        self.haircut_percent = int(haircut_percent)
        self.minimal_output = int(minimal_output)

    def quote(self, path: SwapPath, amount_in: int, pool: Optional[PoolHandle] = None) -> Quote:
        try:
            encoded = encode_path(path.token_in, path.fee_tier, path.token_out)
        except ValidationError:
            raise
        except Exception as e:
            raise ValidationError(f"Malformed swap path: {e}") from e

        try:
            amount_out = int(self.client.quote_exact_input(encoded, int(amount_in)))
            logger.info("Quoted output amount from V3 Quoter: %d", amount_out)
            return Quote(expected_output=amount_out, source=QuoteSource.ON_CHAIN_QUOTER)
        except Exception as e:
            logger.warning("Failed to quote output amount using V3 Quoter: %s", e)

        try:
            amount_out = self._estimate_from_pool(path, int(amount_in), pool)
            logger.warning("Using pool-state estimate for output amount: %d (quoter unavailable)", amount_out)
            return Quote(expected_output=amount_out, source=QuoteSource.POOL_STATE_ESTIMATE)
        except Exception as e:
            logger.warning("Pool-state price estimate failed: %s", e)

        logger.warning("Using minimal fallback output amount %d; no price information available", self.minimal_output)
        return Quote(expected_output=self.minimal_output, source=QuoteSource.MINIMAL_FALLBACK)

    def _estimate_from_pool(self, path: SwapPath, amount_in: int, pool: Optional[PoolHandle]) -> int:
        if pool is None:
            token0, token1 = sort_tokens(path.token_in, path.token_out)
            pool_address = self.client.get_pool_address(token0, token1, int(path.fee_tier))
            if pool_address is None:
                raise LookupError("No pool found for manual price estimation")
            pool = PoolHandle.for_pair(token0, token1, path.fee_tier, pool_address)
        sqrt_price_x96 = int(self.client.get_sqrt_price_x96(pool.pool_address))
        decimals_in = int(self.client.get_decimals(path.token_in))
        decimals_out = int(self.client.get_decimals(path.token_out))
        return estimate_output_from_sqrt_price(
            amount_in,
            sqrt_price_x96,
            pool.is_token0(path.token_in),
            decimals_in,
            decimals_out,
            self.haircut_percent,
        )


def min_output(expected_output: int, slippage_bps: int) -> int:
    """floor(expected * (10000 - bps) / 10000); 1 base unit if the arithmetic fails."""
    try:
        result = int(expected_output) * (BPS_DENOMINATOR - int(slippage_bps)) // BPS_DENOMINATOR
        if result < 0:
            raise ValueError(f"negative bound from slippage {slippage_bps}")
        return result
    except (TypeError, ValueError, ArithmeticError) as e:
        logger.warning("Error calculating minimum output amount (%s); using 1", e)
        return 1


def slippage_percent_to_bps(slippage_percent) -> int:
    """Convert a percentage (0.1 - 100) to basis points, rejecting anything outside that range."""
    try:
        bps = int(round(float(slippage_percent) * 100))
    except (TypeError, ValueError, OverflowError) as e:
        raise ValidationError(f"Invalid slippage: {slippage_percent!r}") from e
    if bps < MIN_SLIPPAGE_BPS or bps > MAX_SLIPPAGE_BPS:
        raise ValidationError("Slippage must be between 0.1% and 100%")
    return bps
