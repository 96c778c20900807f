"""
Fee-tier discovery and pool validation.

``FeeTierSelector`` picks the tier with the deepest pool for a pair,
``PoolValidator`` checks that a specific tier's pool is tradable, and the
two tier-selection strategies combine them for the order pipeline:

- ``AutoTierSelection``: best tier first, then the remaining tiers in
  ascending order until one validates.
- ``PinnedTierSelection``: one caller-chosen tier, no fallback.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional

from core.errors import NoLiquidityPoolError
from core.models import FeeTier, PoolHandle, sort_tokens

logger = logging.getLogger(__name__)


@dataclass
class TierProbe:
    fee_tier: FeeTier
    pool_address: Optional[str] = None
    liquidity: Optional[int] = None

    @property
    def exists(self) -> bool:
        return self.pool_address is not None


class FeeTierSelector:
    def __init__(self, client) -> None:
        self.client = client

    def _probe(self, token_a: str, token_b: str, fee_tier: FeeTier) -> TierProbe:
        probe = TierProbe(fee_tier=fee_tier)
        try:
            probe.pool_address = self.client.get_pool_address(token_a, token_b, int(fee_tier))
        except Exception as e:
            logger.debug("Pool lookup failed for tier %s%%: %s", fee_tier.percent, e)
            return probe
        if probe.pool_address is None:
            logger.debug("No pool for tier %s%%", fee_tier.percent)
            return probe
        try:
            probe.liquidity = int(self.client.get_liquidity(probe.pool_address))
        except Exception as e:
            logger.debug("Liquidity read failed for pool %s: %s", probe.pool_address, e)
        return probe

    def probe_all(self, token_a: str, token_b: str) -> List[TierProbe]:
        """Probe every tier concurrently; results come back in ascending tier order."""
        tiers = FeeTier.ordered()
        with ThreadPoolExecutor(max_workers=len(tiers)) as pool:
            futures = [pool.submit(self._probe, token_a, token_b, t) for t in tiers]
            return [f.result() for f in futures]

    def select_best_fee_tier(self, token_a: str, token_b: str) -> FeeTier:
        probes = self.probe_all(token_a, token_b)
        best: Optional[TierProbe] = None
        for p in probes:
            if p.liquidity is not None and p.liquidity > 0 and (best is None or p.liquidity > best.liquidity):
                best = p
        if best is not None:
            logger.info("Selected fee tier %s%% (liquidity %d)", best.fee_tier.percent, best.liquidity)
            return best.fee_tier

        existing = [p for p in probes if p.exists]
        if existing:
            logger.info("Pools found but no liquidity data; using first existing tier %s%%", existing[0].fee_tier.percent)
            return existing[0].fee_tier

        default = FeeTier.default()
        logger.info("No pools found; using default fee tier %s%%", default.percent)
        return default


class PoolValidator:
    def __init__(self, client, min_liquidity: int = 1_000_000) -> None:
        self.client = client
        self.min_liquidity = int(min_liquidity)

    def resolve(self, token: str, counter_token: str, fee_tier: FeeTier) -> Optional[PoolHandle]:
        """Return the pool handle if the pool passes validation, else ``None``."""
        try:
            token0, token1 = sort_tokens(token, counter_token)
            pool_address = self.client.get_pool_address(token0, token1, int(fee_tier))
            if pool_address is None:
                logger.info("No pool exists for %s with fee tier %s%%", token, fee_tier.percent)
                return None
            snapshot = self.client.get_liquidity_snapshot(pool_address)
        except Exception as e:
            logger.warning("Pool validation failed for tier %s%%: %s", fee_tier.percent, e)
            return None
        if snapshot.liquidity <= self.min_liquidity:
            logger.info("Pool %s has very low liquidity: %d", pool_address, snapshot.liquidity)
            return None
        if not snapshot.initialized:
            logger.info("Pool %s is not initialized (sqrtPriceX96 = 0)", pool_address)
            return None
        return PoolHandle.for_pair(token0, token1, fee_tier, pool_address)

    def validate(self, token: str, counter_token: str, fee_tier: FeeTier) -> bool:
        return self.resolve(token, counter_token, fee_tier) is not None


class AutoTierSelection:
    def __init__(self, selector: FeeTierSelector, validator: PoolValidator) -> None:
        self.selector = selector
        self.validator = validator

    def resolve(self, token: str, counter_token: str) -> PoolHandle:
        first = self.selector.select_best_fee_tier(counter_token, token)
        handle = self.validator.resolve(token, counter_token, first)
        if handle is not None:
            return handle
        for alternative in FeeTier.ordered():
            if alternative == first:
                continue
            logger.info("Trying alternative fee tier: %s%%", alternative.percent)
            handle = self.validator.resolve(token, counter_token, alternative)
            if handle is not None:
                logger.info("Found valid pool with fee tier %s%%", alternative.percent)
                return handle
        raise NoLiquidityPoolError(
            "No valid PancakeSwap V3 pool found with sufficient liquidity. Trading may not be possible at this time."
        )


class PinnedTierSelection:
    def __init__(self, validator: PoolValidator, fee_tier: FeeTier) -> None:
        self.validator = validator
        self.fee_tier = FeeTier(fee_tier)

    def resolve(self, token: str, counter_token: str) -> PoolHandle:
        handle = self.validator.resolve(token, counter_token, self.fee_tier)
        if handle is None:
            raise NoLiquidityPoolError(
                f"No valid PancakeSwap V3 pool found for fee tier {self.fee_tier.percent}% with sufficient liquidity."
            )
        return handle
