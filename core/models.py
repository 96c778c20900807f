from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import List, Optional

from core.units import from_base_units


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
MAX_UINT256 = (1 << 256) - 1


class FeeTier(IntEnum):
    """PancakeSwap V3 fee tiers in hundredths of a bip."""

    LOWEST = 100    # 0.01%
    LOW = 500       # 0.05%
    MEDIUM = 2500   # 0.25%
    HIGH = 10000    # 1%

    @property
    def percent(self) -> float:
        return self.value / 10_000

    @classmethod
    def ordered(cls) -> List["FeeTier"]:
        return [cls.LOWEST, cls.LOW, cls.MEDIUM, cls.HIGH]

    @classmethod
    def default(cls) -> "FeeTier":
        # Most pairs on PancakeSwap V3 live on the 0.25% tier
        return cls.MEDIUM

    @classmethod
    def parse(cls, value) -> "FeeTier":
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            raise ValueError(f"Unsupported fee tier: {value!r}; expected one of {[int(t) for t in cls.ordered()]}")


@dataclass(frozen=True)
class TokenDescriptor:
    address: str
    symbol: str
    name: str
    decimals: int


@dataclass(frozen=True)
class PoolHandle:
    token0: str
    token1: str
    fee_tier: FeeTier
    pool_address: str

    @classmethod
    def for_pair(cls, token_a: str, token_b: str, fee_tier: FeeTier, pool_address: str) -> "PoolHandle":
        """Build a handle with the pair in canonical (ascending address) order."""
        t0, t1 = sort_tokens(token_a, token_b)
        return cls(token0=t0, token1=t1, fee_tier=FeeTier(fee_tier), pool_address=pool_address)

    def is_token0(self, token: str) -> bool:
        return token.lower() == self.token0.lower()


@dataclass(frozen=True)
class LiquiditySnapshot:
    pool_address: str
    liquidity: int
    sqrt_price_x96: int

    @property
    def initialized(self) -> bool:
        return self.sqrt_price_x96 != 0


class QuoteSource(str, Enum):
    ON_CHAIN_QUOTER = "on_chain_quoter"
    POOL_STATE_ESTIMATE = "pool_state_estimate"
    MINIMAL_FALLBACK = "minimal_fallback"


@dataclass(frozen=True)
class Quote:
    expected_output: int
    source: QuoteSource

    @property
    def is_degraded(self) -> bool:
        return self.source is not QuoteSource.ON_CHAIN_QUOTER

    @property
    def is_minimal(self) -> bool:
        return self.source is QuoteSource.MINIMAL_FALLBACK


class SwapDirection(str, Enum):
    BUY_WITH_NATIVE = "buy"
    SELL_FOR_NATIVE = "sell"


@dataclass(frozen=True)
class SwapPath:
    """Single-hop routing path: token_in -> (fee) -> token_out."""

    token_in: str
    fee_tier: FeeTier
    token_out: str


@dataclass
class SwapOrder:
    direction: SwapDirection
    input_amount: int
    min_output: int
    fee_tier: FeeTier
    path: bytes
    recipient: str
    deadline: int


@dataclass
class SwapResult:
    tx_hash: str
    direction: SwapDirection
    token: TokenDescriptor
    fee_tier: FeeTier
    quote: Quote
    min_output: int
    nonce: int
    output_decimals: int = 18
    approval_tx_hash: Optional[str] = None

    def expected_output_text(self) -> str:
        """Human text for the expected output; never presents a minimal fallback as a price."""
        if self.quote.is_minimal:
            return "unknown (no price estimate available)"
        text = from_base_units(self.quote.expected_output, self.output_decimals)
        if self.quote.is_degraded:
            return f"~{text} (estimated from pool state)"
        return text


def sort_tokens(token_a: str, token_b: str) -> tuple:
    if token_a.lower() == token_b.lower():
        raise ValueError("Pair requires two distinct tokens")
    return (token_a, token_b) if token_a.lower() < token_b.lower() else (token_b, token_a)
