from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Optional, Union

from core.models import FeeTier, SwapDirection, SwapResult, TokenDescriptor


class SwapConnector(ABC):
    """
    Abstract API for swapping between the chain's native asset and a token.

    Amounts are human-readable decimals (str, int or Decimal); slippage is a
    percentage in [0.1, 100]. Swap methods return the transaction hash once
    the transaction is mined successfully.
    """

    @abstractmethod
    def get_token_info(self, token: str) -> TokenDescriptor:
        """Return symbol, name and decimals read from the token contract."""

    @abstractmethod
    def get_wallet_balances(self, private_key_or_address: str, token: str) -> Dict[str, Union[str, TokenDescriptor]]:
        """Return the wallet's token and native balances in human units."""

    @abstractmethod
    def buy(self, private_key: str, token: str, amount, slippage_percent: float = 1.0) -> str:
        """Spend ``amount`` of the native asset on ``token``, choosing the fee tier automatically."""

    @abstractmethod
    def sell(self, private_key: str, token: str, amount, slippage_percent: float = 1.0) -> str:
        """Sell ``amount`` of ``token`` for the native asset, choosing the fee tier automatically."""

    @abstractmethod
    def buy_with_fee_tier(self, private_key: str, token: str, amount, slippage_percent: float = 1.0,
                          fee_tier: Union[FeeTier, int] = FeeTier.MEDIUM) -> str:
        """Like :meth:`buy` but only on the given fee tier; fails rather than trying another tier."""

    @abstractmethod
    def sell_with_fee_tier(self, private_key: str, token: str, amount, slippage_percent: float = 1.0,
                           fee_tier: Union[FeeTier, int] = FeeTier.MEDIUM) -> str:
        """Like :meth:`sell` but only on the given fee tier; fails rather than trying another tier."""

    @abstractmethod
    def execute(self, private_key: str, token: str, amount, direction: Union[SwapDirection, str],
                slippage_percent: Optional[float] = None, fee_tier: Optional[Union[FeeTier, int]] = None,
                allow_minimal_quote: Optional[bool] = None) -> SwapResult:
        """Run one order and return the full result, including where its quote came from."""

    @abstractmethod
    def tx_explorer_url(self, tx_hash: str) -> str:
        """Return a block explorer URL for a transaction."""
