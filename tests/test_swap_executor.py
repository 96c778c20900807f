from __future__ import annotations

import math

import pytest
from eth_account import Account

from core.config import EngineConfig
from core.errors import (
    BroadcastRejectedError,
    ContractRevertError,
    HoneypotSuspectedError,
    InsufficientBalanceError,
    NoLiquidityPoolError,
    QuoteDegradedError,
    ValidationError,
    describe_error,
)
from core.models import MAX_UINT256, FeeTier, QuoteSource, SwapDirection
from engine.order_builder import encode_path
from engine.swap_executor import SwapExecutor

from fakes import PRIVATE_KEY, TOKEN, WBNB, FakeChainClient, pool_addr

ADDRESS = Account.from_key(PRIVATE_KEY).address


def _setup(**overrides):
    client = FakeChainClient()
    client.add_pool(500, pool_addr(2), 5_000_000)
    client.add_pool(2500, pool_addr(3), 9_000_000)
    executor = SwapExecutor(client, EngineConfig.for_chain(56, **overrides))
    return executor, client


def test_buy_happy_path():
    executor, client = _setup()
    result = executor.execute(PRIVATE_KEY, TOKEN, "0.1", SwapDirection.BUY_WITH_NATIVE, slippage_percent=1)

    assert result.fee_tier is FeeTier.MEDIUM
    assert result.quote.source is QuoteSource.ON_CHAIN_QUOTER
    assert result.min_output == client.quote_result * 9900 // 10000
    assert result.nonce == 7
    assert result.approval_tx_hash is None
    assert result.output_decimals == 18

    (tx,) = client.sent
    assert tx["kind"] == "swap"
    assert tx["value"] == 10 ** 17
    assert tx["gas"] == 165_000
    assert tx["nonce"] == 7
    order = tx["order"]
    assert order.path == encode_path(WBNB, FeeTier.MEDIUM, TOKEN)
    assert order.recipient == ADDRESS
    assert order.min_output == result.min_output
    assert len(executor.signers) == 0


def test_sell_approves_before_swap_with_lower_nonce():
    executor, client = _setup()
    result = executor.execute(PRIVATE_KEY, TOKEN, "5", "sell", slippage_percent=0.5)

    approve, swap = client.sent
    assert approve["kind"] == "approve" and approve["amount"] == MAX_UINT256
    assert swap["kind"] == "swap"
    assert approve["nonce"] < swap["nonce"]
    assert "value" not in swap
    assert swap["order"].input_amount == 5 * 10 ** 18
    assert swap["order"].path == encode_path(TOKEN, FeeTier.MEDIUM, WBNB)
    assert result.approval_tx_hash is not None
    assert result.nonce == swap["nonce"]


def test_sell_skips_approval_when_allowance_is_enough():
    executor, client = _setup()
    client.allowance = MAX_UINT256
    result = executor.execute(PRIVATE_KEY, TOKEN, "5", SwapDirection.SELL_FOR_NATIVE)
    assert [tx["kind"] for tx in client.sent] == ["swap"]
    assert result.approval_tx_hash is None


def test_pinned_tier_does_not_retry_other_tiers():
    executor, client = _setup()
    del client.pools[2500]
    with pytest.raises(NoLiquidityPoolError) as exc:
        executor.execute(PRIVATE_KEY, TOKEN, "0.1", "buy", fee_tier=FeeTier.MEDIUM)
    assert exc.value.state == "SELECT_FEE_TIER"
    assert client.sent == []

    result = executor.execute(PRIVATE_KEY, TOKEN, "0.1", "buy")
    assert result.fee_tier is FeeTier.LOW


def test_pinned_tier_is_used():
    executor, client = _setup()
    result = executor.execute(PRIVATE_KEY, TOKEN, "0.1", "buy", fee_tier=500)
    assert result.fee_tier is FeeTier.LOW
    assert client.sent[0]["order"].fee_tier is FeeTier.LOW


def test_unsupported_pinned_tier_is_validation_error():
    executor, _ = _setup()
    with pytest.raises(ValidationError) as exc:
        executor.execute(PRIVATE_KEY, TOKEN, "0.1", "buy", fee_tier=3000)
    assert exc.value.state == "INIT"


def test_minimal_fallback_quote_is_refused_by_default():
    executor, client = _setup()
    client.quote_result = RuntimeError("quoter reverted")
    client.estimate_broken = True
    with pytest.raises(QuoteDegradedError) as exc:
        executor.execute(PRIVATE_KEY, TOKEN, "0.1", "buy")
    assert exc.value.state == "QUOTE"
    assert client.sent == []
    assert len(executor.signers) == 0


def test_minimal_fallback_quote_with_opt_in():
    executor, client = _setup()
    client.quote_result = RuntimeError("quoter reverted")
    client.estimate_broken = True
    result = executor.execute(PRIVATE_KEY, TOKEN, "0.1", "buy", allow_minimal_quote=True)
    assert result.quote.is_minimal
    assert result.min_output == 990
    assert result.expected_output_text() == "unknown (no price estimate available)"

    executor, client = _setup(allow_minimal_fallback_quote=True)
    client.quote_result = RuntimeError("quoter reverted")
    client.estimate_broken = True
    assert executor.execute(PRIVATE_KEY, TOKEN, "0.1", "buy").quote.is_minimal


def test_pool_state_estimate_is_used_and_reported():
    executor, client = _setup()
    client.quote_result = RuntimeError("quoter reverted")
    result = executor.execute(PRIVATE_KEY, TOKEN, "0.1", "buy")
    assert result.quote.source is QuoteSource.POOL_STATE_ESTIMATE
    assert result.expected_output_text().startswith("~")


def test_nine_decimal_sell_priced_from_pool_state():
    client = FakeChainClient()
    client.decimals[TOKEN.lower()] = 9
    client.token_balance = 5_000_000_000
    client.allowance = 3_500_000_000
    client.quote_result = RuntimeError("quoter reverted")
    # 1 TOKEN = 0.0005 WBNB, i.e. a 1:2000 price ratio
    sqrt_price = math.isqrt(500000 * 2 ** 192)
    client.add_pool(2500, pool_addr(3), 5_000_000, sqrt_price)
    executor = SwapExecutor(client, EngineConfig.for_chain(56))

    result = executor.execute(PRIVATE_KEY, TOKEN, "3.5", "sell", slippage_percent=1)

    expected = 3_500_000_000 * sqrt_price ** 2 * 9 // (2 ** 192 * 10)
    assert result.quote.source is QuoteSource.POOL_STATE_ESTIMATE
    assert result.quote.expected_output == expected
    assert result.min_output == expected * 9900 // 10000
    (swap,) = client.sent
    assert swap["kind"] == "swap"
    assert swap["order"].input_amount == 3_500_000_000
    assert swap["nonce"] == 7
    assert result.nonce == executor.sequencer.peek(ADDRESS)


def test_insufficient_native_balance():
    executor, client = _setup()
    client.native_balance = 10 ** 16
    with pytest.raises(InsufficientBalanceError) as exc:
        executor.execute(PRIVATE_KEY, TOKEN, "0.1", "buy")
    assert exc.value.state == "RESOLVE_TOKEN"
    assert "Have: 0.01 BNB" in str(exc.value)
    assert "Need: 0.1 BNB" in str(exc.value)
    assert client.quoted_paths == []


def test_insufficient_token_balance():
    executor, client = _setup()
    client.token_balance = 10 ** 18
    with pytest.raises(InsufficientBalanceError):
        executor.execute(PRIVATE_KEY, TOKEN, "2", "sell")
    assert client.sent == []


def test_honeypot_blocks_both_directions():
    for direction in ("buy", "sell"):
        executor, client = _setup()
        client.code = b"\x00" * 30_000
        with pytest.raises(HoneypotSuspectedError) as exc:
            executor.execute(PRIVATE_KEY, TOKEN, "0.1", direction)
        assert exc.value.state == "RISK_CHECK"
        assert client.sent == []


def test_honeypot_check_can_be_disabled():
    executor, client = _setup(honeypot_check=False)
    client.code = b"\x00" * 30_000
    assert executor.execute(PRIVATE_KEY, TOKEN, "0.1", "buy").tx_hash


def test_reverted_swap_reports_reason_and_state():
    executor, client = _setup()
    client.receipt_status = 0
    with pytest.raises(ContractRevertError) as exc:
        executor.execute(PRIVATE_KEY, TOKEN, "0.1", "buy")
    assert exc.value.state == "SUBMIT"
    assert exc.value.reason == "Too little received"
    info = describe_error(exc.value)
    assert info["error"] == "Transaction reverted"
    assert info["state"] == "SUBMIT"
    assert len(executor.signers) == 0


def test_gas_estimation_failure_uses_default_limit():
    executor, client = _setup()
    client.gas_estimate = RuntimeError("gas required exceeds allowance")
    executor.execute(PRIVATE_KEY, TOKEN, "0.1", "buy")
    assert client.sent[0]["gas"] == 550_000


def test_rejected_broadcast_frees_the_nonce():
    executor, client = _setup()
    client.send_error = ValueError("nonce too low")
    with pytest.raises(BroadcastRejectedError):
        executor.execute(PRIVATE_KEY, TOKEN, "0.1", "buy")
    assert executor.sequencer.peek(ADDRESS) is None

    client.send_error = None
    assert executor.execute(PRIVATE_KEY, TOKEN, "0.1", "buy").nonce == 7


def test_consecutive_orders_get_increasing_nonces():
    client = FakeChainClient()
    client.add_pool(2500, pool_addr(3), 9_000_000)
    client.get_pending_nonce = lambda address: 7  # node lags behind our broadcasts
    executor = SwapExecutor(client, EngineConfig.for_chain(56))
    first = executor.execute(PRIVATE_KEY, TOKEN, "0.1", "buy")
    second = executor.execute(PRIVATE_KEY, TOKEN, "0.1", "buy")
    assert (first.nonce, second.nonce) == (7, 8)


@pytest.mark.parametrize("kwargs", [
    {"private_key": "0x1234"},
    {"amount": "abc"},
    {"amount": "0"},
    {"amount": "-1"},
    {"slippage_percent": 0.01},
    {"slippage_percent": 150},
    {"direction": "hold"},
    {"token": "bnb"},
])
def test_invalid_input_is_rejected_before_any_write(kwargs):
    executor, client = _setup()
    args = {"private_key": PRIVATE_KEY, "token": TOKEN, "amount": "0.1", "direction": "buy", "slippage_percent": 1.0}
    args.update(kwargs)
    with pytest.raises(ValidationError):
        executor.execute(**args)
    assert client.sent == []
    assert len(executor.signers) == 0


def test_unreadable_token_is_validation_error():
    executor, client = _setup()
    with pytest.raises(ValidationError) as exc:
        executor.execute(PRIVATE_KEY, "0x" + "99" * 20, "0.1", "buy")
    assert exc.value.state == "RESOLVE_TOKEN"
