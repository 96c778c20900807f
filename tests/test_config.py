from __future__ import annotations

import pytest

from core.config import CHAIN_DEFAULTS, EngineConfig
from core.errors import (
    BroadcastRejectedError,
    ContractRevertError,
    InsufficientBalanceError,
    SwapError,
    describe_error,
)


def test_for_chain_fills_addresses():
    cfg = EngineConfig.for_chain(56)
    assert cfg.chain_id == 56
    assert cfg.rpc_url == CHAIN_DEFAULTS[56]["RPC_URL"]
    assert cfg.router_address == CHAIN_DEFAULTS[56]["V3_SWAP_ROUTER"]
    assert cfg.quoter_address == CHAIN_DEFAULTS[56]["V3_QUOTER_V2"]
    assert cfg.deadline_minutes == 20
    assert cfg.min_pool_liquidity == 1_000_000
    assert not cfg.allow_minimal_fallback_quote

    testnet = EngineConfig.for_chain(97, rpc_url="http://localhost:8545", max_retries=7)
    assert testnet.rpc_url == "http://localhost:8545"
    assert testnet.max_retries == 7
    assert testnet.wrapped_native_address == CHAIN_DEFAULTS[97]["WBNB"]


def test_for_chain_rejects_unknown_chain():
    with pytest.raises(ValueError):
        EngineConfig.for_chain(1)


def test_for_chain_rejects_unknown_override():
    with pytest.raises(TypeError):
        EngineConfig.for_chain(56, not_a_setting=1)


def test_explorer_link():
    assert EngineConfig.for_chain(56).explorer_link("0xabc") == "https://bscscan.com/tx/0xabc"
    assert EngineConfig.for_chain(97).explorer_link("abc") == "https://testnet.bscscan.com/tx/0xabc"


def test_describe_error():
    err = InsufficientBalanceError("Insufficient BNB balance. Have: 0 BNB, Need: 1 BNB")
    err.state = "RESOLVE_TOKEN"
    assert describe_error(err) == {
        "error": "Insufficient balance",
        "details": "Insufficient BNB balance. Have: 0 BNB, Need: 1 BNB",
        "state": "RESOLVE_TOKEN",
    }

    revert = ContractRevertError("Transaction reverted: STF", reason="STF", tx_hash="0x01")
    assert describe_error(revert)["reason"] == "STF"

    rejected = BroadcastRejectedError("Transaction rejected by node: nonce too low")
    assert isinstance(rejected, ContractRevertError)
    assert describe_error(rejected)["error"] == "Transaction rejected by node"

    assert describe_error(RuntimeError("boom")) == {"error": SwapError.category, "details": "boom"}
