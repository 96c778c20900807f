from __future__ import annotations

import getpass
import logging
from typing import Optional

from cli.utils import input_amount, input_fee_tier, input_slippage, print_error, prompt
from connectors.dex.pancakeswap import PancakeSwapConnector
from core.config import CHAIN_DEFAULTS
from core.errors import SwapError
from core.models import SwapDirection


def choose_chain() -> Optional[int]:
    chain_str = prompt("Chain (56 mainnet / 97 testnet) [56]: ").strip() or "56"
    try:
        chain_id = int(chain_str)
    except ValueError:
        print("Invalid chain id.")
        return None
    if chain_id not in CHAIN_DEFAULTS:
        print(f"Unsupported chain id {chain_id}.")
        return None
    return chain_id


def make_connector(chain_id: int) -> Optional[PancakeSwapConnector]:
    rpc_default = CHAIN_DEFAULTS[chain_id]["RPC_URL"]
    rpc_url = prompt(f"RPC URL [{rpc_default}]: ").strip() or rpc_default
    try:
        return PancakeSwapConnector(rpc_url=rpc_url, chain_id=chain_id)
    except Exception as e:
        print_error(e)
        return None


def show_token_info(conn: PancakeSwapConnector) -> None:
    token = prompt("Token address (or 'bnb'): ").strip()
    if not token:
        print("Token address is required.")
        return
    addr = prompt("Wallet address to show balances for (optional): ").strip()
    try:
        if addr:
            balances = conn.get_wallet_balances(addr, token)
            info = balances["token"]
        else:
            info = conn.get_token_info(token)
    except Exception as e:
        print_error(e)
        return
    print(f"\n{info.name} ({info.symbol})")
    print(f"  Address:  {info.address}")
    print(f"  Decimals: {info.decimals}")
    if addr:
        print(f"  Wallet {balances['address']}:")
        print(f"    {info.symbol}: {balances['token_balance']}")
        print(f"    BNB: {balances['native_balance']}")


def run_swap(conn: PancakeSwapConnector, direction: SwapDirection, pinned: bool) -> None:
    buying = direction is SwapDirection.BUY_WITH_NATIVE
    token = prompt("Token address: ").strip()
    if not token:
        print("Token address is required.")
        return
    amount = input_amount("Amount of BNB to spend: " if buying else "Amount of tokens to sell: ")
    if amount is None:
        return
    slippage = input_slippage()
    if slippage is None:
        return
    fee_tier = None
    if pinned:
        fee_tier = input_fee_tier()
        if fee_tier is None:
            return
    private_key = getpass.getpass("Private key (input hidden): ").strip()
    if not private_key:
        print("Private key is required.")
        return

    tier_text = f" on the {fee_tier.percent}% tier" if fee_tier is not None else ""
    print(f"{'Buy' if buying else 'Sell'}: amount={amount}, token={token}, slippage={slippage}%{tier_text}")
    go = prompt("Proceed? (yes/no): ").strip().lower()
    if go not in {"y", "yes"}:
        print("Cancelled.")
        return
    try:
        result = conn.execute(private_key, token, amount, direction, slippage_percent=slippage, fee_tier=fee_tier)
    except SwapError as e:
        print_error(e)
        return
    if result.approval_tx_hash:
        print(f"Approval: {conn.tx_explorer_url(result.approval_tx_hash)}")
    print(f"Swap confirmed: {conn.tx_explorer_url(result.tx_hash)}")
    out_symbol = result.token.symbol if buying else "BNB"
    print(f"  Fee tier: {result.fee_tier.percent}%")
    print(f"  Expected output: {result.expected_output_text()} {out_symbol}")


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    print("PancakeSwap V3 Swap - CLI")
    chain_id = choose_chain()
    if chain_id is None:
        return
    conn = make_connector(chain_id)
    if conn is None:
        return
    while True:
        print("\nMain Menu:")
        print("  1) Token info")
        print("  2) Buy token with BNB")
        print("  3) Sell token for BNB")
        print("  4) Buy on a fixed fee tier")
        print("  5) Sell on a fixed fee tier")
        print("  0) Exit")
        choice = prompt("Select: ").strip()
        if choice == "1":
            show_token_info(conn)
        elif choice == "2":
            run_swap(conn, SwapDirection.BUY_WITH_NATIVE, pinned=False)
        elif choice == "3":
            run_swap(conn, SwapDirection.SELL_FOR_NATIVE, pinned=False)
        elif choice == "4":
            run_swap(conn, SwapDirection.BUY_WITH_NATIVE, pinned=True)
        elif choice == "5":
            run_swap(conn, SwapDirection.SELL_FOR_NATIVE, pinned=True)
        elif choice == "0":
            print("Goodbye.")
            break
        else:
            print("Invalid selection.")


if __name__ == "__main__":
    main()
