from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, Optional

HONEYPOT_MARKERS = (b"owner", b"blacklist", b"swap")


# Contract addresses per chain. PancakeSwap V3 factory is deployed at the
# same address on mainnet and testnet.
CHAIN_DEFAULTS: Dict[int, Dict[str, str]] = {
    56: {
        "RPC_URL": "https://bsc-dataseed.binance.org/",
        "WBNB": "0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c",
        "V3_FACTORY": "0x0BFbCF9fa4f9C56B0F40a671Ad40E0805A091865",
        "V3_QUOTER_V2": "0xB048Bbc1Ee6b733FFfCFb9e9CeF7375518e25997",
        "V3_SWAP_ROUTER": "0x1b81D678ffb9C0263b24A97847620C99d213eB14",
        "EXPLORER_TX": "https://bscscan.com/tx/",
    },
    97: {
        "RPC_URL": "https://bsc-testnet.publicnode.com",
        "WBNB": "0xae13d989dac2f0debff460ac112a837c89baa7cd",
        "V3_FACTORY": "0x0BFbCF9fa4f9C56B0F40a671Ad40E0805A091865",
        "V3_QUOTER_V2": "0xbC203d7f83677c7ed3F7acEc959963E7F4ECC5C2",
        "V3_SWAP_ROUTER": "0x1b81D678ffb9C0263b24A97847620C99d213eB14",
        "EXPLORER_TX": "https://testnet.bscscan.com/tx/",
    },
}

NATIVE_SYMBOL = "BNB"
NATIVE_NAME = "Binance Coin"
NATIVE_DECIMALS = 18


@dataclass
class EngineConfig:
    rpc_url: str
    chain_id: int
    wrapped_native_address: str
    factory_address: str
    quoter_address: str
    router_address: str
    explorer_tx_url: str = ""

    # Network
    request_timeout: float = 15.0
    max_retries: int = 3
    retry_initial_delay: float = 0.5
    retry_max_delay: float = 5.0

    # Orders
    deadline_minutes: int = 20
    default_slippage_percent: float = 1.0
    min_pool_liquidity: int = 1_000_000

    # Gas
    default_swap_gas: int = 500_000
    approve_gas: int = 200_000
    gas_buffer_percent: int = 10

    # Quoting
    estimate_haircut_percent: int = 10
    minimal_fallback_output: int = 1000
    allow_minimal_fallback_quote: bool = False

    # Risk heuristic
    honeypot_check: bool = True
    honeypot_code_size_limit: int = 24_999
    honeypot_markers: tuple = HONEYPOT_MARKERS

    # Submission
    wait_for_receipt: bool = True
    receipt_timeout: float = 120.0

    @classmethod
    def for_chain(cls, chain_id: int = 56, rpc_url: Optional[str] = None, **overrides) -> "EngineConfig":
        if chain_id not in CHAIN_DEFAULTS:
            raise ValueError(f"Unsupported chain id {chain_id}; known chains: {sorted(CHAIN_DEFAULTS)}")
        d = CHAIN_DEFAULTS[chain_id]
        cfg = cls(
            rpc_url=rpc_url or d["RPC_URL"],
            chain_id=chain_id,
            wrapped_native_address=d["WBNB"],
            factory_address=d["V3_FACTORY"],
            quoter_address=d["V3_QUOTER_V2"],
            router_address=d["V3_SWAP_ROUTER"],
            explorer_tx_url=d["EXPLORER_TX"],
        )
        return replace(cfg, **overrides) if overrides else cfg

    def explorer_link(self, tx_hash: str) -> str:
        h = tx_hash if tx_hash.startswith("0x") else "0x" + tx_hash
        return f"{self.explorer_tx_url}{h}"
