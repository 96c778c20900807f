from __future__ import annotations

import logging
from typing import Dict, List, Optional, Union

from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.contract import Contract
from web3.exceptions import ContractLogicError

# POA middleware moved between web3 major versions
try:
    from web3.middleware import ExtraDataToPOAMiddleware as _POA_MIDDLEWARE  # type: ignore
except ImportError:  # pragma: no cover
    from web3.middleware import geth_poa_middleware as _POA_MIDDLEWARE  # type: ignore

from connectors.base import SwapConnector
from core.config import NATIVE_DECIMALS, NATIVE_NAME, NATIVE_SYMBOL, EngineConfig
from core.errors import ValidationError
from core.models import ZERO_ADDRESS, FeeTier, LiquiditySnapshot, SwapDirection, SwapOrder, SwapResult, TokenDescriptor
from core.signers import account_from_key
from core.units import from_base_units
from engine.resilience import RetryConfig, network_retry
from engine.swap_executor import SwapExecutor

logger = logging.getLogger(__name__)

NATIVE_PSEUDO_ADDRESS = "bnb"


class PancakeSwapClient:
    """
    Chain access for the swap engine: ERC-20, V3 factory, pool, QuoterV2 and
    SwapRouter calls over a synchronous web3 HTTP provider.

    Every read goes through the network retry policy; broadcasts do not.
    """

    ERC20_ABI: List[Dict] = [
        {"constant": True, "inputs": [{"name": "", "type": "address"}], "name": "balanceOf", "outputs": [{"name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
        {"constant": True, "inputs": [], "name": "decimals", "outputs": [{"name": "", "type": "uint8"}], "stateMutability": "view", "type": "function"},
        {"constant": True, "inputs": [], "name": "symbol", "outputs": [{"name": "", "type": "string"}], "stateMutability": "view", "type": "function"},
        {"constant": True, "inputs": [], "name": "name", "outputs": [{"name": "", "type": "string"}], "stateMutability": "view", "type": "function"},
        {"constant": True, "inputs": [{"name": "owner", "type": "address"}, {"name": "spender", "type": "address"}], "name": "allowance", "outputs": [{"name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
        {"constant": False, "inputs": [{"name": "spender", "type": "address"}, {"name": "amount", "type": "uint256"}], "name": "approve", "outputs": [{"name": "", "type": "bool"}], "stateMutability": "nonpayable", "type": "function"},
    ]

    FACTORY_ABI: List[Dict] = [
        {
            "inputs": [
                {"internalType": "address", "name": "tokenA", "type": "address"},
                {"internalType": "address", "name": "tokenB", "type": "address"},
                {"internalType": "uint24", "name": "fee", "type": "uint24"},
            ],
            "name": "getPool",
            "outputs": [{"internalType": "address", "name": "pool", "type": "address"}],
            "stateMutability": "view",
            "type": "function",
        },
    ]

    POOL_ABI: List[Dict] = [
        {"inputs": [], "name": "liquidity", "outputs": [{"internalType": "uint128", "name": "", "type": "uint128"}], "stateMutability": "view", "type": "function"},
        {
            "inputs": [],
            "name": "slot0",
            "outputs": [
                {"internalType": "uint160", "name": "sqrtPriceX96", "type": "uint160"},
                {"internalType": "int24", "name": "tick", "type": "int24"},
                {"internalType": "uint16", "name": "observationIndex", "type": "uint16"},
                {"internalType": "uint16", "name": "observationCardinality", "type": "uint16"},
                {"internalType": "uint16", "name": "observationCardinalityNext", "type": "uint16"},
                {"internalType": "uint32", "name": "feeProtocol", "type": "uint32"},
                {"internalType": "bool", "name": "unlocked", "type": "bool"},
            ],
            "stateMutability": "view",
            "type": "function",
        },
    ]

    QUOTER_V2_ABI: List[Dict] = [
        {
            "inputs": [
                {"internalType": "bytes", "name": "path", "type": "bytes"},
                {"internalType": "uint256", "name": "amountIn", "type": "uint256"},
            ],
            "name": "quoteExactInput",
            "outputs": [
                {"internalType": "uint256", "name": "amountOut", "type": "uint256"},
                {"internalType": "uint160[]", "name": "sqrtPriceX96AfterList", "type": "uint160[]"},
                {"internalType": "uint32[]", "name": "initializedTicksCrossedList", "type": "uint32[]"},
                {"internalType": "uint256", "name": "gasEstimate", "type": "uint256"},
            ],
            "stateMutability": "nonpayable",
            "type": "function",
        },
    ]

    SWAP_ROUTER_ABI: List[Dict] = [
        {
            "inputs": [
                {
                    "components": [
                        {"internalType": "bytes", "name": "path", "type": "bytes"},
                        {"internalType": "address", "name": "recipient", "type": "address"},
                        {"internalType": "uint256", "name": "deadline", "type": "uint256"},
                        {"internalType": "uint256", "name": "amountIn", "type": "uint256"},
                        {"internalType": "uint256", "name": "amountOutMinimum", "type": "uint256"},
                    ],
                    "internalType": "struct ISwapRouter.ExactInputParams",
                    "name": "params",
                    "type": "tuple",
                }
            ],
            "name": "exactInput",
            "outputs": [{"internalType": "uint256", "name": "amountOut", "type": "uint256"}],
            "stateMutability": "payable",
            "type": "function",
        },
        {
            "inputs": [
                {"internalType": "uint256", "name": "amountMinimum", "type": "uint256"},
                {"internalType": "address", "name": "recipient", "type": "address"},
            ],
            "name": "unwrapWETH9",
            "outputs": [],
            "stateMutability": "payable",
            "type": "function",
        },
        {
            "inputs": [{"internalType": "bytes[]", "name": "data", "type": "bytes[]"}],
            "name": "multicall",
            "outputs": [{"internalType": "bytes[]", "name": "results", "type": "bytes[]"}],
            "stateMutability": "payable",
            "type": "function",
        },
    ]

    def __init__(self, config: EngineConfig, web3: Optional[Web3] = None) -> None:
        self.config = config
        self.chain_id: int = config.chain_id
        self.retry_config = RetryConfig(
            max_retries=config.max_retries,
            initial_delay=config.retry_initial_delay,
            max_delay=config.retry_max_delay,
        )
        if web3 is None:
            # Request timeout avoids indefinite hangs on slow/unresponsive RPCs
            web3 = Web3(Web3.HTTPProvider(config.rpc_url, request_kwargs={"timeout": config.request_timeout}))
            # BSC block headers carry extra validator data
            web3.middleware_onion.inject(_POA_MIDDLEWARE, layer=0)
            if not web3.is_connected():
                raise RuntimeError(f"Failed to connect to RPC provider {config.rpc_url}")
        self.web3 = web3
        self.router_address: str = self.to_checksum(config.router_address)
        self._factory: Contract = self.web3.eth.contract(address=self.to_checksum(config.factory_address), abi=self.FACTORY_ABI)
        self._quoter: Contract = self.web3.eth.contract(address=self.to_checksum(config.quoter_address), abi=self.QUOTER_V2_ABI)
        self._router: Contract = self.web3.eth.contract(address=self.router_address, abi=self.SWAP_ROUTER_ABI)

    @staticmethod
    def to_checksum(address: str) -> str:
        if not isinstance(address, str) or not Web3.is_address(address):
            raise ValidationError(f"Invalid address: {address!r}")
        return Web3.to_checksum_address(address)

    def erc20(self, token: str) -> Contract:
        return self.web3.eth.contract(address=self.to_checksum(token), abi=self.ERC20_ABI)

    def pool(self, pool_address: str) -> Contract:
        return self.web3.eth.contract(address=self.to_checksum(pool_address), abi=self.POOL_ABI)

    # ----------------------------
    # Token reads
    # ----------------------------
    @network_retry()
    def get_token_info(self, token: str) -> TokenDescriptor:
        if isinstance(token, str) and token.strip().lower() == NATIVE_PSEUDO_ADDRESS:
            return TokenDescriptor(address=NATIVE_PSEUDO_ADDRESS, symbol=NATIVE_SYMBOL, name=NATIVE_NAME, decimals=NATIVE_DECIMALS)
        contract = self.erc20(token)
        return TokenDescriptor(
            address=contract.address,
            symbol=str(contract.functions.symbol().call()),
            name=str(contract.functions.name().call()),
            decimals=int(contract.functions.decimals().call()),
        )

    @network_retry()
    def get_decimals(self, token: str) -> int:
        return int(self.erc20(token).functions.decimals().call())

    @network_retry()
    def get_balance(self, token: str, owner: str) -> int:
        return int(self.erc20(token).functions.balanceOf(self.to_checksum(owner)).call())

    @network_retry()
    def get_native_balance(self, owner: str) -> int:
        return int(self.web3.eth.get_balance(self.to_checksum(owner)))

    @network_retry()
    def get_allowance(self, token: str, owner: str, spender: str) -> int:
        return int(self.erc20(token).functions.allowance(self.to_checksum(owner), self.to_checksum(spender)).call())

    @network_retry()
    def get_code(self, address: str) -> bytes:
        return bytes(self.web3.eth.get_code(self.to_checksum(address)))

    # ----------------------------
    # Pool reads
    # ----------------------------
    @network_retry()
    def get_pool_address(self, token_a: str, token_b: str, fee: int) -> Optional[str]:
        """Factory lookup; ``None`` when no pool is deployed for the pair/fee."""
        address = self._factory.functions.getPool(self.to_checksum(token_a), self.to_checksum(token_b), int(fee)).call()
        if not address or str(address).lower() == ZERO_ADDRESS:
            return None
        return self.to_checksum(address)

    @network_retry()
    def get_liquidity(self, pool_address: str) -> int:
        return int(self.pool(pool_address).functions.liquidity().call())

    @network_retry()
    def get_sqrt_price_x96(self, pool_address: str) -> int:
        return int(self.pool(pool_address).functions.slot0().call()[0])

    def get_liquidity_snapshot(self, pool_address: str) -> LiquiditySnapshot:
        return LiquiditySnapshot(
            pool_address=pool_address,
            liquidity=self.get_liquidity(pool_address),
            sqrt_price_x96=self.get_sqrt_price_x96(pool_address),
        )

    @network_retry()
    def quote_exact_input(self, path: bytes, amount_in: int) -> int:
        # QuoterV2 is non-view on-chain; eth_call simulates it
        result = self._quoter.functions.quoteExactInput(path, int(amount_in)).call()
        return int(result[0])

    # ----------------------------
    # Transaction plumbing
    # ----------------------------
    @network_retry()
    def get_pending_nonce(self, address: str) -> int:
        # 'pending' includes our own unmined transactions
        return int(self.web3.eth.get_transaction_count(self.to_checksum(address), "pending"))

    @network_retry()
    def get_gas_price(self) -> int:
        return int(self.web3.eth.gas_price)

    @network_retry()
    def estimate_gas(self, tx: Dict) -> int:
        return int(self.web3.eth.estimate_gas(tx))

    def _encode_call(self, fn_name: str, args: list) -> str:
        encode = getattr(self._router, "encode_abi", None) or getattr(self._router, "encodeABI")
        return encode(fn_name, args=args)

    def build_approve_transaction(self, token: str, spender: str, amount: int, params: Dict) -> Dict:
        return self.erc20(token).functions.approve(self.to_checksum(spender), int(amount)).build_transaction(params)

    def build_exact_input_transaction(self, order: SwapOrder, params: Dict) -> Dict:
        """
        Router transaction for a single-hop ``exactInput``.

        Buys pay with ``msg.value`` and deliver tokens straight to the
        recipient. Sells route the WBNB output to the router and unwrap it
        to the recipient in the same multicall, so the seller receives BNB.
        """
        recipient = self.to_checksum(order.recipient)
        if order.direction is SwapDirection.BUY_WITH_NATIVE:
            swap_params = (order.path, recipient, int(order.deadline), int(order.input_amount), int(order.min_output))
            return self._router.functions.exactInput(swap_params).build_transaction(params)
        swap_params = (order.path, self.router_address, int(order.deadline), int(order.input_amount), int(order.min_output))
        calls = [
            self._encode_call("exactInput", [swap_params]),
            self._encode_call("unwrapWETH9", [int(order.min_output), recipient]),
        ]
        return self._router.functions.multicall(calls).build_transaction(params)

    def send_transaction(self, tx: Dict, account: LocalAccount) -> str:
        signed = account.sign_transaction(tx)
        raw_tx = getattr(signed, "rawTransaction", None) or getattr(signed, "raw_transaction", None)
        if raw_tx is None:
            raise RuntimeError("SignedTransaction missing raw transaction bytes")
        tx_hash = self.web3.eth.send_raw_transaction(raw_tx)
        return Web3.to_hex(tx_hash)

    def wait_for_receipt(self, tx_hash: str, timeout: float = 120.0):
        return self.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)

    def replay_revert_reason(self, tx: Dict, block_number=None) -> Optional[str]:
        """Re-run a mined, reverted transaction as a call to recover its revert reason."""
        call = {k: tx[k] for k in ("from", "to", "data", "value") if k in tx}
        try:
            self.web3.eth.call(call, block_identifier=block_number if block_number is not None else "latest")
        except ContractLogicError as e:
            message = str(getattr(e, "message", None) or e)
            return message.replace("execution reverted:", "").strip() or None
        except Exception as e:
            logger.debug("Revert reason replay failed: %s", e)
        return None


class PancakeSwapConnector(SwapConnector):
    """
    Public entry point: token info, wallet balances and BNB <-> token swaps
    on PancakeSwap V3.
    """

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        chain_id: int = 56,
        config: Optional[EngineConfig] = None,
        client: Optional[PancakeSwapClient] = None,
        **overrides,
    ) -> None:
        self.config = config or EngineConfig.for_chain(chain_id, rpc_url=rpc_url, **overrides)
        self.chain_id = self.config.chain_id
        self.client = client or PancakeSwapClient(self.config)
        self.executor = SwapExecutor(self.client, self.config)

    def get_token_info(self, token: str) -> TokenDescriptor:
        return self.client.get_token_info(token)

    def get_wallet_balances(self, private_key_or_address: str, token: str) -> Dict[str, Union[str, TokenDescriptor]]:
        if isinstance(private_key_or_address, str) and Web3.is_address(private_key_or_address):
            address = self.client.to_checksum(private_key_or_address)
        else:
            address = account_from_key(private_key_or_address).address
        info = self.client.get_token_info(token)
        native = self.client.get_native_balance(address)
        if info.address == NATIVE_PSEUDO_ADDRESS:
            token_balance = native
        else:
            token_balance = self.client.get_balance(info.address, address)
        return {
            "address": address,
            "token": info,
            "token_balance": from_base_units(token_balance, info.decimals),
            "native_balance": from_base_units(native, NATIVE_DECIMALS),
        }

    def execute(self, private_key: str, token: str, amount, direction: Union[SwapDirection, str],
                slippage_percent: Optional[float] = None, fee_tier: Optional[Union[FeeTier, int]] = None,
                allow_minimal_quote: Optional[bool] = None) -> SwapResult:
        return self.executor.execute(
            private_key, token, amount, direction,
            slippage_percent=slippage_percent, fee_tier=fee_tier, allow_minimal_quote=allow_minimal_quote,
        )

    def buy(self, private_key: str, token: str, amount, slippage_percent: float = 1.0) -> str:
        return self.execute(private_key, token, amount, SwapDirection.BUY_WITH_NATIVE, slippage_percent).tx_hash

    def sell(self, private_key: str, token: str, amount, slippage_percent: float = 1.0) -> str:
        return self.execute(private_key, token, amount, SwapDirection.SELL_FOR_NATIVE, slippage_percent).tx_hash

    def buy_with_fee_tier(self, private_key: str, token: str, amount, slippage_percent: float = 1.0,
                          fee_tier: Union[FeeTier, int] = FeeTier.MEDIUM) -> str:
        return self.execute(private_key, token, amount, SwapDirection.BUY_WITH_NATIVE, slippage_percent, fee_tier).tx_hash

    def sell_with_fee_tier(self, private_key: str, token: str, amount, slippage_percent: float = 1.0,
                           fee_tier: Union[FeeTier, int] = FeeTier.MEDIUM) -> str:
        return self.execute(private_key, token, amount, SwapDirection.SELL_FOR_NATIVE, slippage_percent, fee_tier).tx_hash

    def tx_explorer_url(self, tx_hash: str) -> str:
        return self.config.explorer_link(tx_hash)
