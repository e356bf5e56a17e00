"""Typed wrappers over the handful of contracts the rebalancer talks to.

Reads go through ``ChainClient.call``; writes are returned as ``ContractCall``
values so the caller decides nonce, fees and gas at submission time.
"""

from __future__ import annotations

import asyncio

from pool_rebalancer.execution.abi import ERC20_ABI, V3_POOL_ABI, WETH_ABI, batch_mint_abi
from pool_rebalancer.execution.chain import ChainClient, ContractCall
from pool_rebalancer.execution.uniswap_v3 import V3SinglePlan, build_exact_input_single


class FungibleToken:
    abi = ERC20_ABI

    def __init__(self, client: ChainClient, address: str):
        self.client = client
        self.address = address

    def _call(self, method: str, *args) -> ContractCall:
        return ContractCall(contract=self.address, method=method, args=args, abi=self.abi)

    async def balance_of(self, holder: str) -> int:
        return int(await self.client.call(self._call("balanceOf", holder)))

    async def allowance(self, owner: str, spender: str) -> int:
        return int(await self.client.call(self._call("allowance", owner, spender)))

    def approve(self, spender: str, amount: int) -> ContractCall:
        return self._call("approve", spender, int(amount))


class WrappedNative(FungibleToken):
    abi = WETH_ABI

    def withdraw(self, amount: int) -> ContractCall:
        return self._call("withdraw", int(amount))


class SwapRouter:
    def __init__(self, client: ChainClient, address: str):
        self.client = client
        self.address = address

    def exact_input_single(
        self,
        token_in: str,
        token_out: str,
        fee: int,
        amount_in: int,
        recipient: str,
        deadline: int,
    ) -> ContractCall:
        plan = V3SinglePlan(
            router=self.address,
            token_in=token_in,
            token_out=token_out,
            fee=fee,
            amount_in=amount_in,
            recipient=recipient,
            deadline=deadline,
        )
        return build_exact_input_single(plan)


class MintingFaucet:
    def __init__(self, client: ChainClient, address: str, method: str):
        self.client = client
        self.address = address
        self.method = method

    def batch_mint(self, amount: int) -> ContractCall:
        return ContractCall(
            contract=self.address,
            method=self.method,
            args=(int(amount),),
            abi=batch_mint_abi(self.method),
        )


class LiquidityPool:
    def __init__(self, client: ChainClient, address: str):
        self.client = client
        self.address = address

    def _call(self, method: str) -> ContractCall:
        return ContractCall(contract=self.address, method=method, abi=V3_POOL_ABI)

    async def token0(self) -> str:
        return str(await self.client.call(self._call("token0")))

    async def token1(self) -> str:
        return str(await self.client.call(self._call("token1")))

    async def fee(self) -> int:
        return int(await self.client.call(self._call("fee")))

    async def reserves(self, base: FungibleToken, quote: FungibleToken) -> tuple[int, int]:
        """Return ``(base_reserve, quote_reserve)`` held by the pool contract."""
        base_reserve, quote_reserve = await asyncio.gather(
            base.balance_of(self.address),
            quote.balance_of(self.address),
        )
        return base_reserve, quote_reserve
