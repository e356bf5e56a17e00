from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass

from loguru import logger
from web3 import Web3

from pool_rebalancer.analytics.pricing import (
    apply_buffer,
    format_units,
    required_base_amount,
    withdrawal_amount,
)
from pool_rebalancer.config import AppSettings, PoolDescriptor
from pool_rebalancer.errors import ConfigError, InventoryTimeout
from pool_rebalancer.execution.chain import ChainClient
from pool_rebalancer.execution.contracts import (
    FungibleToken,
    LiquidityPool,
    MintingFaucet,
    SwapRouter,
    WrappedNative,
)
from pool_rebalancer.execution.transactions import TransactionSender, gwei_floor
from pool_rebalancer.execution.uniswap_v3 import deadline_from_now
from pool_rebalancer.notify.sinks import NotificationSink


@dataclass
class SwapOutcome:
    pool_id: str
    swap_tx_hash: str
    unwrap_tx_hash: str | None
    native_before: int
    native_after: int

    @property
    def profit(self) -> int:
        return self.native_after - self.native_before


class SwapExecutor:
    """Drains one pool's surplus quote asset by swapping minted base token into it."""

    def __init__(
        self,
        pool: PoolDescriptor,
        client: ChainClient,
        settings: AppSettings,
        sink: NotificationSink,
    ):
        self.pool = pool
        self.client = client
        self.settings = settings
        self.sink = sink

        self.quote = WrappedNative(client, pool.quote_token)
        self.base = FungibleToken(client, pool.base_token)
        self.router = SwapRouter(client, pool.router)
        self.faucet = MintingFaucet(client, pool.minting_contract, pool.effective_mint_method)
        self.pool_contract = LiquidityPool(client, pool.pool_address)

        # Per-pool floor wins over the global one
        self.tx = TransactionSender(
            client,
            gwei_floor(
                pool.max_fee_gwei if pool.max_fee_gwei is not None else settings.max_fee_gwei,
                pool.priority_fee_gwei if pool.priority_fee_gwei is not None else settings.priority_fee_gwei,
            ),
        )
        self._in_flight = asyncio.Lock()

    @property
    def pool_id(self) -> str:
        return self.pool.pool_id

    @property
    def in_flight(self) -> bool:
        return self._in_flight.locked()

    async def get_balance(self) -> int:
        return await self.quote.balance_of(self.pool.pool_address)

    async def verify_pool(self) -> None:
        token0, token1 = await asyncio.gather(self.pool_contract.token0(), self.pool_contract.token1())
        actual = {Web3.to_checksum_address(token0), Web3.to_checksum_address(token1)}
        expected = {self.pool.base_token, self.pool.quote_token}
        if actual != expected:
            raise ConfigError(
                f"Pool {self.pool_id} at {self.pool.pool_address} trades {sorted(actual)}, "
                f"expected {sorted(expected)}"
            )

    async def required_base_amount(self, quote_amount: int) -> int:
        base_reserve, quote_reserve = await self.pool_contract.reserves(self.base, self.quote)
        required = required_base_amount(base_reserve, quote_reserve, quote_amount)
        logger.info(
            "Token amount calculation for {}: quote={} base_reserve={} quote_reserve={} required={}",
            self.pool_id,
            format_units(quote_amount, 18),
            format_units(base_reserve, self.pool.base_decimals),
            format_units(quote_reserve, 18),
            format_units(required, self.pool.base_decimals),
        )
        return required

    async def ensure_inventory(self, target: int) -> int:
        """Mint base token until the signer holds ``target``; returns the number of mints."""
        max_attempts = self.settings.mint_max_attempts
        max_seconds = self.settings.mint_max_seconds
        started = time.monotonic()
        attempts = 0

        balance = await self.base.balance_of(self.client.address)
        while balance < target:
            if (max_attempts and attempts >= max_attempts) or (
                max_seconds and time.monotonic() - started >= max_seconds
            ):
                raise InventoryTimeout(
                    f"Minting for {self.pool_id} stopped after {attempts} attempts "
                    f"({balance} of {target} held)",
                    attempts=attempts,
                    balance=balance,
                    target=target,
                )
            receipt = await self.tx.send(
                self.faucet.batch_mint(self.pool.batch_mint_amount),
                gas_limit=self.settings.mint_gas_limit,
            )
            attempts += 1
            previous, balance = balance, await self.base.balance_of(self.client.address)
            if balance < previous:
                logger.warning("Base balance for {} dropped during minting: {} -> {}", self.pool_id, previous, balance)
            logger.info(
                "Minted tokens for {}: batch={} balance={} target={} tx={}",
                self.pool_id,
                self.pool.batch_mint_amount,
                balance,
                target,
                receipt.tx_hash,
            )
            if balance < target:
                await asyncio.sleep(self.settings.mint_retry_delay_sec)
        return attempts

    async def ensure_allowance(self, amount: int) -> str | None:
        allowance = await self.base.allowance(self.client.address, self.router.address)
        if allowance >= amount:
            return None
        receipt = await self.tx.send(
            self.base.approve(self.router.address, amount),
            gas_limit=self.settings.approve_gas_limit,
        )
        logger.info("Token approved for {}: spender={} amount={}", self.pool_id, self.router.address, amount)
        return receipt.tx_hash

    async def swap(self, amount_in: int) -> str:
        call = self.router.exact_input_single(
            token_in=self.pool.base_token,
            token_out=self.pool.quote_token,
            fee=await self.pool_contract.fee(),
            amount_in=amount_in,
            recipient=self.client.address,
            deadline=deadline_from_now(self.settings.swap_deadline_seconds),
        )
        logger.info("Executing swap for {} with params {}", self.pool_id, call.args[0])
        receipt = await self.tx.send(call, gas_limit=self.settings.swap_gas_limit)
        return receipt.tx_hash

    async def unwrap(self, swap_tx_hash: str) -> SwapOutcome:
        """Unwrap the signer's whole WETH balance, including any held before the swap,
        so the reported profit also counts that pre-existing WETH."""
        acquired = await self.quote.balance_of(self.client.address)
        native_before = await self.client.native_balance(self.client.address)
        if acquired <= 0:
            logger.warning("Swap {} for {} left no wrapped native to unwrap", swap_tx_hash, self.pool_id)
            return SwapOutcome(self.pool_id, swap_tx_hash, None, native_before, native_before)

        receipt = await self.tx.send(self.quote.withdraw(acquired), gas_limit=self.settings.unwrap_gas_limit)
        native_after = await self.client.native_balance(self.client.address)
        return SwapOutcome(self.pool_id, swap_tx_hash, receipt.tx_hash, native_before, native_after)

    async def check_drift(self, balance_before: int, withdrawal: int) -> None:
        tolerance = int(Web3.to_wei(self.settings.drift_tolerance_eth, "ether"))
        try:
            actual = await self.get_balance()
        except Exception as e:
            logger.warning("Post-swap balance check for {} failed: {}", self.pool_id, e)
            return
        target = balance_before - withdrawal
        if abs(actual - target) > tolerance:
            logger.warning(
                "Pool {} balance differs from target after swap: target={} actual={}",
                self.pool_id,
                format_units(target, 18),
                format_units(actual, 18),
            )

    async def execute_swap(self) -> SwapOutcome | None:
        if self._in_flight.locked():
            logger.info("Swap already in progress for {}, skipping", self.pool_id)
            return None

        async with self._in_flight:
            stage = "balance"
            try:
                balance = await self.get_balance()
                if balance <= self.pool.threshold_wei:
                    logger.debug("Pool {} balance {} within threshold", self.pool_id, balance)
                    return None

                stage = "pricing"
                withdrawal = withdrawal_amount(balance, self.pool.withdrawal_percentage)
                required = apply_buffer(await self.required_base_amount(withdrawal))

                stage = "mint"
                await self.ensure_inventory(required)

                stage = "approve"
                await self.ensure_allowance(required)

                stage = "swap"
                swap_tx_hash = await self.swap(required)

                stage = "unwrap"
                outcome = await self.unwrap(swap_tx_hash)
            except Exception as e:
                logger.error("Error executing swap for {} at stage {}: {}", self.pool_id, stage, e)
                await self.sink.report_failure(self.pool_id, stage, e)
                raise

            await self.sink.report_success(
                self.pool_id,
                outcome.unwrap_tx_hash or outcome.swap_tx_hash,
                outcome.native_before,
                outcome.native_after,
                outcome.profit,
            )
            await self.check_drift(balance, withdrawal)
            return outcome
