from __future__ import annotations

import asyncio
from collections import defaultdict

import pytest

from pool_rebalancer.config import AppSettings, PoolDescriptor
from pool_rebalancer.errors import ChainReadError
from pool_rebalancer.execution.chain import ContractCall, FeeEstimate, Receipt, TransactionPlan

SIGNER = "0x" + "99" * 20
POOL = "0x" + "11" * 20
WETH = "0x" + "22" * 20
BASE = "0x" + "33" * 20
ROUTER = "0x" + "44" * 20
FAUCET = "0x" + "55" * 20

ETH = 10**18
GWEI = 10**9


class FakeChain:
    """In-memory chain with just enough token, faucet, router and WETH behaviour."""

    def __init__(self, address: str = SIGNER):
        self.address = address
        self.balances: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self.allowances: dict[tuple[str, str, str], int] = {}
        self.native: dict[str, int] = defaultdict(int)
        self.pools: dict[str, dict] = {}
        self.faucets: dict[str, str] = {}  # faucet address -> minted token
        self.suggested = FeeEstimate(max_fee=30 * GWEI, priority_fee=1 * GWEI)
        self.next_nonce = 7
        self.submitted: list[TransactionPlan] = []
        self.receipts: dict[str, Receipt] = {}
        self.failing_reads: set[str] = set()
        self.reverting: set[str] = set()
        self.mint_yield: int | None = None
        self.gate: asyncio.Event | None = None

    def add_pool(self, pool: str, token0: str, token1: str, fee: int = 3000):
        self.pools[pool] = {"token0": token0, "token1": token1, "fee": fee}

    def methods(self) -> list[str]:
        return [p.call.method for p in self.submitted]

    async def call(self, call: ContractCall):
        if call.method in self.failing_reads:
            raise ChainReadError(f"{call.method} failed", contract=call.contract, method=call.method)
        if call.method == "balanceOf":
            return self.balances[call.contract][call.args[0]]
        if call.method == "allowance":
            return self.allowances.get((call.contract, call.args[0], call.args[1]), 0)
        if call.method in ("token0", "token1", "fee"):
            return self.pools[call.contract][call.method]
        raise AssertionError(f"unexpected read {call.method}")

    async def native_balance(self, holder: str) -> int:
        return self.native[holder]

    async def fee_estimate(self) -> FeeEstimate:
        return self.suggested

    async def nonce(self, holder: str) -> int:
        return self.next_nonce

    async def submit(self, plan: TransactionPlan) -> str:
        assert plan.nonce == self.next_nonce, "nonce must be read fresh before each submission"
        self.submitted.append(plan)
        self.next_nonce += 1
        tx_hash = f"0x{len(self.submitted):064x}"
        status = 0 if plan.call.method in self.reverting else 1
        if status:
            self._apply(plan.call)
        self.receipts[tx_hash] = Receipt(tx_hash=tx_hash, status=status)
        return tx_hash

    async def wait(self, tx_hash: str) -> Receipt:
        if self.gate is not None:
            await self.gate.wait()
        return self.receipts[tx_hash]

    def _apply(self, call: ContractCall):
        me = self.address
        if call.contract in self.faucets:
            token = self.faucets[call.contract]
            amount = self.mint_yield if self.mint_yield is not None else call.args[0]
            self.balances[token][me] += amount
        elif call.method == "approve":
            spender, amount = call.args
            self.allowances[(call.contract, me, spender)] = amount
        elif call.method == "exactInputSingle":
            token_in, token_out, _fee, recipient, _deadline, amount_in, _min_out, _limit = call.args[0]
            pool = next(
                p for p, meta in self.pools.items() if {meta["token0"], meta["token1"]} == {token_in, token_out}
            )
            key = (token_in, me, call.contract)
            assert self.allowances.get(key, 0) >= amount_in, "router not approved"
            assert self.balances[token_in][me] >= amount_in, "insufficient input balance"
            reserve_in = self.balances[token_in][pool]
            reserve_out = self.balances[token_out][pool]
            amount_out = reserve_out * amount_in // (reserve_in + amount_in)
            self.allowances[key] -= amount_in
            self.balances[token_in][me] -= amount_in
            self.balances[token_in][pool] += amount_in
            self.balances[token_out][pool] -= amount_out
            self.balances[token_out][recipient] += amount_out
        elif call.method == "withdraw":
            (wad,) = call.args
            self.balances[call.contract][me] -= wad
            self.native[me] += wad
        else:
            raise AssertionError(f"unexpected write {call.method}")


class RecordingSink:
    def __init__(self):
        self.successes: list[tuple] = []
        self.failures: list[tuple] = []

    async def report_success(self, pool_id, tx_hash, native_before, native_after, profit):
        self.successes.append((pool_id, tx_hash, native_before, native_after, profit))

    async def report_failure(self, pool_id, stage, error):
        self.failures.append((pool_id, stage, error))


def make_pool(**overrides) -> PoolDescriptor:
    fields = dict(
        pool_id="usdc_weth",
        pool_address=POOL,
        quote_token=WETH,
        base_token=BASE,
        base_decimals=6,
        threshold=5,
        withdrawal_percentage=90,
        batch_mint_amount=100_000 * 10**6,
        router=ROUTER,
        minting_contract=FAUCET,
    )
    fields.update(overrides)
    return PoolDescriptor(**fields)


@pytest.fixture
def chain() -> FakeChain:
    c = FakeChain()
    c.add_pool(POOL, BASE, WETH)
    c.faucets[FAUCET] = BASE
    c.native[SIGNER] = 1 * ETH
    # 1,000,000 USDC against 10 WETH
    c.balances[BASE][POOL] = 1_000_000 * 10**6
    c.balances[WETH][POOL] = 10 * ETH
    return c


@pytest.fixture
def settings(tmp_path) -> AppSettings:
    return AppSettings(
        pools_config=str(tmp_path / "pools.yaml"),
        mint_retry_delay_sec=0,
        max_fee_gwei=None,
        priority_fee_gwei=None,
    )


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
