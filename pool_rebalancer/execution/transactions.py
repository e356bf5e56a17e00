from __future__ import annotations

from loguru import logger
from web3 import Web3

from pool_rebalancer.errors import ChainWriteError
from pool_rebalancer.execution.chain import ChainClient, ContractCall, FeeEstimate, Receipt, TransactionPlan


def gwei_floor(max_fee_gwei: float | None, priority_fee_gwei: float | None) -> FeeEstimate:
    return FeeEstimate(
        max_fee=int(Web3.to_wei(max_fee_gwei, "gwei")) if max_fee_gwei is not None else 0,
        priority_fee=int(Web3.to_wei(priority_fee_gwei, "gwei")) if priority_fee_gwei is not None else 0,
    )


def resolve_fee_caps(floor: FeeEstimate, suggested: FeeEstimate) -> FeeEstimate:
    """Configured fees are a lower bound on the network suggestion, never a cap."""
    priority_fee = max(floor.priority_fee, suggested.priority_fee)
    max_fee = max(floor.max_fee, suggested.max_fee, priority_fee)
    return FeeEstimate(max_fee=max_fee, priority_fee=priority_fee)


class TransactionSender:
    """Submits one contract call at a time for the client's signer.

    The nonce is read right before every submission, so callers must not
    interleave sends for the same signer.
    """

    def __init__(self, client: ChainClient, fee_floor: FeeEstimate):
        self.client = client
        self.fee_floor = fee_floor

    async def plan(self, call: ContractCall, gas_limit: int) -> TransactionPlan:
        nonce = await self.client.nonce(self.client.address)
        caps = resolve_fee_caps(self.fee_floor, await self.client.fee_estimate())
        return TransactionPlan(
            call=call,
            nonce=nonce,
            max_fee=caps.max_fee,
            priority_fee=caps.priority_fee,
            gas_limit=int(gas_limit),
        )

    async def send(self, call: ContractCall, gas_limit: int) -> Receipt:
        plan = await self.plan(call, gas_limit)
        logger.debug(
            "Submitting {} on {} (nonce={} maxFee={} priorityFee={} gas={})",
            call.method,
            call.contract,
            plan.nonce,
            plan.max_fee,
            plan.priority_fee,
            plan.gas_limit,
        )
        tx_hash = await self.client.submit(plan)
        receipt = await self.client.wait(tx_hash)
        if receipt.status != 1:
            raise ChainWriteError(
                f"{call.method} reverted on chain: {tx_hash}",
                tx_hash=tx_hash,
                method=call.method,
            )
        return receipt
