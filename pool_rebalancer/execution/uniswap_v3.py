from __future__ import annotations

import time
from dataclasses import dataclass

from pool_rebalancer.execution.abi import V3_ROUTER_ABI
from pool_rebalancer.execution.chain import ContractCall


@dataclass
class V3SinglePlan:
    router: str
    token_in: str
    token_out: str
    fee: int
    amount_in: int
    recipient: str
    deadline: int
    min_out: int = 0  # no slippage floor
    value: int = 0


def deadline_from_now(seconds: int, now: float | None = None) -> int:
    return int(now if now is not None else time.time()) + int(seconds)


def build_exact_input_single(p: V3SinglePlan) -> ContractCall:
    params = (
        p.token_in,
        p.token_out,
        int(p.fee),
        p.recipient,
        int(p.deadline),
        int(p.amount_in),
        int(p.min_out),
        0,  # sqrtPriceLimitX96
    )
    return ContractCall(
        contract=p.router,
        method="exactInputSingle",
        args=(params,),
        abi=V3_ROUTER_ABI,
        value=int(p.value),
    )
