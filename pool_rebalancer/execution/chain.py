from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class ContractCall:
    contract: str
    method: str
    args: tuple = ()
    abi: list[dict] = field(default_factory=list, repr=False, compare=False)
    value: int = 0  # native value to send


@dataclass(frozen=True)
class FeeEstimate:
    max_fee: int  # wei
    priority_fee: int  # wei


@dataclass
class TransactionPlan:
    call: ContractCall
    nonce: int
    max_fee: int
    priority_fee: int
    gas_limit: int


@dataclass(frozen=True)
class Receipt:
    tx_hash: str
    status: int
    block_number: int | None = None
    gas_used: int | None = None


class ChainClient(Protocol):
    """Read and write access to contract state for a single signer."""

    address: str

    async def call(self, call: ContractCall) -> Any: ...

    async def native_balance(self, holder: str) -> int: ...

    async def fee_estimate(self) -> FeeEstimate: ...

    async def nonce(self, holder: str) -> int: ...

    async def submit(self, plan: TransactionPlan) -> str: ...

    async def wait(self, tx_hash: str) -> Receipt: ...
