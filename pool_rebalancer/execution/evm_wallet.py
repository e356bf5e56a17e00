from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from eth_account import Account
from loguru import logger
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

from pool_rebalancer.errors import ChainReadError, ChainWriteError, ConfigError
from pool_rebalancer.execution.chain import ContractCall, FeeEstimate, Receipt, TransactionPlan


@dataclass
class EvmWallet:
    w3: AsyncWeb3
    chain_id: int
    private_key: str | None
    address: str
    receipt_timeout_sec: float = 600.0

    @classmethod
    def create(
        cls,
        rpc_url: str,
        chain_id: int,
        private_key: str | None,
        explicit_address: str | None,
        receipt_timeout_sec: float = 600.0,
    ):
        if not rpc_url.startswith("http"):
            raise ConfigError(f"Only HTTP(S) RPC URLs are supported: {rpc_url}")
        w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": 30}))
        addr = explicit_address
        if private_key and not addr:
            addr = Account.from_key(private_key).address
        if not addr:
            raise ConfigError("Signer address or private key required")
        addr = Web3.to_checksum_address(addr)
        logger.info("Connected to EVM provider: {} (chain id {})", rpc_url, chain_id)
        logger.info("Signer address: {}", addr)
        return cls(
            w3=w3,
            chain_id=chain_id,
            private_key=private_key,
            address=addr,
            receipt_timeout_sec=receipt_timeout_sec,
        )

    def _function(self, call: ContractCall):
        contract = self.w3.eth.contract(address=Web3.to_checksum_address(call.contract), abi=call.abi)
        return getattr(contract.functions, call.method)(*call.args)

    async def call(self, call: ContractCall) -> Any:
        try:
            return await self._function(call).call()
        except Exception as e:
            raise ChainReadError(
                f"{call.method} on {call.contract} failed: {e}",
                contract=call.contract,
                method=call.method,
            ) from e

    async def native_balance(self, holder: str) -> int:
        try:
            return int(await self.w3.eth.get_balance(Web3.to_checksum_address(holder)))
        except Exception as e:
            raise ChainReadError(f"get_balance for {holder} failed: {e}", method="eth_getBalance") from e

    async def fee_estimate(self) -> FeeEstimate:
        # Same shape as ethers' getFeeData: twice the latest base fee plus the tip
        try:
            latest = await self.w3.eth.get_block("latest")
            priority = int(await self.w3.eth.max_priority_fee)
        except Exception as e:
            raise ChainReadError(f"fee estimate failed: {e}", method="eth_feeHistory") from e
        base_fee = int(latest.get("baseFeePerGas") or 0)
        return FeeEstimate(max_fee=base_fee * 2 + priority, priority_fee=priority)

    async def nonce(self, holder: str) -> int:
        try:
            return int(await self.w3.eth.get_transaction_count(Web3.to_checksum_address(holder)))
        except Exception as e:
            raise ChainReadError(f"nonce lookup for {holder} failed: {e}", method="eth_getTransactionCount") from e

    async def submit(self, plan: TransactionPlan) -> str:
        if not self.private_key:
            raise ChainWriteError("Private key required for sending transactions", method=plan.call.method)
        try:
            tx = await self._function(plan.call).build_transaction(
                {
                    "from": self.address,
                    "chainId": self.chain_id,
                    "nonce": plan.nonce,
                    "gas": plan.gas_limit,
                    "maxFeePerGas": plan.max_fee,
                    "maxPriorityFeePerGas": plan.priority_fee,
                    "value": plan.call.value,
                }
            )
            signed = self.w3.eth.account.sign_transaction(tx, self.private_key)
            tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as e:
            raise ChainWriteError(
                f"submitting {plan.call.method} to {plan.call.contract} failed: {e}",
                method=plan.call.method,
            ) from e
        return Web3.to_hex(tx_hash)

    async def wait(self, tx_hash: str) -> Receipt:
        try:
            rcpt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout_sec)
        except Exception as e:
            raise ChainWriteError(f"no receipt for {tx_hash}: {e}", tx_hash=tx_hash) from e
        return Receipt(
            tx_hash=tx_hash,
            status=int(rcpt.get("status", 0)),
            block_number=rcpt.get("blockNumber"),
            gas_used=rcpt.get("gasUsed"),
        )
