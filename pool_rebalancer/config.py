from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from web3 import Web3

from pool_rebalancer.errors import ConfigError


class PoolDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    pool_id: str
    pool_address: str
    quote_token: str  # wrapped native (WETH)
    base_token: str
    base_decimals: int = 18
    threshold: float  # in ether units of the quote asset
    withdrawal_percentage: float
    batch_mint_amount: int  # smallest base-token units per mint call
    router: str
    minting_contract: str
    mint_method: str | None = None
    # Per-pool fee floor; falls back to the global floor when unset
    max_fee_gwei: float | None = None
    priority_fee_gwei: float | None = None

    @field_validator("pool_address", "quote_token", "base_token", "router", "minting_contract")
    @classmethod
    def _checksum(cls, v: str) -> str:
        if not Web3.is_address(v):
            raise ValueError(f"not an EVM address: {v!r}")
        return Web3.to_checksum_address(v)

    @field_validator("withdrawal_percentage")
    @classmethod
    def _pct_range(cls, v: float) -> float:
        if not 0 < v <= 100:
            raise ValueError("withdrawal_percentage must be in (0, 100]")
        return v

    @field_validator("threshold")
    @classmethod
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("threshold must be non-negative")
        return v

    @field_validator("batch_mint_amount")
    @classmethod
    def _positive_batch(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("batch_mint_amount must be positive")
        return v

    @field_validator("base_decimals")
    @classmethod
    def _decimals_range(cls, v: int) -> int:
        if not 0 <= v <= 77:
            raise ValueError("base_decimals must be between 0 and 77")
        return v

    @property
    def threshold_wei(self) -> int:
        return int(Web3.to_wei(self.threshold, "ether"))

    @property
    def effective_mint_method(self) -> str:
        # usdc_weth -> batchMintUSDC
        if self.mint_method:
            return self.mint_method
        return f"batchMint{self.pool_id.split('_')[0].upper()}"


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env",), env_prefix="PRB_", extra="allow", frozen=True)

    # EVM provider
    rpc_url: str = "http://localhost:8545"
    chain_id: int = 11155111

    # Signer
    private_key: str | None = None
    signer_address: str | None = None

    # Pools
    pools_config: str = "config/pools.yaml"
    poll_interval_sec: float = 30.0
    verify_pools: bool = True

    # Global fee floor (gwei); per-pool values take precedence
    max_fee_gwei: float | None = None
    priority_fee_gwei: float | None = None

    # Gas limits
    swap_gas_limit: int = 300_000
    approve_gas_limit: int = 100_000
    unwrap_gas_limit: int = 100_000
    mint_gas_limit: int = 10_000_000

    # Swap execution
    swap_deadline_seconds: int = 1200
    receipt_timeout_sec: float = 600.0
    mint_retry_delay_sec: float = 1.0
    mint_max_attempts: int = 100  # 0 means unbounded
    mint_max_seconds: float = 0.0  # 0 means unbounded
    drift_tolerance_eth: float = 0.1

    # Notifications
    discord_webhook_url: str | None = None
    explorer_tx_url: str = "https://sepolia.etherscan.io/tx/{}"

    # Logging
    log_level: str = "INFO"
    log_file: str | None = None

    # --- Validators to coerce empty strings in optional envs to None ---
    @field_validator(
        "private_key",
        "signer_address",
        "max_fee_gwei",
        "priority_fee_gwei",
        "discord_webhook_url",
        "log_file",
        mode="before",
    )
    @classmethod
    def _empty_str_to_none(cls, v):
        if v == "":
            return None
        return v

    def pools(self) -> list[PoolDescriptor]:
        path = Path(self.pools_config)
        if not path.exists():
            raise ConfigError(f"Pools config not found: {path}")
        try:
            data = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Pools config is not valid YAML: {e}") from e

        # Shared contract addresses apply to every pool unless overridden
        shared = data.get("contracts") or {}
        out: list[PoolDescriptor] = []
        seen: set[str] = set()
        for item in data.get("pools") or []:
            merged = {**shared, **(item or {})}
            try:
                pool = PoolDescriptor(**merged)
            except ValidationError as e:
                raise ConfigError(f"Invalid pool entry {merged.get('pool_id')!r}: {e}") from e
            if pool.pool_id in seen:
                raise ConfigError(f"Duplicate pool id: {pool.pool_id}")
            seen.add(pool.pool_id)
            out.append(pool)
        if not out:
            raise ConfigError(f"No pools configured in {path}")
        return out
