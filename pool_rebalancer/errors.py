"""
Exception hierarchy for the pool rebalancer.

Read failures abort the current swap attempt, write failures abort the remaining
swap steps, and configuration errors are fatal at startup.
"""

from __future__ import annotations

from typing import Any


class RebalancerError(Exception):
    """Base exception for all pool rebalancer errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.details = details or {}


class ConfigError(RebalancerError):
    """Raised when settings or a pool descriptor are missing or invalid."""


class ChainReadError(RebalancerError):
    """Raised when reading contract or account state over RPC fails."""

    def __init__(
        self,
        message: str,
        contract: str | None = None,
        method: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.contract = contract
        self.method = method


class ChainWriteError(RebalancerError):
    """Raised when a transaction cannot be submitted, reverts, or never confirms."""

    def __init__(
        self,
        message: str,
        tx_hash: str | None = None,
        method: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.tx_hash = tx_hash
        self.method = method


class InventoryTimeout(RebalancerError):
    """Raised when the mint loop exhausts its attempt or time budget."""

    def __init__(self, message: str, attempts: int, balance: int, target: int):
        super().__init__(message, {"attempts": attempts, "balance": balance, "target": target})
        self.attempts = attempts
        self.balance = balance
        self.target = target
