from __future__ import annotations

import asyncio
import traceback
from datetime import datetime, timezone
from typing import Protocol

import requests
from loguru import logger

from pool_rebalancer.analytics.pricing import format_units

# Discord rejects embed field values longer than this
FIELD_LIMIT = 1024


def _eth(wei: int) -> str:
    return format_units(wei, 18)


class NotificationSink(Protocol):
    async def report_success(
        self, pool_id: str, tx_hash: str, native_before: int, native_after: int, profit: int
    ) -> None: ...

    async def report_failure(self, pool_id: str, stage: str, error: BaseException) -> None: ...


class LogSink:
    async def report_success(self, pool_id, tx_hash, native_before, native_after, profit) -> None:
        logger.success(
            "Swap success for {}: tx={} ETH before={} after={} profit={}",
            pool_id,
            tx_hash,
            _eth(native_before),
            _eth(native_after),
            _eth(profit),
        )

    async def report_failure(self, pool_id, stage, error) -> None:
        logger.error("Swap failed for {} at stage {}: {}", pool_id, stage, error)


class DiscordWebhookSink:
    def __init__(self, webhook_url: str, explorer_tx_url: str, timeout: float = 10.0):
        self.webhook_url = webhook_url
        self.explorer_tx_url = explorer_tx_url
        self.timeout = timeout

    def success_embed(self, pool_id, tx_hash, native_before, native_after, profit) -> dict:
        return {
            "title": f"Successful Swap - {pool_id}",
            "color": 0x00FF00,
            "fields": [
                {"name": "Transaction", "value": f"[View on explorer]({self.explorer_tx_url.format(tx_hash)})"},
                {"name": "ETH Balance Before", "value": f"{_eth(native_before)} ETH"},
                {"name": "ETH Balance After", "value": f"{_eth(native_after)} ETH"},
                {"name": "Profit", "value": f"{_eth(profit)} ETH"},
            ],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def failure_embed(self, pool_id, stage, error) -> dict:
        trace = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return {
            "title": "Error Occurred",
            "color": 0xFF0000,
            "fields": [
                {"name": "Context", "value": f"{pool_id} ({stage})"},
                {"name": "Error Message", "value": (str(error) or type(error).__name__)[:FIELD_LIMIT]},
                {"name": "Stack Trace", "value": (trace or "No stack trace available")[-FIELD_LIMIT:]},
            ],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def _post(self, embed: dict) -> None:
        try:
            r = requests.post(self.webhook_url, json={"embeds": [embed]}, timeout=self.timeout)
            r.raise_for_status()
        except Exception as e:
            logger.warning("Discord webhook delivery failed: {}", e)

    async def report_success(self, pool_id, tx_hash, native_before, native_after, profit) -> None:
        embed = self.success_embed(pool_id, tx_hash, native_before, native_after, profit)
        await asyncio.to_thread(self._post, embed)

    async def report_failure(self, pool_id, stage, error) -> None:
        await asyncio.to_thread(self._post, self.failure_embed(pool_id, stage, error))


class MultiSink:
    def __init__(self, *sinks: NotificationSink):
        self.sinks = sinks

    async def report_success(self, pool_id, tx_hash, native_before, native_after, profit) -> None:
        for sink in self.sinks:
            await sink.report_success(pool_id, tx_hash, native_before, native_after, profit)

    async def report_failure(self, pool_id, stage, error) -> None:
        for sink in self.sinks:
            await sink.report_failure(pool_id, stage, error)
