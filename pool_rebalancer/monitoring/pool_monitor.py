from __future__ import annotations

import asyncio
import contextlib

from loguru import logger

from pool_rebalancer.analytics.pricing import format_units
from pool_rebalancer.config import AppSettings, PoolDescriptor
from pool_rebalancer.errors import ConfigError
from pool_rebalancer.execution.chain import ChainClient
from pool_rebalancer.execution.swap_executor import SwapExecutor
from pool_rebalancer.monitoring.schedule import ScheduleState
from pool_rebalancer.notify.sinks import NotificationSink


class PoolMonitor:
    """Visits one pool per tick in round-robin order and swaps when it is over threshold.

    Ticks that fire while another tick is still running are dropped, not queued.
    The cursor moves on after every tick, whether the pool succeeded or failed.
    """

    def __init__(self, executors: list[SwapExecutor], sink: NotificationSink, interval_sec: float = 30.0):
        if not executors:
            raise ConfigError("PoolMonitor needs at least one pool")
        self.executors = {e.pool_id: e for e in executors}
        if len(self.executors) != len(executors):
            raise ConfigError("Pool ids must be unique")
        self.schedule = ScheduleState(order=tuple(self.executors))
        self.sink = sink
        self.interval_sec = interval_sec
        # Token of the tick currently in flight; stop_monitoring clears it
        self._in_flight: object | None = None
        self._timer: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()

    @classmethod
    def create(
        cls,
        settings: AppSettings,
        client: ChainClient,
        sink: NotificationSink,
        pools: list[PoolDescriptor] | None = None,
    ) -> PoolMonitor:
        pools = pools if pools is not None else settings.pools()
        executors = [SwapExecutor(p, client, settings, sink) for p in pools]
        return cls(executors, sink, interval_sec=settings.poll_interval_sec)

    @property
    def running(self) -> bool:
        return self._timer is not None

    async def verify_pools(self) -> None:
        for executor in self.executors.values():
            await executor.verify_pool()
            logger.info("Verified pool {} at {}", executor.pool_id, executor.pool.pool_address)

    async def tick(self) -> bool:
        if self._in_flight is not None:
            logger.debug("Previous tick still running; dropping this one")
            return False

        token = self._in_flight = object()
        pool_id = self.schedule.current
        executor = self.executors[pool_id]
        stage = "balance"
        try:
            balance = await executor.get_balance()
            logger.info(
                "Processing {}: balance={} threshold={}",
                pool_id,
                format_units(balance, 18),
                executor.pool.threshold,
            )
            if balance > executor.pool.threshold_wei:
                stage = "swap"
                logger.info("Executing swap for {}", pool_id)
                await executor.execute_swap()
        except Exception as e:
            logger.error("Error processing pool {} (stage {}): {}", pool_id, stage, e)
            # Swap failures are reported by the executor with their own stage
            if stage == "balance":
                await self._report_failure(pool_id, stage, e)
        finally:
            self.schedule = self.schedule.advanced()
            # A tick that outlived stop_monitoring must not clear a newer tick's token
            if self._in_flight is token:
                self._in_flight = None
        return True

    @property
    def ticking(self) -> bool:
        return self._in_flight is not None

    async def _report_failure(self, pool_id: str, stage: str, error: Exception) -> None:
        try:
            await self.sink.report_failure(pool_id, stage, error)
        except Exception as e:
            logger.warning("Failure report for {} could not be delivered: {}", pool_id, e)

    def _reap(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Monitor tick crashed: {}", task.exception())

    def _spawn_tick(self) -> None:
        task = asyncio.create_task(self.tick())
        self._pending.add(task)
        task.add_done_callback(self._reap)

    async def _run_timer(self) -> None:
        while True:
            await asyncio.sleep(self.interval_sec)
            self._spawn_tick()

    async def start_monitoring(self) -> None:
        if self._timer is not None:
            return
        logger.info("Starting sequential pool monitoring: {}", ", ".join(self.schedule.order))
        self._timer = asyncio.create_task(self._run_timer())
        await self.tick()

    async def stop_monitoring(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._timer
            self._timer = None
        # A tick still running finishes on its own; the next run is not blocked by it
        self._in_flight = None
        logger.info("Pool monitoring stopped")
