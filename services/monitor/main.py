import asyncio

from loguru import logger

from pool_rebalancer.config import AppSettings
from pool_rebalancer.execution.evm_wallet import EvmWallet
from pool_rebalancer.monitoring.pool_monitor import PoolMonitor
from pool_rebalancer.notify.sinks import DiscordWebhookSink, LogSink, MultiSink


def build_sink(settings: AppSettings):
    sinks = [LogSink()]
    if settings.discord_webhook_url:
        sinks.append(DiscordWebhookSink(settings.discord_webhook_url, settings.explorer_tx_url))
    return MultiSink(*sinks)


async def run(settings: AppSettings, monitor: PoolMonitor):
    if settings.verify_pools:
        await monitor.verify_pools()
    await monitor.start_monitoring()
    try:
        await asyncio.Event().wait()
    finally:
        await monitor.stop_monitoring()


def main():
    settings = AppSettings()
    logger.remove()
    logger.add(lambda msg: print(msg, end=""), level=settings.log_level)
    if settings.log_file:
        logger.add(settings.log_file, level=settings.log_level, serialize=True)

    wallet = EvmWallet.create(
        rpc_url=settings.rpc_url,
        chain_id=settings.chain_id,
        private_key=settings.private_key,
        explicit_address=settings.signer_address,
        receipt_timeout_sec=settings.receipt_timeout_sec,
    )
    monitor = PoolMonitor.create(settings, wallet, build_sink(settings))

    try:
        asyncio.run(run(settings, monitor))
    except KeyboardInterrupt:
        logger.info("Monitor interrupted; shutting down.")


if __name__ == "__main__":
    main()
