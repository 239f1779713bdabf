"""
NCG Bridge Relay - Main Entry Point
Relays confirmed NCG deposits to WNCG mints (or refunds) exactly once per event.
"""
import asyncio
import importlib
import logging
import sys
from typing import Any, Callable, Optional

import uvicorn
from aiogram import Bot

from config import Settings, ensure_data_directory, get_settings
from bot.handlers import webhook
from bot.notifier import Notifier
from core.database import Database
from core.exceptions import CursorInconsistencyError
from core.headless_client import HeadlessGraphQLClient
from core.interfaces import BlockMonitor, NCGTransfer, WrappedNCGMinter
from core.models import LimitationPolicy, TransactionLocation
from core.observer import MONITOR_KEY, NCGTransferredEventObserver
from core.pull_monitor import PullMonitor
from core.push_monitor import PushMonitor
from core.retry import RetryPolicy
from utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def load_factory(path: str) -> Callable[..., Any]:
    """Resolve a "package.module:callable" import path."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Expected 'module:callable', got {path!r}")

    module = importlib.import_module(module_name)
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ValueError(f"{path!r} does not name a callable")
    return factory


class BridgeRelay:
    """Main application orchestrating monitor, observer and state."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        minter: Optional[WrappedNCGMinter] = None,
        ncg_transfer: Optional[NCGTransfer] = None
    ):
        """Initialize relay components."""
        self.settings = settings or get_settings()

        self.minter = minter
        self.ncg_transfer = ncg_transfer

        self.bot: Optional[Bot] = None
        self.db: Optional[Database] = None
        self.notifier: Optional[Notifier] = None
        self.headless: Optional[HeadlessGraphQLClient] = None
        self.monitor: Optional[BlockMonitor] = None
        self.observer: Optional[NCGTransferredEventObserver] = None
        self._webhook_server: Optional[uvicorn.Server] = None

    async def setup(self):
        """Setup all components."""
        logger.info("Setting up NCG bridge relay...")

        ensure_data_directory()

        self.db = Database(self.settings.database_path)
        await self.db.connect()

        self.bot = Bot(token=self.settings.bot_token)
        self.notifier = Notifier(self.bot)

        if self.minter is None:
            self.minter = load_factory(self.settings.minter_factory)(self.settings)
        if self.ncg_transfer is None:
            self.ncg_transfer = load_factory(self.settings.ncg_transfer_factory)(self.settings)

        location = await self.db.load(MONITOR_KEY)
        self.monitor = await self._build_monitor(location)

        self.observer = NCGTransferredEventObserver(
            ncg_transfer=self.ncg_transfer,
            minter=self.minter,
            notifier=self.notifier,
            state_store=self.db,
            history_store=self.db,
            explorer_url=self.settings.explorer_url,
            etherscan_url=self.settings.etherscan_url,
            exchange_fee_ratio=self.settings.exchange_fee_ratio,
            limitation_policy=LimitationPolicy(
                minimum=self.settings.minimum_exchange_amount,
                maximum=self.settings.maximum_exchange_amount,
            ),
            notification_channel=self.settings.notification_chat_id,
            destination_decimals=self.settings.destination_decimals,
        )

        logger.info("Setup complete!")

    async def _build_monitor(self, location: Optional[TransactionLocation]) -> BlockMonitor:
        if self.settings.monitor_mode == "push":
            monitor = PushMonitor(
                address=self.settings.contract_address,
                latest_location=location,
                event_api_url=self.settings.event_api_url,
                drain_interval=self.settings.drain_interval_seconds,
            )
            webhook.push_monitor = monitor
            logger.info(f"Push monitor watching {self.settings.contract_address}")
            return monitor

        self.headless = HeadlessGraphQLClient(self.settings.graphql_api_endpoint)
        if location is None:
            location = await self._initial_location()

        logger.info(f"Pull monitor watching {self.settings.ncg_vault_address} from {location.block_hash}")
        return PullMonitor(
            latest_location=location,
            confirmations=self.settings.confirmations,
            event_source=self.headless,
            address=self.settings.ncg_vault_address,
            poll_interval=self.settings.poll_interval_seconds,
            retry_policy=RetryPolicy(self.settings.retry_initial_delay, self.settings.retry_max_delay),
        )

    async def _initial_location(self) -> TransactionLocation:
        """Start point when nothing has been stored yet."""
        if self.settings.start_block_hash:
            return TransactionLocation(block_hash=self.settings.start_block_hash)

        tip_index = await self.headless.get_tip_index()
        block_hash = await self.headless.get_block_hash(tip_index)
        logger.warning(f"No stored cursor or START_BLOCK_HASH; starting from tip #{tip_index}")
        return TransactionLocation(block_hash=block_hash)

    async def run_monitor(self):
        """Feed every batch from the monitor to the observer, one at a time."""
        async for batch in self.monitor.produce():
            outcomes = await self.observer.notify(batch)
            if outcomes:
                logger.info(f"Block {batch.block_hash}: {[outcome.kind for outcome in outcomes]}")

    async def start(self):
        """Start the relay and, in push mode, the webhook server."""
        logger.info(f"Starting NCG bridge relay ({self.settings.monitor_mode} mode)...")

        try:
            if self.settings.monitor_mode == "push":
                from webhook_server import app

                self._webhook_server = uvicorn.Server(uvicorn.Config(
                    app,
                    host=self.settings.webhook_host,
                    port=self.settings.webhook_port,
                    log_level=self.settings.log_level.lower(),
                ))
                await asyncio.gather(self._webhook_server.serve(), self.run_monitor())
            else:
                await self.run_monitor()
        finally:
            await self.shutdown()

    async def shutdown(self):
        """Graceful shutdown."""
        logger.info("Shutting down NCG bridge relay...")

        if self._webhook_server:
            self._webhook_server.should_exit = True
        if self.headless:
            await self.headless.close()
        if self.notifier:
            await self.notifier.close()
        if self.db:
            await self.db.close()
        if self.bot:
            await self.bot.session.close()

        logger.info("Shutdown complete")


async def main():
    """Main entry point."""
    settings = get_settings()
    setup_logging(log_level=settings.log_level)

    relay = BridgeRelay(settings)

    try:
        await relay.setup()
        await relay.start()
    except KeyboardInterrupt:
        logger.info("Received interrupt signal")
    except CursorInconsistencyError as e:
        logger.critical(f"Refusing to start: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


def run():
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Relay stopped by user")


if __name__ == "__main__":
    run()
