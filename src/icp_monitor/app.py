import asyncio
import logging
import logging.handlers
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from .bot.bot import TelegramBot
from .config import AppConfig
from .errors import FetchError
from .extractor import extract_availability, format_message
from .models import AvailabilityEntry
from .retry import retry_call
from .source import BaseSource, create_source
from .store import SubscriberStore


def setup_logging(log_dir: Optional[Path] = None) -> None:
    """Configure logging

    - stdout (collected by journald)
    - file, rotated at midnight, 30 days kept
    """
    log_format = "%(asctime)s - %(levelname)s - %(message)s"
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)

    # Avoid duplicated handlers when called twice
    root_logger.handlers.clear()

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter(log_format))
    root_logger.addHandler(stream_handler)

    if log_dir:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / "app.log"
        file_handler = logging.handlers.TimedRotatingFileHandler(
            filename=log_file,
            when="midnight",
            interval=1,
            backupCount=30,
            encoding="utf-8"
        )
        file_handler.setFormatter(logging.Formatter(log_format))
        file_handler.suffix = "%Y-%m-%d"
        root_logger.addHandler(file_handler)


# Default setup (stdout only); file logging is configured by the CLI
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Suppress noisy library logs
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("apscheduler").setLevel(logging.WARNING)

CHECK_JOB_ID = "availability_check"


def _log_loop_exception(loop, context) -> None:
    """Log exceptions from tasks nobody awaited"""
    exc = context.get("exception")
    logger.error(f"Unhandled asyncio error: {context.get('message')}", exc_info=exc)


class Application:
    """Main application: subscriber bot plus the scheduled availability check"""

    def __init__(
        self,
        config: AppConfig,
        store: SubscriberStore,
        source: Optional[BaseSource] = None,
        bot: Optional[TelegramBot] = None
    ):
        self.config = config
        self.store = store
        self.source = source or create_source(config)
        self.bot = bot or TelegramBot(config.bot_token, store, proxy_url=config.proxy_url)
        self.scheduler = AsyncIOScheduler()
        self._cycle_running = False
        self._seen: Set[str] = set()
        self._fail_count = 0
        self._fail_notified = False

    def fetch_entries(self) -> List[AvailabilityEntry]:
        """Fetch the target page (with retries) and extract available entries

        Blocking; the polling job runs it in a worker thread.
        """
        html = retry_call(
            self.source.fetch_page,
            self.config.target_url,
            attempts=self.config.fetch_retries,
            delay=self.config.retry_delay,
            retry_on=(FetchError,),
            label=f"fetch ({self.source.get_source_name()})"
        )
        return extract_availability(html, self.config.selectors, self.config.available_marker)

    def _filter_seen(self, entries: List[AvailabilityEntry]) -> List[AvailabilityEntry]:
        if not self.config.dedupe_notifications:
            return entries
        return [entry for entry in entries if entry.fingerprint() not in self._seen]

    async def _notify_admin(self, message: str) -> None:
        """Send notification to admin"""
        if not self.config.admin_chat_id:
            return
        try:
            await self.bot.send_admin_alert(self.config.admin_chat_id, message)
            logger.info("📢 Admin alert sent")
        except Exception as e:
            logger.error(f"Admin alert failed: {e}")

    async def check_and_notify(self) -> int:
        """One polling cycle; never raises

        Returns:
            Number of messages delivered
        """
        if self._cycle_running:
            logger.warning("⏳ Previous check still running, skipping this cycle")
            return 0

        self._cycle_running = True
        try:
            return await self._run_cycle()
        except Exception as e:
            self._fail_count += 1
            logger.error(f"❌ Availability check failed (#{self._fail_count}): {e}")

            if self._fail_count >= self.config.alert_threshold and not self._fail_notified:
                self._fail_notified = True
                await self._notify_admin(
                    f"⚠️ Проверка сайта не удалась {self._fail_count} раз подряд\n\n"
                    f"Ошибка: {e}"
                )
            return 0
        finally:
            self._cycle_running = False

    async def _run_cycle(self) -> int:
        loop = asyncio.get_running_loop()
        url = self.config.target_url

        if self.config.probe_enabled:
            reachable = await loop.run_in_executor(
                None, self.source.probe, url, self.config.probe_timeout
            )
            if not reachable:
                logger.debug(f"Target {url} unreachable, skipping cycle")
                return 0

        logger.info(f"📡 Checking {url} ({self.source.get_source_name()})...")
        entries = await loop.run_in_executor(None, self.fetch_entries)
        self.bot.handlers.last_check_at = datetime.now()

        if self._fail_count > 0:
            logger.info(f"✅ Check recovered after {self._fail_count} failure(s)")
            if self._fail_notified:
                await self._notify_admin("✅ Проверка сайта снова работает")
            self._fail_count = 0
            self._fail_notified = False

        current = {entry.fingerprint() for entry in entries}
        fresh = self._filter_seen(entries)
        if not fresh:
            # Forget entries that vanished so they are announced if they return
            self._seen &= current
            logger.info(f"✅ Check done: {len(entries)} available, nothing new")
            return 0

        recipients = self.store.snapshot()
        if not recipients:
            self._seen &= current
            logger.info(f"✅ Check done: {len(fresh)} new entr(ies), no subscribers yet")
            return 0

        message = format_message(fresh)
        sent = await self.bot.broadcast(recipients, message)
        self._seen = current

        logger.info(f"✅ Check done: {len(fresh)} new entr(ies), sent {sent}/{len(recipients)} message(s)")
        return sent

    def _schedule(self) -> None:
        # max_instances=1 keeps APScheduler from overlapping runs; coalesce
        # collapses missed runs into one
        self.scheduler.add_job(
            self.check_and_notify,
            "interval",
            seconds=self.config.fetch_interval,
            id=CHECK_JOB_ID,
            next_run_time=datetime.now(),
            max_instances=1,
            misfire_grace_time=None,
            coalesce=True
        )

    def run(self) -> None:
        """Start the bot and the scheduler (blocking until a stop signal)"""
        application = self.bot.setup()
        self._schedule()

        async def post_init(app):
            asyncio.get_running_loop().set_exception_handler(_log_loop_exception)
            self.scheduler.start()
            logger.info(f"⏰ Scheduler started, checking every {self.config.fetch_interval}s")

        async def post_shutdown(app):
            await self.shutdown()

        application.post_init = post_init
        application.post_shutdown = post_shutdown

        logger.info(f"🤖 Telegram bot starting, {len(self.store)} subscriber(s)")
        # run_polling handles SIGINT/SIGTERM and then runs post_shutdown
        application.run_polling()

    async def shutdown(self) -> None:
        """Stop the scheduler and release the page source"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        try:
            self.source.close()
        except Exception as e:
            logger.error(f"Closing page source failed: {e}")
        logger.info("🛑 Stopped")
