import asyncio
import logging
from typing import Iterable, Optional

from telegram import Bot
from telegram.error import Forbidden, NetworkError, TelegramError, TimedOut
from telegram.ext import Application, CommandHandler, MessageHandler, filters
from telegram.request import HTTPXRequest

from ..store import ChatId, SubscriberStore
from .handlers import BotHandlers

logger = logging.getLogger(__name__)

# Message send interval in seconds
MESSAGE_INTERVAL = 0.05

# Telegram API timeouts (seconds)
CONNECT_TIMEOUT = 30.0
READ_TIMEOUT = 30.0
WRITE_TIMEOUT = 30.0
POOL_TIMEOUT = 10.0

MAX_RETRIES = 3
RETRY_DELAY = 2.0


class TelegramBot:
    """Telegram bot wrapper"""

    def __init__(self, token: str, store: SubscriberStore, proxy_url: Optional[str] = None):
        self.token = token
        self.store = store
        self.proxy_url = proxy_url
        self.handlers = BotHandlers(store)
        self.application: Optional[Application] = None

    def setup(self) -> Application:
        """Setup bot application with handlers"""
        request = HTTPXRequest(
            connect_timeout=CONNECT_TIMEOUT,
            read_timeout=READ_TIMEOUT,
            write_timeout=WRITE_TIMEOUT,
            pool_timeout=POOL_TIMEOUT,
            proxy=self.proxy_url,
        )

        self.application = (
            Application.builder()
            .token(self.token)
            .request(request)
            .build()
        )

        self.application.add_handler(CommandHandler("start", self.handlers.start))
        self.application.add_handler(CommandHandler("stop", self.handlers.stop))
        self.application.add_handler(CommandHandler("help", self.handlers.help))
        self.application.add_handler(CommandHandler("status", self.handlers.status))

        self.application.add_handler(MessageHandler(filters.COMMAND, self.handlers.unknown_command))
        self.application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, self.handlers.unknown_message))

        self.application.add_error_handler(self.handlers.error)

        return self.application

    @property
    def bot(self) -> Bot:
        return self.application.bot

    async def send_message(self, chat_id: ChatId, text: str) -> bool:
        """Send plain text, retrying network timeouts

        Returns:
            True: sent
            False: failed (bot blocked or other error); never raises
        """
        last_error = None

        for attempt in range(MAX_RETRIES):
            try:
                await self.bot.send_message(chat_id=chat_id, text=text)
                return True
            except Forbidden:
                # The user blocked the bot, retrying will not help
                logger.warning(f"User {chat_id} blocked the bot")
                return False
            except (TimedOut, NetworkError) as e:
                last_error = e
                if attempt < MAX_RETRIES - 1:
                    logger.warning(f"Send to {chat_id} timed out, retry {attempt + 1}...")
                    await asyncio.sleep(RETRY_DELAY)
            except TelegramError as e:
                logger.error(f"Send to {chat_id} failed: {e}")
                return False
            except Exception as e:
                logger.error(f"Send to {chat_id} failed unexpectedly: {e}")
                return False

        logger.error(f"Send to {chat_id} failed after {MAX_RETRIES} attempts: {last_error}")
        return False

    async def broadcast(self, chat_ids: Iterable[ChatId], text: str) -> int:
        """Send text to every chat id; one failure never stops the batch

        Returns:
            Number of chats the message reached
        """
        sent = 0
        for chat_id in chat_ids:
            if await self.send_message(chat_id, text):
                sent += 1
            await asyncio.sleep(MESSAGE_INTERVAL)
        return sent

    async def send_admin_alert(self, chat_id: ChatId, message: str) -> bool:
        """Send admin alert message"""
        return await self.send_message(chat_id, f"🚨 Системное уведомление\n\n{message}")


async def send_once(token: str, chat_id: ChatId, text: str, proxy_url: Optional[str] = None) -> bool:
    """Send a single message without starting polling (used by the CLI)"""
    request = HTTPXRequest(connect_timeout=CONNECT_TIMEOUT, read_timeout=READ_TIMEOUT, proxy=proxy_url)
    bot = Bot(token, request=request)
    try:
        async with bot:
            await bot.send_message(chat_id=chat_id, text=text)
        return True
    except TelegramError as e:
        logger.error(f"Send to {chat_id} failed: {e}")
        return False
