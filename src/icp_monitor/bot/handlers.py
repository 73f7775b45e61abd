import logging
from datetime import datetime
from typing import Optional

from telegram import Update
from telegram.ext import ContextTypes

from ..errors import StoreError
from ..store import SubscriberStore

logger = logging.getLogger(__name__)

MSG_SUBSCRIBED = "Привет! Я буду уведомлять вас о наличии встреч на сайте ICP."
MSG_ALREADY_SUBSCRIBED = "Вы уже подписаны на уведомления."
MSG_UNSUBSCRIBED = "Вы отписались от уведомлений."
MSG_STORE_FAILED = "⚠️ Не удалось сохранить подписку, попробуйте позже."


class BotHandlers:
    """Telegram bot command handlers"""

    def __init__(self, store: SubscriberStore):
        self.store = store
        # Updated by the polling job after each successful check
        self.last_check_at: Optional[datetime] = None

    def subscribe(self, chat_id) -> str:
        """Add the chat and return the reply text"""
        if self.store.add(chat_id):
            return MSG_SUBSCRIBED
        return MSG_ALREADY_SUBSCRIBED

    def unsubscribe(self, chat_id) -> str:
        """Remove the chat (present or not) and return the reply text"""
        self.store.remove(chat_id)
        return MSG_UNSUBSCRIBED

    async def start(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle /start command - subscribe"""
        chat_id = update.effective_chat.id
        try:
            reply = self.subscribe(chat_id)
        except StoreError as e:
            logger.error(f"Subscribe {chat_id} failed: {e}")
            reply = MSG_STORE_FAILED
        await update.message.reply_text(reply)

    async def stop(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle /stop command - unsubscribe"""
        chat_id = update.effective_chat.id
        try:
            reply = self.unsubscribe(chat_id)
        except StoreError as e:
            logger.error(f"Unsubscribe {chat_id} failed: {e}")
            reply = MSG_STORE_FAILED
        await update.message.reply_text(reply)

    async def help(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle /help command"""
        await update.message.reply_text(
            "📖 Команды\n\n"
            "/start - подписаться на уведомления о свободных встречах\n"
            "/stop - отписаться от уведомлений\n"
            "/status - состояние подписки\n"
            "/help - эта справка"
        )

    async def status(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle /status command"""
        chat_id = update.effective_chat.id
        subscribed = "✅ Вы подписаны" if chat_id in self.store else "❌ Вы не подписаны"
        if self.last_check_at:
            last = f"Последняя проверка: {self.last_check_at:%Y-%m-%d %H:%M:%S}"
        else:
            last = "Проверок ещё не было"
        await update.message.reply_text(f"{subscribed}\n{last}")

    async def unknown_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle unknown commands"""
        await update.message.reply_text(
            "❌ Неизвестная команда\n\n"
            "Отправьте /help, чтобы увидеть список команд"
        )

    async def unknown_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle unknown text messages"""
        await update.message.reply_text(
            "❓ Я понимаю только команды\n\n"
            "Отправьте /help, чтобы увидеть список команд"
        )

    async def error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Log exceptions raised inside handlers instead of letting them vanish"""
        logger.error(f"Handler error for update {update}: {context.error}", exc_info=context.error)
