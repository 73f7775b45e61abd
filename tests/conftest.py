"""Pytest configuration and common fixtures."""

from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from icp_monitor.bot.bot import TelegramBot
from icp_monitor.config import AppConfig
from icp_monitor.source.base import BaseSource
from icp_monitor.store import SubscriberStore

AVAILABLE_HTML = """
<html><body>
  <div class="meeting-availability">
    <span class="city-name">Madrid</span>
    <span class="building-name">B1</span>
    <span class="available-dates">доступны 5 мая</span>
  </div>
  <div class="meeting-availability">
    <span class="city-name">Barcelona</span>
    <span class="building-name">C2</span>
    <span class="available-dates">нет мест</span>
  </div>
</body></html>
"""

EMPTY_HTML = """
<html><body>
  <div class="meeting-availability">
    <span class="city-name">Madrid</span>
    <span class="building-name">B1</span>
    <span class="available-dates">нет мест</span>
  </div>
</body></html>
"""


class FakeSource(BaseSource):
    """Page source returning canned pages or raising canned errors, in order"""

    def __init__(self, results: List, reachable: bool = True):
        super().__init__()
        self.results = list(results)
        self.reachable = reachable
        self.calls = 0
        self.closed = False

    def get_source_name(self) -> str:
        return "fake"

    def fetch_page(self, url: str) -> str:
        self.calls += 1
        result = self.results[min(self.calls, len(self.results)) - 1]
        if isinstance(result, Exception):
            raise result
        return result

    def probe(self, url: str, timeout: float = 5) -> bool:
        return self.reachable

    def close(self) -> None:
        self.closed = True


def make_config(**overrides) -> AppConfig:
    values = dict(
        bot_token="123:abc",
        target_url="https://example.test/citas",
        retry_delay=0,
        probe_enabled=False,
    )
    values.update(overrides)
    return AppConfig(**values)


@pytest.fixture
def store(tmp_path) -> SubscriberStore:
    return SubscriberStore(tmp_path / "users.json").load()


@pytest.fixture
def telegram_bot(store) -> TelegramBot:
    """TelegramBot whose underlying PTB application is mocked"""
    bot = TelegramBot("123:abc", store)
    bot.application = MagicMock()
    bot.application.bot.send_message = AsyncMock()
    return bot


def sent_messages(bot: TelegramBot, chat_id: Optional[int] = None) -> List[str]:
    calls = bot.application.bot.send_message.call_args_list
    return [c.kwargs["text"] for c in calls if chat_id is None or c.kwargs["chat_id"] == chat_id]
