import json
import logging
import threading
from pathlib import Path
from typing import Iterator, List, Set, Union

from .errors import StoreError

logger = logging.getLogger(__name__)

ChatId = Union[int, str]


class SubscriberStore:
    """Set of subscribed chat ids persisted as a JSON array

    Every mutation rewrites the whole file, so the file always matches the
    last committed in-memory state.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._ids: Set[ChatId] = set()
        self._lock = threading.RLock()  # persist() is called with the lock already held

    def load(self) -> "SubscriberStore":
        """Load ids from disk (missing file means no subscribers)"""
        if not self.path.exists():
            logger.info(f"Subscriber file {self.path} not found, starting empty")
            return self
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StoreError(f"cannot read subscriber file {self.path}: {e}") from e

        if not isinstance(data, list):
            raise StoreError(f"subscriber file {self.path} must contain a JSON array")
        for item in data:
            if isinstance(item, bool) or not isinstance(item, (int, str)):
                raise StoreError(f"invalid subscriber id in {self.path}: {item!r}")

        with self._lock:
            self._ids = set(data)
        logger.info(f"Loaded {len(self._ids)} subscriber(s) from {self.path}")
        return self

    def add(self, chat_id: ChatId) -> bool:
        """Add chat_id; returns False if it was already subscribed"""
        with self._lock:
            if chat_id in self._ids:
                return False
            self._ids.add(chat_id)
            try:
                self.persist()
            except StoreError:
                self._ids.discard(chat_id)
                raise
        logger.info(f"➕ Subscribed {chat_id} ({len(self._ids)} total)")
        return True

    def remove(self, chat_id: ChatId) -> bool:
        """Remove chat_id if present; returns whether it was subscribed"""
        with self._lock:
            existed = chat_id in self._ids
            self._ids.discard(chat_id)
            try:
                self.persist()
            except StoreError:
                if existed:
                    self._ids.add(chat_id)
                raise
        if existed:
            logger.info(f"➖ Unsubscribed {chat_id} ({len(self._ids)} total)")
        return existed

    def persist(self) -> None:
        """Overwrite the file with the current set"""
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "w", encoding="utf-8") as f:
                    json.dump(self._sorted(), f, ensure_ascii=False)
            except OSError as e:
                raise StoreError(f"cannot write subscriber file {self.path}: {e}") from e

    def _sorted(self) -> List[ChatId]:
        # ints and strs do not compare, so order by type first
        return sorted(self._ids, key=lambda x: (isinstance(x, str), str(x) if isinstance(x, str) else x))

    def snapshot(self) -> List[ChatId]:
        """Copy of the ids, safe to iterate while handlers mutate the store"""
        with self._lock:
            return self._sorted()

    def __contains__(self, chat_id: object) -> bool:
        return chat_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[ChatId]:
        return iter(self.snapshot())
