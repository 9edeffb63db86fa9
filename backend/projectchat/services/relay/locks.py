"""Per-chat mutual exclusion for relay sessions (single process)."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

logger = logging.getLogger(__name__)


class ChatLocks:
    """Registry of one ``asyncio.Lock`` per chat id.

    Entries are reference counted and dropped once nobody holds or waits for
    them, so the registry only grows with the number of busy chats.
    """

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._users: dict[int, int] = {}

    def is_locked(self, chat_id: int) -> bool:
        lock = self._locks.get(chat_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, chat_id: int) -> AsyncIterator[None]:
        lock = self._locks.setdefault(chat_id, asyncio.Lock())
        self._users[chat_id] = self._users.get(chat_id, 0) + 1
        try:
            if self.is_locked(chat_id):
                logger.debug(f"Chat {chat_id} is busy, waiting for the running session")
            async with lock:
                yield
        finally:
            self._users[chat_id] -= 1
            if self._users[chat_id] == 0:
                del self._users[chat_id]
                del self._locks[chat_id]


chat_locks = ChatLocks()
