"""Staging area for assistant replies that reached the client but not the
database. Entries are JSON files named after the relay session id and are
replayed into the message store on startup.

Entries that can never be saved (their chat was deleted, or the file is
unreadable) are moved to the ``dead`` subfolder so they stop being retried
but stay on disk for inspection.
"""

import asyncio
import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from projectchat.core.exceptions import StorageError
from projectchat.services.relay.store import MessageStore

logger = logging.getLogger(__name__)

DEAD_LETTER_DIR = "dead"


@dataclass
class StagedReply:
    session_id: str
    chat_id: int
    content: str
    created_at: Optional[str] = None  # ISO timestamp of when the reply was produced

    @property
    def timestamp(self) -> datetime | None:
        return datetime.fromisoformat(self.created_at) if self.created_at else None


class ReplyJournal:
    def __init__(self, directory: Path):
        self.directory = directory

    @property
    def dead_letter_dir(self) -> Path:
        return self.directory / DEAD_LETTER_DIR

    def _path(self, session_id: str) -> Path:
        return self.directory / f"{session_id}.json"

    def stage(self, reply: StagedReply) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(reply.session_id)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(asdict(reply)))
        tmp.replace(path)
        return path

    def pending(self) -> list[StagedReply]:
        if not self.directory.exists():
            return []
        replies = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                reply = StagedReply(**json.loads(path.read_text()))
                if reply.created_at is not None:
                    datetime.fromisoformat(reply.created_at)
            except (TypeError, ValueError) as e:
                logger.error(f"Unreadable staged reply {path.name}, moving it aside: {e}")
                self._bury(path)
                continue
            replies.append(reply)
        return replies

    def discard(self, session_id: str) -> None:
        self._path(session_id).unlink(missing_ok=True)

    def dead_letter(self, session_id: str) -> Path:
        return self._bury(self._path(session_id))

    def _bury(self, path: Path) -> Path:
        self.dead_letter_dir.mkdir(parents=True, exist_ok=True)
        target = self.dead_letter_dir / path.name
        path.replace(target)
        return target

    async def replay(self, store: MessageStore) -> int:
        """Write every staged reply to the store. Returns how many were saved.

        Writes are keyed by session id, so replaying a reply that did land
        in the database after all does not duplicate it. Each reply keeps
        the timestamp it was staged with, so it sorts before any exchange
        that happened after it. A storage error leaves the entry for the
        next startup; a reply whose chat is gone is dead-lettered.
        """
        replies = await asyncio.to_thread(self.pending)
        saved = 0
        for reply in replies:
            try:
                if not await store.chat_exists(reply.chat_id):
                    target = await asyncio.to_thread(self.dead_letter, reply.session_id)
                    logger.warning(
                        f"Chat {reply.chat_id} no longer exists, staged reply moved to {target} "
                        f"(session={reply.session_id})"
                    )
                    continue
                message = await store.append(
                    reply.chat_id,
                    "assistant",
                    reply.content,
                    session_id=reply.session_id,
                    created_at=reply.timestamp,
                )
            except StorageError as e:
                logger.error(
                    f"Replay of staged reply failed, keeping it "
                    f"(chat={reply.chat_id} session={reply.session_id}): {e}"
                )
                continue
            self.discard(reply.session_id)
            saved += 1
            logger.info(
                f"Restored staged reply as message {message.id} "
                f"(chat={reply.chat_id} session={reply.session_id})"
            )
        return saved
