"""Durable, ordered message persistence.

Each call borrows a connection from the engine's pool inside a scoped
``Session`` running on a worker thread, so the connection goes back to the
pool on success, error and cancellation alike.
"""

import asyncio
import logging
from datetime import datetime, timezone

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from projectchat.core.exceptions import StorageError
from projectchat.models.chat import Chat, Message
from projectchat.services.llm.base import CHAT_ROLES

logger = logging.getLogger(__name__)


class MessageStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def _append(
        self,
        chat_id: int,
        role: str,
        content: str,
        session_id: str | None,
        created_at: datetime | None,
    ) -> Message:
        with Session(self.engine) as session:
            if session_id is not None:
                existing = session.exec(
                    select(Message).where(
                        Message.session_id == session_id, Message.role == role
                    )
                ).first()
                if existing is not None:
                    logger.info(f"Message for session {session_id} ({role}) already stored, reusing it")
                    return existing

            message = Message(chat_id=chat_id, role=role, content=content, session_id=session_id)
            if created_at is not None:
                message.created_at = created_at
            session.add(message)

            chat = session.get(Chat, chat_id)
            if chat:
                chat.updated_at = datetime.now(timezone.utc)
                session.add(chat)

            session.commit()
            session.refresh(message)
            return message

    def _list(self, chat_id: int) -> list[Message]:
        with Session(self.engine) as session:
            return list(session.exec(
                select(Message)
                .where(Message.chat_id == chat_id)
                .order_by(col(Message.created_at), col(Message.id))
            ).all())

    def _chat_exists(self, chat_id: int) -> bool:
        with Session(self.engine) as session:
            return session.get(Chat, chat_id) is not None

    async def append(
        self,
        chat_id: int,
        role: str,
        content: str,
        session_id: str | None = None,
        created_at: datetime | None = None,
    ) -> Message:
        """Insert one message atomically and return the committed row.

        With a ``session_id`` the write is idempotent: a second call for the
        same session and role returns the row written by the first.
        ``created_at`` backdates a row written late, such as a replayed reply,
        to the moment it was produced so history order is unaffected.
        """
        if role not in CHAT_ROLES:
            raise ValueError(f"Unsupported message role: {role!r}")
        try:
            return await asyncio.to_thread(
                self._append, chat_id, role, content, session_id, created_at
            )
        except SQLAlchemyError as e:
            raise StorageError(f"Could not store {role} message in chat {chat_id}: {e}") from e

    async def list(self, chat_id: int) -> list[Message]:
        """All messages of a chat, oldest first."""
        try:
            return await asyncio.to_thread(self._list, chat_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not load messages of chat {chat_id}: {e}") from e

    async def chat_exists(self, chat_id: int) -> bool:
        try:
            return await asyncio.to_thread(self._chat_exists, chat_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not look up chat {chat_id}: {e}") from e
