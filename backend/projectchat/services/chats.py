"""Ownership lookups for projects and chats.

A chat has no access-control subject of its own: whoever owns the project
owns its chats. Missing and foreign rows look the same to callers.
"""

import asyncio
from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from projectchat.core.exceptions import AuthzError, StorageError
from projectchat.models.chat import Chat, Project


@dataclass(frozen=True)
class ChatAccess:
    chat_id: int
    project_id: int
    system_directive: str | None


def find_owned_project(session: Session, project_id: int, owner_id: int) -> Project | None:
    return session.exec(
        select(Project).where(Project.id == project_id, Project.user_id == owner_id)
    ).first()


def find_owned_chat(
    session: Session, chat_id: int, project_id: int, owner_id: int
) -> tuple[Chat, Project] | None:
    row = session.exec(
        select(Chat, Project)
        .join(Project, Chat.project_id == Project.id)
        .where(
            Chat.id == chat_id,
            Chat.project_id == project_id,
            Project.user_id == owner_id,
        )
    ).first()
    return tuple(row) if row else None


class ChatDirectory:
    """Async front for the relay: one joined lookup chat -> project -> owner."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def _authorize(self, chat_id: int, project_id: int, owner_id: int) -> ChatAccess | None:
        with Session(self.engine) as session:
            found = find_owned_chat(session, chat_id, project_id, owner_id)
            if found is None:
                return None
            chat, project = found
            return ChatAccess(
                chat_id=chat.id,  # type: ignore[arg-type]
                project_id=project.id,  # type: ignore[arg-type]
                system_directive=project.system_prompt,
            )

    async def authorize(self, chat_id: int, project_id: int, owner_id: int) -> ChatAccess:
        try:
            access = await asyncio.to_thread(self._authorize, chat_id, project_id, owner_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not look up chat {chat_id}: {e}") from e
        if access is None:
            raise AuthzError()
        return access
