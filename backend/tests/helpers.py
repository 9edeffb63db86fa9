"""Test engine, fake model provider and seeding helpers shared by the test modules."""

import asyncio
import json

from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine, select

from projectchat.core.security import create_access_token
from projectchat.models.chat import Chat, Message, Project
from projectchat.models.user import User
from projectchat.services.llm.base import BaseLLMProvider

# In-memory SQLite with StaticPool so all connections (including threads) share one DB
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def get_test_session():
    with Session(test_engine) as session:
        yield session


class FakeProvider(BaseLLMProvider):
    """Completion source that replays canned fragments, optionally failing at the end."""

    def __init__(self, fragments=("Hello", " from", " model"), error=None, delay=0.0):
        self.fragments = list(fragments)
        self.error = error
        self.delay = delay
        self.calls: list[tuple[list, str | None]] = []
        self.closed = False

    async def stream(self, turns, system_directive=None):
        self.calls.append((list(turns), system_directive))
        try:
            for fragment in self.fragments:
                if self.delay:
                    await asyncio.sleep(self.delay)
                yield fragment
            if self.error is not None:
                raise self.error
        finally:
            self.closed = True


# --- Seeding helpers ---

def seed_user(email="owner@example.com", engine=test_engine) -> int:
    with Session(engine) as session:
        user = User(email=email, password_hash="not-a-real-hash")
        session.add(user)
        session.commit()
        session.refresh(user)
        return user.id  # type: ignore


def seed_project(user_id: int, system_prompt=None, name="Project", engine=test_engine) -> int:
    with Session(engine) as session:
        project = Project(user_id=user_id, name=name, system_prompt=system_prompt)
        session.add(project)
        session.commit()
        session.refresh(project)
        return project.id  # type: ignore


def seed_chat(project_id: int, messages=None, engine=test_engine) -> int:
    with Session(engine) as session:
        chat = Chat(project_id=project_id)
        session.add(chat)
        session.commit()
        session.refresh(chat)

        for role, content in messages or []:
            session.add(Message(chat_id=chat.id, role=role, content=content))
        session.commit()
        return chat.id  # type: ignore


def chat_messages(chat_id: int, engine=test_engine) -> list[Message]:
    with Session(engine) as session:
        return list(session.exec(
            select(Message).where(Message.chat_id == chat_id).order_by(Message.id)  # type: ignore
        ).all())


def auth_headers(user_id: int) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def parse_events(body: str) -> list[dict]:
    """Split an SSE body into its JSON payloads."""
    events = []
    for frame in body.split("\n\n"):
        if frame.startswith("data: "):
            events.append(json.loads(frame[len("data: "):]))
    return events
