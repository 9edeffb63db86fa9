"""Relay orchestration: one user message in, one streamed model reply out.

``ChatRelay.relay`` is an async generator. Everything up to and including
the user message write happens before its first event, and errors there are
raised to the caller (the API turns them into HTTP statuses). Once the first
event has been produced, failures are reported in-band as a ``Failed`` event.
"""

import asyncio
import logging
import uuid
from contextlib import aclosing
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator

from projectchat.core.exceptions import InputError, ServiceError, StorageError, UpstreamError
from projectchat.models.chat import Message
from projectchat.services.chats import ChatDirectory
from projectchat.services.llm.base import BaseLLMProvider, ChatTurn
from projectchat.services.relay.events import (
    Completed,
    Failed,
    RelayEvent,
    TokenChunk,
    UserMessageCreated,
)
from projectchat.services.relay.journal import ReplyJournal, StagedReply
from projectchat.services.relay.locks import ChatLocks, chat_locks
from projectchat.services.relay.store import MessageStore

logger = logging.getLogger(__name__)

UNSAVED_REPLY_MESSAGE = "Reply was delivered but could not be saved yet"
LOST_REPLY_MESSAGE = "Reply could not be saved"
DISCONNECTED_MESSAGE = "Client disconnected"


class SessionState(str, Enum):
    IDLE = "idle"
    AUTHORIZING = "authorizing"
    PERSISTING_USER = "persisting_user"
    STREAMING = "streaming"
    PERSISTING_ASSISTANT = "persisting_assistant"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.IDLE: {SessionState.AUTHORIZING, SessionState.FAILED},
    SessionState.AUTHORIZING: {SessionState.PERSISTING_USER, SessionState.FAILED},
    SessionState.PERSISTING_USER: {SessionState.STREAMING, SessionState.FAILED},
    SessionState.STREAMING: {SessionState.PERSISTING_ASSISTANT, SessionState.FAILED},
    SessionState.PERSISTING_ASSISTANT: {SessionState.COMPLETED, SessionState.FAILED},
}


@dataclass
class RelaySession:
    chat_id: int
    project_id: int
    caller_id: int
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: SessionState = SessionState.IDLE
    failure: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in (SessionState.COMPLETED, SessionState.FAILED)

    def advance(self, state: SessionState) -> None:
        if state not in _TRANSITIONS.get(self.state, set()):
            raise RuntimeError(f"Illegal relay transition {self.state.value} -> {state.value}")
        self.state = state

    def fail(self, reason: str) -> None:
        if self.is_terminal:
            return
        self.advance(SessionState.FAILED)
        self.failure = reason

    def __str__(self) -> str:
        return f"chat={self.chat_id} session={self.session_id}"


class ChatRelay:
    def __init__(
        self,
        store: MessageStore,
        directory: ChatDirectory,
        source: BaseLLMProvider,
        locks: ChatLocks = chat_locks,
        journal: ReplyJournal | None = None,
        idle_timeout: float | None = None,
        persist_attempts: int = 1,
        persist_backoff: float = 0.0,
    ):
        self.store = store
        self.directory = directory
        self.source = source
        self.locks = locks
        self.journal = journal
        self.idle_timeout = idle_timeout
        self.persist_attempts = max(1, persist_attempts)
        self.persist_backoff = persist_backoff

    async def relay(
        self,
        chat_id: int,
        project_id: int,
        caller_id: int,
        text: str | None,
        session: RelaySession | None = None,
    ) -> AsyncIterator[RelayEvent]:
        session = session or RelaySession(chat_id, project_id, caller_id)

        try:
            if not text or not text.strip():
                raise InputError()

            session.advance(SessionState.AUTHORIZING)
            access = await self.directory.authorize(chat_id, project_id, caller_id)

            async with self.locks.hold(chat_id):
                history = await self.store.list(chat_id)

                session.advance(SessionState.PERSISTING_USER)
                user_message = await self.store.append(
                    chat_id, "user", text, session_id=session.session_id
                )

                session.advance(SessionState.STREAMING)
                logger.info(f"Relay started ({session}, {len(history)} prior messages)")
                yield UserMessageCreated(user_message)

                try:
                    turns = [ChatTurn(role=m.role, content=m.content) for m in history]
                    turns.append(ChatTurn(role="user", content=user_message.content))

                    fragments = []
                    async with aclosing(self.source.stream(turns, access.system_directive)) as upstream:
                        while (fragment := await self._next_fragment(upstream)) is not None:
                            fragments.append(fragment)
                            yield TokenChunk(fragment)

                    session.advance(SessionState.PERSISTING_ASSISTANT)
                    assistant_message = await self._persist_reply(session, "".join(fragments))
                except ServiceError as e:
                    session.fail(e.public_message)
                    logger.error(f"Relay failed ({session}) [{e.kind.value}]: {e.message}")
                    yield Failed(e.public_message)
                    return
                except Exception:
                    session.fail("Internal server error")
                    logger.exception(f"Relay crashed ({session})")
                    yield Failed("Internal server error")
                    return

                session.advance(SessionState.COMPLETED)
                logger.info(
                    f"Relay completed ({session}, {len(assistant_message.content)} chars, "
                    f"message {assistant_message.id})"
                )
                yield Completed(assistant_message)

        except ServiceError as e:
            # Only reachable before the first event: the caller gets the error
            session.fail(e.public_message)
            logger.warning(f"Relay rejected ({session}) [{e.kind.value}]: {e.message}")
            raise
        except (asyncio.CancelledError, GeneratorExit):
            if not session.is_terminal:
                session.fail(DISCONNECTED_MESSAGE)
                logger.info(f"Client went away, relay aborted ({session})")
            raise

    async def _next_fragment(self, upstream: AsyncIterator[str]) -> str | None:
        """Next fragment from the provider, or None once it is exhausted."""
        try:
            if self.idle_timeout is None:
                return await anext(upstream)
            return await asyncio.wait_for(anext(upstream), self.idle_timeout)
        except StopAsyncIteration:
            return None
        except asyncio.TimeoutError:
            raise UpstreamError(f"No response from the model for {self.idle_timeout:g}s")

    async def _persist_reply(self, session: RelaySession, content: str) -> Message:
        produced_at = datetime.now(timezone.utc)
        last_error: StorageError | None = None
        for attempt in range(1, self.persist_attempts + 1):
            try:
                return await self.store.append(
                    session.chat_id, "assistant", content, session_id=session.session_id
                )
            except StorageError as e:
                last_error = e
                logger.warning(
                    f"Saving reply failed, attempt {attempt}/{self.persist_attempts} ({session}): {e}"
                )
                if attempt < self.persist_attempts:
                    await asyncio.sleep(self.persist_backoff * attempt)

        if self.journal is not None:
            try:
                path = await asyncio.to_thread(
                    self.journal.stage,
                    StagedReply(
                        session_id=session.session_id,
                        chat_id=session.chat_id,
                        content=content,
                        created_at=produced_at.isoformat(),
                    ),
                )
            except OSError:
                logger.exception(f"Could not stage unsaved reply ({session}), reply is lost")
            else:
                logger.error(f"Reply staged to {path} for replay ({session})")
                raise StorageError(str(last_error), public_message=UNSAVED_REPLY_MESSAGE)

        raise StorageError(str(last_error), public_message=LOST_REPLY_MESSAGE)
