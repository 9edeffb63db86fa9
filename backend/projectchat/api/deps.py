"""Shared FastAPI dependencies: caller identity and relay wiring."""

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from projectchat.core import database
from projectchat.core.config import settings
from projectchat.core.database import get_session
from projectchat.core.exceptions import AuthenticationError
from projectchat.core.security import decode_access_token
from projectchat.models.user import User
from projectchat.services.chats import ChatDirectory
from projectchat.services.llm import BaseLLMProvider, get_llm_provider
from projectchat.services.relay import ChatRelay, MessageStore, ReplyJournal, chat_locks

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> int:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Unauthorized: No token provided")

    user_id = decode_access_token(credentials.credentials)
    if session.get(User, user_id) is None:
        raise AuthenticationError("Unauthorized: Unknown account")
    return user_id


def get_completion_source() -> BaseLLMProvider:
    return get_llm_provider()


def get_message_store() -> MessageStore:
    return MessageStore(database.get_engine())


def get_reply_journal() -> ReplyJournal:
    return ReplyJournal(settings.journal_dir)


def get_chat_relay(
    source: BaseLLMProvider = Depends(get_completion_source),
    store: MessageStore = Depends(get_message_store),
    journal: ReplyJournal = Depends(get_reply_journal),
) -> ChatRelay:
    return ChatRelay(
        store=store,
        directory=ChatDirectory(database.get_engine()),
        source=source,
        locks=chat_locks,
        journal=journal,
        idle_timeout=settings.fragment_idle_timeout,
        persist_attempts=settings.final_persist_attempts,
        persist_backoff=settings.final_persist_backoff,
    )
