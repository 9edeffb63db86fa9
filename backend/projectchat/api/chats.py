"""REST API for chats inside a project, plus the streaming message relay."""

import logging

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from sqlmodel import Session, col, select

from projectchat.api.deps import get_chat_relay, get_current_user_id
from projectchat.core.database import get_session
from projectchat.core.exceptions import AuthzError
from projectchat.models.chat import Chat, Message, chat_to_dict, message_to_dict
from projectchat.services.chats import find_owned_chat, find_owned_project
from projectchat.services.relay import ChatRelay, chat_locks, encode_event, is_terminal
from projectchat.services.relay.events import SSE_HEADERS, SSE_MEDIA_TYPE

router = APIRouter()
logger = logging.getLogger(__name__)


class StreamRequest(BaseModel):
    message: str | None = None


def _require_project(session: Session, project_id: int, user_id: int) -> None:
    if find_owned_project(session, project_id, user_id) is None:
        logger.debug(f"Project {project_id} not found for user {user_id}")
        raise AuthzError("Project not found")


def _require_chat(session: Session, chat_id: int, project_id: int, user_id: int) -> Chat:
    found = find_owned_chat(session, chat_id, project_id, user_id)
    if found is None:
        logger.debug(f"Chat {chat_id} not found in project {project_id} for user {user_id}")
        raise AuthzError("Chat not found")
    return found[0]


@router.get("/{project_id}/chats")
async def list_chats(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    _require_project(session, project_id, user_id)
    chats = session.exec(
        select(Chat)
        .where(Chat.project_id == project_id)
        .order_by(col(Chat.created_at).desc(), col(Chat.id).desc())
    ).all()
    return {"chats": [chat_to_dict(c) for c in chats]}


@router.post("/{project_id}/chats", status_code=status.HTTP_201_CREATED)
async def create_chat(
    project_id: int,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    _require_project(session, project_id, user_id)
    chat = Chat(project_id=project_id)
    session.add(chat)
    session.commit()
    session.refresh(chat)
    logger.debug(f"Created chat {chat.id} in project {project_id}")
    return {"chat": chat_to_dict(chat)}


@router.get("/{project_id}/chats/{chat_id}")
async def get_chat(
    project_id: int,
    chat_id: int,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    chat = _require_chat(session, chat_id, project_id, user_id)
    messages = session.exec(
        select(Message)
        .where(Message.chat_id == chat_id)
        .order_by(col(Message.created_at), col(Message.id))
    ).all()
    return {
        "chat": chat_to_dict(chat),
        "messages": [message_to_dict(m) for m in messages],
    }


@router.delete("/{project_id}/chats/{chat_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_chat(
    project_id: int,
    chat_id: int,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    # Non-owners get their 404 without queueing on the chat lock
    _require_chat(session, chat_id, project_id, user_id)

    # Wait for a running relay on this chat instead of pulling the rows from under it
    if chat_locks.is_locked(chat_id):
        logger.debug(f"Chat {chat_id} has a relay in progress, delete waits for it")
    async with chat_locks.hold(chat_id):
        session.expire_all()
        chat = _require_chat(session, chat_id, project_id, user_id)
        session.delete(chat)
        session.commit()
    logger.debug(f"Deleted chat {chat_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{project_id}/chats/{chat_id}/messages/stream")
async def stream_message(
    project_id: int,
    chat_id: int,
    body: StreamRequest,
    user_id: int = Depends(get_current_user_id),
    relay: ChatRelay = Depends(get_chat_relay),
):
    events = relay.relay(chat_id, project_id, user_id, body.message)

    # Setup failures (bad input, unknown chat, storage) surface here, before
    # any header is sent, and go through the ServiceError handler.
    first = await anext(events)

    async def event_stream():
        try:
            yield encode_event(first)
            async for event in events:
                yield encode_event(event)
                if is_terminal(event):
                    break
        finally:
            await events.aclose()

    return StreamingResponse(event_stream(), media_type=SSE_MEDIA_TYPE, headers=SSE_HEADERS)
