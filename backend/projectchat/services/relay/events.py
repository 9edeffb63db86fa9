"""Relay session events and their Server-Sent Events encoding.

A session emits exactly one ``UserMessageCreated``, then any number of
``TokenChunk``, then exactly one of ``Completed`` / ``Failed``.
"""

import json
from dataclasses import dataclass
from typing import ClassVar, Union

from projectchat.models.chat import Message, message_to_dict

SSE_MEDIA_TYPE = "text/event-stream"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    # Stops nginx-style proxies from holding frames back
    "X-Accel-Buffering": "no",
}


@dataclass(frozen=True)
class UserMessageCreated:
    type: ClassVar[str] = "userMessage"
    message: Message

    def payload(self) -> dict:
        return {"type": self.type, "message": message_to_dict(self.message)}


@dataclass(frozen=True)
class TokenChunk:
    type: ClassVar[str] = "chunk"
    text: str

    def payload(self) -> dict:
        return {"type": self.type, "content": self.text}


@dataclass(frozen=True)
class Completed:
    type: ClassVar[str] = "done"
    message: Message

    def payload(self) -> dict:
        return {"type": self.type, "message": message_to_dict(self.message)}


@dataclass(frozen=True)
class Failed:
    type: ClassVar[str] = "error"
    reason: str

    def payload(self) -> dict:
        return {"type": self.type, "error": self.reason}


RelayEvent = Union[UserMessageCreated, TokenChunk, Completed, Failed]

TERMINAL_EVENTS = (Completed, Failed)


def encode_event(event: RelayEvent) -> str:
    """Frame one event as a single SSE ``data:`` record."""
    return f"data: {json.dumps(event.payload())}\n\n"


def is_terminal(event: RelayEvent) -> bool:
    return isinstance(event, TERMINAL_EVENTS)
