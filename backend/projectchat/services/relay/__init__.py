"""Chat streaming relay: message store, event encoding, per-chat locks and
the orchestrator that ties them to a completion source."""

from projectchat.services.relay.events import (
    Completed,
    Failed,
    RelayEvent,
    TokenChunk,
    UserMessageCreated,
    encode_event,
    is_terminal,
)
from projectchat.services.relay.journal import ReplyJournal, StagedReply
from projectchat.services.relay.locks import ChatLocks, chat_locks
from projectchat.services.relay.orchestrator import ChatRelay, RelaySession, SessionState
from projectchat.services.relay.store import MessageStore

__all__ = [
    "ChatLocks",
    "ChatRelay",
    "Completed",
    "Failed",
    "MessageStore",
    "RelayEvent",
    "RelaySession",
    "ReplyJournal",
    "SessionState",
    "StagedReply",
    "TokenChunk",
    "UserMessageCreated",
    "chat_locks",
    "encode_event",
    "is_terminal",
]
