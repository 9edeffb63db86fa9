"""Abstract LLM provider interface. All providers must implement this."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator

CHAT_ROLES = ("user", "assistant")


@dataclass
class ChatTurn:
    role: str  # "user" | "assistant"
    content: str

    def __post_init__(self) -> None:
        if self.role not in CHAT_ROLES:
            raise ValueError(f"Unsupported chat role: {self.role!r}")


class BaseLLMProvider(ABC):
    @abstractmethod
    def stream(
        self, turns: list[ChatTurn], system_directive: str | None = None
    ) -> AsyncIterator[str]:
        """Stream a reply as text fragments.

        The iterator is lazy, finite and not restartable. Any provider failure
        is raised once as UpstreamError and ends the iteration. Closing the
        iterator early must stop consuming the upstream response.
        """
        ...
