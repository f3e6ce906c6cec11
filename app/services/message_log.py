"""Chat message log.

The message log owns persistent chat history. The message quota only reads
aggregate counts from it; writing a row for each accepted message is the
responsibility of the code that accepted it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from app.schemas.projects import ChatMessage


class AbstractMessageLog(ABC):
    """Interface for chat message storage."""

    @abstractmethod
    async def count_since(self, project_id: str, sender_id: str, since_ms: int) -> int:
        """Count messages from sender_id in project_id with timestamp >= since_ms."""
        raise NotImplementedError

    @abstractmethod
    async def oldest_since(self, project_id: str, sender_id: str, since_ms: int) -> int | None:
        """Return the oldest timestamp >= since_ms from sender_id in project_id, or None."""
        raise NotImplementedError

    @abstractmethod
    async def append(self, message: ChatMessage) -> None:
        """Persist a chat message."""
        raise NotImplementedError


class InMemoryMessageLog(AbstractMessageLog):
    """Process-local message log, keyed by project and sender.

    Suitable for development and tests; history is lost on restart.
    """

    def __init__(self) -> None:
        self._messages: dict[tuple[str, str], list[ChatMessage]] = {}

    async def count_since(self, project_id: str, sender_id: str, since_ms: int) -> int:
        messages = self._messages.get((project_id, sender_id), [])
        return sum(1 for msg in messages if msg.timestamp >= since_ms)

    async def oldest_since(self, project_id: str, sender_id: str, since_ms: int) -> int | None:
        messages = self._messages.get((project_id, sender_id), [])
        return min((msg.timestamp for msg in messages if msg.timestamp >= since_ms), default=None)

    async def append(self, message: ChatMessage) -> None:
        self._messages.setdefault((message.project_id, message.sender_id), []).append(message)
