"""One-way message channel from capture components to the coordinator."""

from collections import deque
from collections.abc import Iterator
from typing import Any

from chat_siphon.logging import get_logger

logger = get_logger("channel")

# Message types understood by the coordinator
CHAT_DATA = "CHAT_DATA"
CONVERSATION_OPENED = "CONVERSATION_OPENED"
CONVERSATION_CLOSED = "CONVERSATION_CLOSED"
TOGGLE_ENABLED = "TOGGLE_ENABLED"
SYNC_NOW = "SYNC_NOW"
GET_STATUS = "GET_STATUS"


class MessageChannel:
    """FIFO queue of messages with a liveness flag.

    Once closed (the receiving side went away), sends become no-ops so
    capture code keeps running without raising.
    """

    def __init__(self, name: str = "page") -> None:
        self.name = name
        self._queue: deque[dict[str, Any]] = deque()
        self._alive = True

    @property
    def is_alive(self) -> bool:
        return self._alive

    def send(self, message: dict[str, Any]) -> bool:
        """Queue a message.

        Returns:
            True if queued, False if the channel is closed
        """
        if not self._alive:
            logger.debug("Channel closed, dropping message: channel=%s type=%s", self.name, message.get("type"))
            return False
        self._queue.append(message)
        return True

    def drain(self) -> Iterator[dict[str, Any]]:
        """Yield queued messages in send order, removing them."""
        while self._queue:
            yield self._queue.popleft()

    def close(self) -> None:
        self._alive = False

    def __len__(self) -> int:
        return len(self._queue)
