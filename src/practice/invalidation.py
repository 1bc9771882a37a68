"""
Cache invalidation signals.

Views that cache today's question, the user's stats or the answer history
subscribe to a channel and are told to refresh after a successful submission.
"""

from __future__ import annotations

from collections import defaultdict, deque
from collections.abc import Callable, Iterable
from enum import Enum

from loguru import logger


class Channel(str, Enum):
    DAILY_QUESTION = "dailyQuestion"
    USER_STATS = "userStats"
    ANSWER_HISTORY = "answerHistory"


SUBMISSION_CHANNELS = (Channel.DAILY_QUESTION, Channel.USER_STATS, Channel.ANSWER_HISTORY)

Listener = Callable[[Channel, str], None]


class InvalidationBus:
    """Fan-out of (channel, user_id) invalidation events to listeners."""

    def __init__(self):
        self._listeners: dict[Channel, list[Listener]] = defaultdict(list)
        self.recent: deque[tuple[Channel, str]] = deque(maxlen=50)

    def subscribe(self, channel: Channel, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners[channel].append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners[channel]:
                self._listeners[channel].remove(listener)

        return unsubscribe

    def invalidate(self, channels: Iterable[Channel], user_id: str) -> None:
        """Notify listeners of each channel. A failing listener does not stop the others."""
        for channel in channels:
            self.recent.append((channel, user_id))
            for listener in list(self._listeners[channel]):
                try:
                    listener(channel, user_id)
                except Exception as e:
                    logger.error(f"Invalidation listener for {channel.value} failed: {e}")
