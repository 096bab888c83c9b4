"""Typed observer channel for round lifecycle notifications."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class GameEvent(str, Enum):
    ROUND_STARTED = "round_started"
    SCORE_UPDATED = "score_updated"
    ROUND_ENDED = "round_ended"
    GAME_ENDED = "game_ended"


@dataclass(frozen=True)
class EventRecord:
    event: GameEvent
    payload: dict[str, Any]


Subscriber = Callable[[EventRecord], None]


class EventChannel:
    def __init__(self) -> None:
        self._subscribers: dict[GameEvent, list[Subscriber]] = defaultdict(list)

    def subscribe(self, event: GameEvent, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` and return a function that unregisters it."""
        self._subscribers[event].append(callback)

        def unsubscribe() -> None:
            self.unsubscribe(event, callback)

        return unsubscribe

    def unsubscribe(self, event: GameEvent, callback: Subscriber) -> None:
        callbacks = self._subscribers.get(event)
        if not callbacks or callback not in callbacks:
            return
        callbacks.remove(callback)
        if not callbacks:
            self._subscribers.pop(event, None)

    def subscriber_count(self, event: GameEvent) -> int:
        return len(self._subscribers.get(event, []))

    def emit(self, event: GameEvent, **payload: Any) -> EventRecord:
        record = EventRecord(event=event, payload=payload)
        logger.debug(f"{event.value} {payload}")
        for callback in list(self._subscribers.get(event, [])):
            callback(record)
        return record
