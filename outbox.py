"""In-memory outbox for validated creation events."""

from __future__ import annotations

import copy
from typing import List

from event_bus import Event, validate_event


class Outbox:
    def __init__(self) -> None:
        self._events: List[Event] = []

    def enqueue(self, event: dict) -> None:
        validate_event(event)
        self._events.append(copy.deepcopy(event))

    def pending(self, session_id: str | None = None) -> list[dict]:
        if session_id is None:
            return [copy.deepcopy(e) for e in self._events]
        return [copy.deepcopy(e) for e in self._events if e["meta"].get("session_id") == session_id]

    def ack(self, event_id: str) -> bool:
        for idx, event in enumerate(self._events):
            if event.get("meta", {}).get("event_id") == event_id:
                del self._events[idx]
                return True
        return False

    def clear(self) -> None:
        self._events.clear()
