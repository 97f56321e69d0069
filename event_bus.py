"""In-memory event bus for creation events, with envelope validation."""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

from entity_config import parse_entity_type
from myco.canonical_json import canonical_dumps


Event = Dict[str, Any]
Handler = Callable[[Event], None]

ENTITY_CREATED = "entity.created"

logger = logging.getLogger("myco.events")


@dataclass
class EventError(Exception):
    message: str

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return self.message


@dataclass
class EventValidationError(EventError):
    code: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


def _raise(code: str, message: str, path: str | None = None) -> None:
    raise EventValidationError(code=code, message=message, path=path)


def _validate_payload(payload: Any) -> None:
    if not isinstance(payload, dict):
        _raise("PAYLOAD_INVALID", "payload must be an object", "payload")
    try:
        canonical_dumps(payload)
    except (TypeError, ValueError) as exc:
        _raise("PAYLOAD_INVALID", str(exc), "payload")


def _validate_occurred_at(value: Any) -> None:
    if not isinstance(value, str) or not value.endswith("Z"):
        _raise("META_OCCURRED_AT_INVALID", "occurred_at must be a string ending with 'Z'", "meta.occurred_at")
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        _raise("META_OCCURRED_AT_INVALID", "occurred_at must be ISO8601", "meta.occurred_at")


def validate_event(event: Any) -> None:
    if not isinstance(event, dict):
        _raise("EVENT_INVALID", "event must be object")
    name = event.get("name")
    if not isinstance(name, str) or not name:
        _raise("EVENT_NAME_INVALID", "name must be non-empty string", "name")

    _validate_payload(event.get("payload"))

    meta = event.get("meta")
    if not isinstance(meta, dict):
        _raise("META_INVALID", "meta must be object", "meta")
    if not isinstance(meta.get("event_id"), str):
        _raise("META_EVENT_ID_INVALID", "event_id must be string", "meta.event_id")
    _validate_occurred_at(meta.get("occurred_at"))
    if not isinstance(meta.get("session_id"), str) or not meta.get("session_id"):
        _raise("META_SESSION_ID_INVALID", "session_id must be non-empty string", "meta.session_id")
    if parse_entity_type(meta.get("entity_type")) is None:
        _raise("META_ENTITY_TYPE_INVALID", "entity_type must be a known entity type", "meta.entity_type")
    draft_id = meta.get("draft_id")
    if draft_id is not None and not isinstance(draft_id, str):
        _raise("META_DRAFT_ID_INVALID", "draft_id must be string or null", "meta.draft_id")
    if meta.get("schema_version") != "1":
        _raise("META_SCHEMA_VERSION_INVALID", "schema_version must be '1'", "meta.schema_version")


def make_event(name: str, payload: dict, meta: dict) -> Event:
    if not isinstance(meta, dict):
        _raise("META_INVALID", "meta must be object", "meta")
    meta_out = copy.deepcopy(meta)
    entity_type = parse_entity_type(meta_out.get("entity_type"))
    if entity_type is not None:
        meta_out["entity_type"] = entity_type.value
    meta_out.setdefault("event_id", str(uuid.uuid4()))
    meta_out.setdefault("occurred_at", datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"))
    meta_out.setdefault("schema_version", "1")
    event = {"name": name, "payload": copy.deepcopy(payload), "meta": meta_out}
    validate_event(event)
    return event


class EventBus:
    def __init__(self, outbox: "Outbox | None" = None) -> None:
        self._outbox = outbox
        self._subs: Dict[str, List[Handler]] = {}

    def subscribe(self, name: str, handler: Handler) -> None:
        self._subs.setdefault(name, []).append(handler)

    def unsubscribe(self, name: str, handler: Handler) -> bool:
        handlers = self._subs.get(name)
        if not handlers or handler not in handlers:
            return False
        handlers.remove(handler)
        if not handlers:
            del self._subs[name]
        return True

    def publish(self, event: dict) -> None:
        validate_event(event)
        if self._outbox is not None:
            self._outbox.enqueue(event)
        for handler in list(self._subs.get(event["name"], [])):
            try:
                handler(event)
            except Exception:
                # a failing subscriber must not undo a creation that already happened
                logger.exception("event_handler_failed name=%s event_id=%s", event["name"], event["meta"]["event_id"])
