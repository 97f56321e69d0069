"""Submit a creation draft: validate, persist through the data layer, pop the frame."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Protocol

from creation_session import CreationDraft, CreationResult, CreationSession, DraftStackError
from entity_config import CREATION_ROUTES, get_entity_config
from event_bus import ENTITY_CREATED, EventBus, make_event


Issue = Dict[str, Any]

REQUIRED_MESSAGE = "This field is required"
FORM_ERROR_KEY = "_form"
PERSIST_FAILED_MESSAGE = "Failed to create. Please try again."

logger = logging.getLogger("myco.submission")


class LabData(Protocol):
    """Data layer seen by the controller: the dropdown state plus one ``add_*``
    coroutine per creatable type, named in ``CREATION_ROUTES``. Each ``add_*``
    returns the stored entity with its generated ``id``.
    """

    @property
    def state(self) -> dict: ...

    async def add_strain(self, payload: dict) -> dict: ...

    async def add_location(self, payload: dict) -> dict: ...

    async def add_container(self, payload: dict) -> dict: ...

    async def add_supplier(self, payload: dict) -> dict: ...

    async def add_grain_type(self, payload: dict) -> dict: ...

    async def add_substrate_type(self, payload: dict) -> dict: ...

    async def add_recipe_category(self, payload: dict) -> dict: ...

    async def add_location_type(self, payload: dict) -> dict: ...

    async def add_location_classification(self, payload: dict) -> dict: ...

    async def add_inventory_item(self, payload: dict) -> dict: ...

    async def add_inventory_category(self, payload: dict) -> dict: ...

    async def add_recipe(self, payload: dict) -> dict: ...


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


def validate_draft(draft: CreationDraft) -> dict[str, str]:
    """Map each empty required field to its message. Empty mapping means valid."""
    errors: dict[str, str] = {}
    for field_id in get_entity_config(draft.entity_type).required_fields:
        value = draft.form_data.get(field_id)
        if value is None or value == "":
            errors[field_id] = REQUIRED_MESSAGE
    return errors


def _result(
    ok: bool,
    errors: List[Issue] | None = None,
    field_errors: dict | None = None,
    result: CreationResult | None = None,
    parent: CreationDraft | None = None,
    warnings: List[Issue] | None = None,
) -> dict:
    return {
        "ok": ok,
        "errors": errors or [],
        "warnings": warnings or [],
        "field_errors": field_errors or {},
        "result": result.to_dict() if result else None,
        "parent": parent.to_dict() if parent else None,
        "close": ok and parent is None,
    }


class SubmissionController:
    """Gatekeeps persistence for one session's drafts.

    ``data`` is the lab data layer. ``events`` and ``notifications`` are optional sinks for
    successful creations.
    """

    def __init__(self, session: CreationSession, data: LabData, events: EventBus | None = None, notifications=None) -> None:
        self.session = session
        self.data = data
        self.events = events
        self.notifications = notifications
        self.is_submitting = False

    async def submit(self, draft_id: str) -> dict:
        draft = self.session.get_draft(draft_id)
        if draft is None:
            return _result(False, [_issue("DRAFT_NOT_FOUND", "Draft not found on creation stack", "draft_id")])
        if self.is_submitting:
            return _result(False, [_issue("SUBMIT_IN_PROGRESS", "A submission is already in progress", "draft_id")])

        field_errors = validate_draft(draft)
        if field_errors:
            logger.info(
                "draft_validation_failed session=%s draft_id=%s fields=%s",
                self.session.session_id,
                draft_id,
                sorted(field_errors),
            )
            issues = [_issue("REQUIRED_FIELD", msg, path) for path, msg in field_errors.items()]
            return _result(False, issues, field_errors)

        route = CREATION_ROUTES.get(draft.entity_type)
        if route is None:
            message = f"Unknown entity type: {draft.entity_type.value}"
            logger.error("draft_submit_unroutable session=%s draft_id=%s entity_type=%s", self.session.session_id, draft_id, draft.entity_type.value)
            return _result(False, [_issue("UNKNOWN_ENTITY_TYPE", message, "entity_type")], {FORM_ERROR_KEY: message})

        self.is_submitting = True
        try:
            # builders see raw form data; a malformed value fails like a rejected write
            payload = route.build(draft.form_data, self.data.state)
            entity = await getattr(self.data, route.method)(payload)
        except Exception as exc:
            logger.exception("draft_persist_failed session=%s draft_id=%s method=%s", self.session.session_id, draft_id, route.method)
            return _result(
                False,
                [_issue("PERSIST_FAILED", PERSIST_FAILED_MESSAGE, FORM_ERROR_KEY, {"error": str(exc)})],
                {FORM_ERROR_KEY: PERSIST_FAILED_MESSAGE},
            )
        finally:
            self.is_submitting = False

        result = CreationResult(id=entity["id"], name=str(entity.get("name") or payload.get("name") or ""), entity_type=draft.entity_type)
        try:
            parent = self.session.complete_creation(draft_id, result)
        except DraftStackError:
            # the draft was dismissed while the call was in flight; the entity stays created
            logger.warning("draft_gone_after_persist session=%s draft_id=%s entity_id=%s", self.session.session_id, draft_id, result.id)
            return _result(True, result=result, warnings=[_issue("DRAFT_GONE", "Draft was closed before creation finished", "draft_id")])

        self._announce(draft, result, parent)
        return _result(True, result=result, parent=parent)

    def _announce(self, draft: CreationDraft, result: CreationResult, parent: CreationDraft | None) -> None:
        if self.events is not None:
            event = make_event(
                ENTITY_CREATED,
                {"entity": result.to_dict(), "field_to_fill": draft.field_to_fill, "parent_draft_id": parent.id if parent else None},
                {"session_id": self.session.session_id, "entity_type": draft.entity_type, "draft_id": draft.id},
            )
            self.events.publish(event)
        if self.notifications is not None and parent is None:
            label = get_entity_config(draft.entity_type).label
            self.notifications.create(
                {
                    "session_id": self.session.session_id,
                    "kind": "success",
                    "title": f"{label} created",
                    "message": result.name,
                    "entity": result.to_dict(),
                }
            )
