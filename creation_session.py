"""Draft stack for nested entity creation.

A user filling one form (a new grow, say) can open "Add New" on a dropdown to
create a related entity (a strain) without losing what they typed. The
in-progress form stays on the stack as a draft, the new form is pushed on top,
and when the nested entity is created its id is written back into the parent
draft's ``field_to_fill``. Nesting can go several levels deep
(culture -> container -> supplier).
"""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List

from entity_config import EntityConfig, EntityType, get_entity_config, parse_entity_type


logger = logging.getLogger("myco.creation")


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class DraftStackError(Exception):
    code: str
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.code}: {self.message}"


@dataclass
class CreationDraft:
    id: str
    entity_type: EntityType
    form_data: Dict[str, Any]
    label: str
    field_to_fill: str | None = None
    parent_draft_id: str | None = None
    created_at: str = field(default_factory=_now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entityType": self.entity_type.value,
            "formData": copy.deepcopy(self.form_data),
            "label": self.label,
            "fieldToFill": self.field_to_fill,
            "parentDraftId": self.parent_draft_id,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CreationDraft":
        entity_type = parse_entity_type(data.get("entityType"))
        if entity_type is None:
            raise DraftStackError("UNKNOWN_ENTITY_TYPE", f"Unknown entity type: {data.get('entityType')}", "entityType")
        return cls(
            id=data["id"],
            entity_type=entity_type,
            form_data=copy.deepcopy(data.get("formData") or {}),
            label=data.get("label") or f"New {get_entity_config(entity_type).label}",
            field_to_fill=data.get("fieldToFill"),
            parent_draft_id=data.get("parentDraftId"),
            created_at=data.get("createdAt") or _now(),
        )


@dataclass(frozen=True)
class CreationResult:
    id: str
    name: str
    entity_type: EntityType

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "entityType": self.entity_type.value}


class CreationSession:
    """Owns one session's draft stack. The top frame is the current draft.

    Drafts handed out are copies; the only way to change the stack is through
    the methods below.
    """

    def __init__(self, session_id: str = "default") -> None:
        self.session_id = session_id
        self._stack: List[CreationDraft] = []

    # views

    @property
    def stack_depth(self) -> int:
        return len(self._stack)

    @property
    def is_creating(self) -> bool:
        return bool(self._stack)

    @property
    def current_draft(self) -> CreationDraft | None:
        return copy.deepcopy(self._stack[-1]) if self._stack else None

    @property
    def draft_stack(self) -> list[CreationDraft]:
        return [copy.deepcopy(d) for d in self._stack]

    def get_draft(self, draft_id: str) -> CreationDraft | None:
        idx = self._index(draft_id)
        return copy.deepcopy(self._stack[idx]) if idx is not None else None

    def get_entity_config(self, entity_type: EntityType | str) -> EntityConfig:
        return get_entity_config(entity_type)

    def breadcrumb(self) -> list[dict]:
        top = len(self._stack) - 1
        return [{"id": d.id, "label": d.label, "current": idx == top} for idx, d in enumerate(self._stack)]

    def _index(self, draft_id: str | None) -> int | None:
        for idx, draft in enumerate(self._stack):
            if draft.id == draft_id:
                return idx
        return None

    # mutations

    def start_creation(
        self,
        entity_type: EntityType | str,
        field_to_fill: str | None = None,
        label: str | None = None,
        initial_data: dict | None = None,
    ) -> str:
        parsed = parse_entity_type(entity_type)
        if parsed is None:
            raise DraftStackError("UNKNOWN_ENTITY_TYPE", f"Unknown entity type: {entity_type}", "entity_type")
        config = get_entity_config(parsed)
        form_data = config.defaults()
        form_data.update(copy.deepcopy(initial_data or {}))
        draft = CreationDraft(
            id=f"draft-{uuid.uuid4().hex}",
            entity_type=parsed,
            form_data=form_data,
            label=label or f"New {config.label}",
            field_to_fill=field_to_fill,
            parent_draft_id=self._stack[-1].id if self._stack else None,
        )
        self._stack.append(draft)
        logger.info(
            "draft_pushed session=%s draft_id=%s entity_type=%s field_to_fill=%s depth=%s",
            self.session_id,
            draft.id,
            parsed.value,
            field_to_fill,
            len(self._stack),
        )
        return draft.id

    def update_draft(self, draft_id: str, updates: dict) -> None:
        idx = self._index(draft_id)
        if idx is None:
            logger.debug("draft_update_ignored session=%s draft_id=%s", self.session_id, draft_id)
            return
        self._stack[idx].form_data.update(copy.deepcopy(updates or {}))

    def _unwind(self, draft_id: str | None, action: str) -> tuple[CreationDraft, CreationDraft | None]:
        idx = self._index(draft_id)
        if idx is None:
            raise DraftStackError("DRAFT_NOT_FOUND", "Draft not found on creation stack", "draft_id")
        if idx != len(self._stack) - 1:
            discarded = [d.id for d in self._stack[idx + 1 :]]
            logger.warning(
                "draft_%s_not_top session=%s draft_id=%s discarded=%s",
                action,
                self.session_id,
                draft_id,
                discarded,
            )
        popped = self._stack[idx]
        del self._stack[idx:]
        parent = self._stack[-1] if self._stack else None
        return popped, parent

    def complete_creation(self, draft_id: str, result: CreationResult) -> CreationDraft | None:
        """Pop ``draft_id`` and hand ``result`` to the frame below it.

        Returns the parent draft (now on top), or None when the completed
        draft was the root and the host should close.
        """
        popped, parent = self._unwind(draft_id, "complete")
        if parent is not None and popped.field_to_fill:
            parent.form_data[popped.field_to_fill] = result.id
            parent.form_data[f"{popped.field_to_fill}Name"] = result.name
        logger.info(
            "draft_completed session=%s draft_id=%s entity_type=%s result_id=%s depth=%s",
            self.session_id,
            popped.id,
            popped.entity_type.value,
            result.id,
            len(self._stack),
        )
        return copy.deepcopy(parent) if parent is not None else None

    def cancel_creation(self, draft_id: str | None = None) -> CreationDraft | None:
        if draft_id is None:
            if not self._stack:
                return None
            draft_id = self._stack[-1].id
        popped, parent = self._unwind(draft_id, "cancel")
        logger.info(
            "draft_cancelled session=%s draft_id=%s entity_type=%s depth=%s",
            self.session_id,
            popped.id,
            popped.entity_type.value,
            len(self._stack),
        )
        return copy.deepcopy(parent) if parent is not None else None

    def clear_all_drafts(self) -> None:
        self._stack.clear()

    # persistence

    def snapshot(self) -> dict:
        return {"session_id": self.session_id, "drafts": [d.to_dict() for d in self._stack]}

    @classmethod
    def restore(cls, snapshot: dict | None, session_id: str = "default") -> "CreationSession":
        if not isinstance(snapshot, dict):
            return cls(session_id)
        session = cls(snapshot.get("session_id") or session_id)
        for item in snapshot.get("drafts") or []:
            try:
                session._stack.append(CreationDraft.from_dict(item))
            except (DraftStackError, KeyError) as exc:
                # a draft for a retired entity type cannot be edited again
                logger.warning("draft_restore_skipped session=%s error=%s", session.session_id, exc)
        return session
