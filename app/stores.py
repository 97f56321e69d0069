"""In-memory lab data layer, draft stack store and notification store."""

from __future__ import annotations

import copy
import random
import string
import time
import uuid
from typing import Dict, List
from datetime import datetime, timezone

from entity_config import EntityType


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _base36(value: int) -> str:
    digits = string.digits + string.ascii_lowercase
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


def generate_id(prefix: str) -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=5))
    return f"{prefix}-{_base36(int(time.time() * 1000))}-{suffix}"


# entity type -> (state collection, id prefix)
COLLECTIONS: Dict[EntityType, tuple[str, str]] = {
    EntityType.STRAIN: ("strains", "strain"),
    EntityType.LOCATION: ("locations", "loc"),
    EntityType.CONTAINER: ("containers", "cont"),
    EntityType.SUPPLIER: ("suppliers", "supp"),
    EntityType.GRAIN_TYPE: ("grainTypes", "grain"),
    EntityType.SUBSTRATE_TYPE: ("substrateTypes", "st"),
    EntityType.RECIPE_CATEGORY: ("recipeCategories", "rcat"),
    EntityType.LOCATION_TYPE: ("locationTypes", "loctype"),
    EntityType.LOCATION_CLASSIFICATION: ("locationClassifications", "locclass"),
    EntityType.INVENTORY_ITEM: ("inventoryItems", "inv"),
    EntityType.INVENTORY_CATEGORY: ("inventoryCategories", "cat"),
    EntityType.RECIPE: ("recipes", "rec"),
}

DEFAULT_SETTINGS = {"temperatureUnit": "imperial", "weightUnit": "metric"}


class MemoryLabData:
    """Offline data layer. Every ``add_*`` returns the stored entity with its new id."""

    def __init__(self, seed: dict | None = None) -> None:
        self._state: Dict[str, List[dict]] = {key: [] for key, _ in COLLECTIONS.values()}
        self._state["species"] = []
        self._settings = dict(DEFAULT_SETTINGS)
        for key, items in (seed or {}).items():
            if key == "settings":
                self._settings.update(items or {})
            else:
                self._state[key] = [copy.deepcopy(i) for i in items or []]

    @property
    def state(self) -> dict:
        snapshot = {key: [copy.deepcopy(i) for i in items] for key, items in self._state.items()}
        snapshot["settings"] = dict(self._settings)
        return snapshot

    def list(self, entity_type: EntityType) -> list[dict]:
        key, _ = COLLECTIONS[entity_type]
        return [copy.deepcopy(i) for i in self._state.get(key, [])]

    async def _insert(self, entity_type: EntityType, payload: dict) -> dict:
        key, prefix = COLLECTIONS[entity_type]
        entity = copy.deepcopy(payload)
        entity["id"] = generate_id(prefix)
        self._state.setdefault(key, []).append(entity)
        return copy.deepcopy(entity)

    async def add_strain(self, payload: dict) -> dict:
        return await self._insert(EntityType.STRAIN, payload)

    async def add_location(self, payload: dict) -> dict:
        return await self._insert(EntityType.LOCATION, payload)

    async def add_container(self, payload: dict) -> dict:
        return await self._insert(EntityType.CONTAINER, payload)

    async def add_supplier(self, payload: dict) -> dict:
        return await self._insert(EntityType.SUPPLIER, payload)

    async def add_grain_type(self, payload: dict) -> dict:
        return await self._insert(EntityType.GRAIN_TYPE, payload)

    async def add_substrate_type(self, payload: dict) -> dict:
        return await self._insert(EntityType.SUBSTRATE_TYPE, payload)

    async def add_recipe_category(self, payload: dict) -> dict:
        return await self._insert(EntityType.RECIPE_CATEGORY, payload)

    async def add_location_type(self, payload: dict) -> dict:
        return await self._insert(EntityType.LOCATION_TYPE, payload)

    async def add_location_classification(self, payload: dict) -> dict:
        return await self._insert(EntityType.LOCATION_CLASSIFICATION, payload)

    async def add_inventory_item(self, payload: dict) -> dict:
        return await self._insert(EntityType.INVENTORY_ITEM, payload)

    async def add_inventory_category(self, payload: dict) -> dict:
        return await self._insert(EntityType.INVENTORY_CATEGORY, payload)

    async def add_recipe(self, payload: dict) -> dict:
        return await self._insert(EntityType.RECIPE, payload)


class MemoryDraftStackStore:
    def __init__(self) -> None:
        self._stacks: Dict[str, dict] = {}

    def get_stack(self, session_id: str) -> dict | None:
        data = self._stacks.get(session_id)
        return copy.deepcopy(data["snapshot"]) if data else None

    def save_stack(self, session_id: str, snapshot: dict) -> dict:
        existing = self._stacks.get(session_id)
        record = {
            "session_id": session_id,
            "snapshot": copy.deepcopy(snapshot),
            "created_at": existing["created_at"] if existing else _now(),
            "updated_at": _now(),
        }
        self._stacks[session_id] = record
        return copy.deepcopy(record)

    def delete_stack(self, session_id: str) -> bool:
        return self._stacks.pop(session_id, None) is not None


class MemoryNotificationStore:
    def __init__(self) -> None:
        self._items: Dict[str, dict] = {}

    def create(self, record: dict) -> dict:
        item = copy.deepcopy(record)
        item.setdefault("id", str(uuid.uuid4()))
        item.setdefault("created_at", _now())
        self._items[item["id"]] = item
        return copy.deepcopy(item)

    def list(self, session_id: str, unread_only: bool = False, limit: int = 200) -> list[dict]:
        items = [n for n in self._items.values() if n.get("session_id") == session_id]
        if unread_only:
            items = [n for n in items if not n.get("read_at")]
        items.sort(key=lambda n: n.get("created_at", ""), reverse=True)
        return [copy.deepcopy(n) for n in items[:limit]]

    def mark_read(self, notification_id: str) -> dict | None:
        item = self._items.get(notification_id)
        if not item:
            return None
        item["read_at"] = _now()
        return copy.deepcopy(item)
