"""Postgres-backed lab data layer and draft stack store."""

from __future__ import annotations

import copy
from datetime import datetime, timezone

import anyio

from entity_config import EntityType
from app.db import execute, fetch_all, fetch_one, get_conn
from app.stores import COLLECTIONS, DEFAULT_SETTINGS, generate_id
from myco.canonical_json import canonical_dumps


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _deepcopy(value):
    return copy.deepcopy(value)


class DbLabData:
    """Entities live in one jsonb table keyed by entity type.

    psycopg2 blocks, so the async creation calls run the insert on a worker
    thread.
    """

    def __init__(self, settings: dict | None = None) -> None:
        self._settings = {**DEFAULT_SETTINGS, **(settings or {})}

    def list(self, entity_type: EntityType) -> list[dict]:
        with get_conn() as conn:
            rows = fetch_all(
                conn,
                """
                select id, data
                from lab_entities
                where entity_type=%s
                order by created_at asc, id asc
                """,
                [entity_type.value],
                query_name="lab_entities.list",
            )
        items = []
        for row in rows:
            record = _deepcopy(row.get("data") or {})
            record["id"] = row.get("id")
            items.append(record)
        return items

    @property
    def state(self) -> dict:
        snapshot = {key: self.list(entity_type) for entity_type, (key, _) in COLLECTIONS.items()}
        snapshot["species"] = []
        snapshot["settings"] = dict(self._settings)
        return snapshot

    def _insert_sync(self, entity_type: EntityType, payload: dict) -> dict:
        _, prefix = COLLECTIONS[entity_type]
        entity_id = generate_id(prefix)
        data = {k: v for k, v in payload.items() if k != "id"}
        with get_conn() as conn:
            row = fetch_one(
                conn,
                """
                insert into lab_entities (id, entity_type, data, created_at)
                values (%s,%s,%s,%s)
                returning id, data
                """,
                [entity_id, entity_type.value, canonical_dumps(data), _now()],
                query_name="lab_entities.insert",
            )
        record = _deepcopy(row.get("data") or {}) if row else data
        record["id"] = row.get("id") if row else entity_id
        return record

    async def _insert(self, entity_type: EntityType, payload: dict) -> dict:
        return await anyio.to_thread.run_sync(self._insert_sync, entity_type, copy.deepcopy(payload))

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


class DbDraftStackStore:
    def get_stack(self, session_id: str) -> dict | None:
        with get_conn() as conn:
            row = fetch_one(
                conn,
                """
                select snapshot
                from creation_draft_stacks
                where session_id=%s
                """,
                [session_id],
                query_name="creation_draft_stacks.get",
            )
        return _deepcopy(row.get("snapshot")) if row else None

    def save_stack(self, session_id: str, snapshot: dict) -> dict:
        with get_conn() as conn:
            row = fetch_one(
                conn,
                """
                insert into creation_draft_stacks (session_id, snapshot, updated_at)
                values (%s,%s,%s)
                on conflict (session_id) do update
                  set snapshot = excluded.snapshot,
                      updated_at = excluded.updated_at
                returning session_id, snapshot, created_at, updated_at
                """,
                [session_id, canonical_dumps(snapshot), _now()],
                query_name="creation_draft_stacks.upsert",
            )
        return _deepcopy(row)

    def delete_stack(self, session_id: str) -> bool:
        with get_conn() as conn:
            count = execute(
                conn,
                "delete from creation_draft_stacks where session_id=%s",
                [session_id],
                query_name="creation_draft_stacks.delete",
            )
        return count > 0
