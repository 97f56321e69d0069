import asyncio
import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from app.stores import MemoryLabData, MemoryNotificationStore
from creation_session import CreationSession
from entity_config import CREATION_ROUTES, EntityType
from event_bus import ENTITY_CREATED, EventBus
from outbox import Outbox
from submission import PERSIST_FAILED_MESSAGE, REQUIRED_MESSAGE, LabData, SubmissionController, validate_draft


class FailingLabData(MemoryLabData):
    async def add_location(self, payload: dict) -> dict:
        raise ConnectionError("database unavailable")


class BlockingLabData(MemoryLabData):
    def __init__(self) -> None:
        super().__init__()
        self.release = asyncio.Event()

    async def add_supplier(self, payload: dict) -> dict:
        await self.release.wait()
        return await super().add_supplier(payload)


class DismissingLabData(MemoryLabData):
    def __init__(self, session: CreationSession) -> None:
        super().__init__()
        self.session = session

    async def add_strain(self, payload: dict) -> dict:
        # the user closes the modal while the call is in flight
        self.session.clear_all_drafts()
        return await super().add_strain(payload)


class BrokenStateLabData(MemoryLabData):
    @property
    def state(self) -> dict:
        raise RuntimeError("state unavailable")


class TestValidateDraft(unittest.TestCase):
    def test_required_fields_reported(self) -> None:
        session = CreationSession()
        draft_id = session.start_creation("container", initial_data={"category": ""})
        errors = validate_draft(session.get_draft(draft_id))
        self.assertEqual(errors, {"name": REQUIRED_MESSAGE, "category": REQUIRED_MESSAGE})

    def test_zero_and_false_count_as_filled(self) -> None:
        session = CreationSession()
        draft_id = session.start_creation("inventoryLot", initial_data={"inventoryItemId": "inv-1", "quantity": 0})
        self.assertEqual(validate_draft(session.get_draft(draft_id)), {})


class TestLabData(unittest.TestCase):
    def test_routes_are_declared_and_implemented(self) -> None:
        for route in CREATION_ROUTES.values():
            self.assertTrue(hasattr(LabData, route.method), route.method)
            self.assertTrue(asyncio.iscoroutinefunction(getattr(MemoryLabData, route.method)), route.method)


class TestSubmissionController(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.session = CreationSession("s1")
        self.data = MemoryLabData()
        self.outbox = Outbox()
        self.notifications = MemoryNotificationStore()
        self.controller = SubmissionController(
            self.session,
            self.data,
            events=EventBus(self.outbox),
            notifications=self.notifications,
        )

    async def test_validation_failure_is_idempotent(self) -> None:
        draft_id = self.session.start_creation("location")
        before = self.session.snapshot()
        first = await self.controller.submit(draft_id)
        second = await self.controller.submit(draft_id)
        self.assertFalse(first["ok"])
        self.assertEqual(first["field_errors"], {"name": REQUIRED_MESSAGE})
        self.assertEqual(first["field_errors"], second["field_errors"])
        self.assertEqual(first["errors"][0]["code"], "REQUIRED_FIELD")
        self.assertEqual(self.session.snapshot(), before)
        self.assertEqual(self.data.list(EntityType.LOCATION), [])
        self.assertEqual(self.outbox.pending(), [])

    async def test_root_location_created_and_closed(self) -> None:
        self.data = MemoryLabData(seed={"locations": [{"id": "loc-0", "name": "Basement"}]})
        self.controller = SubmissionController(self.session, self.data, notifications=self.notifications)
        draft_id = self.session.start_creation("location")
        self.session.update_draft(draft_id, {"name": "Shelf A", "parentId": "loc-0"})
        out = await self.controller.submit(draft_id)
        self.assertTrue(out["ok"])
        self.assertTrue(out["close"])
        self.assertIsNone(out["parent"])
        self.assertTrue(out["result"]["id"].startswith("loc-"))
        self.assertEqual(out["result"]["name"], "Shelf A")
        self.assertFalse(self.session.is_creating)
        stored = self.data.list(EntityType.LOCATION)[-1]
        self.assertEqual(stored["path"], "Basement > Shelf A")
        self.assertEqual(stored["sortOrder"], 2)
        notes = self.notifications.list("s1")
        self.assertEqual(len(notes), 1)
        self.assertEqual(notes[0]["title"], "Location created")

    async def test_nested_strain_fills_grow(self) -> None:
        grow_id = self.session.start_creation("grow")
        strain_id = self.session.start_creation("strain", field_to_fill="strainId")
        self.session.update_draft(strain_id, {"name": "Blue Meanie", "species": "Psilocybe cubensis"})
        out = await self.controller.submit(strain_id)
        self.assertTrue(out["ok"])
        self.assertFalse(out["close"])
        self.assertEqual(out["parent"]["id"], grow_id)
        self.assertEqual(out["parent"]["formData"]["strainId"], out["result"]["id"])
        self.assertEqual(out["parent"]["formData"]["strainIdName"], "Blue Meanie")
        self.assertEqual(self.session.current_draft.id, grow_id)
        strains = self.data.list(EntityType.STRAIN)
        self.assertEqual(strains[0]["difficulty"], "intermediate")
        self.assertEqual(strains[0]["fruitingDays"], {"min": 7, "max": 14})
        # nested completions publish events but do not notify
        self.assertEqual(self.notifications.list("s1"), [])
        pending = self.outbox.pending("s1")
        self.assertEqual(len(pending), 1)
        self.assertEqual(pending[0]["name"], ENTITY_CREATED)
        self.assertEqual(pending[0]["meta"]["entity_type"], "strain")
        self.assertEqual(pending[0]["payload"]["parent_draft_id"], grow_id)

    async def test_persist_failure_keeps_draft(self) -> None:
        controller = SubmissionController(self.session, FailingLabData())
        draft_id = self.session.start_creation("location", initial_data={"name": "Tent"})
        with self.assertLogs("myco.submission", level="ERROR"):
            out = await controller.submit(draft_id)
        self.assertFalse(out["ok"])
        self.assertEqual(out["errors"][0]["code"], "PERSIST_FAILED")
        self.assertEqual(out["field_errors"], {"_form": PERSIST_FAILED_MESSAGE})
        self.assertFalse(controller.is_submitting)
        self.assertEqual(self.session.current_draft.form_data["name"], "Tent")

    async def test_numeric_name_is_stringified(self) -> None:
        draft_id = self.session.start_creation("grainType", initial_data={"name": 123})
        out = await self.controller.submit(draft_id)
        self.assertTrue(out["ok"], out)
        self.assertEqual(out["result"]["name"], "123")
        self.assertEqual(self.data.list(EntityType.GRAIN_TYPE)[0]["code"], "123")

    async def test_payload_build_failure_keeps_draft(self) -> None:
        controller = SubmissionController(self.session, BrokenStateLabData())
        draft_id = self.session.start_creation("location", initial_data={"name": "Tent"})
        with self.assertLogs("myco.submission", level="ERROR"):
            out = await controller.submit(draft_id)
        self.assertFalse(out["ok"])
        self.assertEqual(out["errors"][0]["code"], "PERSIST_FAILED")
        self.assertEqual(out["field_errors"], {"_form": PERSIST_FAILED_MESSAGE})
        self.assertFalse(controller.is_submitting)
        self.assertEqual(self.session.current_draft.id, draft_id)

    async def test_unroutable_type_reports_form_error(self) -> None:
        draft_id = self.session.start_creation(
            "grow",
            initial_data={"strainId": "s", "substrateTypeId": "st", "containerTypeId": "c", "locationId": "l"},
        )
        with self.assertLogs("myco.submission", level="ERROR"):
            out = await self.controller.submit(draft_id)
        self.assertFalse(out["ok"])
        self.assertEqual(out["errors"][0]["code"], "UNKNOWN_ENTITY_TYPE")
        self.assertEqual(out["field_errors"]["_form"], "Unknown entity type: grow")
        self.assertTrue(self.session.is_creating)

    async def test_missing_draft(self) -> None:
        out = await self.controller.submit("draft-missing")
        self.assertEqual(out["errors"][0]["code"], "DRAFT_NOT_FOUND")

    async def test_second_submit_while_in_flight_rejected(self) -> None:
        data = BlockingLabData()
        controller = SubmissionController(self.session, data)
        draft_id = self.session.start_creation("supplier", initial_data={"name": "Acme"})
        first = asyncio.create_task(controller.submit(draft_id))
        await asyncio.sleep(0)
        self.assertTrue(controller.is_submitting)
        second = await controller.submit(draft_id)
        self.assertEqual(second["errors"][0]["code"], "SUBMIT_IN_PROGRESS")
        data.release.set()
        out = await first
        self.assertTrue(out["ok"])
        self.assertEqual(len(data.list(EntityType.SUPPLIER)), 1)

    async def test_draft_dismissed_during_persist(self) -> None:
        controller = SubmissionController(self.session, DismissingLabData(self.session))
        draft_id = self.session.start_creation("strain", initial_data={"name": "B+", "species": "P. cubensis"})
        with self.assertLogs("myco.submission", level="WARNING"):
            out = await controller.submit(draft_id)
        self.assertTrue(out["ok"])
        self.assertEqual(out["warnings"][0]["code"], "DRAFT_GONE")
        self.assertTrue(out["result"]["id"].startswith("strain-"))


if __name__ == "__main__":
    unittest.main()
