import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from creation_session import CreationSession
from entity_config import CREATION_ROUTES
from form_dispatch import FORM_VIEWS, handle_change, render_form


class TestRenderForm(unittest.TestCase):
    def setUp(self) -> None:
        self.session = CreationSession("s1")

    def test_no_draft_renders_nothing(self) -> None:
        self.assertIsNone(render_form(None))

    def test_every_creatable_type_has_a_form(self) -> None:
        self.assertEqual(set(FORM_VIEWS), set(CREATION_ROUTES))

    def test_host_only_type_falls_back(self) -> None:
        self.session.start_creation("culture")
        form = render_form(self.session.current_draft)
        self.assertEqual(form["kind"], "unknown")
        self.assertEqual(form["message"], "Unknown entity type: culture")

    def test_form_description(self) -> None:
        draft_id = self.session.start_creation("strain", label="New Strain for Grow")
        form = render_form(self.session.current_draft, {"name": "This field is required"})
        self.assertEqual(form["kind"], "form")
        self.assertEqual(form["title"], "New Strain for Grow")
        self.assertEqual(form["draft_id"], draft_id)
        self.assertEqual(form["submit_label"], "Create Strain")
        self.assertTrue(form["has_required"])
        fields = {f["id"]: f for f in form["fields"]}
        self.assertTrue(fields["name"]["required"])
        self.assertEqual(fields["name"]["error"], "This field is required")
        self.assertEqual(fields["difficulty"]["value"], "intermediate")
        self.assertIn({"value": "expert", "label": "Expert"}, fields["difficulty"]["options"])

    def test_lookup_options_come_from_state(self) -> None:
        self.session.start_creation("inventoryItem")
        state = {
            "inventoryCategories": [
                {"id": "cat-1", "name": "Grains"},
                {"id": "cat-2", "name": "Retired", "isActive": False},
            ]
        }
        form = render_form(self.session.current_draft, state=state)
        field = next(f for f in form["fields"] if f["id"] == "categoryId")
        self.assertEqual(field["options"], [{"value": "cat-1", "label": "Grains"}])
        self.assertEqual(field["creates"], "inventoryCategory")

    def test_form_error_surfaces(self) -> None:
        self.session.start_creation("supplier")
        form = render_form(self.session.current_draft, {"_form": "Failed to create. Please try again."})
        self.assertEqual(form["form_error"], "Failed to create. Please try again.")


class TestHandleChange(unittest.TestCase):
    def setUp(self) -> None:
        self.session = CreationSession("s1")

    def test_name_derives_code(self) -> None:
        draft_id = self.session.start_creation("recipeCategory")
        draft = handle_change(self.session, draft_id, {"name": "Grain Spawn"})
        self.assertEqual(draft.form_data["code"], "grain_spawn")

    def test_explicit_code_kept(self) -> None:
        draft_id = self.session.start_creation("locationType")
        handle_change(self.session, draft_id, {"code": "tent"})
        draft = handle_change(self.session, draft_id, {"name": "Grow Tent"})
        self.assertEqual(draft.form_data["code"], "tent")

    def test_preset_fills_fields(self) -> None:
        draft_id = self.session.start_creation("locationClassification")
        preset = {"name": "Clean Room", "code": "clean_room", "description": "Sterile/clean room environment"}
        draft = handle_change(self.session, draft_id, {"preset": preset})
        self.assertEqual(draft.form_data["name"], "Clean Room")
        self.assertNotIn("preset", draft.form_data)

    def test_grain_code_is_compacted(self) -> None:
        draft_id = self.session.start_creation("grainType")
        draft = handle_change(self.session, draft_id, {"code": "Wild Bird-Seed"})
        self.assertEqual(draft.form_data["code"], "wildbirdseed")

    def test_container_usage_toggle(self) -> None:
        draft_id = self.session.start_creation("container")
        draft = handle_change(self.session, draft_id, {"toggleUsageContext": "grow"})
        self.assertEqual(draft.form_data["usageContext"], ["culture"])
        draft = handle_change(self.session, draft_id, {"toggleUsageContext": "grow"})
        self.assertEqual(draft.form_data["usageContext"], ["culture", "grow"])
        self.assertNotIn("toggleUsageContext", draft.form_data)

    def test_container_preset(self) -> None:
        draft_id = self.session.start_creation("container")
        preset = FORM_VIEWS[self.session.current_draft.entity_type].presets[-1]
        draft = handle_change(self.session, draft_id, {"preset": preset})
        self.assertEqual(draft.form_data["name"], "5 Gallon Bucket")
        self.assertEqual(draft.form_data["category"], "bucket")
        self.assertEqual(draft.form_data["usageContext"], ["grow"])

    def test_recipe_numbers_coerced(self) -> None:
        draft_id = self.session.start_creation("recipe")
        draft = handle_change(self.session, draft_id, {"prepTime": "20", "sterilizationPsi": ""})
        self.assertEqual(draft.form_data["prepTime"], 20)
        self.assertIsNone(draft.form_data["sterilizationPsi"])

    def test_strain_species_pick(self) -> None:
        draft_id = self.session.start_creation("strain")
        draft = handle_change(self.session, draft_id, {"speciesId": "sp-1", "speciesName": "Pleurotus ostreatus"})
        self.assertEqual(draft.form_data["species"], "Pleurotus ostreatus")
        self.assertEqual(draft.form_data["speciesId"], "sp-1")

    def test_host_only_type_merges_verbatim(self) -> None:
        draft_id = self.session.start_creation("grow")
        draft = handle_change(self.session, draft_id, {"spawnWeight": "750"})
        self.assertEqual(draft.form_data["spawnWeight"], "750")

    def test_unknown_draft(self) -> None:
        self.assertIsNone(handle_change(self.session, "draft-missing", {"name": "x"}))


if __name__ == "__main__":
    unittest.main()
