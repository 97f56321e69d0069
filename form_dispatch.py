"""Form descriptions per entity type and the dispatcher that picks one.

A form view is a controlled description: it turns a draft's form data into a
list of fields for the client to draw and reshapes incoming edits (code slugs,
numeric coercion, preset fills). It does no business validation; required
fields are checked at submission.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from creation_session import CreationDraft, CreationSession
from entity_config import EntityType, compact_code, get_entity_config, slugify_code


ChangeHook = Callable[[dict, dict], dict]


@dataclass(frozen=True)
class FieldSpec:
    id: str
    label: str
    type: str = "string"
    options: tuple = ()
    # state key whose records populate a lookup dropdown
    lookup: str | None = None
    # entity type offered by the dropdown's "Add New" entry
    creates: EntityType | None = None


@dataclass
class FormView:
    entity_type: EntityType
    fields: List[FieldSpec]
    presets: List[dict] = field(default_factory=list)
    on_change: ChangeHook | None = None

    def adjust(self, data: dict, partial: dict) -> dict:
        if self.on_change is None:
            return dict(partial)
        return self.on_change(data, dict(partial))

    def describe(self, data: dict, errors: dict | None = None, state: dict | None = None) -> dict:
        config = get_entity_config(self.entity_type)
        required = set(config.required_fields)
        errors = errors or {}
        state = state or {}
        fields = []
        for spec in self.fields:
            item = {
                "id": spec.id,
                "label": spec.label,
                "type": spec.type,
                "required": spec.id in required,
                "value": copy.deepcopy(data.get(spec.id)),
                "error": errors.get(spec.id),
            }
            if spec.options:
                item["options"] = [{"value": v, "label": l} for v, l in spec.options]
            if spec.lookup:
                item["options"] = [
                    {"value": rec.get("id"), "label": rec.get("name")}
                    for rec in state.get(spec.lookup) or []
                    if isinstance(rec, dict) and rec.get("isActive", True)
                ]
            if spec.creates is not None:
                item["creates"] = spec.creates.value
            fields.append(item)
        return {
            "kind": "form",
            "entity_type": self.entity_type.value,
            "submit_label": f"Create {config.label}",
            "fields": fields,
            "presets": copy.deepcopy(self.presets),
            "form_error": errors.get("_form"),
            "has_required": bool(config.required_fields),
        }


# change hooks


def _take_preset(partial: dict) -> dict:
    preset = partial.pop("preset", None)
    return preset if isinstance(preset, dict) else {}


def _derive_code(data: dict, partial: dict) -> dict:
    if "preset" in partial:
        preset = _take_preset(partial)
        partial.update(preset)
        return partial
    if "name" in partial and "code" not in partial:
        partial["code"] = data.get("code") or slugify_code(partial.get("name") or "")
    return partial


def _grain_code(data: dict, partial: dict) -> dict:
    if "preset" in partial:
        preset = _take_preset(partial)
        partial.update({"name": preset.get("name"), "code": preset.get("code")})
    if "code" in partial:
        partial["code"] = compact_code(partial.get("code") or "", limit=None)
    return partial


def _as_int(value: Any) -> int | None:
    if value in (None, ""):
        return None
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _numeric(*keys: str) -> ChangeHook:
    def hook(data: dict, partial: dict) -> dict:
        for key in keys:
            if key in partial and not isinstance(partial[key], dict):
                partial[key] = _as_int(partial[key])
        return partial

    return hook


def _container_change(data: dict, partial: dict) -> dict:
    if "preset" in partial:
        preset = _take_preset(partial)
        context = preset.get("context")
        partial.update(
            {
                "name": preset.get("name"),
                "category": preset.get("category"),
                "volumeMl": preset.get("volumeMl"),
                "usageContext": [c for c in context if isinstance(c, str)] if isinstance(context, list) else [],
            }
        )
    toggle = partial.pop("toggleUsageContext", None)
    if isinstance(toggle, str) and toggle:
        current = list(data.get("usageContext") or [])
        if toggle in current:
            current.remove(toggle)
        else:
            current.append(toggle)
        partial["usageContext"] = current
    return partial


def _strain_change(data: dict, partial: dict) -> dict:
    if "speciesId" in partial and partial.get("speciesName"):
        # picking a catalogued species also fills the free-text name
        partial["species"] = partial.pop("speciesName")
    return _numeric("generation")(data, partial)


_DIFFICULTY = (("beginner", "Beginner"), ("intermediate", "Intermediate"), ("advanced", "Advanced"), ("expert", "Expert"))
_LOCATION_TYPES = (
    ("incubation", "Incubation"),
    ("fruiting", "Fruiting"),
    ("storage", "Storage"),
    ("lab", "Lab"),
    ("other", "Other"),
)
_CONTAINER_CATEGORIES = (
    ("jar", "Jar"),
    ("bag", "Bag"),
    ("plate", "Plate"),
    ("tube", "Tube"),
    ("bottle", "Bottle"),
    ("syringe", "Syringe"),
    ("tub", "Tub"),
    ("bucket", "Bucket"),
    ("bed", "Bed"),
    ("other", "Other"),
)
_SUBSTRATE_CATEGORIES = (("bulk", "Bulk"), ("grain", "Grain"), ("agar", "Agar"), ("liquid", "Liquid"))
_RECIPE_CATEGORIES = (
    ("agar", "Agar"),
    ("liquid_culture", "Liquid Culture"),
    ("grain_spawn", "Grain Spawn"),
    ("bulk_substrate", "Bulk Substrate"),
    ("casing", "Casing"),
    ("other", "Other"),
)
_ITEM_UNITS = (("ea", "Each"), ("g", "Grams"), ("kg", "Kilograms"), ("ml", "Milliliters"), ("l", "Liters"), ("oz", "Ounces"), ("lb", "Pounds"))


FORM_VIEWS: Dict[EntityType, FormView] = {
    EntityType.STRAIN: FormView(
        EntityType.STRAIN,
        [
            FieldSpec("name", "Strain Name"),
            FieldSpec("speciesId", "Species", "lookup", lookup="species"),
            FieldSpec("species", "Species Name"),
            FieldSpec("phenotype", "Phenotype"),
            FieldSpec("variety", "Variety"),
            FieldSpec("generation", "Generation", "number"),
            FieldSpec("difficulty", "Difficulty", "enum", _DIFFICULTY),
            FieldSpec("colonizationDays", "Colonization Days", "range"),
            FieldSpec("fruitingDays", "Fruiting Days", "range"),
            FieldSpec("optimalTempColonization", "Colonization Temp", "temperature_range"),
            FieldSpec("optimalTempFruiting", "Fruiting Temp", "temperature_range"),
            FieldSpec("notes", "Notes", "text"),
        ],
        on_change=_strain_change,
    ),
    EntityType.LOCATION: FormView(
        EntityType.LOCATION,
        [
            FieldSpec("name", "Location Name"),
            FieldSpec("type", "Type", "enum", _LOCATION_TYPES),
            FieldSpec("parentId", "Parent Location", "lookup", lookup="locations", creates=EntityType.LOCATION),
            FieldSpec("description", "Description", "text"),
            FieldSpec("tempRange", "Temperature Range", "temperature_range"),
            FieldSpec("humidityRange", "Humidity Range", "range"),
            FieldSpec("notes", "Notes", "text"),
        ],
    ),
    EntityType.CONTAINER: FormView(
        EntityType.CONTAINER,
        [
            FieldSpec("name", "Container Name"),
            FieldSpec("category", "Category", "enum", _CONTAINER_CATEGORIES),
            FieldSpec("volumeMl", "Volume", "volume"),
            FieldSpec("isReusable", "Reusable", "boolean"),
            FieldSpec("isSterilizable", "Sterilizable", "boolean"),
            FieldSpec("usageContext", "Used For", "tags", (("culture", "Culture"), ("grow", "Grow"))),
            FieldSpec("supplierId", "Supplier", "lookup", lookup="suppliers", creates=EntityType.SUPPLIER),
            FieldSpec("notes", "Notes", "text"),
        ],
        presets=[
            {"name": "Quart Mason Jar", "category": "jar", "volumeMl": 946, "context": ["culture", "grow"]},
            {"name": "Pint Mason Jar", "category": "jar", "volumeMl": 473, "context": ["culture"]},
            {"name": "100mm Petri Dish", "category": "plate", "volumeMl": 25, "context": ["culture"]},
            {"name": "10cc Syringe", "category": "syringe", "volumeMl": 10, "context": ["culture"]},
            {"name": "6qt Shoebox", "category": "tub", "volumeMl": 5700, "context": ["grow"]},
            {"name": "66qt Monotub", "category": "tub", "volumeMl": 62000, "context": ["grow"]},
            {"name": "5 Gallon Bucket", "category": "bucket", "volumeMl": 19000, "context": ["grow"]},
        ],
        on_change=_container_change,
    ),
    EntityType.SUPPLIER: FormView(
        EntityType.SUPPLIER,
        [
            FieldSpec("name", "Supplier Name"),
            FieldSpec("website", "Website"),
            FieldSpec("email", "Email"),
            FieldSpec("phone", "Phone"),
            FieldSpec("notes", "Notes", "text"),
        ],
    ),
    EntityType.GRAIN_TYPE: FormView(
        EntityType.GRAIN_TYPE,
        [FieldSpec("name", "Grain Name"), FieldSpec("code", "Code"), FieldSpec("notes", "Notes", "text")],
        presets=[
            {"name": "Rye Berries", "code": "rye"},
            {"name": "Whole Oats", "code": "oats"},
            {"name": "Wheat Berries", "code": "wheat"},
            {"name": "Millet", "code": "millet"},
            {"name": "Popcorn", "code": "popcorn"},
            {"name": "Wild Bird Seed", "code": "wbs"},
            {"name": "Brown Rice", "code": "brf"},
        ],
        on_change=_grain_code,
    ),
    EntityType.SUBSTRATE_TYPE: FormView(
        EntityType.SUBSTRATE_TYPE,
        [
            FieldSpec("name", "Substrate Name"),
            FieldSpec("code", "Code"),
            FieldSpec("category", "Category", "enum", _SUBSTRATE_CATEGORIES),
            FieldSpec("spawnRateRange", "Spawn Rate %", "range"),
            FieldSpec("fieldCapacity", "Field Capacity", "boolean"),
            FieldSpec("notes", "Notes", "text"),
        ],
        on_change=_derive_code,
    ),
    EntityType.RECIPE_CATEGORY: FormView(
        EntityType.RECIPE_CATEGORY,
        [
            FieldSpec("name", "Category Name"),
            FieldSpec("code", "Code"),
            FieldSpec("icon", "Icon"),
            FieldSpec("color", "Color"),
        ],
        presets=[
            {"name": "Agar", "icon": "🧫", "code": "agar", "color": "text-purple-400 bg-purple-950/50"},
            {"name": "Liquid Culture", "icon": "💧", "code": "liquid_culture", "color": "text-blue-400 bg-blue-950/50"},
            {"name": "Grain Spawn", "icon": "🌾", "code": "grain_spawn", "color": "text-amber-400 bg-amber-950/50"},
            {"name": "Bulk Substrate", "icon": "🪵", "code": "bulk_substrate", "color": "text-orange-400 bg-orange-950/50"},
            {"name": "Casing", "icon": "🥥", "code": "casing", "color": "text-emerald-400 bg-emerald-950/50"},
            {"name": "Other", "icon": "📦", "code": "other", "color": "text-zinc-400 bg-zinc-800"},
        ],
        on_change=_derive_code,
    ),
    EntityType.LOCATION_TYPE: FormView(
        EntityType.LOCATION_TYPE,
        [
            FieldSpec("name", "Type Name"),
            FieldSpec("code", "Code"),
            FieldSpec("description", "Description", "text"),
            FieldSpec("notes", "Notes", "text"),
        ],
        presets=[
            {"name": "Incubation Chamber", "code": "incubation_chamber", "description": "Warm, dark environment for colonization"},
            {"name": "Fruiting Chamber", "code": "fruiting_chamber", "description": "Humid environment with FAE for fruiting"},
            {"name": "Still Air Box", "code": "still_air_box", "description": "SAB for sterile transfers"},
            {"name": "Flow Hood", "code": "flow_hood", "description": "Laminar flow hood workspace"},
            {"name": "Storage Shelf", "code": "storage_shelf", "description": "General storage area"},
            {"name": "Refrigerator", "code": "refrigerator", "description": "Cold storage for cultures/spores"},
            {"name": "Lab Bench", "code": "lab_bench", "description": "General lab work surface"},
            {"name": "Greenhouse", "code": "greenhouse", "description": "Natural light growing environment"},
        ],
        on_change=_derive_code,
    ),
    EntityType.LOCATION_CLASSIFICATION: FormView(
        EntityType.LOCATION_CLASSIFICATION,
        [
            FieldSpec("name", "Classification Name"),
            FieldSpec("code", "Code"),
            FieldSpec("description", "Description", "text"),
            FieldSpec("notes", "Notes", "text"),
        ],
        presets=[
            {"name": "Indoor", "code": "indoor", "description": "Indoor controlled environment"},
            {"name": "Outdoor", "code": "outdoor", "description": "Outdoor/open environment"},
            {"name": "Greenhouse", "code": "greenhouse", "description": "Greenhouse/polytunnel"},
            {"name": "Basement", "code": "basement", "description": "Below-ground space"},
            {"name": "Garage", "code": "garage", "description": "Garage or shed"},
            {"name": "Clean Room", "code": "clean_room", "description": "Sterile/clean room environment"},
        ],
        on_change=_derive_code,
    ),
    EntityType.INVENTORY_ITEM: FormView(
        EntityType.INVENTORY_ITEM,
        [
            FieldSpec("name", "Item Name"),
            FieldSpec(
                "categoryId",
                "Category",
                "lookup",
                lookup="inventoryCategories",
                creates=EntityType.INVENTORY_CATEGORY,
            ),
            FieldSpec("unit", "Unit", "enum", _ITEM_UNITS),
            FieldSpec("unitCost", "Unit Cost", "number"),
            FieldSpec("sku", "SKU"),
            FieldSpec("reorderPoint", "Reorder Point", "number"),
            FieldSpec("reorderQty", "Reorder Quantity", "number"),
            FieldSpec("notes", "Notes", "text"),
        ],
    ),
    EntityType.INVENTORY_CATEGORY: FormView(
        EntityType.INVENTORY_CATEGORY,
        [FieldSpec("name", "Category Name"), FieldSpec("icon", "Icon"), FieldSpec("color", "Color")],
    ),
    EntityType.RECIPE: FormView(
        EntityType.RECIPE,
        [
            FieldSpec("name", "Recipe Name"),
            FieldSpec("category", "Category", "enum", _RECIPE_CATEGORIES),
            FieldSpec("description", "Description", "text"),
            FieldSpec("yield", "Yield", "quantity"),
            FieldSpec("prepTime", "Prep Time (min)", "number"),
            FieldSpec("sterilizationTime", "Sterilization Time (min)", "number"),
            FieldSpec("sterilizationPsi", "Sterilization PSI", "number"),
            FieldSpec("notes", "Notes", "text"),
        ],
        on_change=_numeric("prepTime", "sterilizationTime", "sterilizationPsi"),
    ),
}


def render_form(draft: CreationDraft | None, errors: dict | None = None, state: dict | None = None) -> dict | None:
    """Describe the form for ``draft``; None when nothing is being created."""
    if draft is None:
        return None
    view = FORM_VIEWS.get(draft.entity_type)
    if view is None:
        return {
            "kind": "unknown",
            "entity_type": draft.entity_type.value,
            "message": f"Unknown entity type: {draft.entity_type.value}",
        }
    described = view.describe(draft.form_data, errors, state)
    described["title"] = draft.label
    described["draft_id"] = draft.id
    return described


def handle_change(session: CreationSession, draft_id: str, partial: dict) -> CreationDraft | None:
    draft = session.get_draft(draft_id)
    if draft is None:
        return None
    view = FORM_VIEWS.get(draft.entity_type)
    updates = view.adjust(draft.form_data, partial) if view is not None else dict(partial)
    session.update_draft(draft_id, updates)
    return session.get_draft(draft_id)
