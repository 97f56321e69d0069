"""Entity type registry: labels, required fields, defaults and payload builders."""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict


class EntityType(str, Enum):
    CULTURE = "culture"
    GROW = "grow"
    RECIPE = "recipe"
    STRAIN = "strain"
    LOCATION = "location"
    CONTAINER = "container"
    SUPPLIER = "supplier"
    GRAIN_TYPE = "grainType"
    SUBSTRATE_TYPE = "substrateType"
    CONTAINER_TYPE = "containerType"
    INVENTORY_ITEM = "inventoryItem"
    INVENTORY_LOT = "inventoryLot"
    INVENTORY_CATEGORY = "inventoryCategory"
    RECIPE_CATEGORY = "recipeCategory"
    LOCATION_TYPE = "locationType"
    LOCATION_CLASSIFICATION = "locationClassification"


def parse_entity_type(value: Any) -> EntityType | None:
    if isinstance(value, EntityType):
        return value
    try:
        return EntityType(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class EntityConfig:
    label: str
    label_plural: str
    required_fields: tuple[str, ...]
    default_values: Dict[str, Any] = field(default_factory=dict)

    def defaults(self) -> dict:
        return copy.deepcopy(self.default_values)

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "label_plural": self.label_plural,
            "required_fields": list(self.required_fields),
            "default_values": self.defaults(),
        }


_NEUTRAL_COLOR = "text-zinc-400 bg-zinc-800"

ENTITY_CONFIGS: Dict[EntityType, EntityConfig] = {
    EntityType.CULTURE: EntityConfig(
        "Culture",
        "Cultures",
        ("strainId", "locationId", "vesselId"),
        {"type": "agar", "status": "colonizing", "generation": 0, "healthRating": 5, "cost": 0, "notes": ""},
    ),
    EntityType.GROW: EntityConfig(
        "Grow",
        "Grows",
        ("strainId", "substrateTypeId", "containerTypeId", "locationId"),
        {
            "status": "active",
            "currentStage": "spawning",
            "spawnWeight": 500,
            "substrateWeight": 2000,
            "containerCount": 1,
            "targetTempColonization": 24,
            "targetTempFruiting": 22,
            "targetHumidity": 90,
            "estimatedCost": 0,
            "notes": "",
        },
    ),
    EntityType.RECIPE: EntityConfig(
        "Recipe",
        "Recipes",
        ("name", "category"),
        {
            "category": "agar",
            "description": "",
            "yield": {"amount": 500, "unit": "ml"},
            "prepTime": 15,
            "sterilizationTime": 45,
            "sterilizationPsi": 15,
            "ingredients": [],
            "instructions": [],
            "tips": [],
            "notes": "",
            "isActive": True,
        },
    ),
    EntityType.STRAIN: EntityConfig(
        "Strain",
        "Strains",
        ("name", "species"),
        {
            "species": "",
            "difficulty": "intermediate",
            "colonizationDays": {"min": 14, "max": 21},
            "fruitingDays": {"min": 7, "max": 14},
            "optimalTempColonization": {"min": 21, "max": 27},
            "optimalTempFruiting": {"min": 18, "max": 24},
            "notes": "",
            "isActive": True,
        },
    ),
    EntityType.LOCATION: EntityConfig(
        "Location",
        "Locations",
        ("name",),
        {"type": "storage", "notes": "", "isActive": True},
    ),
    EntityType.CONTAINER: EntityConfig(
        "Container",
        "Containers",
        ("name", "category"),
        {"category": "jar", "isReusable": True, "usageContext": ["culture", "grow"], "notes": "", "isActive": True},
    ),
    EntityType.SUPPLIER: EntityConfig(
        "Supplier",
        "Suppliers",
        ("name",),
        {"website": "", "email": "", "phone": "", "notes": "", "isActive": True},
    ),
    EntityType.GRAIN_TYPE: EntityConfig(
        "Grain Type",
        "Grain Types",
        ("name",),
        {"code": "", "notes": "", "isActive": True},
    ),
    EntityType.SUBSTRATE_TYPE: EntityConfig(
        "Substrate Type",
        "Substrate Types",
        ("name", "category"),
        {"code": "", "category": "bulk", "notes": "", "isActive": True},
    ),
    EntityType.CONTAINER_TYPE: EntityConfig(
        "Container Type",
        "Container Types",
        ("name", "category"),
        {"category": "tub", "notes": "", "isActive": True},
    ),
    EntityType.INVENTORY_ITEM: EntityConfig(
        "Inventory Item",
        "Inventory Items",
        ("name",),
        {"categoryId": "", "quantity": 0, "unit": "ea", "reorderPoint": 0, "notes": "", "isActive": True},
    ),
    EntityType.INVENTORY_LOT: EntityConfig(
        "Stock Lot",
        "Stock Lots",
        ("inventoryItemId", "quantity"),
        {"unit": "g", "status": "available", "notes": ""},
    ),
    EntityType.INVENTORY_CATEGORY: EntityConfig(
        "Inventory Category",
        "Inventory Categories",
        ("name",),
        {"color": _NEUTRAL_COLOR, "icon": "", "notes": "", "isActive": True},
    ),
    EntityType.RECIPE_CATEGORY: EntityConfig(
        "Recipe Category",
        "Recipe Categories",
        ("name",),
        {"code": "", "icon": "📦", "color": _NEUTRAL_COLOR, "isActive": True},
    ),
    EntityType.LOCATION_TYPE: EntityConfig(
        "Location Type",
        "Location Types",
        ("name",),
        {"code": "", "description": "", "notes": "", "isActive": True},
    ),
    EntityType.LOCATION_CLASSIFICATION: EntityConfig(
        "Location Classification",
        "Location Classifications",
        ("name",),
        {"code": "", "description": "", "notes": "", "isActive": True},
    ),
}


def get_entity_config(entity_type: EntityType | str) -> EntityConfig:
    parsed = parse_entity_type(entity_type)
    if parsed is None:
        raise KeyError(f"Unknown entity type: {entity_type}")
    return ENTITY_CONFIGS[parsed]


def slugify_code(name: Any) -> str:
    """``"Grain Spawn"`` -> ``"grain_spawn"``."""
    return re.sub(r"[^a-z0-9_]", "", re.sub(r"\s+", "_", str(name or "").lower()))


def compact_code(name: Any, limit: int | None = 10) -> str:
    """``"Rye Berries"`` -> ``"ryeberries"``, truncated to ``limit`` when given."""
    return re.sub(r"[^a-z0-9]", "", str(name or "").lower())[:limit]


# Payload builders. Each takes the draft form data and the data layer state
# and returns the payload handed to the matching ``add_*`` call.

PayloadBuilder = Callable[[dict, dict], dict]


def _or(data: dict, key: str, fallback: Any) -> Any:
    return data.get(key) or copy.deepcopy(fallback)


def _strain_payload(data: dict, state: dict) -> dict:
    return {
        "name": data.get("name"),
        "species": _or(data, "species", "Unknown"),
        "speciesId": data.get("speciesId"),
        "difficulty": _or(data, "difficulty", "intermediate"),
        "colonizationDays": _or(data, "colonizationDays", {"min": 14, "max": 21}),
        "fruitingDays": _or(data, "fruitingDays", {"min": 7, "max": 14}),
        "optimalTempColonization": _or(data, "optimalTempColonization", {"min": 21, "max": 27}),
        "optimalTempFruiting": _or(data, "optimalTempFruiting", {"min": 18, "max": 24}),
        "notes": data.get("notes"),
        "isActive": True,
    }


def _location_payload(data: dict, state: dict) -> dict:
    locations = state.get("locations") or []
    parent_id = data.get("parentId") or None
    name = data.get("name")
    if parent_id:
        parent_name = next((loc.get("name") for loc in locations if loc.get("id") == parent_id), None) or ""
        path = f"{parent_name} > {name}"
    else:
        path = name
    purposes = data.get("roomPurposes") or []
    return {
        "name": name,
        "level": _or(data, "level", "zone"),
        "parentId": parent_id,
        "roomPurposes": list(purposes),
        "roomPurpose": purposes[0] if purposes else None,
        "capacity": data.get("capacity"),
        "code": data.get("code"),
        "tempRange": data.get("tempRange"),
        "humidityRange": data.get("humidityRange"),
        "description": data.get("description"),
        "notes": data.get("notes"),
        "path": path,
        "sortOrder": len(locations) + 1,
        "isActive": True,
    }


def _container_payload(data: dict, state: dict) -> dict:
    reusable = data.get("isReusable")
    reusable = True if reusable is None else reusable
    sterilizable = data.get("isSterilizable")
    return {
        "name": data.get("name"),
        "category": _or(data, "category", "jar"),
        "volumeMl": data.get("volumeMl"),
        "dimensions": data.get("dimensions"),
        "isReusable": reusable,
        "isSterilizable": reusable if sterilizable is None else sterilizable,
        "usageContext": data.get("usageContext") or ["culture", "grow"],
        "notes": data.get("notes"),
        "isActive": True,
    }


def _supplier_payload(data: dict, state: dict) -> dict:
    return {
        "name": data.get("name"),
        "website": data.get("website"),
        "email": data.get("email"),
        "phone": data.get("phone"),
        "notes": data.get("notes"),
        "isActive": True,
    }


def _grain_type_payload(data: dict, state: dict) -> dict:
    return {
        "name": data.get("name"),
        "code": data.get("code") or compact_code(data.get("name") or ""),
        "notes": data.get("notes"),
        "isActive": True,
    }


def _substrate_type_payload(data: dict, state: dict) -> dict:
    return {
        "name": data.get("name"),
        "code": data.get("code") or compact_code(data.get("name") or ""),
        "category": _or(data, "category", "bulk"),
        "spawnRateRange": _or(data, "spawnRateRange", {"min": 5, "optimal": 10, "max": 20}),
        "fieldCapacity": data.get("fieldCapacity"),
        "notes": data.get("notes"),
        "isActive": True,
    }


def _coded_payload(data: dict, state: dict) -> dict:
    return {
        "name": data.get("name"),
        "code": data.get("code") or slugify_code(data.get("name") or ""),
        "description": data.get("description"),
        "notes": data.get("notes"),
        "isActive": True,
    }


def _recipe_category_payload(data: dict, state: dict) -> dict:
    return {
        "name": data.get("name"),
        "code": data.get("code") or slugify_code(data.get("name") or ""),
        "icon": _or(data, "icon", "📦"),
        "color": _or(data, "color", _NEUTRAL_COLOR),
        "isActive": True,
    }


def _inventory_item_payload(data: dict, state: dict) -> dict:
    # stock arrives through lots, so new items always start empty
    return {
        "name": data.get("name"),
        "categoryId": data.get("categoryId") or "",
        "sku": data.get("sku"),
        "quantity": 0,
        "unit": _or(data, "unit", "ea"),
        "unitCost": data.get("unitCost") or 0,
        "reorderPoint": data.get("reorderPoint") or 0,
        "reorderQty": data.get("reorderQty") or 0,
        "notes": data.get("notes"),
        "isActive": True,
    }


def _inventory_category_payload(data: dict, state: dict) -> dict:
    return {
        "name": data.get("name"),
        "color": _or(data, "color", _NEUTRAL_COLOR),
        "icon": data.get("icon"),
        "isActive": True,
    }


def _recipe_payload(data: dict, state: dict) -> dict:
    return {
        "name": data.get("name"),
        "category": _or(data, "category", "agar"),
        "description": data.get("description") or "",
        "yield": _or(data, "yield", {"amount": 500, "unit": "ml"}),
        "prepTime": data.get("prepTime"),
        "sterilizationTime": data.get("sterilizationTime"),
        "sterilizationPsi": data.get("sterilizationPsi"),
        "ingredients": list(data.get("ingredients") or []),
        "instructions": list(data.get("instructions") or []),
        "tips": list(data.get("tips") or []),
        "notes": data.get("notes"),
        "isActive": True,
    }


@dataclass(frozen=True)
class CreationRoute:
    """Which data-layer call persists a type, and how its payload is shaped."""

    method: str
    build: PayloadBuilder


CREATION_ROUTES: Dict[EntityType, CreationRoute] = {
    EntityType.STRAIN: CreationRoute("add_strain", _strain_payload),
    EntityType.LOCATION: CreationRoute("add_location", _location_payload),
    EntityType.CONTAINER: CreationRoute("add_container", _container_payload),
    EntityType.SUPPLIER: CreationRoute("add_supplier", _supplier_payload),
    EntityType.GRAIN_TYPE: CreationRoute("add_grain_type", _grain_type_payload),
    EntityType.SUBSTRATE_TYPE: CreationRoute("add_substrate_type", _substrate_type_payload),
    EntityType.RECIPE_CATEGORY: CreationRoute("add_recipe_category", _recipe_category_payload),
    EntityType.LOCATION_TYPE: CreationRoute("add_location_type", _coded_payload),
    EntityType.LOCATION_CLASSIFICATION: CreationRoute("add_location_classification", _coded_payload),
    EntityType.INVENTORY_ITEM: CreationRoute("add_inventory_item", _inventory_item_payload),
    EntityType.INVENTORY_CATEGORY: CreationRoute("add_inventory_category", _inventory_category_payload),
    EntityType.RECIPE: CreationRoute("add_recipe", _recipe_payload),
}


def build_payload(entity_type: EntityType, data: dict, state: dict | None = None) -> dict:
    route = CREATION_ROUTES.get(entity_type)
    if route is None:
        raise KeyError(f"Unknown entity type: {entity_type.value}")
    return route.build(copy.deepcopy(data or {}), state or {})
