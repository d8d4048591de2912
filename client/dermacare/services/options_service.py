"""
Custom dropdown options
Project: DermaCare Client

Persists the categories, units, item names and suppliers that staff add
while entering stock, on top of the built-in lists. Storage problems never
block the form: reads degrade to empty defaults and writes are logged.
"""

import asyncio
import json
import logging
from typing import Any

from pydantic import BaseModel, Field

from dermacare.storage.memory import KeyValueStore

logger = logging.getLogger(__name__)


# ------------------------------------------------------------
# Built-in values
# ------------------------------------------------------------

INVENTORY_CATEGORIES: tuple[str, ...] = (
    "Botulinum Toxin (Neurotoxin)",
    "Hyaluronic Acid Filler",
    "Biostimulatory Filler",
    "Suture/Thread",
    "Consumable (Syringe/Needle)",
    "Topical/Rx (Prescription)",
    "Equipment/Tool",
    "Cleaning/Sterilization",
)

UNIT_MAPPINGS: dict[str, tuple[str, ...]] = {
    "Botulinum Toxin (Neurotoxin)": ("vial", "unit"),
    "Hyaluronic Acid Filler": ("syringe", "ml", "box"),
    "Biostimulatory Filler": ("vial", "ml", "kit"),
    "Suture/Thread": ("packet", "box", "set"),
    "Consumable (Syringe/Needle)": ("unit", "box", "pack", "ml"),
    "Topical/Rx (Prescription)": ("tube", "bottle", "jar", "mg", "ml"),
    "Equipment/Tool": ("item", "unit"),
    "Cleaning/Sterilization": ("wipe", "gallon", "bottle"),
    "Other": ("unit", "item"),
}

# Storage keys
CUSTOM_CATEGORIES_KEY = "@inventory_custom_categories"
CUSTOM_UNITS_KEY = "@inventory_custom_units"
CUSTOM_ITEM_NAMES_KEY = "@inventory_custom_item_names"
CUSTOM_SUPPLIERS_KEY = "@inventory_custom_suppliers"

ALL_KEYS = (
    CUSTOM_CATEGORIES_KEY,
    CUSTOM_UNITS_KEY,
    CUSTOM_ITEM_NAMES_KEY,
    CUSTOM_SUPPLIERS_KEY,
)


class AllCustomOptions(BaseModel):
    """Every custom option, loaded at once."""

    categories: list[str] = Field(default_factory=list)
    units: dict[str, list[str]] = Field(default_factory=dict)
    item_names: list[str] = Field(default_factory=list)
    suppliers: list[str] = Field(default_factory=list)


class CustomOptionsService:
    """CRUD over the custom dropdown values in a KeyValueStore."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    # ------------------------------------------------------------
    # Generic helpers
    # ------------------------------------------------------------

    async def _load_json(self, key: str, default: Any) -> Any:
        try:
            stored = await self.store.get(key)
        except Exception as e:
            logger.error("Error loading options for %s: %s", key, e)
            return default
        if not stored:
            return default
        try:
            return json.loads(stored)
        except ValueError as e:
            logger.error("Corrupt options stored under %s: %s", key, e)
            return default

    async def _save_json(self, key: str, value: Any) -> None:
        try:
            await self.store.set(key, json.dumps(value))
        except Exception as e:
            logger.error("Error saving options for %s: %s", key, e)

    async def _load_list(self, key: str) -> list[str]:
        value = await self._load_json(key, [])
        if not isinstance(value, list):
            logger.error("Options under %s are not a list, ignoring", key)
            return []
        return [str(v) for v in value]

    async def _add_to_list(self, key: str, option: str) -> list[str]:
        option = option.strip()
        existing = await self._load_list(key)
        if not option or option in existing:
            return existing
        updated = [*existing, option]
        await self._save_json(key, updated)
        return updated

    # ------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------

    async def load_categories(self) -> list[str]:
        return await self._load_list(CUSTOM_CATEGORIES_KEY)

    async def save_categories(self, categories: list[str]) -> None:
        await self._save_json(CUSTOM_CATEGORIES_KEY, categories)

    async def add_category(self, category: str) -> list[str]:
        return await self._add_to_list(CUSTOM_CATEGORIES_KEY, category)

    async def categories(self) -> list[str]:
        """Built-in categories followed by the custom ones."""
        custom = await self.load_categories()
        return [*INVENTORY_CATEGORIES, *(c for c in custom if c not in INVENTORY_CATEGORIES)]

    # ------------------------------------------------------------
    # Units (per category)
    # ------------------------------------------------------------

    async def load_units(self) -> dict[str, list[str]]:
        value = await self._load_json(CUSTOM_UNITS_KEY, {})
        if not isinstance(value, dict):
            logger.error("Custom units are not a mapping, ignoring")
            return {}
        return {
            str(category): [str(u) for u in units]
            for category, units in value.items()
            if isinstance(units, list)
        }

    async def save_units(self, units: dict[str, list[str]]) -> None:
        await self._save_json(CUSTOM_UNITS_KEY, units)

    async def add_unit(self, category: str, unit: str) -> dict[str, list[str]]:
        unit = unit.strip()
        existing = await self.load_units()
        units = existing.setdefault(category, [])
        if unit and unit not in units:
            units.append(unit)
            await self.save_units(existing)
        return existing

    async def units_for(self, category: str) -> list[str]:
        """Built-in units of the category followed by the custom ones."""
        builtin = UNIT_MAPPINGS.get(category, UNIT_MAPPINGS["Other"])
        custom = (await self.load_units()).get(category, [])
        return [*builtin, *(u for u in custom if u not in builtin)]

    # ------------------------------------------------------------
    # Item names and suppliers
    # ------------------------------------------------------------

    async def load_item_names(self) -> list[str]:
        return await self._load_list(CUSTOM_ITEM_NAMES_KEY)

    async def save_item_names(self, names: list[str]) -> None:
        await self._save_json(CUSTOM_ITEM_NAMES_KEY, names)

    async def add_item_name(self, name: str) -> list[str]:
        return await self._add_to_list(CUSTOM_ITEM_NAMES_KEY, name)

    async def load_suppliers(self) -> list[str]:
        return await self._load_list(CUSTOM_SUPPLIERS_KEY)

    async def save_suppliers(self, suppliers: list[str]) -> None:
        await self._save_json(CUSTOM_SUPPLIERS_KEY, suppliers)

    async def add_supplier(self, supplier: str) -> list[str]:
        return await self._add_to_list(CUSTOM_SUPPLIERS_KEY, supplier)

    # ------------------------------------------------------------
    # All at once
    # ------------------------------------------------------------

    async def load_all(self) -> AllCustomOptions:
        categories, units, item_names, suppliers = await asyncio.gather(
            self.load_categories(),
            self.load_units(),
            self.load_item_names(),
            self.load_suppliers(),
        )
        return AllCustomOptions(
            categories=categories,
            units=units,
            item_names=item_names,
            suppliers=suppliers,
        )

    async def clear_all(self) -> None:
        for key in ALL_KEYS:
            try:
                await self.store.remove(key)
            except Exception as e:
                logger.error("Error clearing options %s: %s", key, e)
