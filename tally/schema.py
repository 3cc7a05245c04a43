"""Persisted-format constants, option lists, and sanitizers."""

from __future__ import annotations

from typing import Any


SCHEMA_VERSION = 1
AUTOSAVE_TYPE = "autosave"

AUTOSAVE_KEY = "calculator_autosave"
HISTORY_KEY = "calculator_history"

MENU_PAGE = "menu"
SIMPLE_PAGE = "simple"
COMPLEX_PAGE = "complex"
PAGES = (MENU_PAGE, SIMPLE_PAGE, COMPLEX_PAGE)

SIMPLE_KIND = "simple"
COMPLEX_KIND = "complex"
CALCULATION_KINDS = {SIMPLE_KIND, COMPLEX_KIND}

# Scope id of the flat simple-mode pair list; item scopes use their item id.
SIMPLE_SCOPE = "simple"

QUANTITY_FIELD = "quantity"
WEIGHT_FIELD = "weight"
PAIR_FIELDS = (QUANTITY_FIELD, WEIGHT_FIELD)

DEFAULT_PERIOD = "Pre-Historic"
PERIOD_OPTIONS = [
    "Pre-Historic",
    "Bronze Age",
    "Iron Age",
    "Roman",
    "Early Medieval",
    "Medieval",
    "Post-Medieval",
    "Modern",
]

CUSTOM_ITEM_OPTION = "custom"
ITEM_NAME_OPTIONS = [
    "Pottery",
    "Animal Bone",
    "Flint",
    "Burnt Stone",
    "Shell",
    "Glass",
    "Metalwork",
    "Ceramic Building Material",
    "Clay Pipe",
    "Slag",
]

LEGACY_AUTOSAVE_FIELDS = {"simplePairs", "complexItems", "periodSelect", "currentPage"}


def item_label(period: str, name: str) -> str:
    """Return the period-prefixed item label used as an item's immutable name."""
    period_text = str(period or "").strip() or DEFAULT_PERIOD
    return f"{period_text} {str(name).strip()}"


def sanitize_page(value: Any, warnings: list[str]) -> str:
    if value is None or value == "":
        return MENU_PAGE
    page = str(value).strip().lower()
    if page not in PAGES:
        warnings.append(f"current_page={value!r} is not a known page; reset to {MENU_PAGE}.")
        return MENU_PAGE
    return page


def sanitize_period(value: Any, warnings: list[str]) -> str:
    if value is None:
        return DEFAULT_PERIOD
    if not isinstance(value, str):
        warnings.append("selected_period ignored because it is not text.")
        return DEFAULT_PERIOD
    text = value.strip()
    return text or DEFAULT_PERIOD


def sanitize_entity_list(raw: Any, warnings: list[str], key_name: str) -> list:
    """Return ``raw`` when it is a list; entity-level checks are left to the restore step."""
    if raw is None:
        return []
    if isinstance(raw, list):
        return list(raw)
    warnings.append(f"{key_name} ignored because it is not a list.")
    return []


def migrate_legacy_autosave(payload: dict) -> tuple[dict, list[str]]:
    """Convert the flat camelCase autosave layout into the current envelope layout."""
    warnings = ["Migrated legacy autosave layout without envelope metadata."]
    simple_pairs = payload.get("simplePairs")
    complex_items = payload.get("complexItems")
    migrated = {
        "type": AUTOSAVE_TYPE,
        "schema_version": SCHEMA_VERSION,
        "timestamp": payload.get("timestamp", ""),
        "current_page": payload.get("currentPage"),
        "selected_period": payload.get("periodSelect"),
        "simple": {
            "pair_counter": payload.get("simplePairCount", 0),
            "pairs": simple_pairs if simple_pairs is not None else [],
        },
        "complex": {
            "item_counter": payload.get("itemCount", 0),
            "items": complex_items if complex_items is not None else [],
        },
    }
    return migrated, warnings
