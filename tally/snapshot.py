"""Autosave envelope encoding and tolerant decoding."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from tally.entities import ComplexState, PairScope, SessionState
from tally.errors import DecodeError
from tally.schema import (
    AUTOSAVE_TYPE,
    LEGACY_AUTOSAVE_FIELDS,
    MENU_PAGE,
    SCHEMA_VERSION,
    migrate_legacy_autosave,
    sanitize_entity_list,
    sanitize_page,
    sanitize_period,
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class AppSnapshot:
    """Decoded autosave contents; entity lists are still raw serialized dicts."""

    current_page: str = MENU_PAGE
    selected_period: str = ""
    simple_pairs: list = field(default_factory=list)
    complex_items: list = field(default_factory=list)
    timestamp: str = ""
    schema_version: int = SCHEMA_VERSION


@dataclass
class DecodeResult:
    status: str
    snapshot: AppSnapshot | None = None
    error: DecodeError | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == "ok"


def scope_payload(scope: PairScope) -> list[dict]:
    """Serialize a scope's pairs in order, skipping pairs with both fields blank."""
    return [
        {"id": pair.local_id, "quantity": pair.quantity, "weight": pair.weight}
        for pair in scope.ordered()
        if not pair.is_blank()
    ]


def items_payload(complex_state: ComplexState) -> list[dict]:
    items: list[dict] = []
    for item in complex_state.ordered():
        pairs = scope_payload(item.scope)
        if not pairs and not item.name:
            continue
        items.append(
            {
                "id": item.id,
                "name": item.name,
                "pair_counter": item.scope.pair_counter,
                "pairs": pairs,
            }
        )
    return items


def snapshot_payload(state: SessionState, timestamp: str | None = None) -> dict:
    return {
        "type": AUTOSAVE_TYPE,
        "schema_version": SCHEMA_VERSION,
        "timestamp": timestamp or _now_iso(),
        "current_page": state.current_page,
        "selected_period": state.selected_period,
        "simple": {
            "pair_counter": state.simple.pair_counter,
            "pairs": scope_payload(state.simple),
        },
        "complex": {
            "item_counter": state.complex.item_counter,
            "items": items_payload(state.complex),
        },
    }


def encode(state: SessionState, timestamp: str | None = None) -> str:
    """Serialize the full live state; the timestamp is captured now unless given."""
    return json.dumps(snapshot_payload(state, timestamp), sort_keys=True)


def _failed(message: str) -> DecodeResult:
    return DecodeResult(status="failed", error=DecodeError(message))


def _section(payload: dict, key: str, warnings: list[str]) -> dict:
    section = payload.get(key)
    if section is None:
        return {}
    if not isinstance(section, dict):
        warnings.append(f"{key} ignored because it is not an object.")
        return {}
    return section


def decode(blob: str | bytes | None) -> DecodeResult:
    """Parse an autosave blob. Never raises; failures come back as ``status="failed"``."""
    if blob is None:
        return _failed("No autosave data.")
    try:
        payload: Any = json.loads(blob)
    except (TypeError, ValueError) as exc:
        return _failed(f"Autosave is not valid JSON: {exc}")
    if not isinstance(payload, dict):
        return _failed("Autosave envelope is not a JSON object.")

    warnings: list[str] = []
    payload_type = payload.get("type")
    if payload_type is None and LEGACY_AUTOSAVE_FIELDS.intersection(payload):
        payload, legacy_warnings = migrate_legacy_autosave(payload)
        warnings.extend(legacy_warnings)
    elif payload_type != AUTOSAVE_TYPE:
        return _failed(f"Unsupported envelope type: {payload_type!r}")

    version = payload.get("schema_version")
    if version != SCHEMA_VERSION:
        warnings.append(f"Autosave schema_version={version}; read as schema_version={SCHEMA_VERSION}.")

    simple = _section(payload, "simple", warnings)
    complex_section = _section(payload, "complex", warnings)
    timestamp = payload.get("timestamp")
    snapshot = AppSnapshot(
        current_page=sanitize_page(payload.get("current_page"), warnings),
        selected_period=sanitize_period(payload.get("selected_period"), warnings),
        simple_pairs=sanitize_entity_list(simple.get("pairs"), warnings, "simple.pairs"),
        complex_items=sanitize_entity_list(complex_section.get("items"), warnings, "complex.items"),
        timestamp=timestamp if isinstance(timestamp, str) else "",
        schema_version=SCHEMA_VERSION,
    )
    return DecodeResult(status="ok", snapshot=snapshot, warnings=warnings)
