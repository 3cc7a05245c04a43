"""Rebuild live entities from an autosave snapshot or a history record.

Entities are always re-created through the normal ``add_item``/``add_pair``
operations, so restored entities receive fresh ids from freshly reset counters.
Serialized ids are never reused. A malformed entity is skipped and reported;
the rest of the batch is still restored.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from tally.entities import EntityModel
from tally.errors import EntityNotFound, PartialRestoreWarning
from tally.history import CalculationRecord
from tally.schema import PAIR_FIELDS, SIMPLE_KIND, SIMPLE_SCOPE
from tally.snapshot import AppSnapshot


@dataclass
class RestoreReport:
    restored_items: int = 0
    restored_pairs: int = 0
    skipped: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return self.skipped > 0

    def merge(self, other: RestoreReport) -> None:
        self.restored_items += other.restored_items
        self.restored_pairs += other.restored_pairs
        self.skipped += other.skipped
        self.warnings.extend(other.warnings)

    def to_warning(self) -> PartialRestoreWarning | None:
        if not self.partial:
            return None
        return PartialRestoreWarning(
            f"Restore was incomplete: {self.skipped} malformed entr{'y was' if self.skipped == 1 else 'ies were'} skipped."
        )


def _field_text(value: Any) -> str | None:
    if value is None:
        return ""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and math.isfinite(value):
        return str(int(value)) if value.is_integer() else str(value)
    return None


def _pair_values(raw: Any) -> dict[str, str] | None:
    if not isinstance(raw, dict):
        return None
    values: dict[str, str] = {}
    for field_name in PAIR_FIELDS:
        text = _field_text(raw.get(field_name))
        if text is None:
            return None
        values[field_name] = text
    return values


def _restore_pairs(model: EntityModel, scope_id: str, raw_pairs: list, report: RestoreReport, label: str) -> None:
    for idx, raw in enumerate(raw_pairs):
        values = _pair_values(raw)
        if values is None:
            report.skipped += 1
            report.warnings.append(f"{label}[{idx}] skipped because the pair is malformed.")
            continue
        try:
            pair = model.add_pair(scope_id)
        except EntityNotFound as exc:
            report.skipped += 1
            report.warnings.append(f"{label}[{idx}] skipped: {exc}")
            continue
        for field_name, text in values.items():
            model.set_pair_value(scope_id, pair.local_id, field_name, text)
        report.restored_pairs += 1


def restore_simple(model: EntityModel, raw_pairs: Any) -> RestoreReport:
    report = RestoreReport()
    with model.batch():
        model.clear_simple()
        if not isinstance(raw_pairs, list):
            if raw_pairs is not None:
                report.skipped += 1
                report.warnings.append("simple pairs skipped because they are not a list.")
            return report
        _restore_pairs(model, SIMPLE_SCOPE, raw_pairs, report, "simple.pairs")
    return report


def _item_parts(raw: Any) -> tuple[str, list] | None:
    if not isinstance(raw, dict):
        return None
    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        return None
    pairs = raw.get("pairs", [])
    if pairs is None:
        pairs = []
    if not isinstance(pairs, list):
        return None
    return name, pairs


def restore_complex(model: EntityModel, raw_items: Any) -> RestoreReport:
    report = RestoreReport()
    with model.batch():
        model.clear_complex()
        if not isinstance(raw_items, list):
            if raw_items is not None:
                report.skipped += 1
                report.warnings.append("complex items skipped because they are not a list.")
            return report
        for idx, raw in enumerate(raw_items):
            parts = _item_parts(raw)
            if parts is None:
                report.skipped += 1
                report.warnings.append(f"complex.items[{idx}] skipped because the item is malformed.")
                continue
            name, raw_pairs = parts
            item = model.add_item(name)
            report.restored_items += 1
            _restore_pairs(model, item.id, raw_pairs, report, f"complex.items[{idx}].pairs")
    return report


def restore_snapshot(model: EntityModel, snapshot: AppSnapshot) -> RestoreReport:
    """Restore both calculators, then re-apply page and period."""
    report = RestoreReport()
    with model.batch():
        report.merge(restore_simple(model, snapshot.simple_pairs))
        report.merge(restore_complex(model, snapshot.complex_items))
        model.set_period(snapshot.selected_period or model.state.selected_period)
        model.set_page(snapshot.current_page)
    return report


def restore_record(model: EntityModel, record: CalculationRecord) -> RestoreReport:
    """Replay a history record's inputs into the calculator of the same kind."""
    if record.kind == SIMPLE_KIND:
        return restore_simple(model, record.input_snapshot)
    return restore_complex(model, record.input_snapshot)
