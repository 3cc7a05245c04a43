"""Bounded, most-recent-first log of completed calculations."""

from __future__ import annotations

import json
import time
from copy import deepcopy
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from tally.errors import DecodeError, StorageWriteError
from tally.runtime_logging import append_runtime_event
from tally.schema import CALCULATION_KINDS, HISTORY_KEY, SIMPLE_KIND
from tally.storage import LocalStore


LEGACY_RESULT_KEYS = {"totalQuantity": "total_quantity", "totalWeight": "total_weight"}


def _normalize_results(kind: str, results: Any) -> Any:
    if kind != SIMPLE_KIND or not isinstance(results, dict):
        return deepcopy(results)
    return {LEGACY_RESULT_KEYS.get(key, key): deepcopy(value) for key, value in results.items()}


@dataclass
class CalculationRecord:
    id: int
    kind: str
    timestamp: str
    results: Any
    input_snapshot: list

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "timestamp": self.timestamp,
            "results": deepcopy(self.results),
            "input_snapshot": deepcopy(self.input_snapshot),
        }

    @classmethod
    def from_dict(cls, raw: Any) -> CalculationRecord | None:
        """Build a record from stored JSON, accepting the legacy ``type``/``data`` keys."""
        if not isinstance(raw, dict):
            return None
        record_id = raw.get("id")
        if isinstance(record_id, bool) or not isinstance(record_id, int):
            return None
        kind = raw.get("kind", raw.get("type"))
        if kind not in CALCULATION_KINDS:
            return None
        inputs = raw.get("input_snapshot", raw.get("data", []))
        timestamp = raw.get("timestamp")
        return cls(
            id=record_id,
            kind=kind,
            timestamp=timestamp if isinstance(timestamp, str) else "",
            results=_normalize_results(kind, raw.get("results")),
            input_snapshot=deepcopy(inputs) if isinstance(inputs, list) else [],
        )


def decode_history(blob: str | None) -> list[CalculationRecord]:
    """Decode a stored history array; raises DecodeError when it is not a JSON list."""
    if blob is None:
        return []
    try:
        data = json.loads(blob)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"History is not valid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise DecodeError("History is not a JSON array.")
    records = [CalculationRecord.from_dict(entry) for entry in data]
    return [record for record in records if record is not None]


def encode_history(records: list[CalculationRecord]) -> str:
    return json.dumps([record.to_dict() for record in records], sort_keys=True)


class HistoryLog:
    """History persisted under one store key, capped at ``capacity`` records."""

    def __init__(self, store: LocalStore, capacity: int, key: str = HISTORY_KEY) -> None:
        if int(capacity) < 1:
            raise ValueError("History capacity must be at least 1.")
        self.store = store
        self.capacity = int(capacity)
        self.key = key
        self._records: list[CalculationRecord] = []
        self._last_id = 0

    @property
    def records(self) -> list[CalculationRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def load_all(self) -> list[CalculationRecord]:
        """Read history from the store; absence or corruption yields an empty log."""
        try:
            records = decode_history(self.store.get_item(self.key))
        except DecodeError as exc:
            append_runtime_event(
                level="WARNING",
                event="history_decode_failed",
                message="Stored calculation history could not be decoded; starting empty.",
                context={"key": self.key},
                exc=exc,
            )
            records = []
        self._records = records[: self.capacity]
        self._last_id = max([self._last_id] + [record.id for record in self._records])
        return self.records

    def next_id(self, now_ms: int | None = None) -> int:
        """Creation-instant id, bumped past the latest issued id to stay unique."""
        candidate = int(time.time() * 1000) if now_ms is None else int(now_ms)
        if candidate <= self._last_id:
            candidate = self._last_id + 1
        self._last_id = candidate
        return candidate

    def new_record(self, kind: str, results: Any, input_snapshot: list, now_ms: int | None = None) -> CalculationRecord:
        if kind not in CALCULATION_KINDS:
            raise ValueError(f"Unknown calculation kind: {kind}")
        return CalculationRecord(
            id=self.next_id(now_ms),
            kind=kind,
            timestamp=datetime.now(timezone.utc).isoformat(),
            results=deepcopy(results),
            input_snapshot=deepcopy(input_snapshot),
        )

    def append(self, record: CalculationRecord) -> bool:
        """Insert at the front of the stored history, evict past capacity, persist.

        The stored list is re-read first so records appended by other sessions
        sharing the store survive. Returns False if the write failed.
        """
        stored = self.load_all()
        self._last_id = max(self._last_id, record.id)
        self._records = [record] + [r for r in stored if r.id != record.id]
        del self._records[self.capacity :]
        try:
            self.store.set_item(self.key, encode_history(self._records))
        except StorageWriteError as exc:
            append_runtime_event(
                level="ERROR",
                event="history_write_failed",
                message="Calculation history could not be persisted.",
                context={"record_id": record.id, "kind": record.kind},
                exc=exc,
            )
            return False
        return True

    def find_by_id(self, record_id: int) -> CalculationRecord | None:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def for_kind(self, kind: str) -> list[CalculationRecord]:
        return [record for record in self._records if record.kind == kind]

    def purge(self) -> bool:
        """Delete persisted history outright (distinct from capacity eviction)."""
        self._records = []
        try:
            self.store.remove_item(self.key)
        except StorageWriteError as exc:
            append_runtime_event(
                level="ERROR",
                event="history_write_failed",
                message="Calculation history could not be purged.",
                context={"key": self.key},
                exc=exc,
            )
            return False
        append_runtime_event(
            level="INFO",
            event="history_purged",
            message="Calculation history purged.",
            context={"key": self.key},
        )
        return True
