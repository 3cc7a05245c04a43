"""Calculator controller: wires entities, autosave, history, and restore together.

The controller has no rendering surface. It emits ``notify(message, severity)``
and ``render(kind, results)`` requests through optional callbacks and keeps the
most recent ones on the instance for a UI adapter to read.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

from tally.calculation import (
    ComplexResult,
    SimpleResult,
    calculate_complex,
    calculate_simple,
    require_data,
)
from tally.config import Settings
from tally.entities import EntityModel, Item, Pair
from tally.errors import EntityNotFound, NoDataError, StorageWriteError
from tally.history import CalculationRecord, HistoryLog
from tally.restore import RestoreReport, restore_record, restore_snapshot
from tally.runtime_logging import append_runtime_event
from tally.schema import (
    AUTOSAVE_KEY,
    COMPLEX_KIND,
    COMPLEX_PAGE,
    MENU_PAGE,
    PAGES,
    SIMPLE_KIND,
    SIMPLE_PAGE,
    SIMPLE_SCOPE,
    item_label,
)
from tally.scheduler import PersistenceScheduler
from tally.snapshot import DecodeResult, decode, encode, items_payload, scope_payload
from tally.storage import LocalStore


SUCCESS = "success"
ERROR = "error"
WARNING = "warning"
INFO = "info"


@dataclass
class Notification:
    message: str
    severity: str = INFO


@dataclass
class DisplayedResult:
    kind: str
    results: Any
    record_id: int | None = None


class CalculatorSession:
    def __init__(
        self,
        store: LocalStore,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
        notify: Callable[[str, str], None] | None = None,
        render: Callable[[str, Any], None] | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.store = store
        self.model = EntityModel()
        self.history = HistoryLog(store, self.settings.history_capacity)
        self.scheduler = PersistenceScheduler(
            self.write_snapshot,
            debounce_seconds=self.settings.debounce_seconds,
            interval_seconds=self.settings.autosave_interval_seconds,
            clock=clock,
        )
        self.model.subscribe(self.scheduler.mark_dirty)
        self.notifications: list[Notification] = []
        self.displayed: dict[str, DisplayedResult | None] = {SIMPLE_KIND: None, COMPLEX_KIND: None}
        self.complex_unlocked = False
        # Bumped whenever entities are rebuilt wholesale so UI widget keys change.
        self.restore_epoch = 0
        # Decoded autosave awaiting a restore or dismiss decision.
        self.pending: DecodeResult | None = None
        self._notify_cb = notify
        self._render_cb = render

    @property
    def state(self):
        return self.model.state

    def notify(self, message: str, severity: str = INFO) -> None:
        self.notifications.append(Notification(message, severity))
        if self._notify_cb is not None:
            self._notify_cb(message, severity)

    def drain_notifications(self) -> list[Notification]:
        out, self.notifications = self.notifications, []
        return out

    def render(self, kind: str, results: Any, record_id: int | None = None) -> None:
        self.displayed[kind] = DisplayedResult(kind, results, record_id)
        if self._render_cb is not None:
            self._render_cb(kind, results)

    # Persistence

    def write_snapshot(self) -> None:
        self.store.set_item(AUTOSAVE_KEY, encode(self.model.state))

    def save_now(self) -> bool:
        return self.scheduler.flush("manual")

    def tick(self) -> bool:
        # The stored autosave is left untouched until the restore prompt is answered.
        if self.pending is not None:
            return False
        return self.scheduler.tick()

    def on_unload(self) -> bool:
        if self.pending is not None:
            return False
        return self.scheduler.on_unload()

    def start(self) -> DecodeResult | None:
        """Load history and return the decoded autosave awaiting a restore decision."""
        self.history.load_all()
        self.pending = self.pending_autosave()
        return self.pending

    def pending_autosave(self) -> DecodeResult | None:
        blob = self.store.get_item(AUTOSAVE_KEY)
        if blob is None:
            return None
        result = decode(blob)
        if not result.ok:
            append_runtime_event(
                level="WARNING",
                event="autosave_decode_failed",
                message="Saved autosave data could not be decoded; starting fresh.",
                context={"error": str(result.error)},
                exc=result.error,
            )
            return None
        return result

    def restore_autosave(self, decoded: DecodeResult | None = None) -> RestoreReport | None:
        if decoded is None:
            decoded = self.pending if self.pending is not None else self.pending_autosave()
        self.pending = None
        self.scheduler.restart_periodic()
        if decoded is None or decoded.snapshot is None:
            return None
        report = restore_snapshot(self.model, decoded.snapshot)
        report.warnings = decoded.warnings + report.warnings
        if self.state.current_page == COMPLEX_PAGE:
            self.complex_unlocked = True
        if self.state.current_page == SIMPLE_PAGE and not self.state.simple.pairs:
            self.model.add_pair(SIMPLE_SCOPE)
        self.restore_epoch += 1
        self._report_restore(report, "autosave")
        self.notify("Data restored successfully!", SUCCESS)
        return report

    def dismiss_autosave(self) -> None:
        """Keep the fresh state; the old autosave is overwritten by the next write."""
        self.pending = None
        self.scheduler.restart_periodic()

    def _report_restore(self, report: RestoreReport, source: str) -> None:
        warning = report.to_warning()
        if warning is None:
            return
        append_runtime_event(
            level="WARNING",
            event="partial_restore",
            message=str(warning),
            context={"source": source, "skipped": report.skipped, "warnings": report.warnings[:25]},
        )
        self.notify(str(warning), WARNING)

    # Navigation

    def show_page(self, page: str) -> None:
        if page not in PAGES:
            raise ValueError(f"Unknown page: {page}")
        self.model.set_page(page)

    def go_to_menu(self) -> None:
        self.show_page(MENU_PAGE)

    def go_to_simple(self) -> None:
        self.show_page(SIMPLE_PAGE)
        if not self.state.simple.pairs:
            self.model.add_pair(SIMPLE_SCOPE)

    def unlock_complex(self, secret: str) -> bool:
        if str(secret) != self.settings.gate_secret:
            self.notify("Incorrect password. Please try again.", ERROR)
            return False
        self.complex_unlocked = True
        self.show_page(COMPLEX_PAGE)
        return True

    def set_period(self, period: str) -> None:
        self.model.set_period(str(period).strip() or self.state.selected_period)

    # Simple calculator

    def add_simple_pair(self) -> Pair:
        return self.model.add_pair(SIMPLE_SCOPE)

    def remove_simple_pair(self, local_id: int) -> bool:
        return self.model.remove_pair(SIMPLE_SCOPE, local_id)

    def set_simple_value(self, local_id: int, field_name: str, value: str) -> bool:
        return self.model.set_pair_value(SIMPLE_SCOPE, local_id, field_name, value)

    # Complex calculator

    def add_item(self, name: str, period: str | None = None) -> Item | None:
        text = str(name or "").strip()
        if not text:
            self.notify("Please select or enter an item name", ERROR)
            return None
        with self.model.batch():
            item = self.model.add_item(item_label(period or self.state.selected_period, text))
            self.model.add_pair(item.id)
        return item

    def remove_item(self, item_id: str) -> bool:
        return self.model.remove_item(item_id)

    def add_item_pair(self, item_id: str) -> Pair | None:
        try:
            return self.model.add_pair(item_id)
        except EntityNotFound:
            return None

    def remove_item_pair(self, item_id: str, local_id: int) -> bool:
        return self.model.remove_pair(item_id, local_id)

    def set_item_value(self, item_id: str, local_id: int, field_name: str, value: str) -> bool:
        return self.model.set_pair_value(item_id, local_id, field_name, value)

    # Calculation

    def _refuse(self, kind: str, exc: NoDataError) -> None:
        append_runtime_event(
            level="INFO",
            event="calculation_refused",
            message=str(exc),
            context={"kind": kind},
        )
        self.notify(str(exc), ERROR)

    def _record(self, kind: str, results: Any, inputs: list) -> CalculationRecord:
        record = self.history.new_record(kind, results, inputs)
        self.history.append(record)
        self.render(kind, results, record.id)
        self.notify("Calculation completed and saved!", SUCCESS)
        return record

    def calculate_simple(self) -> SimpleResult | None:
        try:
            result = require_data(calculate_simple(self.state.simple))
        except NoDataError as exc:
            self._refuse(SIMPLE_KIND, exc)
            return None
        self._record(SIMPLE_KIND, result.payload(), scope_payload(self.state.simple))
        return result

    def calculate_complex(self) -> ComplexResult | None:
        try:
            result = require_data(calculate_complex(self.state.complex))
        except NoDataError as exc:
            self._refuse(COMPLEX_KIND, exc)
            return None
        self._record(COMPLEX_KIND, result.payload(), items_payload(self.state.complex))
        return result

    # History

    def history_for(self, kind: str) -> list[CalculationRecord]:
        return self.history.for_kind(kind)

    def restore_calculation(self, record_id: int) -> bool:
        record = self.history.find_by_id(record_id)
        if record is None:
            self.notify("Calculation not found!", ERROR)
            return False
        report = restore_record(self.model, record)
        self.restore_epoch += 1
        self.render(record.kind, record.results, record.id)
        self._report_restore(report, f"history:{record.id}")
        self.notify("Calculation restored successfully!", SUCCESS)
        return True

    # Reset and cleanup

    def reset_simple(self) -> None:
        with self.model.batch():
            self.model.clear_simple()
            self.model.add_pair(SIMPLE_SCOPE)
        self.displayed[SIMPLE_KIND] = None
        self.restore_epoch += 1
        self.save_now()
        self.notify("Simple calculator reset", INFO)

    def reset_complex(self) -> None:
        self.model.clear_complex()
        self.displayed[COMPLEX_KIND] = None
        self.restore_epoch += 1
        self.save_now()
        self.notify("Complex calculator reset", INFO)

    def clear_all_saved_data(self) -> bool:
        """Delete the autosave and purge history; live entities are left as they are."""
        ok = True
        try:
            self.store.remove_item(AUTOSAVE_KEY)
        except StorageWriteError as exc:
            ok = False
            append_runtime_event(
                level="ERROR",
                event="autosave_write_failed",
                message="Autosave could not be removed.",
                context={"key": AUTOSAVE_KEY},
                exc=exc,
            )
        ok = self.history.purge() and ok
        self.notify("All saved data cleared", INFO)
        return ok


class UnloadHook:
    """Process-exit callback that flushes only the most recently active session."""

    def __init__(self) -> None:
        self.latest: CalculatorSession | None = None

    def touch(self, session: CalculatorSession) -> None:
        self.latest = session

    def __call__(self) -> bool:
        if self.latest is None:
            return False
        return self.latest.on_unload()
