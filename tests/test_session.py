from __future__ import annotations

import json

import tally.runtime_logging as runtime_logging
from tally.schema import AUTOSAVE_KEY, COMPLEX_KIND, COMPLEX_PAGE, HISTORY_KEY, SIMPLE_KIND, SIMPLE_PAGE
from tally.session import ERROR, SUCCESS, WARNING, CalculatorSession, UnloadHook


def _messages(session: CalculatorSession) -> list[tuple[str, str]]:
    return [(n.message, n.severity) for n in session.drain_notifications()]


def test_go_to_simple_adds_a_first_pair(session):
    session.go_to_simple()
    session.go_to_simple()
    assert session.state.current_page == SIMPLE_PAGE
    assert len(session.state.simple.pairs) == 1


def test_complex_gate(session):
    assert session.unlock_complex("0000") is False
    assert _messages(session) == [("Incorrect password. Please try again.", ERROR)]
    assert session.state.current_page != COMPLEX_PAGE

    assert session.unlock_complex("1625") is True
    assert session.complex_unlocked is True
    assert session.state.current_page == COMPLEX_PAGE


def test_add_item_prefixes_period_and_adds_pair(session):
    assert session.add_item("   ") is None
    assert _messages(session) == [("Please select or enter an item name", ERROR)]

    session.set_period("Roman")
    item = session.add_item("Pottery")
    assert item.name == "Roman Pottery"
    assert list(item.scope.pairs) == [1]
    assert session.add_item("Glass", period="Iron Age").name == "Iron Age Glass"
    assert session.add_item_pair("item-99") is None


def test_calculate_simple_records_history(session, store):
    session.go_to_simple()
    session.set_simple_value(1, "quantity", "3")
    session.set_simple_value(1, "weight", "2.5")
    session.add_simple_pair()
    session.set_simple_value(2, "quantity", "2")

    result = session.calculate_simple()

    assert result.payload() == {"total_quantity": "5", "total_weight": "2.5"}
    assert _messages(session) == [("Calculation completed and saved!", SUCCESS)]
    shown = session.displayed[SIMPLE_KIND]
    assert shown.results == {"total_quantity": "5", "total_weight": "2.5"}
    stored = json.loads(store.get_item(HISTORY_KEY))
    assert stored[0]["id"] == shown.record_id
    assert stored[0]["input_snapshot"] == [
        {"id": 1, "quantity": "3", "weight": "2.5"},
        {"id": 2, "quantity": "2", "weight": ""},
    ]


def test_calculate_without_data_is_refused(session, store, runtime_log):
    session.go_to_simple()
    assert session.calculate_simple() is None
    assert session.calculate_complex() is None
    assert _messages(session) == [("Please add some data before calculating", ERROR)] * 2
    assert store.get_item(HISTORY_KEY) is None
    assert len(session.history) == 0
    events = [e["event"] for e in runtime_logging.read_runtime_events(limit=10)]
    assert events == ["calculation_refused", "calculation_refused"]


def test_history_eviction_and_restore(session):
    item = session.add_item("Flint")
    for quantity in ("1", "2", "3"):
        session.set_item_value(item.id, 1, "quantity", quantity)
        session.calculate_complex()
    records = session.history_for(COMPLEX_KIND)
    assert len(records) == 2
    newest, oldest = records
    session.drain_notifications()

    assert session.restore_calculation(12345) is False
    assert _messages(session) == [("Calculation not found!", ERROR)]

    epoch = session.restore_epoch
    assert session.restore_calculation(oldest.id) is True
    assert session.restore_epoch == epoch + 1
    assert _messages(session) == [("Calculation restored successfully!", SUCCESS)]
    restored = session.state.complex.ordered()
    assert [(i.name, i.scope.ordered()[0].quantity) for i in restored] == [("Pre-Historic Flint", "2")]
    assert session.displayed[COMPLEX_KIND].record_id == oldest.id
    assert newest.id > oldest.id


def test_startup_recovery_restores_autosave(store, settings, clock):
    first = CalculatorSession(store, settings, clock=clock)
    first.unlock_complex("1625")
    first.set_period("Bronze Age")
    item = first.add_item("Metalwork")
    first.set_item_value(item.id, 1, "weight", "0.75")
    assert first.save_now() is True

    second = CalculatorSession(store, settings, clock=clock)
    pending = second.start()
    assert pending is not None and pending.ok
    report = second.restore_autosave(pending)

    assert not report.partial
    assert second.complex_unlocked is True
    assert second.state.current_page == COMPLEX_PAGE
    assert second.state.selected_period == "Bronze Age"
    assert [(i.name, i.scope.ordered()[0].weight) for i in second.state.complex.ordered()] == [
        ("Bronze Age Metalwork", "0.75")
    ]
    assert _messages(second) == [("Data restored successfully!", SUCCESS)]


def test_partial_autosave_restore_warns(store, settings, clock):
    blob = json.dumps(
        {
            "type": "autosave",
            "schema_version": 1,
            "current_page": "complex",
            "complex": {"items": [{"name": "Roman Shell", "pairs": []}, {"pairs": []}]},
        }
    )
    store.set_item(AUTOSAVE_KEY, blob)
    session = CalculatorSession(store, settings, clock=clock)

    report = session.restore_autosave()

    assert report.skipped == 1
    messages = _messages(session)
    assert messages[0][1] == WARNING
    assert messages[-1] == ("Data restored successfully!", SUCCESS)
    assert [i.name for i in session.state.complex.ordered()] == ["Roman Shell"]


def test_corrupt_autosave_starts_fresh(store, settings, clock, runtime_log):
    store.set_item(AUTOSAVE_KEY, "{truncated")
    session = CalculatorSession(store, settings, clock=clock)

    assert session.start() is None
    assert session.restore_autosave() is None
    assert runtime_logging.read_runtime_events(limit=5)[-1]["event"] == "autosave_decode_failed"


def test_reset_saves_immediately(session, store):
    session.go_to_simple()
    session.set_simple_value(1, "quantity", "9")
    session.reset_simple()

    saved = json.loads(store.get_item(AUTOSAVE_KEY))
    assert saved["simple"]["pairs"] == []
    assert saved["simple"]["pair_counter"] == 1
    assert list(session.state.simple.pairs) == [1]
    assert _messages(session)[-1] == ("Simple calculator reset", "info")


def test_clear_all_saved_data(session, store):
    session.go_to_simple()
    session.set_simple_value(1, "quantity", "1")
    session.calculate_simple()
    session.save_now()

    assert session.clear_all_saved_data() is True
    assert store.get_item(AUTOSAVE_KEY) is None
    assert store.get_item(HISTORY_KEY) is None
    assert session.state.simple.pairs[1].quantity == "1"


def test_write_failure_is_non_fatal(tmp_path, settings, clock):
    from tally.storage import LocalStore

    session = CalculatorSession(LocalStore(tmp_path / "tiny", quota_bytes=20), settings, clock=clock)
    session.go_to_simple()
    assert session.save_now() is False
    assert session.scheduler.failure_count == 1
    session.set_simple_value(1, "quantity", "4")
    assert session.state.simple.pairs[1].quantity == "4"


def test_dismiss_autosave_keeps_fresh_state(store, settings, clock):
    first = CalculatorSession(store, settings, clock=clock)
    first.go_to_simple()
    first.set_simple_value(1, "quantity", "7")
    first.save_now()

    second = CalculatorSession(store, settings, clock=clock)
    assert second.start() is second.pending
    second.dismiss_autosave()

    assert second.pending is None
    assert second.state.simple.pairs == {}
    assert second.state.current_page == "menu"


def test_unanswered_restore_prompt_keeps_stored_autosave(store, settings, clock):
    first = CalculatorSession(store, settings, clock=clock)
    first.go_to_simple()
    first.set_simple_value(1, "quantity", "7")
    first.save_now()

    second = CalculatorSession(store, settings, clock=clock)
    second.start()
    clock.advance(30)
    assert second.tick() is False
    assert second.on_unload() is False

    third = CalculatorSession(store, settings, clock=clock)
    assert third.start().snapshot.simple_pairs == [{"id": 1, "quantity": "7", "weight": ""}]

    second.dismiss_autosave()
    assert second.tick() is False
    clock.advance(30)
    assert second.tick() is True


def test_restore_answer_restarts_periodic_timer(store, settings, clock):
    first = CalculatorSession(store, settings, clock=clock)
    first.go_to_simple()
    first.save_now()

    second = CalculatorSession(store, settings, clock=clock)
    second.start()
    clock.advance(45)
    second.restore_autosave()

    assert second.scheduler.next_periodic == clock() + settings.autosave_interval_seconds


def test_unload_hook_flushes_latest_session_only(store, settings, clock):
    older = CalculatorSession(store, settings, clock=clock)
    older.go_to_simple()
    older.set_simple_value(1, "quantity", "1")
    latest = CalculatorSession(store, settings, clock=clock)
    latest.go_to_simple()
    latest.set_simple_value(1, "quantity", "2")

    hook = UnloadHook()
    assert hook() is False
    hook.touch(older)
    hook.touch(latest)

    assert hook() is True
    assert older.scheduler.write_count == 0
    saved = json.loads(store.get_item(AUTOSAVE_KEY))
    assert saved["simple"]["pairs"][0]["quantity"] == "2"
