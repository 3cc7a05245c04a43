import atexit
import re
from pathlib import Path

import pandas as pd
import plotly.express as px
import streamlit as st

from tally.calculation import format_weight, summarize_results
from tally.config import settings_from_env
from tally.runtime_logging import (
    LEVELS,
    append_runtime_event,
    clear_runtime_events,
    install_global_exception_logging,
    read_runtime_events,
    runtime_log_path,
)
from tally.scheduler import IDLE
from tally.schema import (
    COMPLEX_KIND,
    COMPLEX_PAGE,
    CUSTOM_ITEM_OPTION,
    ITEM_NAME_OPTIONS,
    PERIOD_OPTIONS,
    QUANTITY_FIELD,
    SIMPLE_KIND,
    SIMPLE_PAGE,
    SIMPLE_SCOPE,
    WEIGHT_FIELD,
)
from tally.session import CalculatorSession, UnloadHook
from tally.storage import configure_storage_root


install_global_exception_logging()


UI_DEFAULTS = {
    "show_gate": False,
    "gate_secret_input": "",
    "new_item_choice": "",
    "custom_item_name": "",
    "confirm_clear_saved": False,
    "runtime_log_limit": 100,
    "runtime_log_level": "INFO",
}

NOTIFY_RENDERERS = {
    "success": st.success,
    "error": st.error,
    "warning": st.warning,
    "info": st.info,
}


def _mask_quantity(text: str) -> tuple[str, bool]:
    raw = str(text or "")
    had_decimal = bool(re.search(r"[.,]", raw))
    value = re.split(r"[.,]", raw, maxsplit=1)[0]
    return re.sub(r"\D", "", value), had_decimal


def _mask_weight(text: str) -> str:
    value = re.sub(r"[^\d.]", "", str(text or ""))
    head, sep, tail = value.partition(".")
    return head + sep + tail.replace(".", "")[:1]


def _session() -> CalculatorSession:
    if "calculator" not in st.session_state:
        settings = settings_from_env()
        store = configure_storage_root(settings.storage_root)
        session = CalculatorSession(store, settings)
        session.start()
        st.session_state["calculator"] = session
    return st.session_state["calculator"]


@st.cache_resource
def _unload_hook() -> UnloadHook:
    hook = UnloadHook()
    atexit.register(hook)
    return hook


def _widget_key(scope_id: str, local_id: int, field_name: str) -> str:
    return f"{scope_id}:{local_id}:{field_name}:{_session().restore_epoch}"


def _on_pair_edit(scope_id: str, local_id: int, field_name: str, widget_key: str) -> None:
    session = _session()
    raw = st.session_state.get(widget_key, "")
    if field_name == QUANTITY_FIELD:
        masked, had_decimal = _mask_quantity(raw)
        if had_decimal:
            session.notify("Quantities must be whole numbers only. Decimals are not allowed.", "error")
    else:
        masked = _mask_weight(raw)
    if masked != raw:
        st.session_state[widget_key] = masked
    session.model.set_pair_value(scope_id, local_id, field_name, masked)


def _on_add_item() -> None:
    choice = st.session_state.get("new_item_choice", "")
    name = st.session_state.get("custom_item_name", "") if choice == CUSTOM_ITEM_OPTION else choice
    if _session().add_item(name) is not None:
        st.session_state["new_item_choice"] = ""
        st.session_state["custom_item_name"] = ""


def _on_gate_submit() -> None:
    if _session().unlock_complex(st.session_state.get("gate_secret_input", "")):
        st.session_state["show_gate"] = False
    st.session_state["gate_secret_input"] = ""


def _on_go_to_menu() -> None:
    _session().go_to_menu()
    st.session_state["show_gate"] = False
    st.session_state["gate_secret_input"] = ""


def _on_period_change(widget_key: str) -> None:
    _session().set_period(st.session_state.get(widget_key, ""))


def _on_clear_saved() -> None:
    _session().clear_all_saved_data()
    st.session_state["confirm_clear_saved"] = False


def _pair_inputs(scope_id: str, pair, on_remove, remove_args: tuple) -> None:
    header, remove_col = st.columns([4, 1])
    header.markdown(f"**Pair {pair.local_id}**")
    remove_col.button(
        "Remove",
        key=f"remove:{scope_id}:{pair.local_id}:{_session().restore_epoch}",
        on_click=on_remove,
        args=remove_args,
    )
    q_col, w_col = st.columns(2)
    for col, field_name, label, placeholder in (
        (q_col, QUANTITY_FIELD, "Quantity", "Enter quantity"),
        (w_col, WEIGHT_FIELD, "Weight", "Enter weight"),
    ):
        key = _widget_key(scope_id, pair.local_id, field_name)
        if key not in st.session_state:
            st.session_state[key] = getattr(pair, field_name)
        col.text_input(
            label,
            key=key,
            placeholder=placeholder,
            on_change=_on_pair_edit,
            args=(scope_id, pair.local_id, field_name, key),
        )


def _history_section(kind: str) -> None:
    session = _session()
    st.markdown("#### Recent Calculations")
    records = session.history_for(kind)
    if not records:
        st.caption("No recent calculations found")
        return
    for record in records:
        info_col, button_col = st.columns([4, 1])
        info_col.markdown(f"**{record.timestamp}**  \n{summarize_results(kind, record.results)}")
        button_col.button(
            "Restore",
            key=f"restore_calc:{record.id}",
            on_click=session.restore_calculation,
            args=(record.id,),
        )


def _simple_results() -> None:
    shown = _session().displayed.get(SIMPLE_KIND)
    if shown is None:
        return
    st.subheader("Results")
    c1, c2 = st.columns(2)
    c1.metric("Total Quantity", shown.results.get("total_quantity", "0"))
    c2.metric("Total Weight", shown.results.get("total_weight", "0"))


def _complex_results() -> None:
    shown = _session().displayed.get(COMPLEX_KIND)
    if shown is None:
        return
    st.subheader("Results")
    rows = [
        {"Item": row.get("name", ""), "Quantity": row.get("quantity", 0), "Weight": format_weight(row.get("weight", 0))}
        for row in shown.results
        if isinstance(row, dict)
    ]
    results_df = pd.DataFrame(rows, columns=["Item", "Quantity", "Weight"])
    st.dataframe(results_df, hide_index=True)
    if not results_df.empty:
        chart_df = results_df.assign(Weight=pd.to_numeric(results_df["Weight"], errors="coerce"))
        fig = px.bar(chart_df, x="Item", y="Weight", title="Weight by Item")
        st.plotly_chart(fig)


def _menu_page() -> None:
    st.header("Choose a Calculator")
    c1, c2 = st.columns(2)
    c1.button("Simple Calculator", key="go_simple", on_click=_session().go_to_simple)
    if c2.button("Complex Calculator", key="go_complex"):
        st.session_state["show_gate"] = True
    if st.session_state["show_gate"]:
        st.text_input("Password", type="password", key="gate_secret_input")
        st.button("Enter", key="gate_submit", on_click=_on_gate_submit)


def _simple_page() -> None:
    session = _session()
    st.header("Simple Calculator")
    st.button("Back to Menu", key="simple_back", on_click=_on_go_to_menu)
    for pair in session.state.simple.ordered():
        with st.container(border=True):
            _pair_inputs(SIMPLE_SCOPE, pair, session.remove_simple_pair, (pair.local_id,))
    st.button("+ Add Number Pair", key="simple_add_pair", on_click=session.add_simple_pair)
    _history_section(SIMPLE_KIND)
    b1, b2 = st.columns(2)
    b1.button("Calculate", key="simple_calculate", type="primary", on_click=session.calculate_simple)
    b2.button("Reset", key="simple_reset", on_click=session.reset_simple)
    _simple_results()


def _complex_page() -> None:
    session = _session()
    st.header("Complex Calculator")
    st.button("Back to Menu", key="complex_back", on_click=_on_go_to_menu)
    _complex_results()

    period_key = f"period_select:{session.restore_epoch}"
    if period_key not in st.session_state:
        st.session_state[period_key] = session.state.selected_period
    period_options = list(PERIOD_OPTIONS)
    if session.state.selected_period not in period_options:
        period_options.insert(0, session.state.selected_period)
    st.selectbox("Period", options=period_options, key=period_key, on_change=_on_period_change, args=(period_key,))
    st.selectbox(
        "Item Name",
        options=[""] + ITEM_NAME_OPTIONS + [CUSTOM_ITEM_OPTION],
        key="new_item_choice",
        format_func=lambda v: "Select an item" if v == "" else ("Custom name..." if v == CUSTOM_ITEM_OPTION else v),
    )
    if st.session_state["new_item_choice"] == CUSTOM_ITEM_OPTION:
        st.text_input("Custom Item Name", key="custom_item_name")
    st.button("Add Item", key="complex_add_item", on_click=_on_add_item)

    for item in session.state.complex.ordered():
        with st.container(border=True):
            title_col, remove_col = st.columns([4, 1])
            title_col.subheader(item.name)
            remove_col.button(
                "Remove Item",
                key=f"remove_item:{item.id}:{session.restore_epoch}",
                on_click=session.remove_item,
                args=(item.id,),
            )
            for pair in item.scope.ordered():
                _pair_inputs(item.id, pair, session.remove_item_pair, (item.id, pair.local_id))
            st.button(
                "+ Add Number Pair",
                key=f"add_pair:{item.id}:{session.restore_epoch}",
                on_click=session.add_item_pair,
                args=(item.id,),
            )

    _history_section(COMPLEX_KIND)
    b1, b2 = st.columns(2)
    b1.button("Calculate All", key="complex_calculate", type="primary", on_click=session.calculate_complex)
    b2.button("Reset All", key="complex_reset", on_click=session.reset_complex)


def _autosave_heartbeat() -> None:
    session = _session()
    session.tick()
    if session.scheduler.state == IDLE:
        st.caption("All changes saved.")
    else:
        st.caption("Unsaved changes pending autosave.")


def _sidebar() -> None:
    session = _session()
    with st.sidebar:
        st.header("Saved Data")
        st.caption(f"Local store: `{session.store.path.resolve()}`")
        st.caption(f"History keeps the last {session.history.capacity} calculations.")
        if st.button("Save Now", key="save_now"):
            if not session.save_now():
                st.warning("Autosave failed; it will retry automatically.")
        st.checkbox("I understand this cannot be undone", key="confirm_clear_saved")
        st.button(
            "Clear All Saved Data",
            key="clear_saved",
            disabled=not st.session_state["confirm_clear_saved"],
            on_click=_on_clear_saved,
        )

        st.subheader("Runtime Diagnostics")
        log_path = Path(runtime_log_path())
        st.caption(f"Runtime log file: `{log_path}`")
        st.number_input("Recent runtime log rows", min_value=10, max_value=2000, step=10, key="runtime_log_limit")
        st.selectbox("Minimum level", options=list(LEVELS), key="runtime_log_level")
        events = read_runtime_events(
            limit=int(st.session_state["runtime_log_limit"]),
            min_level=st.session_state["runtime_log_level"],
        )
        if events:
            events_df = pd.DataFrame(events)
            preferred_cols = ["timestamp_utc", "level", "event", "message", "exception_type", "context"]
            cols = [c for c in preferred_cols if c in events_df.columns]
            st.dataframe(events_df[cols].astype(str), hide_index=True)
        else:
            st.caption("No runtime events logged yet.")
        if log_path.exists() and st.button("Clear Runtime Log", key="clear_runtime_log"):
            if clear_runtime_events():
                st.success("Runtime log cleared.")
            else:
                st.warning("Could not clear runtime log file.")


st.set_page_config(page_title="Quantity & Weight Calculator", layout="centered")
st.title("Quantity & Weight Calculator")

for k, v in UI_DEFAULTS.items():
    st.session_state.setdefault(k, v)

session = _session()
_unload_hook().touch(session)
session.tick()

for note in session.drain_notifications():
    NOTIFY_RENDERERS.get(note.severity, st.info)(note.message)

pending = session.pending
if pending is not None and pending.snapshot is not None:
    saved_at = pending.snapshot.timestamp or "an earlier session"
    st.info(f"Found saved data from {saved_at}. Would you like to restore it?")
    r1, r2 = st.columns(2)
    r1.button("Restore Saved Data", key="restore_autosave", on_click=session.restore_autosave)
    r2.button("Start Fresh", key="dismiss_autosave", on_click=session.dismiss_autosave)

page = session.state.current_page
if page == COMPLEX_PAGE and not session.complex_unlocked:
    append_runtime_event(
        level="INFO",
        event="complex_page_locked",
        message="Complex page requested without unlocking; showing menu.",
    )
    session.go_to_menu()
    page = session.state.current_page

if page == SIMPLE_PAGE:
    _simple_page()
elif page == COMPLEX_PAGE:
    _complex_page()
else:
    _menu_page()

_sidebar()
st.fragment(run_every=max(0.5, session.settings.debounce_seconds))(_autosave_heartbeat)()
