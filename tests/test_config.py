from __future__ import annotations

from pathlib import Path

from tally.config import (
    AUTOSAVE_INTERVAL_ENV_VAR,
    DEBOUNCE_ENV_VAR,
    GATE_SECRET_ENV_VAR,
    HISTORY_CAPACITY_ENV_VAR,
    STORAGE_ENV_VAR,
    Settings,
    expand_storage_root,
    settings_from_env,
)


def test_defaults_when_unset():
    assert settings_from_env({}) == Settings()


def test_values_are_read_and_clamped(tmp_path):
    settings = settings_from_env(
        {
            STORAGE_ENV_VAR: str(tmp_path),
            HISTORY_CAPACITY_ENV_VAR: "500",
            DEBOUNCE_ENV_VAR: "0.25",
            AUTOSAVE_INTERVAL_ENV_VAR: "0",
            GATE_SECRET_ENV_VAR: " open ",
        }
    )
    assert settings.storage_root == tmp_path
    assert settings.history_capacity == 50
    assert settings.debounce_seconds == 0.25
    assert settings.autosave_interval_seconds == 1.0
    assert settings.gate_secret == "open"


def test_bad_values_fall_back_to_defaults():
    settings = settings_from_env({HISTORY_CAPACITY_ENV_VAR: "many", DEBOUNCE_ENV_VAR: "nan", GATE_SECRET_ENV_VAR: "  "})
    assert settings.history_capacity == 5
    assert settings.debounce_seconds == 1.0
    assert settings.gate_secret == "1625"


def test_expand_storage_root(monkeypatch):
    monkeypatch.setenv("TALLY_TEST_HOME", "/data")
    assert expand_storage_root("$TALLY_TEST_HOME/store") == Path("/data/store")
    assert expand_storage_root("  ") == Path(".local_store")
