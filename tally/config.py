"""Runtime settings resolved from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping


_DEFAULT_STORE_DIR = Path(".local_store")

STORAGE_ENV_VAR = "TALLY_STORAGE_ROOT"
HISTORY_CAPACITY_ENV_VAR = "TALLY_HISTORY_CAPACITY"
DEBOUNCE_ENV_VAR = "TALLY_DEBOUNCE_SECONDS"
AUTOSAVE_INTERVAL_ENV_VAR = "TALLY_AUTOSAVE_INTERVAL_SECONDS"
GATE_SECRET_ENV_VAR = "TALLY_GATE_SECRET"

DEFAULT_HISTORY_CAPACITY = 5
MAX_HISTORY_CAPACITY = 50
DEFAULT_DEBOUNCE_SECONDS = 1.0
DEFAULT_AUTOSAVE_INTERVAL_SECONDS = 30.0
DEFAULT_GATE_SECRET = "1625"


@dataclass(frozen=True)
class Settings:
    storage_root: Path = _DEFAULT_STORE_DIR
    history_capacity: int = DEFAULT_HISTORY_CAPACITY
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    autosave_interval_seconds: float = DEFAULT_AUTOSAVE_INTERVAL_SECONDS
    gate_secret: str = DEFAULT_GATE_SECRET


def expand_storage_root(path_value: str | Path | None) -> Path:
    if path_value is None:
        return _DEFAULT_STORE_DIR
    text = str(path_value).strip()
    if not text:
        return _DEFAULT_STORE_DIR
    expanded = os.path.expandvars(os.path.expanduser(text))
    return Path(expanded)


def _int_setting(env: Mapping[str, str], key: str, default: int, lo: int, hi: int) -> int:
    try:
        value = int(str(env.get(key, "")).strip())
    except ValueError:
        return default
    return int(min(hi, max(lo, value)))


def _float_setting(env: Mapping[str, str], key: str, default: float, lo: float) -> float:
    try:
        value = float(str(env.get(key, "")).strip())
    except ValueError:
        return default
    if value != value:  # NaN
        return default
    return float(max(lo, value))


def settings_from_env(environ: Mapping[str, str] | None = None) -> Settings:
    """Build settings from the environment, falling back to defaults on bad values."""
    env = os.environ if environ is None else environ
    secret = str(env.get(GATE_SECRET_ENV_VAR, "")).strip() or DEFAULT_GATE_SECRET
    return Settings(
        storage_root=expand_storage_root(env.get(STORAGE_ENV_VAR, "")),
        history_capacity=_int_setting(env, HISTORY_CAPACITY_ENV_VAR, DEFAULT_HISTORY_CAPACITY, 1, MAX_HISTORY_CAPACITY),
        debounce_seconds=_float_setting(env, DEBOUNCE_ENV_VAR, DEFAULT_DEBOUNCE_SECONDS, 0.0),
        autosave_interval_seconds=_float_setting(
            env, AUTOSAVE_INTERVAL_ENV_VAR, DEFAULT_AUTOSAVE_INTERVAL_SECONDS, 1.0
        ),
        gate_secret=secret,
    )
