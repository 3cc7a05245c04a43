"""Start the calculator UI with ``streamlit run``, frozen or from a checkout."""

from __future__ import annotations

import argparse
import os
import pathlib
import sys

from tally.config import STORAGE_ENV_VAR


def _roots() -> tuple[pathlib.Path, pathlib.Path]:
    """Return (directory holding app.py, directory the local store defaults to)."""
    if getattr(sys, "frozen", False):
        return pathlib.Path(getattr(sys, "_MEIPASS")), pathlib.Path(sys.executable).resolve().parent
    here = pathlib.Path(__file__).resolve().parent
    return here, here


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Quantity & weight calculator")
    parser.add_argument("--storage-root", default=None, help=f"Overrides ${STORAGE_ENV_VAR}.")
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--headless", action="store_true", help="Do not open a browser tab.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    bundle_root, runtime_root = _roots()

    if args.storage_root:
        os.environ[STORAGE_ENV_VAR] = args.storage_root
    else:
        os.environ.setdefault(STORAGE_ENV_VAR, str(runtime_root / ".local_store"))
    os.environ.setdefault("STREAMLIT_BROWSER_GATHER_USAGE_STATS", "false")

    from streamlit.web import cli as stcli

    sys.argv = ["streamlit", "run", str(bundle_root / "app.py"), "--browser.gatherUsageStats=false"]
    if args.port is not None:
        sys.argv.append(f"--server.port={args.port}")
    if args.headless:
        sys.argv.append("--server.headless=true")
    raise SystemExit(stcli.main())


if __name__ == "__main__":
    main()
