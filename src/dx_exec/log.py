"""Timestamped output + GitHub Actions formatting."""

import os
import sys
from datetime import datetime


def _timestamp() -> str:
    return datetime.now().strftime("%H:%M:%S")


def _is_github_actions() -> bool:
    return os.environ.get("GITHUB_ACTIONS") == "true"


def _debug_enabled() -> bool:
    from dx_exec import config

    value = os.environ.get(f"{config.current().env_prefix}_DEBUG", "")
    return value not in ("", "0") and value.lower() != "false"


def info(msg: str) -> None:
    print(f"[{_timestamp()}] {msg}", flush=True)


def failure(msg: str) -> None:
    if _is_github_actions():
        print(f"::error::{msg}", flush=True)
    info(f"  ✗ {msg}")


def debug(msg: str) -> None:
    """Print a diagnostic line to stderr when <PREFIX>_DEBUG is set."""
    if _debug_enabled():
        print(f"[{_timestamp()}] DEBUG: {msg}", file=sys.stderr, flush=True)


def warn(msg: str) -> None:
    if _is_github_actions():
        print(f"::warning::{msg}", flush=True)
    print(f"[{_timestamp()}] WARNING: {msg}", file=sys.stderr, flush=True)


def error(msg: str) -> None:
    if _is_github_actions():
        print(f"::error::{msg}", flush=True)
    print(f"[{_timestamp()}] ERROR: {msg}", file=sys.stderr, flush=True)
