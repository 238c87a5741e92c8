"""Project root discovery + cached manifest / version-pin detection."""

import os
import threading

PROJECT_MARKERS = (
    ".dx.yml",
    ".dx",
    ".git",
    "Gemfile",
    "Rakefile",
    ".devex.yml",
    "pyproject.toml",
)

# Computed once per process; reset_cache() invalidates.
_cache: dict[tuple, object] = {}
_cache_lock = threading.RLock()


def _cached(key: tuple, compute):
    with _cache_lock:
        if key not in _cache:
            _cache[key] = compute()
        return _cache[key]


def _discover_root(start: str) -> str | None:
    current = os.path.abspath(start)
    while True:
        for marker in PROJECT_MARKERS:
            if os.path.exists(os.path.join(current, marker)):
                return current
        parent = os.path.dirname(current)
        if parent == current:
            return None
        current = parent


def find_project_root(start: str | None = None) -> str | None:
    """Walk upward from start (default: cwd) to the first directory holding a marker."""
    if start is not None:
        return _discover_root(start)
    return _cached(("root",), lambda: _discover_root(os.getcwd()))


def _any_present(names: tuple[str, ...]) -> bool:
    dirs = [os.getcwd()]
    root = find_project_root()
    if root is not None and root not in dirs:
        dirs.append(root)
    return any(os.path.exists(os.path.join(d, name)) for d in dirs for name in names)


def manifest_present(names: tuple[str, ...]) -> bool:
    """Is a package-manager manifest (e.g. Gemfile) in the cwd or project root?"""
    names = tuple(names)
    return _cached(("manifest", names), lambda: _any_present(names))


def version_pin_present(names: tuple[str, ...]) -> bool:
    """Is a version-manager pin file (e.g. .mise.toml) in the cwd or project root?"""
    names = tuple(names)
    return _cached(("pin", names), lambda: _any_present(names))


def reset_cache() -> None:
    with _cache_lock:
        _cache.clear()
