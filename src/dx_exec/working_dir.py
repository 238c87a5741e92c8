"""Immutable working-directory stack for nested command scopes.

Entering a scope pushes a new absolute path derived from the current one;
leaving pops it. Entries are never modified in place.
"""

import os
import threading
from contextlib import contextmanager
from pathlib import Path

_stack: list[Path] = []
_stack_lock = threading.Lock()


def explicit() -> Path | None:
    """Innermost scope pushed with within(), or None outside any scope."""
    with _stack_lock:
        return _stack[-1] if _stack else None


def current() -> Path:
    """Innermost scope, falling back to the process cwd."""
    return explicit() or Path.cwd()


def resolve(subdir: str | os.PathLike) -> Path:
    """Absolute path for subdir, relative paths joined onto current()."""
    if not isinstance(subdir, str) and not hasattr(subdir, "__fspath__"):
        raise TypeError(f"Expected str or path, got {type(subdir).__name__}")
    path = Path(os.fspath(subdir))
    if path.is_absolute():
        return path
    return current() / path


@contextmanager
def within(subdir: str | os.PathLike):
    """Run the enclosed block with subdir as the working directory for commands."""
    new_wd = resolve(subdir)
    with _stack_lock:
        _stack.append(new_wd)
    try:
        yield new_wd
    finally:
        with _stack_lock:
            _stack.pop()


def depth() -> int:
    with _stack_lock:
        return len(_stack)


def stack() -> list[Path]:
    with _stack_lock:
        return list(_stack)


def reset() -> None:
    with _stack_lock:
        _stack.clear()
