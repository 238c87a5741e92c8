"""Typed options for a single command execution."""

import os
from dataclasses import dataclass, field
from enum import Enum


class StreamMode(str, Enum):
    INHERIT = "inherit"
    NULL = "null"
    CAPTURE = "capture"
    PIPE = "pipe"
    MERGE = "merge"  # stderr only: redirect fd 2 into stdout


FOREGROUND_MODES = {
    "stdin": {StreamMode.INHERIT, StreamMode.NULL},
    "stdout": {StreamMode.INHERIT, StreamMode.NULL, StreamMode.CAPTURE},
    "stderr": {StreamMode.INHERIT, StreamMode.NULL, StreamMode.CAPTURE, StreamMode.MERGE},
}

BACKGROUND_MODES = {
    "stdin": {StreamMode.NULL, StreamMode.INHERIT, StreamMode.PIPE},
    "stdout": {StreamMode.NULL, StreamMode.INHERIT, StreamMode.PIPE},
    "stderr": {StreamMode.NULL, StreamMode.INHERIT, StreamMode.PIPE, StreamMode.MERGE},
}


def stream_mode(value) -> StreamMode:
    """Coerce a string or StreamMode, rejecting unknown values."""
    if isinstance(value, StreamMode):
        return value
    try:
        return StreamMode(value)
    except ValueError:
        valid = ", ".join(m.value for m in StreamMode)
        raise ValueError(f"Unknown stream mode {value!r} (expected one of: {valid})") from None


def _tristate(value, name: str) -> bool | None:
    if value is None or isinstance(value, bool):
        return value
    raise TypeError(f"{name} must be True, False or None, got {value!r}")


@dataclass(frozen=True)
class ExecOptions:
    """Every recognized execution option.

    Unknown keyword arguments are rejected by the dataclass constructor.
    package_manager / version_manager are tri-state: None auto-detects,
    True forces the wrapper, False skips it.
    """

    env: dict[str, str] = field(default_factory=dict)
    chdir: str | os.PathLike | None = None
    stdin: StreamMode = StreamMode.INHERIT
    stdout: StreamMode = StreamMode.INHERIT
    stderr: StreamMode = StreamMode.INHERIT
    timeout: float | None = None
    raw: bool = False
    package_manager: bool | None = None
    version_manager: bool | None = None
    dotenv: bool = False
    clean_env: bool = True
    shell: bool = False
    propagate_context: bool = True

    def __post_init__(self):
        if not isinstance(self.env, dict):
            raise TypeError(f"env must be a dict, got {type(self.env).__name__}")
        object.__setattr__(self, "env", {str(k): str(v) for k, v in self.env.items()})
        for name in ("stdin", "stdout", "stderr"):
            object.__setattr__(self, name, stream_mode(getattr(self, name)))
        if self.stdin is StreamMode.MERGE or self.stdout is StreamMode.MERGE:
            raise ValueError("merge is only valid for stderr")
        if self.timeout is not None:
            if isinstance(self.timeout, bool) or not isinstance(self.timeout, (int, float)):
                raise TypeError(f"timeout must be a number, got {self.timeout!r}")
            if self.timeout <= 0:
                raise ValueError(f"timeout must be positive, got {self.timeout!r}")
        if self.chdir is not None and not isinstance(self.chdir, str):
            if not hasattr(self.chdir, "__fspath__"):
                raise TypeError(f"chdir must be a path, got {type(self.chdir).__name__}")
        _tristate(self.package_manager, "package_manager")
        _tristate(self.version_manager, "version_manager")

    def check_modes(self, allowed: dict[str, set[StreamMode]], where: str) -> None:
        for name, modes in allowed.items():
            mode = getattr(self, name)
            if mode not in modes:
                raise ValueError(f"{name}={mode.value!r} is not supported by {where}")

    @property
    def captures(self) -> bool:
        return StreamMode.CAPTURE in (self.stdout, self.stderr)
