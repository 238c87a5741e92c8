"""Outcome of a finished (or failed-to-start) process."""

import signal
import sys
from dataclasses import dataclass, field

FALLBACK_EXIT_CODE = 1


@dataclass(frozen=True)
class ExitStatus:
    """How a process ended: exit code, or signal, possibly by timeout."""

    pid: int | None
    exit_code: int | None = None
    signal_code: int | None = None
    timed_out: bool = False

    @classmethod
    def from_returncode(cls, pid: int | None, returncode: int) -> "ExitStatus":
        # Popen reports death by signal N as -N
        if returncode < 0:
            return cls(pid=pid, signal_code=-returncode)
        return cls(pid=pid, exit_code=returncode)


@dataclass(frozen=True)
class Result:
    """Immutable record of one execution.

    Exactly one of exit_code, signal_code or exception is set. stdout and
    stderr are None unless that stream was captured ("" means captured but
    empty). command is the argv the caller passed, before any wrapping.
    """

    command: list[str] = field(hash=False)
    pid: int | None = None
    duration: float | None = None
    exit_code: int | None = None
    signal_code: int | None = None
    stdout: str | None = None
    stderr: str | None = None
    exception: OSError | None = field(default=None, compare=False)
    timed_out: bool = False

    def __post_init__(self):
        object.__setattr__(self, "command", list(self.command))
        outcomes = [
            self.exit_code is not None,
            self.signal_code is not None,
            self.exception is not None,
        ]
        if sum(outcomes) != 1:
            raise ValueError(
                "Result needs exactly one of exit_code, signal_code or exception"
            )

    @classmethod
    def from_status(cls, status: ExitStatus, command: list[str], **kwargs) -> "Result":
        return cls(
            command=command,
            pid=status.pid,
            exit_code=status.exit_code,
            signal_code=status.signal_code,
            timed_out=status.timed_out,
            **kwargs,
        )

    @classmethod
    def from_exception(cls, exception: OSError, command: list[str], **kwargs) -> "Result":
        return cls(command=command, exception=exception, **kwargs)

    # --- predicates ---

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and self.exception is None

    @property
    def failed(self) -> bool:
        return not self.success

    @property
    def signaled(self) -> bool:
        return self.signal_code is not None

    @property
    def failed_to_start(self) -> bool:
        return self.exception is not None

    @property
    def error_message(self) -> str | None:
        """Why the process could not start, if it didn't."""
        if self.exception is None:
            return None
        return self.exception.strerror or str(self.exception)

    # --- output ---

    @property
    def output(self) -> str | None:
        """stdout followed by stderr, or None if neither was captured."""
        if self.stdout is None and self.stderr is None:
            return None
        return (self.stdout or "") + (self.stderr or "")

    @property
    def stdout_lines(self) -> list[str]:
        return self.stdout.splitlines() if self.stdout else []

    @property
    def stderr_lines(self) -> list[str]:
        return self.stderr.splitlines() if self.stderr else []

    # --- chaining ---

    def then(self, fn):
        """Run fn() (which returns the next Result) only if this one succeeded."""
        if self.failed:
            return self
        return fn()

    def map(self, fn):
        """Return fn(stdout) if this succeeded, otherwise self."""
        if self.failed:
            return self
        return fn(self.stdout)

    def exit_on_failure(self, message: str | None = None) -> "Result":
        """Exit the interpreter with the child's exit code if this failed.

        Falls back to FALLBACK_EXIT_CODE when the child never produced an
        exit code (start failure or signal). Returns self on success.
        """
        if self.success:
            return self

        from dx_exec import log

        if message:
            log.error(message)
        elif self.failed_to_start:
            log.error(f"Command failed to start: {self.error_message}")
        elif self.timed_out:
            log.error(f"Command timed out: {' '.join(self.command)}")
        sys.exit(self.exit_code if self.exit_code is not None else FALLBACK_EXIT_CODE)

    # --- inspection ---

    def _status_text(self) -> str:
        if self.success:
            return "success"
        if self.signaled:
            try:
                name = signal.Signals(self.signal_code).name
            except ValueError:
                name = str(self.signal_code)
            return f"timed out ({name})" if self.timed_out else f"signal {name}"
        if self.failed_to_start:
            return f"failed to start: {type(self.exception).__name__}"
        return f"exit {self.exit_code}"

    def __str__(self) -> str:
        name = self.command[0] if self.command else "?"
        return f"{name}: {self._status_text()}"

    def to_dict(self) -> dict:
        data = {
            "command": self.command,
            "pid": self.pid,
            "exit_code": self.exit_code,
            "signal_code": self.signal_code,
            "duration": self.duration,
            "success": self.success,
            "timed_out": self.timed_out,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exception": self.error_message,
        }
        return {k: v for k, v in data.items() if v is not None}
