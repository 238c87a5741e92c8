"""Handle for a background process started with process.spawn()."""

import signal
import subprocess
import threading
import time

from dx_exec.result import ExitStatus, Result


def to_signal(sig) -> int:
    """Normalize 9, signal.SIGKILL, "KILL" or "SIGKILL" to a signal number."""
    if isinstance(sig, int):
        return int(sig)
    if isinstance(sig, str):
        name = sig.upper()
        if not name.startswith("SIG"):
            name = f"SIG{name}"
        try:
            return int(signal.Signals[name])
        except KeyError:
            raise ValueError(f"Unknown signal {sig!r}") from None
    raise TypeError(f"Signal must be an int or name, got {type(sig).__name__}")


class Controller:
    """A running child process.

    pid and the optional pipe handles are available immediately. result()
    resolves the process exactly once and caches the Result; callers that
    asked for stdout/stderr pipes must drain them before (or while) waiting,
    or a child blocked on a full pipe will never exit.
    """

    def __init__(
        self,
        proc: subprocess.Popen | None,
        command: list[str],
        name: str | None = None,
        result: Result | None = None,
    ):
        self._proc = proc
        self.command = list(command)
        self.name = name
        self.started_at = time.time()
        self._started = time.monotonic()
        self._result = result
        self._lock = threading.Lock()

    @classmethod
    def failed(cls, command: list[str], exception: OSError, name: str | None = None):
        """Controller for a process that never started."""
        return cls(
            None,
            command,
            name=name,
            result=Result.from_exception(exception, command=command, duration=0.0),
        )

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc is not None else None

    @property
    def stdin(self):
        return self._proc.stdin if self._proc is not None else None

    @property
    def stdout(self):
        return self._proc.stdout if self._proc is not None else None

    @property
    def stderr(self):
        return self._proc.stderr if self._proc is not None else None

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._started

    # --- status ---

    def executing(self) -> bool:
        if self._result is not None or self._proc is None:
            return False
        return self._proc.poll() is None

    running = executing

    def finished(self) -> bool:
        return not self.executing()

    # --- signals ---

    def kill(self, sig="TERM") -> bool:
        """Deliver sig to the process. False if already resolved or gone."""
        signum = to_signal(sig)
        if self._result is not None or self._proc is None:
            return False
        if self._proc.poll() is not None:
            return False
        try:
            self._proc.send_signal(signum)
        except (ProcessLookupError, PermissionError):
            return False
        return True

    signal = kill

    def terminate(self, timeout: float = 5.0) -> Result:
        """SIGTERM, wait up to timeout, then SIGKILL."""
        self.kill("TERM")
        result = self.result(timeout=timeout)
        if result is None:
            self.kill("KILL")
            result = self.result()
        return result

    # --- completion ---

    def result(self, timeout: float | None = None) -> Result | None:
        """Block until the process exits and return its Result.

        With a timeout, returns None if the process is still running when it
        elapses; the controller stays unresolved and result() may be called
        again. Once resolved, every call returns the same Result object.
        """
        with self._lock:
            if self._result is not None:
                return self._result
            try:
                returncode = self._proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                return None
            self._close_pipes()
            self._result = Result.from_status(
                ExitStatus.from_returncode(self._proc.pid, returncode),
                command=self.command,
                duration=self.elapsed,
            )
            return self._result

    wait = result

    def _close_pipes(self) -> None:
        for stream in (self._proc.stdin, self._proc.stdout, self._proc.stderr):
            if stream is not None and not stream.closed:
                try:
                    stream.close()
                except BrokenPipeError:
                    pass  # child exited before reading buffered stdin

    # --- io helpers ---

    def write(self, data: str, close_after: bool = False) -> int:
        if self.stdin is None:
            raise RuntimeError("No stdin pipe available (spawn with stdin='pipe')")
        written = self.stdin.write(data)
        self.stdin.flush()
        if close_after:
            self.stdin.close()
        return written

    def read_stdout(self) -> str | None:
        return self.stdout.read() if self.stdout is not None else None

    def read_stderr(self) -> str | None:
        return self.stderr.read() if self.stderr is not None else None

    def __repr__(self) -> str:
        state = "running" if self._result is None else str(self._result)
        label = f" name={self.name!r}" if self.name else ""
        return f"<Controller{label} pid={self.pid} {self.command!r} {state}>"
