"""Concurrent stdout/stderr collection raced against a deadline.

One reader thread per piped stream accumulates bytes until EOF, so neither
pipe can fill up and block the child while the other is being drained.
With a timeout, the calling thread polls the readers and escalates through
waiting.escalate() when the deadline passes instead of blocking forever.
"""

import subprocess
import threading
import time

from dx_exec import waiting
from dx_exec.result import ExitStatus

CHUNK_SIZE = 65536
DEFAULT_POLL_INTERVAL = 0.05


class _Reader(threading.Thread):
    def __init__(self, stream):
        super().__init__(daemon=True)
        self._stream = stream
        self._chunks: list[bytes] = []

    def run(self):
        with self._stream:
            while True:
                chunk = self._stream.read1(CHUNK_SIZE)
                if not chunk:
                    break
                self._chunks.append(chunk)

    @property
    def data(self) -> bytes:
        return b"".join(self._chunks)


def _collect(readers: dict[str, _Reader]) -> tuple[bytes | None, bytes | None]:
    stdout = readers["stdout"].data if "stdout" in readers else None
    stderr = readers["stderr"].data if "stderr" in readers else None
    return stdout, stderr


def capture_streams(
    proc: subprocess.Popen,
    timeout: float | None = None,
    grace: float = waiting.DEFAULT_GRACE,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> tuple[bytes | None, bytes | None, ExitStatus]:
    """Drain proc's piped streams and wait for it.

    Returns (stdout, stderr, status). A stream that was not opened as a
    pipe comes back as None. On timeout the output read so far is returned
    with a timed-out status.
    """
    readers = {}
    if proc.stdout is not None:
        readers["stdout"] = _Reader(proc.stdout)
    if proc.stderr is not None:
        readers["stderr"] = _Reader(proc.stderr)
    for reader in readers.values():
        reader.start()

    if timeout is None:
        for reader in readers.values():
            reader.join()
        return (*_collect(readers), waiting.wait(proc))

    deadline = time.monotonic() + timeout
    while any(reader.is_alive() for reader in readers.values()):
        if time.monotonic() >= deadline:
            # A child that already exited keeps its own status even if a
            # grandchild still holds the pipes open.
            if proc.poll() is not None:
                status = ExitStatus.from_returncode(proc.pid, proc.returncode)
            else:
                status = waiting.escalate(proc, grace)
            # Best effort: a grandchild may still hold the pipe open.
            for reader in readers.values():
                reader.join(grace)
            return (*_collect(readers), status)
        time.sleep(poll_interval)

    remaining = max(deadline - time.monotonic(), 0)
    return (*_collect(readers), waiting.wait(proc, remaining, grace))
