"""Wait for a child process, escalating TERM -> KILL on timeout."""

import signal
import subprocess

from dx_exec import log
from dx_exec.result import ExitStatus

DEFAULT_GRACE = 0.1


def _send(proc: subprocess.Popen, sig: int) -> None:
    try:
        proc.send_signal(sig)
    except ProcessLookupError:
        pass  # already exited, reaped below


def escalate(proc: subprocess.Popen, grace: float = DEFAULT_GRACE) -> ExitStatus:
    """Send SIGTERM, wait grace seconds, then SIGKILL. Always reaps the child.

    A process that has already exited is not signaled; its real status is
    returned without the timed_out marker. Otherwise the status is marked
    timed_out and always signaled: with the signal that actually ended the
    process, or the last one sent if it exited during the grace period.
    """
    if proc.poll() is not None:
        return ExitStatus.from_returncode(proc.pid, proc.returncode)

    log.warn(f"timeout: sending SIGTERM to pid {proc.pid}")
    sent = signal.SIGTERM
    _send(proc, sent)
    try:
        proc.wait(timeout=grace)
    except subprocess.TimeoutExpired:
        log.warn(f"timeout: pid {proc.pid} still running after {grace}s, sending SIGKILL")
        sent = signal.SIGKILL
        _send(proc, sent)
        proc.wait()

    returncode = proc.returncode
    signal_code = -returncode if returncode < 0 else int(sent)
    return ExitStatus(pid=proc.pid, signal_code=signal_code, timed_out=True)


def wait(
    proc: subprocess.Popen, timeout: float | None = None, grace: float = DEFAULT_GRACE
) -> ExitStatus:
    """Block until proc exits, or escalate once timeout seconds have passed."""
    try:
        returncode = proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        return escalate(proc, grace)
    return ExitStatus.from_returncode(proc.pid, returncode)
