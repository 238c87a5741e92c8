"""Subprocess entry points: run, capture, spawn, exec, shell, nested tool calls.

Every foreground call returns a Result: nonzero exits, signals, timeouts and
start failures are all reported there, never raised. Only invalid arguments
(bad types, unknown options, unsupported stream modes) raise.
"""

import os
import subprocess
import sys
import time

from dx_exec import capture as capture_mod
from dx_exec import config, log, waiting
from dx_exec.context import Context
from dx_exec.controller import Controller
from dx_exec.options import BACKGROUND_MODES, FOREGROUND_MODES, ExecOptions, StreamMode
from dx_exec.prepare import PreparedCommand, prepare
from dx_exec.result import Result

SHELL = "/bin/sh"
ENCODING = "utf-8"

_FOREGROUND_TARGETS = {
    StreamMode.INHERIT: None,
    StreamMode.NULL: subprocess.DEVNULL,
    StreamMode.MERGE: subprocess.STDOUT,
}

_BACKGROUND_TARGETS = {
    StreamMode.INHERIT: None,
    StreamMode.NULL: subprocess.DEVNULL,
    StreamMode.PIPE: subprocess.PIPE,
    StreamMode.MERGE: subprocess.STDOUT,
}


def _decode(data: bytes | None) -> str | None:
    return data.decode(ENCODING, errors="replace") if data is not None else None


def _popen(prepared: PreparedCommand, **kwargs) -> subprocess.Popen:
    where = f" (in {prepared.cwd})" if prepared.cwd else ""
    log.debug(f"spawn: {' '.join(prepared.argv)}{where}")
    return subprocess.Popen(prepared.argv, env=prepared.env, cwd=prepared.cwd, **kwargs)


def _foreground_target(mode: StreamMode, capturing: bool):
    # In the capture path, null streams are piped too and discarded afterwards.
    if mode is StreamMode.CAPTURE or (capturing and mode is StreamMode.NULL):
        return subprocess.PIPE
    return _FOREGROUND_TARGETS[mode]


def _execute(cmd, options: ExecOptions) -> Result:
    options.check_modes(FOREGROUND_MODES, "foreground execution")
    settings = config.current()
    prepared = prepare(cmd, options, settings)
    capturing = options.captures
    start = time.monotonic()

    try:
        proc = _popen(
            prepared,
            stdin=_FOREGROUND_TARGETS[options.stdin],
            stdout=_foreground_target(options.stdout, capturing),
            stderr=_foreground_target(options.stderr, capturing),
        )
    except OSError as e:
        log.debug(f"failed to start {prepared.argv[0]}: {e}")
        return Result.from_exception(
            e, command=prepared.original, duration=time.monotonic() - start
        )

    stdout = stderr = None
    if capturing:
        stdout, stderr, status = capture_mod.capture_streams(
            proc, options.timeout, settings.kill_grace, settings.poll_interval
        )
    else:
        status = waiting.wait(proc, options.timeout, settings.kill_grace)
    duration = time.monotonic() - start

    return Result.from_status(
        status,
        command=prepared.original,
        duration=duration,
        stdout=_decode(stdout) if options.stdout is StreamMode.CAPTURE else None,
        stderr=_decode(stderr) if options.stderr is StreamMode.CAPTURE else None,
    )


def run(*cmd, **options) -> Result:
    """Run a command with inherited streams and wait for it."""
    return _execute(cmd, ExecOptions(**options))


def run_ok(*cmd, **options) -> bool:
    """True if the command exits 0. Output is discarded."""
    options.update(stdout="null", stderr="null")
    return _execute(cmd, ExecOptions(**options)).success


def capture(*cmd, **options) -> Result:
    """Run a command collecting stdout and stderr into the Result.

    stderr may be overridden, e.g. stderr="merge" to fold it into stdout.
    """
    options["stdout"] = "capture"
    options.setdefault("stderr", "capture")
    options.setdefault("stdin", "null")
    return _execute(cmd, ExecOptions(**options))


def spawn(
    *cmd,
    name: str | None = None,
    stdin="null",
    stdout="null",
    stderr="null",
    **options,
) -> Controller:
    """Start a command in the background and return immediately."""
    opts = ExecOptions(stdin=stdin, stdout=stdout, stderr=stderr, **options)
    if opts.timeout is not None:
        raise ValueError("spawn does not take a timeout; use Controller.result(timeout=...)")
    opts.check_modes(BACKGROUND_MODES, "spawn")
    prepared = prepare(cmd, opts)

    try:
        proc = _popen(
            prepared,
            stdin=_BACKGROUND_TARGETS[opts.stdin],
            stdout=_BACKGROUND_TARGETS[opts.stdout],
            stderr=_BACKGROUND_TARGETS[opts.stderr],
            text=True,
            encoding=ENCODING,
        )
    except OSError as e:
        log.debug(f"failed to start {prepared.argv[0]}: {e}")
        return Controller.failed(prepared.original, e, name=name)

    return Controller(proc, prepared.original, name=name)


def exec_replace(*cmd, replacer=None, **options) -> Result | None:
    """Replace the current process with the command. Does not return on success.

    replacer defaults to os.execvpe and receives (file, argv, env); tests
    pass a fake. If the replacement fails (e.g. executable not found) a
    failed-to-start Result is returned.
    """
    opts = ExecOptions(**options)
    if opts.timeout is not None:
        raise ValueError("exec_replace does not take a timeout")
    prepared = prepare(cmd, opts)
    replacer = replacer or os.execvpe

    sys.stdout.flush()
    sys.stderr.flush()
    log.debug(f"exec: {' '.join(prepared.argv)}")
    previous_cwd = os.getcwd()
    try:
        if prepared.cwd:
            os.chdir(prepared.cwd)
        replacer(prepared.argv[0], prepared.argv, prepared.env)
    except OSError as e:
        return Result.from_exception(e, command=prepared.original, duration=0.0)
    finally:
        # Only reached when the replacer returns or fails.
        os.chdir(previous_cwd)
    return None


def shell(command_string: str, **options) -> Result:
    """Run a string through /bin/sh -c (pipes, globs, variables).

    Never interpolate untrusted input into command_string.
    """
    if not isinstance(command_string, str):
        raise TypeError(f"shell() expects a str, got {type(command_string).__name__}")
    options["shell"] = True
    return _execute([SHELL, "-c", command_string], ExecOptions(**options))


def shell_ok(command_string: str, **options) -> bool:
    options.update(stdout="null", stderr="null")
    return shell(command_string, **options).success


def tool(tool_name: str, *args, capture: bool = False, **options) -> Result:
    """Invoke another command of this CLI, propagating the call tree."""
    settings = config.current()
    context = Context(prefix=settings.env_prefix)
    env = dict(options.pop("env", None) or {})
    tree = context.child_call_tree()
    if tree:
        env[settings.env_var("CALL_TREE")] = tree
    env[settings.env_var("CURRENT_TOOL")] = tool_name
    env[settings.env_var("INVOKED_FROM_TOOL")] = "1"
    cmd = [settings.tool_command, tool_name, *args]
    if capture:
        options["stdout"] = "capture"
        options.setdefault("stderr", "capture")
    return _execute(cmd, ExecOptions(env=env, **options))


def tool_ok(tool_name: str, *args, **options) -> bool:
    return tool(tool_name, *args, capture=True, **options).success
