"""Tests for result.py: predicates, chaining, exit_on_failure."""

import json
import signal

import pytest

from dx_exec.result import FALLBACK_EXIT_CODE, ExitStatus, Result


def _ok(stdout=None):
    return Result(command=["true"], pid=10, exit_code=0, stdout=stdout, duration=0.01)


def _fail(code=1):
    return Result(command=["false"], pid=11, exit_code=code, duration=0.01)


def _not_found():
    return Result.from_exception(
        FileNotFoundError(2, "No such file or directory"), command=["nope"]
    )


def test_success_predicates():
    r = _ok()
    assert r.success
    assert not r.failed
    assert not r.signaled
    assert not r.timed_out
    assert not r.failed_to_start


def test_nonzero_exit_is_failure():
    r = _fail(3)
    assert r.failed
    assert r.exit_code == 3
    assert not r.signaled


def test_signaled_is_failure():
    r = Result(command=["sleep"], signal_code=signal.SIGTERM)
    assert r.signaled
    assert r.failed
    assert r.exit_code is None


def test_start_failure_keeps_error():
    r = _not_found()
    assert r.failed
    assert r.failed_to_start
    assert r.exit_code is None
    assert r.error_message == "No such file or directory"


def test_exactly_one_outcome_required():
    with pytest.raises(ValueError):
        Result(command=["x"])
    with pytest.raises(ValueError):
        Result(command=["x"], exit_code=0, signal_code=9)


def test_from_returncode_signal():
    status = ExitStatus.from_returncode(42, -9)
    assert status.signal_code == 9
    assert status.exit_code is None


def test_from_returncode_exit():
    status = ExitStatus.from_returncode(42, 3)
    assert status.exit_code == 3
    assert status.signal_code is None


def test_from_status_carries_timeout():
    status = ExitStatus(pid=5, signal_code=signal.SIGKILL, timed_out=True)
    r = Result.from_status(status, command=["sleep", "10"], duration=0.2)
    assert r.timed_out
    assert r.signaled
    assert r.pid == 5


def test_stdout_absent_vs_empty():
    assert _ok().stdout is None
    assert _ok(stdout="").stdout == ""
    assert _ok().output is None
    assert _ok(stdout="").output == ""


def test_output_and_lines():
    r = Result(command=["x"], exit_code=0, stdout="a\nb\n", stderr="warn\n")
    assert r.output == "a\nb\nwarn\n"
    assert r.stdout_lines == ["a", "b"]
    assert r.stderr_lines == ["warn"]


def test_then_runs_on_success():
    second = _ok(stdout="two")
    assert _ok().then(lambda: second) is second


def test_then_short_circuits():
    failed = _fail()
    calls = []

    def step():
        calls.append(1)
        return _ok()

    assert failed.then(step).then(step) is failed
    assert calls == []


def test_map_transforms_stdout():
    assert _ok(stdout="abc123\n").map(str.strip) == "abc123"


def test_map_returns_self_on_failure():
    failed = _fail()
    assert failed.map(str.strip) is failed


def test_exit_on_failure_returns_self_on_success():
    r = _ok()
    assert r.exit_on_failure() is r


def test_exit_on_failure_uses_exit_code():
    with pytest.raises(SystemExit) as exc:
        _fail(7).exit_on_failure()
    assert exc.value.code == 7


def test_exit_on_failure_fallback_for_start_failure(capsys):
    with pytest.raises(SystemExit) as exc:
        _not_found().exit_on_failure()
    assert exc.value.code == FALLBACK_EXIT_CODE
    assert "failed to start" in capsys.readouterr().err


def test_exit_on_failure_message(capsys):
    with pytest.raises(SystemExit):
        _fail().exit_on_failure(message="lint failed")
    assert "ERROR: lint failed" in capsys.readouterr().err


def test_str_summary():
    assert str(_ok()) == "true: success"
    assert str(_fail(2)) == "false: exit 2"
    assert "SIGKILL" in str(Result(command=["sleep"], signal_code=9, timed_out=True))
    assert "FileNotFoundError" in str(_not_found())


def test_to_dict_is_json_friendly():
    data = _not_found().to_dict()
    json.dumps(data)
    assert data["command"] == ["nope"]
    assert data["success"] is False
    assert "exit_code" not in data
    assert data["exception"] == "No such file or directory"


def test_command_is_copied():
    argv = ["echo", "hi"]
    r = Result(command=argv, exit_code=0)
    argv.append("x")
    assert r.command == ["echo", "hi"]


def test_results_are_hashable():
    first = Result(command=["echo", "hi"], pid=7, exit_code=0, stdout="hi\n")
    second = Result(command=["echo", "hi"], pid=7, exit_code=0, stdout="hi\n")
    assert first == second
    assert hash(first) == hash(second)
    assert len({first, second}) == 1


def test_start_failure_is_hashable():
    result = Result.from_exception(FileNotFoundError(2, "missing"), command=["nope"])
    assert isinstance(hash(result), int)
