"""Tests for context.py: detection, call stack, env propagation."""

import threading

import pytest

from dx_exec.context import CallStack, Context, extend_call_tree


def _ctx(environ=None, **overrides):
    return Context(environ=environ or {}, stack=CallStack(), overrides=overrides)


def test_extend_call_tree():
    assert extend_call_tree("", "lint") == "lint"
    assert extend_call_tree("pre-commit", "lint") == "pre-commit:lint"
    assert extend_call_tree("a:b", "") == "a:b"


def test_ci_detection():
    assert _ctx({"GITHUB_ACTIONS": "true"}).ci()
    assert _ctx({"CI": "1"}).ci()
    assert not _ctx({"CI": "false"}).ci()
    assert not _ctx({}).ci()


def test_agent_mode_from_env():
    assert _ctx({"DX_AGENT_MODE": "1"}).agent_mode()


def test_interactive_forced_disables_agent_mode():
    ctx = _ctx({"DX_INTERACTIVE": "1"}, terminal=False)
    assert ctx.interactive()
    assert not ctx.agent_mode()


def test_non_terminal_non_ci_is_agent_mode():
    ctx = _ctx({}, terminal=False)
    assert ctx.agent_mode()


def test_ci_is_not_interactive():
    ctx = _ctx({"CI": "true"}, terminal=True)
    assert not ctx.interactive()


def test_terminal_is_interactive():
    assert _ctx({}, terminal=True).interactive()


def test_overrides_restore():
    ctx = _ctx({})
    with ctx.with_overrides(ci=True, agent_mode=False):
        assert ctx.ci()
        assert not ctx.agent_mode()
    assert not ctx.ci()


def test_unknown_override_rejected():
    with pytest.raises(TypeError):
        with _ctx({}).with_overrides(colour=True):
            pass


@pytest.mark.parametrize(
    "value,expected",
    [("prod", "production"), ("stg", "staging"), ("Test", "test"), ("qa", "qa")],
)
def test_env_name_aliases(value, expected):
    assert _ctx({"DX_ENV": value}).env_name() == expected


def test_env_name_falls_back_to_rails_env():
    assert _ctx({"RAILS_ENV": "production"}).env_name() == "production"
    assert _ctx({}).env_name() == "development"


def test_call_tree_inherited_plus_stack():
    stack = CallStack()
    ctx = Context(environ={"DX_CALL_TREE": "ci:release"}, stack=stack)
    with stack.task("test"):
        assert ctx.call_tree() == ["ci", "release", "test"]
        assert ctx.current_tool() == "test"
    assert ctx.call_tree() == ["ci", "release"]


def test_task_pops_on_error():
    stack = CallStack()
    with pytest.raises(RuntimeError):
        with stack.task("boom"):
            raise RuntimeError("fail")
    assert stack.snapshot() == []


def test_call_stack_thread_safe():
    stack = CallStack()

    def worker():
        for _ in range(200):
            with stack.task("t"):
                pass

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert stack.snapshot() == []


def test_child_call_tree_uses_current_tool_env():
    ctx = _ctx({"DX_CALL_TREE": "pre-commit", "DX_CURRENT_TOOL": "lint"})
    assert ctx.child_call_tree() == "pre-commit:lint"


def test_child_call_tree_uses_stack():
    stack = CallStack()
    ctx = Context(environ={"DX_CURRENT_TOOL": "ignored"}, stack=stack)
    with stack.task("release"):
        assert ctx.child_call_tree() == "release"


def test_to_env_keys():
    env = _ctx({"DX_CI": "0"}, agent_mode=True, interactive=False, ci=True).to_env()
    assert env == {
        "DX_AGENT_MODE": "1",
        "DX_INTERACTIVE": "0",
        "DX_CI": "1",
        "DX_ENV": "development",
    }


def test_to_env_includes_tree_when_present():
    env = _ctx({"DX_CALL_TREE": "a:b"}).to_env()
    assert env["DX_CALL_TREE"] == "a:b"


def test_custom_prefix():
    ctx = Context(prefix="ACME", environ={"ACME_AGENT_MODE": "1"}, stack=CallStack())
    assert ctx.agent_mode()
    assert "ACME_ENV" in ctx.to_env()


def test_summary_shape():
    summary = _ctx({}, terminal=False).summary()
    assert set(summary) == {
        "terminal", "streams_merged", "ci", "agent_mode", "interactive", "env", "call_tree",
    }
