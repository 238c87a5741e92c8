"""Shared test fixtures."""

import os

import pytest


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    """Run every test from an empty directory with fresh caches and no inherited DX_* state."""
    from dx_exec import config, context, detect, working_dir

    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("DX_") or key.startswith("BUNDLE") or key == "GITHUB_ACTIONS":
            monkeypatch.delenv(key, raising=False)
    detect.reset_cache()
    config.reset()
    working_dir.reset()
    context.call_stack.clear()
    yield
    detect.reset_cache()
    config.reset()
    working_dir.reset()
    context.call_stack.clear()


@pytest.fixture
def fake_replacer():
    """Stand-in for os.execvpe that records the call instead of replacing the process."""
    calls = []

    def replacer(file, argv, env):
        calls.append((file, argv, env))

    replacer.calls = calls
    return replacer


@pytest.fixture
def controllers():
    """Collect spawned controllers and kill any still running after the test."""
    started = []
    yield started
    for ctrl in started:
        if ctrl.executing():
            ctrl.kill("KILL")
            ctrl.result(timeout=2)
