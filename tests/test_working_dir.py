"""Tests for working_dir.py: immutable scope stack."""

from pathlib import Path

import pytest

from dx_exec import working_dir


def test_current_defaults_to_cwd(tmp_path):
    assert working_dir.current() == Path.cwd()
    assert working_dir.explicit() is None


def test_within_relative(tmp_path):
    with working_dir.within("packages/core") as wd:
        assert wd == Path.cwd() / "packages" / "core"
        assert working_dir.current() == wd
    assert working_dir.depth() == 0


def test_within_nested():
    with working_dir.within("/srv/app"):
        with working_dir.within("web"):
            assert working_dir.current() == Path("/srv/app/web")
            assert working_dir.stack() == [Path("/srv/app"), Path("/srv/app/web")]
        assert working_dir.current() == Path("/srv/app")


def test_within_absolute_path_object():
    with working_dir.within(Path("/tmp/build")):
        assert working_dir.current() == Path("/tmp/build")


def test_within_pops_on_error():
    with pytest.raises(RuntimeError):
        with working_dir.within("/srv"):
            raise RuntimeError("boom")
    assert working_dir.depth() == 0


def test_within_rejects_other_types():
    with pytest.raises(TypeError):
        with working_dir.within(42):
            pass


def test_stack_is_a_copy():
    with working_dir.within("/srv"):
        working_dir.stack().append(Path("/elsewhere"))
        assert working_dir.current() == Path("/srv")
