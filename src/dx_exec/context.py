"""Runtime context detection + call-tree propagation to child processes.

Detection order, highest priority first: programmatic overrides, explicit
<PREFIX>_* environment variables, CI detection, terminal auto-detection.
The call tree is the colon-joined chain of tool names that led to the
current invocation; it is inherited through <PREFIX>_CALL_TREE and extended
by the in-process call stack.
"""

import os
import sys
import threading
from collections.abc import Mapping
from contextlib import contextmanager

CI_ENV_VARS = (
    "CI",
    "CONTINUOUS_INTEGRATION",
    "GITHUB_ACTIONS",
    "GITLAB_CI",
    "CIRCLECI",
    "TRAVIS",
    "JENKINS_URL",
    "BUILDKITE",
    "DRONE",
    "TEAMCITY_VERSION",
)

ENVIRONMENT_VARS = ("{prefix}_ENV", "DEVEX_ENV", "RAILS_ENV", "RACK_ENV")
DEFAULT_ENVIRONMENT = "development"

ENVIRONMENT_ALIASES = {
    "dev": "development",
    "develop": "development",
    "test": "test",
    "testing": "test",
    "stage": "staging",
    "stg": "staging",
    "prod": "production",
    "live": "production",
}

OVERRIDE_KEYS = frozenset({"agent_mode", "interactive", "ci", "terminal", "env"})


def extend_call_tree(tree: str, name: str) -> str:
    """Append name to a colon-joined call tree."""
    if not name:
        return tree
    return f"{tree}:{name}" if tree else name


def _truthy(value: str | None) -> bool:
    return bool(value) and value != "0" and value.lower() != "false"


class CallStack:
    """Mutex-guarded stack of tool names running in this process."""

    def __init__(self):
        self._names: list[str] = []
        self._lock = threading.Lock()

    def push(self, name: str) -> None:
        with self._lock:
            self._names.append(name)

    def pop(self) -> str | None:
        with self._lock:
            return self._names.pop() if self._names else None

    def snapshot(self) -> list[str]:
        with self._lock:
            return list(self._names)

    def clear(self) -> None:
        with self._lock:
            self._names.clear()

    @contextmanager
    def task(self, name: str):
        """Push name for the duration of the block; always popped on the way out."""
        self.push(name)
        try:
            yield
        finally:
            self.pop()


call_stack = CallStack()


class Context:
    def __init__(
        self,
        prefix: str = "DX",
        environ: Mapping[str, str] | None = None,
        stack: CallStack | None = None,
        overrides: dict | None = None,
    ):
        self.prefix = prefix
        self._environ = environ
        self._stack = stack if stack is not None else call_stack
        self._overrides = dict(overrides or {})
        self._overrides_lock = threading.Lock()

    @property
    def environ(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    def _var(self, name: str) -> str:
        return f"{self.prefix}_{name}"

    def _override(self, key: str):
        with self._overrides_lock:
            return self._overrides.get(key)

    @contextmanager
    def with_overrides(self, **overrides):
        """Temporarily force detection results, e.g. with_overrides(ci=True)."""
        unknown = set(overrides) - OVERRIDE_KEYS
        if unknown:
            raise TypeError(f"Unknown context override(s): {', '.join(sorted(unknown))}")
        with self._overrides_lock:
            saved = dict(self._overrides)
            self._overrides.update(overrides)
        try:
            yield self
        finally:
            with self._overrides_lock:
                self._overrides = saved

    # --- stream detection ---

    def terminal(self) -> bool:
        override = self._override("terminal")
        if override is not None:
            return override
        return sys.stdin.isatty() and sys.stdout.isatty() and sys.stderr.isatty()

    def streams_merged(self) -> bool:
        """Are stdout and stderr redirected to the same non-tty file (2>&1)?"""
        try:
            if sys.stdout.isatty() or sys.stderr.isatty():
                return False
            out = os.fstat(sys.stdout.fileno())
            err = os.fstat(sys.stderr.fileno())
        except (AttributeError, OSError, ValueError):
            return False
        return (out.st_dev, out.st_ino) == (err.st_dev, err.st_ino)

    # --- mode detection ---

    def ci(self) -> bool:
        override = self._override("ci")
        if override is not None:
            return override
        env = self.environ
        return any(env.get(var, "") not in ("", "false") for var in CI_ENV_VARS)

    def agent_mode(self) -> bool:
        override = self._override("agent_mode")
        if override is not None:
            return override
        if _truthy(self.environ.get(self._var("AGENT_MODE"))):
            return True
        if _truthy(self.environ.get(self._var("INTERACTIVE"))):
            return False
        if self.streams_merged():
            return True
        return not self.terminal() and not self.ci()

    def interactive(self) -> bool:
        override = self._override("interactive")
        if override is not None:
            return override
        if _truthy(self.environ.get(self._var("INTERACTIVE"))):
            return True
        if _truthy(self.environ.get(self._var("AGENT_MODE"))):
            return False
        if _truthy(self.environ.get(self._var("BATCH"))) or self.ci():
            return False
        return self.terminal()

    def env_name(self) -> str:
        override = self._override("env")
        if override:
            return override
        for template in ENVIRONMENT_VARS:
            value = self.environ.get(template.format(prefix=self.prefix), "")
            if value:
                normalized = value.strip().lower()
                return ENVIRONMENT_ALIASES.get(normalized, normalized)
        return DEFAULT_ENVIRONMENT

    # --- call tree ---

    def inherited_tree(self) -> list[str]:
        tree = self.environ.get(self._var("CALL_TREE"), "")
        return tree.split(":") if tree else []

    def call_tree(self) -> list[str]:
        return self.inherited_tree() + self._stack.snapshot()

    def current_tool(self) -> str | None:
        """Innermost running tool: the call stack top, else <PREFIX>_CURRENT_TOOL."""
        names = self._stack.snapshot()
        if names:
            return names[-1]
        return self.environ.get(self._var("CURRENT_TOOL")) or None

    def child_call_tree(self) -> str:
        """Chain to hand to a nested invocation of the same tool."""
        tree = ":".join(self.call_tree())
        if self._stack.snapshot():
            return tree
        return extend_call_tree(tree, self.current_tool() or "")

    def summary(self) -> dict:
        return {
            "terminal": self.terminal(),
            "streams_merged": self.streams_merged(),
            "ci": self.ci(),
            "agent_mode": self.agent_mode(),
            "interactive": self.interactive(),
            "env": self.env_name(),
            "call_tree": self.call_tree(),
        }

    def to_env(self) -> dict[str, str]:
        """Variables injected into every child process."""
        env = {
            self._var("AGENT_MODE"): "1" if self.agent_mode() else "0",
            self._var("INTERACTIVE"): "1" if self.interactive() else "0",
            self._var("CI"): "1" if self.ci() else "0",
            self._var("ENV"): self.env_name(),
        }
        tree = self.call_tree()
        if tree:
            env[self._var("CALL_TREE")] = ":".join(tree)
        return env


def current() -> Context:
    """Context bound to the process environment and configured prefix."""
    from dx_exec import config

    return Context(prefix=config.current().env_prefix)
