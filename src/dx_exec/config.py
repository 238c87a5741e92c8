"""Parse .dx.yml into Settings objects."""

import os
import threading
from dataclasses import dataclass, field

import yaml

from dx_exec import detect

CONFIG_FILES = (".dx.yml", os.path.join(".dx", "config.yml"))

DEFAULT_GEM_COMMANDS = (
    "rake",
    "rspec",
    "rubocop",
    "standardrb",
    "steep",
    "rbs",
    "rails",
    "sidekiq",
    "puma",
    "unicorn",
    "thin",
    "bundler",
    "bundle",
    "erb",
    "rdoc",
    "ri",
    "yard",
)

DEFAULT_POLLUTION_KEYS = (
    "BUNDLE_GEMFILE",
    "BUNDLE_BIN_PATH",
    "BUNDLE_PATH",
    "BUNDLER_VERSION",
    "BUNDLER_SETUP",
    "RUBYOPT",
    "RUBYLIB",
    "GEM_HOME",
    "GEM_PATH",
)


@dataclass(frozen=True)
class PackageManagerConfig:
    command: str = "bundle"
    exec_args: tuple[str, ...] = ("exec",)
    manifests: tuple[str, ...] = ("Gemfile",)
    commands: tuple[str, ...] = DEFAULT_GEM_COMMANDS
    pollution_keys: tuple[str, ...] = DEFAULT_POLLUTION_KEYS
    context_vars: tuple[str, ...] = ("BUNDLE_GEMFILE", "BUNDLE_BIN_PATH", "BUNDLER_SETUP")


@dataclass(frozen=True)
class VersionManagerConfig:
    command: str = "mise"
    exec_args: tuple[str, ...] = ("exec", "--")
    pin_files: tuple[str, ...] = (".mise.toml", ".tool-versions")


@dataclass(frozen=True)
class Settings:
    env_prefix: str = "DX"
    tool_command: str = "dx"
    kill_grace: float = 0.1
    poll_interval: float = 0.05
    dotenv_command: tuple[str, ...] = ("dotenv",)
    package_manager: PackageManagerConfig = field(default_factory=PackageManagerConfig)
    version_manager: VersionManagerConfig = field(default_factory=VersionManagerConfig)

    def env_var(self, name: str) -> str:
        return f"{self.env_prefix}_{name}"


def _str_tuple(raw, key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    if raw is None:
        return default
    if isinstance(raw, str):
        return tuple(raw.split())
    if not isinstance(raw, list):
        raise ValueError(f"{key} must be a list of strings")
    return tuple(str(item) for item in raw)


def _positive_float(raw, key: str, default: float) -> float:
    if raw is None:
        return default
    value = float(raw)
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {raw!r}")
    return value


def _section(raw: dict, key: str) -> dict:
    section = raw.get(key) or {}
    if not isinstance(section, dict):
        raise ValueError(f"{key} must be a mapping")
    return section


def parse_settings(raw: dict | None) -> Settings:
    """Build Settings from a parsed config dict.

    Missing keys fall back to the defaults on each dataclass. The exec
    section holds engine tunables; package_manager and version_manager
    describe the wrapper tools.
    """
    if not raw:
        return Settings()
    if not isinstance(raw, dict):
        raise ValueError("config must be a mapping")

    defaults = Settings()
    exec_section = _section(raw, "exec")
    pm = _section(raw, "package_manager")
    vm = _section(raw, "version_manager")
    pm_defaults = PackageManagerConfig()
    vm_defaults = VersionManagerConfig()

    return Settings(
        env_prefix=str(raw.get("env_prefix", defaults.env_prefix)),
        tool_command=str(raw.get("tool_command", defaults.tool_command)),
        kill_grace=_positive_float(
            exec_section.get("kill_grace"), "exec.kill_grace", defaults.kill_grace
        ),
        poll_interval=_positive_float(
            exec_section.get("poll_interval"), "exec.poll_interval", defaults.poll_interval
        ),
        dotenv_command=_str_tuple(
            exec_section.get("dotenv_command"), "exec.dotenv_command", defaults.dotenv_command
        ),
        package_manager=PackageManagerConfig(
            command=str(pm.get("command", pm_defaults.command)),
            exec_args=_str_tuple(
                pm.get("exec_args"), "package_manager.exec_args", pm_defaults.exec_args
            ),
            manifests=_str_tuple(
                pm.get("manifests"), "package_manager.manifests", pm_defaults.manifests
            ),
            commands=_str_tuple(
                pm.get("commands"), "package_manager.commands", pm_defaults.commands
            ),
            pollution_keys=_str_tuple(
                pm.get("pollution_keys"),
                "package_manager.pollution_keys",
                pm_defaults.pollution_keys,
            ),
            context_vars=_str_tuple(
                pm.get("context_vars"), "package_manager.context_vars", pm_defaults.context_vars
            ),
        ),
        version_manager=VersionManagerConfig(
            command=str(vm.get("command", vm_defaults.command)),
            exec_args=_str_tuple(
                vm.get("exec_args"), "version_manager.exec_args", vm_defaults.exec_args
            ),
            pin_files=_str_tuple(
                vm.get("pin_files"), "version_manager.pin_files", vm_defaults.pin_files
            ),
        ),
    )


def find_config_file(root: str | None = None) -> str | None:
    """Return the first config file under root (default: project root)."""
    base = root or detect.find_project_root()
    if base is None:
        return None
    for name in CONFIG_FILES:
        path = os.path.join(base, name)
        if os.path.isfile(path):
            return path
    return None


def load_settings(root: str | None = None) -> Settings:
    """Load Settings from the project config file, or defaults if absent."""
    path = find_config_file(root)
    if path is None:
        return Settings()
    with open(path) as f:
        raw = yaml.safe_load(f)
    return parse_settings(raw)


_current: Settings | None = None
_current_lock = threading.Lock()


def current() -> Settings:
    """Settings for this process, loaded once."""
    global _current
    with _current_lock:
        if _current is None:
            _current = load_settings()
        return _current


def reset() -> None:
    global _current
    with _current_lock:
        _current = None
