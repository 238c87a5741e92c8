"""Command preparation: argv flattening, wrapper chain, environment, cwd.

The wrapper chain is an ordered list of stages, each a pure function
(argv, env) -> (argv, env), composed left to right. Applied in order they
produce:

    [dotenv] [mise exec --] [bundle exec] command

Pollution cleanup runs first on the inherited environment, then the
context and caller additions are overlaid, then the command wrappers are
applied innermost-first.
"""

import os
from collections.abc import Callable
from dataclasses import dataclass

from dx_exec import config, detect, working_dir
from dx_exec.context import Context
from dx_exec.options import ExecOptions

Stage = Callable[[list[str], dict[str, str]], tuple[list[str], dict[str, str]]]


@dataclass(frozen=True)
class PreparedCommand:
    original: list[str]
    argv: list[str]
    env: dict[str, str]
    cwd: str | None


def flatten(cmd) -> list[str]:
    """Flatten nested argv pieces into a list of strings."""
    argv: list[str] = []
    for item in cmd:
        if isinstance(item, (list, tuple)):
            argv.extend(flatten(item))
        elif isinstance(item, str):
            argv.append(item)
        elif isinstance(item, int) and not isinstance(item, bool):
            argv.append(str(item))
        elif hasattr(item, "__fspath__"):
            argv.append(os.fspath(item))
        else:
            raise TypeError(f"Invalid command argument {item!r} ({type(item).__name__})")
    return argv


def _invokes(argv: list[str], command: str) -> bool:
    return bool(argv) and os.path.basename(argv[0]) == command


# --- stages ---


def clean_pollution(keys: tuple[str, ...]) -> Stage:
    def stage(argv, env):
        return argv, {k: v for k, v in env.items() if k not in keys}

    return stage


def overlay(additions: dict[str, str]) -> Stage:
    def stage(argv, env):
        return argv, {**env, **additions}

    return stage


def package_manager_exec(pm: config.PackageManagerConfig) -> Stage:
    def stage(argv, env):
        if _invokes(argv, pm.command):
            return argv, env
        return [pm.command, *pm.exec_args, *argv], env

    return stage


def version_manager_exec(vm: config.VersionManagerConfig) -> Stage:
    def stage(argv, env):
        if _invokes(argv, vm.command):
            return argv, env
        return [vm.command, *vm.exec_args, *argv], env

    return stage


def dotenv_loader(command: tuple[str, ...]) -> Stage:
    def stage(argv, env):
        return [*command, *argv], env

    return stage


def compose(stages: list[Stage]) -> Stage:
    def chained(argv, env):
        for stage in stages:
            argv, env = stage(argv, env)
        return argv, env

    return chained


# --- stage selection ---


def package_manager_context_active(
    pm: config.PackageManagerConfig, environ: dict[str, str]
) -> bool:
    """Is this process itself running under the package manager?"""
    return any(var in environ for var in pm.context_vars)


def _use_package_manager(argv: list[str], options: ExecOptions, pm) -> bool:
    if options.package_manager is False or options.shell:
        return False
    if not detect.manifest_present(pm.manifests):
        return False
    if options.package_manager is True:
        return True
    return os.path.basename(argv[0]) in pm.commands


def _use_version_manager(options: ExecOptions, vm) -> bool:
    if options.version_manager is False or options.shell:
        return False
    if options.version_manager is True:
        return True
    return detect.version_pin_present(vm.pin_files)


def build_stages(
    argv: list[str],
    options: ExecOptions,
    settings: config.Settings,
    environ: dict[str, str],
    additions: dict[str, str],
) -> list[Stage]:
    """Select the stages that apply to this command, in application order."""
    if options.raw:
        return [overlay(additions)]

    stages: list[Stage] = []
    pm = settings.package_manager
    if options.clean_env and package_manager_context_active(pm, environ):
        stages.append(clean_pollution(pm.pollution_keys))
    stages.append(overlay(additions))
    if _use_package_manager(argv, options, pm):
        stages.append(package_manager_exec(pm))
    if _use_version_manager(options, settings.version_manager):
        stages.append(version_manager_exec(settings.version_manager))
    if options.dotenv is True:
        stages.append(dotenv_loader(settings.dotenv_command))
    return stages


def resolve_cwd(chdir) -> str | None:
    """Explicit chdir (relative to the working-dir scope), else the scope, else None."""
    if chdir is not None:
        return str(working_dir.resolve(chdir))
    scoped = working_dir.explicit()
    return str(scoped) if scoped is not None else None


def prepare(
    cmd,
    options: ExecOptions,
    settings: config.Settings | None = None,
    context: Context | None = None,
) -> PreparedCommand:
    """Turn caller argv + options into the argv, env and cwd actually spawned."""
    settings = settings or config.current()
    original = flatten(cmd)
    if not original:
        raise ValueError("Command must contain at least one argument")

    additions: dict[str, str] = {}
    if options.propagate_context:
        context = context or Context(prefix=settings.env_prefix)
        additions.update(context.to_env())
    additions.update(options.env)

    environ = dict(os.environ)
    stages = build_stages(original, options, settings, environ, additions)
    argv, env = compose(stages)(list(original), environ)

    return PreparedCommand(
        original=original,
        argv=argv,
        env=env,
        cwd=resolve_cwd(options.chdir),
    )
