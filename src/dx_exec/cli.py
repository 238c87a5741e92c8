"""Click entry point: run, capture, shell, exec, context."""

import functools
import json
import sys

import click
import yaml

from dx_exec import __version__, context, log, process


def _parse_env(pairs: tuple[str, ...]) -> dict[str, str]:
    env = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint="--env")
        env[key] = value
    return env


def exec_options(f):
    """Shared options mapped onto ExecOptions fields."""

    @click.option("--timeout", type=click.FloatRange(min=0, min_open=True), default=None,
                  help="Seconds before the command is terminated")
    @click.option("--chdir", "-C", default=None, help="Working directory for the command")
    @click.option("--env", "-e", "env_pairs", multiple=True, metavar="KEY=VALUE",
                  help="Extra environment variable (repeatable)")
    @click.option("--raw", is_flag=True, help="Skip all command wrappers")
    @click.option("--dotenv", is_flag=True, help="Load .env through the dotenv wrapper")
    @click.option("--package-manager/--no-package-manager", default=None,
                  help="Force or skip the package-manager exec wrapper")
    @click.option("--version-manager/--no-version-manager", default=None,
                  help="Force or skip the version-manager exec wrapper")
    @click.option("--no-clean-env", is_flag=True,
                  help="Keep package-manager variables inherited by this process")
    @functools.wraps(f)
    def wrapper(timeout, chdir, env_pairs, raw, dotenv, package_manager, version_manager,
                no_clean_env, **kwargs):
        opts = {
            "env": _parse_env(env_pairs),
            "chdir": chdir,
            "timeout": timeout,
            "raw": raw,
            "dotenv": dotenv,
            "package_manager": package_manager,
            "version_manager": version_manager,
            "clean_env": not no_clean_env,
        }
        return f(opts=opts, **kwargs)

    return wrapper


def _finish(result) -> None:
    if result.timed_out:
        log.failure(f"{result.command[0]} timed out")
    result.exit_on_failure()
    sys.exit(0)


@click.group()
@click.version_option(version=__version__, prog_name="dx-exec")
def main():
    """Run commands with environment wrappers, timeouts and call-tree propagation."""


@main.command(context_settings={"ignore_unknown_options": True})
@exec_options
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
def run(command, opts):
    """Run a command, streaming its output."""
    _finish(process.run(*command, **opts))


@main.command(context_settings={"ignore_unknown_options": True})
@exec_options
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
def capture(command, as_json, opts):
    """Run a command and print its captured output."""
    result = process.capture(*command, **opts)
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        if result.stdout:
            click.echo(result.stdout, nl=False)
        if result.stderr:
            click.echo(result.stderr, nl=False, err=True)
    _finish(result)


@main.command()
@exec_options
@click.argument("command_string")
def shell(command_string, opts):
    """Run a string through /bin/sh -c."""
    _finish(process.shell(command_string, **opts))


@main.command(name="exec", context_settings={"ignore_unknown_options": True})
@click.option("--chdir", "-C", default=None, help="Working directory for the command")
@click.option("--raw", is_flag=True, help="Skip all command wrappers")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
def exec_cmd(command, chdir, raw):
    """Replace this process with a command."""
    result = process.exec_replace(*command, chdir=chdir, raw=raw)
    if result is not None:
        result.exit_on_failure()


@main.command(name="context")
def context_cmd():
    """Show the environment propagated to child processes."""
    ctx = context.current()
    click.echo(yaml.safe_dump(ctx.to_env(), default_flow_style=False, sort_keys=True), nl=False)


if __name__ == "__main__":
    main()
