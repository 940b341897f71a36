"""CLI entry point for prstack.

Commands:
  diff   submit the current branch as a pull request, stacking it when needed
  list   show open pull requests with review and check status
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler

from prstack_cli.commands.diff import diff_cmd
from prstack_cli.commands.list import list_cmd

console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(
    version=importlib.metadata.version("prstack"),
    prog_name="prstack",
)
@click.option(
    "--config",
    "config_path",
    default=".prstack.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRSTACK_CONFIG",
)
@click.option("--remote", default=None, help="Git remote to push to and infer the repository from. Overrides the config file.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, remote: str | None, verbose: bool):
    """Stacked pull requests for GitHub."""
    from prstack_core.config import load_config
    from prstack_cli.auth import resolve_github_token
    from prstack_cli.factory import build_breaker, build_cache

    _configure_logging(verbose)
    ctx.ensure_object(dict)

    try:
        config = load_config(config_path, cli_overrides={"remote": remote})
    except (ValueError, yaml.YAMLError) as exc:
        raise click.ClickException(f"Invalid configuration in {config_path}: {exc}") from exc

    # Resolve token early so all subcommands share the same resolution.
    token = resolve_github_token()
    if token:
        config["github_token"] = token

    cache = build_cache(config)
    ctx.obj["config"] = config
    ctx.obj["cache"] = cache
    # One breaker per process, shared by every client the subcommand builds.
    ctx.obj["breaker"] = build_breaker(config)
    ctx.call_on_close(cache.close)


main.add_command(diff_cmd)
main.add_command(list_cmd)
