"""CLI entry point for diffguard.

Commands:
  review   — review the pull request named by a webhook event payload
  history  — display past review records from the configured store
"""

from __future__ import annotations

import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from diffguard_cli.commands.history import history_cmd
from diffguard_cli.commands.review import review_cmd

console = Console()


def _build_store(settings):
    """Instantiate the configured store from .diffguard.yml settings.

    Store selection hierarchy:
      store: gist   → GistStore  (requires gist_id and github_token)
      store: sqlite → SQLiteStore (uses store_path)
      (default)     → NoOpStore  (no persistence; PR reviews are scanned instead)

    This factory lives in cli.py so neither diffguard_core nor diffguard_store
    know about the configuration format.
    """
    from diffguard_store.noop import NoOpStore

    if settings.store == "gist":
        from diffguard_store.gist import GistStore

        if not settings.gist_id or not settings.github_token:
            console.print("[yellow]GistStore requires gist_id and a GitHub token. Falling back to no store.[/yellow]")
            return NoOpStore()
        return GistStore(gist_id=settings.gist_id, token=settings.github_token)

    if settings.store == "sqlite":
        from diffguard_store.sqlite import SQLiteStore

        return SQLiteStore(db_path=settings.store_path)

    return NoOpStore()


@click.group()
@click.version_option(package_name="diffguard", prog_name="diffguard")
@click.option(
    "--config",
    "config_path",
    default=".diffguard.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="DIFFGUARD_CONFIG",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    envvar="DIFFGUARD_LOG_LEVEL",
)
@click.pass_context
def main(ctx: click.Context, config_path: str, log_level: str):
    """Automated LLM code review for GitHub pull requests."""
    from dataclasses import replace

    from diffguard_cli.auth import resolve_github_token
    from diffguard_core.config import ConfigError, load_config

    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )

    ctx.ensure_object(dict)

    try:
        settings = load_config(config_path)
    except ConfigError as e:
        raise click.UsageError(str(e))

    # Resolve token early so all subcommands share the same resolution.
    token = resolve_github_token()
    if token:
        settings = replace(settings, github_token=token)

    store = _build_store(settings)
    ctx.obj["store"] = store
    ctx.obj["settings"] = settings
    ctx.call_on_close(store.close)


main.add_command(review_cmd)
main.add_command(history_cmd)
