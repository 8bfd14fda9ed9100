"""CLI entry point for clibridge.

Commands:
  ask         — one prompt to a backend, optionally continuing a named conversation
  brainstorm  — methodology-driven idea generation with idea tracking across rounds
  review      — git-aware iterative code review with comment decisions
  sessions    — list, show, delete, clean and refine stored sessions
  backends    — show which backends are installed and their models
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from clibridge_cli.commands.ask import ask_cmd
from clibridge_cli.commands.backends import backends_cmd
from clibridge_cli.commands.brainstorm import brainstorm_cmd
from clibridge_cli.commands.review import review_cmd
from clibridge_cli.commands.sessions import sessions_group

console = Console(stderr=True)

TOOL_NAMES = ("ask", "brainstorm", "review-code")


def _build_store(config: dict, tool_name: str):
    """Instantiate the configured session store for one tool.

    Store selection:
      store: file → FileSessionStore under session_dir/<tool_name>
      store: none → NoOpSessionStore (nothing persisted)

    This factory lives in cli.py so neither clibridge_core nor
    clibridge_store know about the CLI config format.
    """
    from pathlib import Path

    from clibridge_core.config import session_settings
    from clibridge_store.file import FileSessionStore, SessionStoreConfig
    from clibridge_store.models import AskSession, BrainstormSession, ReviewSession
    from clibridge_store.noop import NoOpSessionStore

    if config.get("store", "file") == "none":
        return NoOpSessionStore(tool_name)

    record_types = {"ask": AskSession, "brainstorm": BrainstormSession, "review-code": ReviewSession}
    settings = session_settings(config, tool_name)
    legacy = config.get("legacy_session_dir")
    store_config = SessionStoreConfig(
        tool_name=tool_name,
        base_dir=Path(config["session_dir"]).expanduser(),
        ttl_seconds=float(settings["ttl_hours"]) * 3600,
        max_sessions=int(settings["max_sessions"]),
        eviction_policy=settings["eviction_policy"],
        legacy_base_dir=Path(legacy).expanduser() if legacy else None,
    )
    return FileSessionStore(store_config, record_types[tool_name])


def _setup_logging(verbose: bool) -> None:
    handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)


@click.group()
@click.version_option(
    version=importlib.metadata.version("clibridge"),
    prog_name="clibridge",
)
@click.option(
    "--config",
    "config_path",
    default=".clibridge.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="CLIBRIDGE_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Run Gemini and Codex CLIs with persistent multi-round sessions."""
    from clibridge_core.backends.registry import BackendRegistry
    from clibridge_core.config import load_config

    _setup_logging(verbose)
    ctx.ensure_object(dict)

    config = load_config(config_path)
    stores = {name: _build_store(config, name) for name in TOOL_NAMES}

    ctx.obj["config"] = config
    ctx.obj["registry"] = BackendRegistry(max_output_bytes=int(config["max_output_bytes"]))
    ctx.obj["stores"] = stores
    for store in stores.values():
        ctx.call_on_close(store.close)


main.add_command(ask_cmd)
main.add_command(brainstorm_cmd)
main.add_command(review_cmd)
main.add_command(sessions_group)
main.add_command(backends_cmd)
