"""Backend options and execution shared by the ask, brainstorm and review commands."""

from __future__ import annotations

from typing import Optional

import click
from rich.console import Console

from clibridge_core.errors import BackendError
from clibridge_core.models import REASONING_EFFORTS, BackendConfig, BackendResult, Provider

err_console = Console(stderr=True)


def backend_options(f):
    """Attach the options every backend-driven command accepts."""
    options = [
        click.option(
            "--backend",
            type=click.Choice([p.value for p in Provider]),
            default=None,
            help="Backend to use. Defaults to the session's last backend, then the config file.",
        ),
        click.option("--model", default=None, help="Model override. Defaults to the backend's own default."),
        click.option(
            "--reasoning-effort",
            type=click.Choice(REASONING_EFFORTS),
            default=None,
            help="Reasoning effort (codex only).",
        ),
        click.option(
            "--allowed-tool",
            "allowed_tools",
            multiple=True,
            help="Tool the backend may run without confirmation (gemini). Repeatable.",
        ),
        click.option("--cwd", default=None, type=click.Path(file_okay=False), help="Working directory for the backend CLI."),
        click.option("--stream", is_flag=True, help="Echo backend output to stderr while it arrives."),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def resolve_provider(choice: Optional[str], last_provider: Optional[str], config: dict) -> Provider:
    name = choice or last_provider or config.get("backend") or Provider.GEMINI.value
    try:
        return Provider(name)
    except ValueError:
        raise click.UsageError(f"Unknown backend '{name}'. Choose from: {', '.join(p.value for p in Provider)}")


def run_backend(ctx: click.Context, prompt: str, backend_config: BackendConfig, stream: bool) -> BackendResult:
    """Execute ``prompt`` and turn backend failures into a ClickException.

    The error text is shown verbatim, prefixed with the provider and model
    that were in use.
    """
    registry = ctx.obj["registry"]

    def echo_progress(text: str) -> None:
        err_console.print(text, end="", style="dim", markup=False, highlight=False)

    try:
        backend = registry.get(backend_config.provider)
        return backend.execute(prompt, backend_config, on_progress=echo_progress if stream else None)
    except BackendError as e:
        provider = e.provider or backend_config.provider.value
        model = e.model or backend_config.model or "default"
        raise click.ClickException(f"[{provider}/{model}] {e}") from e
