"""
HENCHMAN CLI — The Interface

Commands:
  - henchman run <items.yaml>   (orchestrate a batch of action items)
  - henchman file "<text>"      (turn one sentence into a work item)
  - henchman status             (check credentials + configuration)
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Optional

import typer
import yaml
from dotenv import load_dotenv
from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from henchman.identity import __codename__, __tagline__, __version__, BANNER
from henchman.chat import ConsoleChatPoster
from henchman.config_loader import HenchmanConfig, load_config, validate_api_keys
from henchman.errors import HenchmanError
from henchman.executor import ResolvedAssignee
from henchman.handlers import ExecutionContext
from henchman.models import ActionItem, OrchestrateResult
from henchman.orchestrator import print_summary
from henchman.runtime import open_runtime

# Load .env from current directory or home
load_dotenv()
load_dotenv(Path.home() / ".henchman" / ".env")

app = typer.Typer(
    name="henchman",
    help=f"{__codename__} — {__tagline__}\nTurns meeting action items into tickets, PRDs and fix PRs.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__codename__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    pass


# ---------------------------------------------------------------------------
# Banner
# ---------------------------------------------------------------------------


def _print_banner():
    console.print(f"[bright_green]{BANNER}[/]")
    console.print(f"  [dim]v{__version__} — {__tagline__}[/]\n")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def run(
    items_file: Path = typer.Argument(..., help="YAML or JSON file with action items"),
    channel: Optional[str] = typer.Option(None, "--channel", "-c", help="Chat channel to report into"),
    thread: Optional[str] = typer.Option(None, "--thread", help="Thread to reply in"),
    config_file: Optional[Path] = typer.Option(None, "--config", help="Config override file"),
    to_console: bool = typer.Option(False, "--console", help="Print chat messages here instead of posting them"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Dispatch a batch of action items to their handlers."""
    _print_banner()
    _configure_logging(verbose)

    config = _load_config_or_exit(config_file)

    try:
        items = load_action_items(items_file)
    except (OSError, ValueError) as e:
        console.print(f"[red]Could not load action items: {escape(str(e))}[/]")
        raise typer.Exit(1)

    if not items:
        console.print("[yellow]No action items. Nothing to do.[/]")
        return

    console.print(f"[bold]⚡ {len(items)} action items[/]\n")
    outcome, usage = asyncio.run(_run_batch(config, items, channel, thread, to_console))

    print_summary(outcome, console)
    console.print(
        f"[dim]Completion calls: {usage['call_count']} | retries: {usage['retry_count']} | "
        f"tokens: {usage['total_tokens']:,} | cost: ${usage['estimated_cost']:.4f}[/]"
    )

    if outcome.failed:
        raise typer.Exit(1)


@app.command("file")
def file_item(
    text: str = typer.Argument(..., help="Free-text description of the work item"),
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="Provider name (default: first task manager)"),
    assignee: Optional[str] = typer.Option(None, "--assignee", "-a", help="Assignee name, skips extraction"),
    email: Optional[str] = typer.Option(None, "--email", help="Assignee email"),
    config_file: Optional[Path] = typer.Option(None, "--config", help="Config override file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Create one work item from a sentence."""
    _configure_logging(verbose)
    config = _load_config_or_exit(config_file)

    resolved = ResolvedAssignee(name=assignee, email=email) if assignee else None

    try:
        result = asyncio.run(_file_one(config, text, provider, resolved))
    except HenchmanError as e:
        console.print(f"[red]✗ {escape(str(e))}[/]")
        raise typer.Exit(1)

    item = result.item
    console.print(f"[green]✓ Created {item.id} in {item.provider}:[/] {escape(item.title)}")
    console.print(f"  {item.url}")
    console.print(f"  [dim]Assignee: {escape(result.assignee_label)}[/]")


@app.command()
def status(
    config_file: Optional[Path] = typer.Option(None, "--config", help="Config override file"),
):
    """Check HENCHMAN configuration and readiness."""
    _print_banner()

    # API Keys
    keys = validate_api_keys()
    key_table = Table(title="API Keys", border_style="cyan")
    key_table.add_column("Key")
    key_table.add_column("Status")

    for key, available in keys.items():
        status_str = "[green]✓ Available[/]" if available else "[red]✗ Missing[/]"
        key_table.add_row(key, status_str)

    console.print(key_table)

    config = _load_config_or_exit(config_file)

    provider_table = Table(title="Providers", border_style="cyan")
    provider_table.add_column("Provider")
    provider_table.add_column("Status")
    provider_table.add_row("linear", _configured(config.linear.configured, config.linear.team_id))
    provider_table.add_row("github", _configured(config.github.configured, config.github.repo))
    provider_table.add_row("slack", _configured(config.slack.configured, config.slack.channel_id))
    console.print(provider_table)

    c = config.completion
    console.print(f"\n[bold]Completion:[/]")
    console.print(f"  Model:           {c.model}")
    console.print(f"  Max concurrency: {c.max_concurrency}")
    console.print(f"  Max attempts:    {c.max_attempts}")
    console.print(f"  Backoff:         {c.base_delay}s base, {c.max_delay}s cap, {c.jitter_cap}s jitter cap")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def load_action_items(path: Path) -> list[ActionItem]:
    """Read action items from YAML or JSON.

    Accepts a bare list or a mapping with an ``actionItems`` /
    ``action_items`` key.

    Raises:
        ValueError: if the file is malformed or an item is invalid.
    """
    with open(path, "r") as f:
        try:
            data: Any = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"{path.name} is not valid YAML/JSON: {e}") from e

    if data is None:
        return []
    if isinstance(data, dict):
        data = data.get("actionItems", data.get("action_items"))
    if not isinstance(data, list):
        raise ValueError(f"{path.name} must contain a list of action items")

    items = []
    for i, raw in enumerate(data, 1):
        try:
            items.append(ActionItem.model_validate(raw))
        except ValidationError as e:
            raise ValueError(f"action item #{i} is invalid: {e.error_count()} error(s)") from e
    return items


async def _run_batch(
    config: HenchmanConfig,
    items: list[ActionItem],
    channel: str | None,
    thread: str | None,
    to_console: bool,
) -> tuple[OrchestrateResult, dict]:
    chat = ConsoleChatPoster(console) if to_console else None
    async with open_runtime(config, chat=chat) as rt:
        ctx = ExecutionContext(
            chat=rt.chat,
            channel=channel or config.slack.channel_id or "console",
            thread_ts=thread,
        )
        if rt.chat is None:
            logger.warning("[CLI] No chat configured, outcomes are only printed here")

        outcome = await rt.orchestrator.orchestrate(items, ctx)
        await rt.reporter.report_summary(outcome, ctx)
        return outcome, rt.gateway.usage.summary()


async def _file_one(
    config: HenchmanConfig,
    text: str,
    provider: str | None,
    resolved: ResolvedAssignee | None,
):
    async with open_runtime(config) as rt:
        return await rt.executor.execute(text, provider_name=provider, resolved_assignee=resolved)


def _load_config_or_exit(path: Path | None) -> HenchmanConfig:
    try:
        return load_config(path)
    except (OSError, ValidationError) as e:
        console.print(f"[red]Invalid configuration: {escape(str(e))}[/]")
        raise typer.Exit(1)


def _configured(ok: bool, detail: str) -> str:
    if ok:
        return f"[green]✓ Configured[/] [dim]{escape(detail)}[/]"
    return "[dim]✗ Not configured[/]"


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    if verbose:
        logger.add(
            lambda msg: console.print(f"[dim]{escape(str(msg))}[/]", highlight=False),
            level="DEBUG",
            format="{time:HH:mm:ss} | {level:<7} | {message}",
        )
    else:
        logger.add(
            lambda msg: console.print(f"[dim]{escape(str(msg))}[/]", highlight=False),
            level="WARNING",
            format="{message}",
        )


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()
