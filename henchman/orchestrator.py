"""
HENCHMAN Orchestrator

Runs one batch of action items:
  1. Sorts them by priority (stable, missing priority counts as medium).
  2. Announces the plan through the Reporter.
  3. Dispatches every item concurrently to its routed handler.
  4. Aggregates the outcomes.

Each dispatch is wrapped on its own. A handler that raises becomes a
counted failure with no detail entry; its siblings keep running.
"""

from __future__ import annotations

import asyncio
from typing import Sequence

from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from henchman.handlers import ExecutionContext
from henchman.models import ActionItem, HandlerResult, ItemOutcome, OrchestrateResult
from henchman.reporter import Reporter, fmt_ref
from henchman.routing import HandlerRouter

console = Console()


def sort_by_priority(items: Sequence[ActionItem]) -> list[ActionItem]:
    return sorted(items, key=lambda item: item.priority_rank)


class Orchestrator:
    def __init__(self, router: HandlerRouter, reporter: Reporter | None = None):
        self.router = router
        self.reporter = reporter

    async def orchestrate(self, items: Sequence[ActionItem], ctx: ExecutionContext) -> OrchestrateResult:
        if not items:
            return OrchestrateResult()

        ordered = sort_by_priority(items)
        logger.info(f"[ORCH] {len(ordered)} action items, dispatching concurrently")

        if self.reporter:
            await self.reporter.announce_plan(ordered, ctx)

        results = await asyncio.gather(*(self._dispatch(item, ctx) for item in ordered))

        outcome = OrchestrateResult(total=len(ordered))
        for item, result in zip(ordered, results):
            if result is None:
                outcome.failed += 1
                continue
            if result.success:
                outcome.succeeded += 1
            else:
                outcome.failed += 1
            outcome.results.append(ItemOutcome(item=item, result=result))

        logger.info(
            f"[ORCH] Done — {outcome.succeeded} succeeded, {outcome.failed} failed "
            f"of {outcome.total}"
        )
        return outcome

    async def _dispatch(self, item: ActionItem, ctx: ExecutionContext) -> HandlerResult | None:
        handler = self.router.route(item.type)
        logger.info(f"[ORCH] {item.effective_type} → {handler.kind}: {item.task}")

        try:
            result = await handler.execute(item, ctx)
        except Exception as e:
            logger.opt(exception=e).error(f"[ORCH] Handler '{handler.kind}' crashed on '{item.task}': {e}")
            if self.reporter:
                await self.reporter.report_failure(item, e, ctx)
            return None

        if self.reporter:
            await self.reporter.report_result(item, result, ctx)
        return result


# --- Helpers ---

def print_summary(outcome: OrchestrateResult, out: Console | None = None) -> None:
    """Consolidated table of a finished batch."""
    out = out or console
    table = Table(title="Action Item Results", border_style="bright_green")
    table.add_column("Type")
    table.add_column("Task")
    table.add_column("Status")
    table.add_column("Created")

    for entry in outcome.results:
        color = "green" if entry.result.success else "yellow"
        created = [fmt_ref(entry.result.item)] if entry.result.item else []
        created += [fmt_ref(extra) for extra in entry.result.secondary_items]
        table.add_row(
            entry.item.effective_type,
            escape(entry.item.task[:60]),
            f"[{color}]{escape(entry.result.status_text)}[/]",
            escape(", ".join(created)) or "—",
        )

    out.print(table)

    crashed = outcome.total - len(outcome.results)
    line = f"\n[bold]{outcome.succeeded}/{outcome.total} succeeded[/]"
    if crashed:
        line += f" [red]({crashed} crashed, see log)[/]"
    out.print(line)


__all__ = ["Orchestrator", "print_summary", "sort_by_priority"]
