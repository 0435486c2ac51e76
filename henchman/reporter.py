"""
HENCHMAN Reporter — announcing the batch in chat.

Handlers only return results; this is where they get said out loud.
Posting is fire-and-forget from the orchestrator's point of view: a
chat failure is logged and never changes an item's outcome.
"""

from __future__ import annotations

from typing import Sequence

from loguru import logger

from henchman.errors import RemoteAPIError
from henchman.gateway import CompletionGateway
from henchman.handlers import ExecutionContext
from henchman.models import ActionItem, CreatedItem, HandlerResult, OrchestrateResult

TYPE_SECTIONS = {
    "bug": "Bugs to fix",
    "feature": "Feature requests",
    "task": "Tasks",
    "follow_up": "Follow-ups",
}
TYPE_ORDER = ["bug", "feature", "task", "follow_up"]

PERSONA_INSTRUCTIONS = """You are HENCHMAN, a loyal, slightly theatrical minion who takes care of meeting follow-ups.

You generate SHORT in-character chat messages (1-2 sentences max) for the situation described. Return ONLY the message text, nothing else. No markdown formatting, no quotes around the output."""

FALLBACK_INTRO = "On it. Your minion is taking care of these."
MAX_REASON_LENGTH = 120


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def fmt_ref(item: CreatedItem) -> str:
    """Linked reference in chat markup: <url|BIL-123>."""
    return f"<{item.url}|{item.id}>" if item.url else item.id


def fmt_assignee(name: str | None) -> str:
    return f"*{name}*" if name else ""


def fmt_action_plan(items: Sequence[ActionItem]) -> str:
    """Group items by category, in a fixed section order."""
    groups: dict[str, list[ActionItem]] = {}
    for item in items:
        groups.setdefault(item.effective_type, []).append(item)

    sections = []
    for kind in TYPE_ORDER:
        entries = groups.get(kind)
        if not entries:
            continue
        lines = []
        for item in entries:
            assignee = f" → {fmt_assignee(item.assignee_name)}" if item.assignee_name else ""
            lines.append(f"• {item.task}{assignee}")
        sections.append(f"*{TYPE_SECTIONS[kind]}*\n" + "\n".join(lines))

    return "\n\n".join(sections)


def short_reason(error: BaseException) -> str:
    text = str(error).strip().splitlines()[0] if str(error).strip() else error.__class__.__name__
    if len(text) > MAX_REASON_LENGTH:
        text = text[: MAX_REASON_LENGTH - 1] + "…"
    return text


def fmt_result(item: ActionItem, result: HandlerResult) -> str:
    marker = "✅" if result.success else "⚠️"
    line = f"{marker} {result.status_text}"
    if result.item:
        line += f" ({fmt_ref(result.item)})"
    if result.success and item.assignee_name:
        line += f" → {fmt_assignee(item.assignee_name)}"
    for extra in result.secondary_items:
        line += f"\n    ↳ {extra.title} ({fmt_ref(extra)})"
    return line


def fmt_failure(item: ActionItem, error: BaseException) -> str:
    return f"❌ Failed: *{item.task}* — {short_reason(error)}"


def fmt_summary(outcome: OrchestrateResult) -> str:
    return f"Done: {outcome.succeeded}/{outcome.total} succeeded, {outcome.failed} failed."


# ---------------------------------------------------------------------------
# Reporter
# ---------------------------------------------------------------------------

class Reporter:
    def __init__(self, gateway: CompletionGateway | None = None, persona_intro: bool = True):
        self.gateway = gateway
        self.persona_intro = persona_intro

    async def announce_plan(self, items: Sequence[ActionItem], ctx: ExecutionContext) -> None:
        if ctx.chat is None:
            return
        intro = await self._intro(len(items))
        await self._post(ctx, f"{intro}\n\n{fmt_action_plan(items)}")

    async def report_result(self, item: ActionItem, result: HandlerResult, ctx: ExecutionContext) -> None:
        await self._post(ctx, fmt_result(item, result))

    async def report_failure(self, item: ActionItem, error: BaseException, ctx: ExecutionContext) -> None:
        await self._post(ctx, fmt_failure(item, error))

    async def report_summary(self, outcome: OrchestrateResult, ctx: ExecutionContext) -> None:
        await self._post(ctx, fmt_summary(outcome))

    async def announce_action(self, title: str, item_type: str, provider: str, assignee: str, ctx: ExecutionContext) -> None:
        await self._post(ctx, f"🔔 Creating {item_type} in *{provider}*: *{title}* → {assignee}")

    async def report_created(self, created: CreatedItem, assignee: str, ctx: ExecutionContext) -> None:
        await self._post(
            ctx,
            f"✅ Created in {created.provider}: <{created.url}|{created.title}> ({created.id}) → {assignee}",
        )

    async def _intro(self, count: int) -> str:
        if not (self.persona_intro and self.gateway):
            return FALLBACK_INTRO
        situation = f"{count} action items from a meeting. Announce you're taking care of them. Do NOT list the items."
        try:
            line = (await self.gateway.complete(PERSONA_INSTRUCTIONS, situation)).strip()
        except RemoteAPIError as e:
            logger.debug(f"[REPORT] Persona intro unavailable: {e}")
            return FALLBACK_INTRO
        return line or FALLBACK_INTRO

    async def _post(self, ctx: ExecutionContext, text: str) -> None:
        if ctx.chat is None:
            return
        try:
            await ctx.chat.post_message(ctx.channel, ctx.thread_ts, text)
        except Exception as e:
            logger.warning(f"[REPORT] Could not post to {ctx.channel}: {e}")
