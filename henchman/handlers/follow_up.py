"""Follow-up handler — nothing to file, just a reminder line."""

from __future__ import annotations

from henchman.handlers import BaseHandler, ExecutionContext
from henchman.models import ActionItem, HandlerResult


class FollowUpHandler(BaseHandler):
    kind = "follow_up"

    async def execute(self, item: ActionItem, ctx: ExecutionContext) -> HandlerResult:
        who = item.assignee_name or "team"
        return HandlerResult(success=True, status_text=f"Reminder for {who}: {item.task}")
