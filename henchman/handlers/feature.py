"""
📝 Feature handler

Expands a one-line feature request into a short PRD through the
completion gateway and files it as a "prd" issue.
"""

from __future__ import annotations

from loguru import logger

from henchman.errors import RemoteAPIError
from henchman.handlers import BaseHandler, ExecutionContext
from henchman.models import ActionItem, CreateItemParams, HandlerResult

PRD_INSTRUCTIONS = """You are a product manager. Given a feature request from a meeting, write a concise PRD (Product Requirements Document).

Format:
## Problem
(What problem does this solve?)

## Proposed Solution
(High-level approach)

## Requirements
- (Bullet list of functional requirements)

## Success Criteria
- (How do we know it's done?)

Keep it concise, max 300 words."""


class FeatureHandler(BaseHandler):
    kind = "feature"

    async def execute(self, item: ActionItem, ctx: ExecutionContext) -> HandlerResult:
        provider = self._task_manager()
        if provider is None:
            return self._no_provider()
        if self.gateway is None:
            return HandlerResult(success=False, status_text="Completion service not configured", error="no_gateway")

        request = f"Feature request: {item.task}"
        if item.context:
            request += f"\n\nContext from meeting: {item.context}"

        try:
            prd = (await self.gateway.complete(PRD_INSTRUCTIONS, request)).strip() or item.task
        except RemoteAPIError as e:
            logger.warning(f"[FEATURE] PRD generation failed for '{item.task}': {e}")
            return HandlerResult(success=False, status_text=f"PRD not generated: {e.message}", error=str(e))

        logger.debug(f"[FEATURE] PRD for '{item.task}' — {len(prd.split())} words")

        try:
            created = await provider.create_item(CreateItemParams(
                title=f"[Feature] {item.task}",
                description=prd,
                assignee=item.assignee_name,
                assignee_email=item.assignee_email,
                item_type="prd",
            ))
        except RemoteAPIError as e:
            logger.warning(f"[FEATURE] {provider.name} rejected '{item.task}': {e}")
            return HandlerResult(
                success=False,
                status_text=f"Feature PRD not filed in {provider.name}: {e.message}",
                error=str(e),
            )

        return HandlerResult(
            success=True,
            item=created,
            status_text=f"Feature PRD created: {created.title}",
        )
