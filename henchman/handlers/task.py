"""
Task handler — files the action item in the task manager exactly as written.
No completion calls.
"""

from __future__ import annotations

from loguru import logger

from henchman.errors import RemoteAPIError
from henchman.handlers import BaseHandler, ExecutionContext
from henchman.models import ActionItem, CreateItemParams, HandlerResult


class TaskHandler(BaseHandler):
    kind = "task"

    async def execute(self, item: ActionItem, ctx: ExecutionContext) -> HandlerResult:
        provider = self._task_manager()
        if provider is None:
            return self._no_provider()

        try:
            created = await provider.create_item(CreateItemParams(
                title=item.task,
                description=item.context or item.task,
                assignee=item.assignee_name,
                assignee_email=item.assignee_email,
                item_type="task",
            ))
        except RemoteAPIError as e:
            logger.warning(f"[TASK] {provider.name} rejected '{item.task}': {e}")
            return HandlerResult(
                success=False,
                status_text=f"Task not created in {provider.name}: {e.message}",
                error=str(e),
            )
        except ValueError as e:
            logger.warning(f"[TASK] {provider.name} refused an untitled item: {e}")
            return HandlerResult(success=False, status_text="Task has no title", error=str(e))

        return HandlerResult(
            success=True,
            item=created,
            status_text=f"Task created: {created.title}",
        )
