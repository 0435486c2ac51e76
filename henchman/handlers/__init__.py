"""
HENCHMAN Handler Roster

One handler per action-item category:
  - task      — file a ticket as-is
  - feature   — expand into a PRD, then file it
  - bug       — file a ticket, then try to open a fix PR
  - follow_up — a reminder line, nothing external

Handlers return a HandlerResult and never post to chat themselves.
Announcing outcomes is the orchestrator's job.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from henchman.chat import ChatPoster
from henchman.gateway import CompletionGateway
from henchman.models import ActionItem, HandlerResult
from henchman.providers import BaseProvider, ProviderKind
from henchman.providers.registry import ProviderRegistry


@dataclass(frozen=True)
class ExecutionContext:
    """Where the outcome of a batch gets announced."""
    chat: ChatPoster | None
    channel: str
    thread_ts: str | None = None


class BaseHandler(ABC):
    """
    Base class for all HENCHMAN handlers.

    Subclasses define:
      - kind: str — the action-item category they serve
      - execute() — turn one item into a HandlerResult
    """

    kind: str = "unknown"

    def __init__(
        self,
        registry: ProviderRegistry | None = None,
        gateway: CompletionGateway | None = None,
    ):
        self.registry = registry or ProviderRegistry()
        self.gateway = gateway

    @abstractmethod
    async def execute(self, item: ActionItem, ctx: ExecutionContext) -> HandlerResult:
        ...

    def _task_manager(self) -> BaseProvider | None:
        return self.registry.first(ProviderKind.TASK_MANAGER)

    @staticmethod
    def _no_provider() -> HandlerResult:
        return HandlerResult(
            success=False,
            status_text="No task-manager provider configured",
            error="no_provider",
        )


__all__ = ["BaseHandler", "ExecutionContext"]
