"""
Free-text action executor.

Turns one sentence ("Sam should update the onboarding doc") into a work
item: the completion gateway extracts the fields, the provider resolves
the assignee, and the item is created. Progress is announced before and
after through the Reporter when a chat context is given.
"""

from __future__ import annotations

from typing import Literal

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator

from henchman.errors import ConfigurationError
from henchman.gateway import CompletionGateway
from henchman.handlers import ExecutionContext
from henchman.models import CreatedItem, CreateItemParams
from henchman.providers import BaseProvider, ProviderKind, resolve_assignee
from henchman.providers.registry import ProviderRegistry
from henchman.reporter import Reporter

ItemType = Literal["issue", "pr", "prd", "bug", "task"]
ITEM_TYPE_VALUES = ("issue", "pr", "prd", "bug", "task")

EXTRACT_INSTRUCTIONS = """Extract a work item from the user text. Return JSON:
{"title": "short actionable title (start with verb)", "description": "detailed description", "assignee_name": "person name or null", "type": "issue"}
Type must be one of: "issue", "pr", "prd", "bug", "task"."""


class ExtractedAction(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = "Untitled"
    description: str = ""
    assignee_name: str | None = Field(default=None, alias="assigneeName")
    type: ItemType = "issue"

    @field_validator("title", mode="before")
    @classmethod
    def _title_fallback(cls, v):
        return v or "Untitled"

    @field_validator("description", mode="before")
    @classmethod
    def _description_fallback(cls, v):
        return v or ""

    @field_validator("type", mode="before")
    @classmethod
    def _type_fallback(cls, v):
        return v if v in ITEM_TYPE_VALUES else "issue"


class ResolvedAssignee(BaseModel):
    """An assignee already matched upstream, e.g. from meeting participants."""
    name: str
    email: str | None = None


class ExecuteActionResult(BaseModel):
    item: CreatedItem
    assignee_label: str


class ActionExecutor:
    def __init__(
        self,
        registry: ProviderRegistry,
        gateway: CompletionGateway,
        reporter: Reporter | None = None,
    ):
        self.registry = registry
        self.gateway = gateway
        self.reporter = reporter

    async def execute(
        self,
        text: str,
        provider_name: str | None = None,
        resolved_assignee: ResolvedAssignee | None = None,
        ctx: ExecutionContext | None = None,
    ) -> ExecuteActionResult:
        """Extract, resolve and create.

        Without ``provider_name`` the first task-manager provider is used.

        Raises:
            ConfigurationError: if the named provider (or any task manager) is missing.
            ParseError: if the extraction is not well-formed JSON.
            RemoteAPIError: if the provider rejects the item.
        """
        provider = self._pick_provider(provider_name)
        extracted: ExtractedAction = await self.gateway.complete_json(EXTRACT_INSTRUCTIONS, text, ExtractedAction)

        # An upstream match beats whatever the model read out of the text
        name = resolved_assignee.name if resolved_assignee else extracted.assignee_name
        email = resolved_assignee.email if resolved_assignee else None

        user = resolve_assignee(provider, name, email)
        label = (user.name if user else None) or name or "unassigned"

        if ctx and self.reporter:
            await self.reporter.announce_action(extracted.title, extracted.type, provider.name, label, ctx)

        created = await provider.create_item(CreateItemParams(
            title=extracted.title,
            description=extracted.description,
            assignee=name,
            assignee_email=email,
            item_type=extracted.type,
        ))
        logger.info(f"[EXECUTOR] Created {created.id} in {provider.name} → {label}")

        if ctx and self.reporter:
            await self.reporter.report_created(created, label, ctx)

        return ExecuteActionResult(item=created, assignee_label=label)

    def _pick_provider(self, provider_name: str | None) -> BaseProvider:
        if provider_name:
            provider = self.registry.get(provider_name)
            if provider is None:
                raise ConfigurationError(f"Provider not configured: {provider_name}")
            return provider

        provider = self.registry.first(ProviderKind.TASK_MANAGER)
        if provider is None:
            raise ConfigurationError("No task-manager provider configured")
        return provider
