"""
HENCHMAN data model.

Action items come in from the extraction step upstream and are never
mutated here. Everything a handler produces is a frozen receipt.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Action items
# ---------------------------------------------------------------------------

ITEM_TYPES = ("task", "bug", "feature", "follow_up")
PRIORITY_ORDER: dict[str, int] = {"high": 0, "medium": 1, "low": 2}
DEFAULT_PRIORITY = "medium"


class ActionItem(BaseModel):
    """One follow-up extracted from a conversation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    task: str
    assignee: str | None = None
    assignee_full_name: str | None = Field(default=None, alias="assigneeFullName")
    assignee_email: str | None = Field(default=None, alias="assigneeEmail")
    # Left as plain strings: unknown categories route to the task handler,
    # unknown priorities sort as medium.
    type: str | None = None
    priority: str | None = None
    context: str | None = None

    @property
    def assignee_name(self) -> str | None:
        return self.assignee_full_name or self.assignee or None

    @property
    def effective_type(self) -> str:
        return self.type if self.type in ITEM_TYPES else "task"

    @property
    def priority_rank(self) -> int:
        return PRIORITY_ORDER.get(self.priority or DEFAULT_PRIORITY, PRIORITY_ORDER[DEFAULT_PRIORITY])


# ---------------------------------------------------------------------------
# Provider records
# ---------------------------------------------------------------------------

class CreatedItem(BaseModel):
    """Receipt for a work item created in an external system."""

    model_config = ConfigDict(frozen=True)

    id: str
    url: str
    title: str
    provider: str


class ProviderUser(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str | None = None


class FileChange(BaseModel):
    path: str
    content: str


class CreateItemParams(BaseModel):
    title: str
    description: str = ""
    assignee: str | None = None
    assignee_email: str | None = None
    item_type: Literal["issue", "pr", "prd", "bug", "task"] = "issue"
    # Code-platform only
    branch_name: str | None = None
    files: list[FileChange] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

class HandlerResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    item: CreatedItem | None = None
    secondary_items: list[CreatedItem] = Field(default_factory=list)
    status_text: str
    error: str | None = None


class ItemOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    item: ActionItem
    result: HandlerResult


class OrchestrateResult(BaseModel):
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    results: list[ItemOutcome] = Field(default_factory=list)
