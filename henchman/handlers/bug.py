"""
🐛 Bug handler

Phase A: file a bug ticket in the task manager (if there is one).
Phase B: best-effort auto-fix PR —
  list repo files → pick 3-5 suspects → fetch them → generate whole-file
  replacements → open a PR through the code-change transaction.

Phase B never masks Phase A. Whatever goes wrong there becomes a
"fix skipped" note on the status line, and ``success`` only ever
reflects the ticket.
"""

from __future__ import annotations

import asyncio
from typing import Callable

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from henchman.changes import branch_name_for
from henchman.errors import ConfigurationError, HenchmanError, PartialFetchError, RemoteAPIError
from henchman.handlers import BaseHandler, ExecutionContext
from henchman.models import ActionItem, CreatedItem, CreateItemParams, FileChange, HandlerResult
from henchman.providers import BaseProvider, Capability, ProviderKind

MIN_FILES = 3
MAX_FILES = 5


# ---------------------------------------------------------------------------
# Strict Output Schemas
# ---------------------------------------------------------------------------

class FileSelection(BaseModel):
    files: list[str] = Field(default_factory=list)


class GeneratedFix(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    files: list[FileChange] = Field(default_factory=list)
    commit_message: str = Field(default="", alias="commitMessage")
    pr_body: str = Field(default="", alias="prBody")


PICK_FILES_INSTRUCTIONS = f"""You are a senior developer. Given a bug description and a list of files in a repository, pick {MIN_FILES}-{MAX_FILES} files most likely to contain the bug or need changes.

Return JSON: {{"files": ["path/to/file1.py", "path/to/file2.py"]}}

Only pick files that exist in the provided list. Prefer source files over configs/tests."""

GENERATE_FIX_INSTRUCTIONS = """You are a senior developer. Given a bug description and relevant source files, generate a fix.

Return JSON:
{
  "files": [{"path": "exact/file/path.py", "content": "complete file content with fix applied"}],
  "commit_message": "fix: short description of the fix",
  "pr_body": "## Bug\\n(description)\\n\\n## Fix\\n(what was changed and why)"
}

IMPORTANT:
- Return the COMPLETE file content for each changed file, not just the diff.
- Only include files that actually need changes.
- Keep changes minimal. Fix the bug, don't refactor."""


class BugHandler(BaseHandler):
    kind = "bug"

    def __init__(self, *args, branch_namer: Callable[[str], str] = branch_name_for, **kwargs):
        super().__init__(*args, **kwargs)
        self._branch_namer = branch_namer

    async def execute(self, item: ActionItem, ctx: ExecutionContext) -> HandlerResult:
        # ── Phase A: ticket ──
        issue: CreatedItem | None = None
        ticket_error: str | None = None
        provider = self._task_manager()

        if provider is not None:
            try:
                issue = await provider.create_item(CreateItemParams(
                    title=f"[Bug] {item.task}",
                    description=item.context or item.task,
                    assignee=item.assignee_name,
                    assignee_email=item.assignee_email,
                    item_type="bug",
                ))
            except RemoteAPIError as e:
                logger.warning(f"[BUG] {provider.name} rejected '{item.task}': {e}")
                ticket_error = str(e)
        else:
            logger.info(f"[BUG] No task manager configured, auto-fix only for '{item.task}'")

        # ── Phase B: auto-fix PR ──
        fix_pr: CreatedItem | None = None
        skip_reason: str | None = None
        try:
            fix_pr = await self._attempt_fix(item)
        except Exception as e:
            skip_reason = str(e) or e.__class__.__name__
            logger.warning(f"[BUG] Auto-fix PR skipped for '{item.task}': {skip_reason}")

        return HandlerResult(
            success=issue is not None,
            item=issue,
            secondary_items=[fix_pr] if fix_pr else [],
            status_text=self._status_text(item, issue, fix_pr, skip_reason, ticket_error),
            error=None if issue else (ticket_error or "no_provider"),
        )

    # -- Phase B -------------------------------------------------------------

    async def _attempt_fix(self, item: ActionItem) -> CreatedItem:
        code_host = self.registry.first(ProviderKind.CODE_PLATFORM)
        needed = Capability.REPOSITORY_FILES | Capability.CODE_CHANGE
        if code_host is None or not code_host.supports(needed):
            raise ConfigurationError("GitHub not configured")
        if self.gateway is None:
            raise ConfigurationError("completion service not configured")

        description = item.task if not item.context else f"{item.task}\n\n{item.context}"

        file_list = await code_host.list_files()
        if not file_list:
            raise HenchmanError("repository listing is empty")

        selection = await self.gateway.complete_json(
            PICK_FILES_INSTRUCTIONS,
            f"Bug: {description}\n\nRepository files:\n" + "\n".join(file_list),
            FileSelection,
        )
        known = set(file_list)
        paths = [p for p in dict.fromkeys(selection.files) if p in known][:MAX_FILES]
        if not paths:
            raise HenchmanError("could not identify relevant files")
        logger.debug(f"[BUG] Suspect files: {', '.join(paths)}")

        contents = await self._fetch_files(code_host, paths)

        files_context = "\n\n".join(f"### {path}\n```\n{content}\n```" for path, content in contents.items())
        fix = await self.gateway.complete_json(
            GENERATE_FIX_INSTRUCTIONS,
            f"Bug: {description}\n\nSource files:\n{files_context}",
            GeneratedFix,
        )
        # Whole-file replacements of what we actually showed the model
        files = [f for f in fix.files if f.path in contents and f.content != contents[f.path]]
        if not files:
            raise HenchmanError("could not generate a fix")

        return await code_host.create_change(
            title=fix.commit_message or f"fix: {item.task}",
            body=fix.pr_body or f"Auto-generated fix for: {item.task}",
            branch_name=self._branch_namer(item.task),
            files=files,
        )

    @staticmethod
    async def _fetch_files(code_host: BaseProvider, paths: list[str]) -> dict[str, str]:
        async def fetch(path: str) -> str | None:
            try:
                return await code_host.read_file(path)
            except (RemoteAPIError, UnicodeDecodeError) as e:
                logger.warning(f"[BUG] Could not fetch {path}, skipping: {e}")
                return None

        fetched = await asyncio.gather(*(fetch(p) for p in paths))
        contents = {path: text for path, text in zip(paths, fetched) if text is not None}
        if not contents:
            raise PartialFetchError("could not fetch any relevant files", missing=paths)
        return contents

    # -- Formatting ----------------------------------------------------------

    @staticmethod
    def _status_text(
        item: ActionItem,
        issue: CreatedItem | None,
        fix_pr: CreatedItem | None,
        skip_reason: str | None,
        ticket_error: str | None,
    ) -> str:
        if issue:
            head = f"Bug tracked + fix PR created: {issue.title}" if fix_pr else f"Bug tracked: {issue.title}"
        elif ticket_error:
            head = f"Bug ticket failed ({ticket_error}): {item.task}"
        else:
            head = f"Bug reported (no task manager): {item.task}"
            if fix_pr:
                head += " + fix PR created"

        if skip_reason:
            head += f" (auto-fix skipped: {skip_reason})"
        return head
