"""
HENCHMAN Code-Change Transaction

Turns a set of whole-file edits into a branch, a commit and a pull request
using only the GitHub REST API (no local checkout):

  1. read the base branch head
  2. create the work branch (already-exists is fine, retries land here)
  3. one blob per file
  4. a tree on top of the base tree
  5. a commit with the base head as its only parent
  6. force-move the branch to that commit
  7. open the pull request

Steps depend on each other strictly. Anything failing after step 2 leaves
an orphaned branch behind; that is accepted, not rolled back.
"""

from __future__ import annotations

import re
import time
from typing import TYPE_CHECKING, Sequence

from loguru import logger

from henchman.errors import RemoteAPIError
from henchman.models import CreatedItem, FileChange

if TYPE_CHECKING:
    from henchman.providers.github import GitHubClient

SLUG_MAX_LENGTH = 40


# ---------------------------------------------------------------------------
# Branch naming
# ---------------------------------------------------------------------------

def slugify(text: str, max_length: int = SLUG_MAX_LENGTH) -> str:
    """Lowercase, collapse non-alphanumeric runs to '-', trim the trailing one."""
    return re.sub(r"[^a-z0-9]+", "-", text[:max_length].lower()).rstrip("-")


def branch_name_for(task: str, prefix: str = "fix", now_ms: int | None = None) -> str:
    """Time-ordered branch name, e.g. ``fix/1718000000000-login-button-broken``."""
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    slug = slugify(task)
    return f"{prefix}/{stamp}-{slug}" if slug else f"{prefix}/{stamp}"


def _branch_already_exists(error: RemoteAPIError) -> bool:
    return error.status_code == 422 and "already exists" in error.message.lower()


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------

class CodeChangeTransaction:
    """Ordered GitHub API sequence for one pull request."""

    def __init__(self, client: GitHubClient, base_branch: str = "main", provider_name: str = "github"):
        self.client = client
        self.base_branch = base_branch
        self.provider_name = provider_name

    async def create_change(
        self,
        title: str,
        body: str,
        branch_name: str,
        files: Sequence[FileChange],
    ) -> CreatedItem:
        if not files:
            raise ValueError("A code change needs at least one file")

        logger.info(f"[CHANGE] {branch_name}: {len(files)} file(s) against {self.base_branch}")

        # 1. Base head
        base_sha = await self.client.get_branch_sha(self.base_branch)

        # 2. Branch (the only retry-safe step)
        try:
            await self.client.create_ref(branch_name, base_sha)
        except RemoteAPIError as e:
            if not _branch_already_exists(e):
                raise
            logger.info(f"[CHANGE] Branch {branch_name} already exists, reusing it")

        # 3. Blobs
        entries = []
        for change in files:
            blob_sha = await self.client.create_blob(change.content)
            entries.append({"path": change.path, "mode": "100644", "type": "blob", "sha": blob_sha})

        # 4. Tree
        base_tree = await self.client.get_commit_tree(base_sha)
        tree_sha = await self.client.create_tree(base_tree, entries)

        # 5. Commit
        commit_sha = await self.client.create_commit(title, tree_sha, [base_sha])

        # 6. Point branch at commit
        await self.client.update_ref(branch_name, commit_sha, force=True)

        # 7. Pull request
        pr = await self.client.create_pull(title=title, body=body, head=branch_name, base=self.base_branch)

        item = CreatedItem(
            id=f"#{pr['number']}",
            url=pr.get("html_url", ""),
            title=title,
            provider=self.provider_name,
        )
        logger.info(f"[CHANGE] Opened {item.id}: {item.url}")
        return item
