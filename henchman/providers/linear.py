"""
Linear task-manager provider.

Talks to the Linear GraphQL API over httpx. Users and the target team's
membership are cached once at init; both are best-effort.
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from henchman.config_loader import LinearConfig
from henchman.errors import ProviderError, RemoteAPIError, remote_error_from_response
from henchman.models import CreatedItem, CreateItemParams, ProviderUser
from henchman.providers import BaseProvider, Capability, ProviderKind, resolve_assignee

USERS_QUERY = """
query Users {
  users(first: 250) {
    nodes { id name email active }
  }
}
"""

TEAM_MEMBERS_QUERY = """
query TeamMembers($teamId: String!) {
  team(id: $teamId) {
    members(first: 250) {
      nodes { id }
    }
  }
}
"""

ISSUE_CREATE_MUTATION = """
mutation IssueCreate($input: IssueCreateInput!) {
  issueCreate(input: $input) {
    success
    lastSyncId
    issue { id identifier url title }
  }
}
"""

_ASSIGNMENT_REJECTION_SIGNATURES = (
    "assignee",
    "not a member",
    "team member",
    "not part of the team",
)


def _is_assignment_rejection(error: ProviderError) -> bool:
    message = error.message.lower()
    return any(sig in message for sig in _ASSIGNMENT_REJECTION_SIGNATURES)


class LinearProvider(BaseProvider):
    name = "linear"
    kind = ProviderKind.TASK_MANAGER
    capabilities = Capability.LIST_USERS | Capability.MATCH_USER

    def __init__(self, config: LinearConfig, http: httpx.AsyncClient):
        super().__init__()
        self.config = config
        self._http = http
        # None means membership is unknown; assignment is attempted and the
        # rejection fallback covers ineligible users.
        self._team_member_ids: set[str] | None = None

    async def init(self) -> None:
        try:
            data = await self._graphql(USERS_QUERY)
            self._users = [
                ProviderUser(id=u["id"], name=u["name"], email=u.get("email") or None)
                for u in data["users"]["nodes"]
                if u.get("active", True)
            ]
            logger.info(f"[LINEAR] Cached {len(self._users)} users")
        except (RemoteAPIError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"[LINEAR] Could not cache users: {e}")
            self._users = []

        try:
            data = await self._graphql(TEAM_MEMBERS_QUERY, {"teamId": self.config.team_id})
            self._team_member_ids = {m["id"] for m in data["team"]["members"]["nodes"]}
            logger.debug(f"[LINEAR] Team {self.config.team_id} has {len(self._team_member_ids)} members")
        except (RemoteAPIError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"[LINEAR] Could not load team membership: {e}")
            self._team_member_ids = None

    def is_eligible(self, user: ProviderUser) -> bool:
        """Whether ``user`` can be assigned issues in the configured team."""
        return self._team_member_ids is None or user.id in self._team_member_ids

    async def create_item(self, params: CreateItemParams) -> CreatedItem:
        if not params.title.strip():
            raise ValueError("Linear issues need a title")

        assignee = resolve_assignee(self, params.assignee, params.assignee_email)
        if assignee and not self.is_eligible(assignee):
            logger.warning(
                f"[LINEAR] {assignee.name} is not in team {self.config.team_id}, creating unassigned"
            )
            assignee = None

        issue_input: dict[str, Any] = {
            "teamId": self.config.team_id,
            "title": params.title,
            "description": params.description,
        }
        if assignee:
            issue_input["assigneeId"] = assignee.id

        try:
            return await self._create_issue(issue_input, params.title)
        except ProviderError as e:
            if "assigneeId" not in issue_input or not _is_assignment_rejection(e):
                raise
            # Losing the assignment beats losing the issue.
            logger.warning(f"[LINEAR] Assignment rejected ({e.message}), retrying unassigned")
            issue_input.pop("assigneeId")
            return await self._create_issue(issue_input, params.title)

    async def _create_issue(self, issue_input: dict[str, Any], title: str) -> CreatedItem:
        data = await self._graphql(ISSUE_CREATE_MUTATION, {"input": issue_input})
        result = data.get("issueCreate") or {}
        if not result.get("success"):
            raise ProviderError("Linear did not create the issue")

        issue = result.get("issue") or {}
        item = CreatedItem(
            id=issue.get("identifier") or str(result.get("lastSyncId", "")),
            url=issue.get("url") or "",
            title=title,
            provider=self.name,
        )
        logger.info(f"[LINEAR] Created {item.id}: {title}")
        return item

    async def _graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            response = await self._http.post(
                self.config.api_url,
                json={"query": query, "variables": variables or {}},
                headers={"Authorization": self.config.api_key},
            )
        except httpx.HTTPError as e:
            raise ProviderError(f"Linear request failed: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if isinstance(payload, dict) and payload.get("errors"):
            messages = []
            for err in payload["errors"]:
                extensions = err.get("extensions") or {}
                messages.append(extensions.get("userPresentableMessage") or err.get("message", "unknown error"))
            raise ProviderError("; ".join(messages), response.status_code)

        if response.is_error:
            raise remote_error_from_response(response, ProviderError)

        return (payload or {}).get("data") or {}
