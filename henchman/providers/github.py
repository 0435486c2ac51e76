"""
GitHub code-platform provider.

REST v3 over httpx. Gives the bug handler read access to the repository
(file listing + contents on the base branch) and opens pull requests via
the code-change transaction.
"""

from __future__ import annotations

import base64
from typing import Any
from urllib.parse import quote

import httpx
from loguru import logger

from henchman.changes import CodeChangeTransaction
from henchman.config_loader import GitHubConfig
from henchman.errors import ProviderError, RemoteAPIError, remote_error_from_response
from henchman.models import CreatedItem, CreateItemParams, FileChange
from henchman.providers import BaseProvider, Capability, ProviderKind


class GitHubClient:
    """Thin async wrapper over the git data + pulls endpoints of one repo."""

    def __init__(self, config: GitHubConfig, http: httpx.AsyncClient):
        self.config = config
        self._http = http
        self._repo_url = f"{config.api_url.rstrip('/')}/repos/{config.owner}/{config.name}"
        self._headers = {
            "Authorization": f"Bearer {config.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._http.request(method, f"{self._repo_url}{path}", headers=self._headers, **kwargs)
        except httpx.HTTPError as e:
            raise ProviderError(f"GitHub request failed: {e}") from e

        if response.is_error:
            raise remote_error_from_response(response, ProviderError)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"GitHub returned a non-JSON response for {path or '/'}", response.status_code) from e

    async def get_repo(self) -> dict[str, Any]:
        return await self._request("GET", "")

    async def get_branch_sha(self, branch: str) -> str:
        data = await self._request("GET", f"/git/ref/heads/{branch}")
        return data["object"]["sha"]

    async def create_ref(self, branch: str, sha: str) -> None:
        await self._request("POST", "/git/refs", json={"ref": f"refs/heads/{branch}", "sha": sha})

    async def create_blob(self, content: str) -> str:
        data = await self._request("POST", "/git/blobs", json={"content": content, "encoding": "utf-8"})
        return data["sha"]

    async def get_commit_tree(self, commit_sha: str) -> str:
        data = await self._request("GET", f"/git/commits/{commit_sha}")
        return data["tree"]["sha"]

    async def create_tree(self, base_tree: str, entries: list[dict[str, str]]) -> str:
        data = await self._request("POST", "/git/trees", json={"base_tree": base_tree, "tree": entries})
        return data["sha"]

    async def create_commit(self, message: str, tree: str, parents: list[str]) -> str:
        data = await self._request(
            "POST", "/git/commits", json={"message": message, "tree": tree, "parents": parents}
        )
        return data["sha"]

    async def update_ref(self, branch: str, sha: str, force: bool = False) -> None:
        await self._request("PATCH", f"/git/refs/heads/{branch}", json={"sha": sha, "force": force})

    async def create_pull(self, title: str, body: str, head: str, base: str) -> dict[str, Any]:
        return await self._request(
            "POST", "/pulls", json={"title": title, "body": body, "head": head, "base": base}
        )

    async def list_files(self, ref: str) -> list[str]:
        data = await self._request("GET", f"/git/trees/{ref}", params={"recursive": "1"})
        if data.get("truncated"):
            logger.warning(f"[GITHUB] Tree listing for {ref} was truncated")
        return [entry["path"] for entry in data.get("tree", []) if entry.get("type") == "blob"]

    async def read_file(self, path: str, ref: str) -> str:
        data = await self._request("GET", f"/contents/{quote(path)}", params={"ref": ref})
        if isinstance(data, dict) and data.get("encoding") == "base64" and "content" in data:
            return base64.b64decode(data["content"]).decode("utf-8")
        raise ProviderError(f"Cannot read {path}: unexpected content format")


class GitHubProvider(BaseProvider):
    name = "github"
    kind = ProviderKind.CODE_PLATFORM
    capabilities = Capability.REPOSITORY_FILES | Capability.CODE_CHANGE

    def __init__(self, config: GitHubConfig, http: httpx.AsyncClient):
        super().__init__()
        self.config = config
        self.client = GitHubClient(config, http)
        self.transaction = CodeChangeTransaction(self.client, config.base_branch, provider_name=self.name)

    async def init(self) -> None:
        try:
            repo = await self.client.get_repo()
            logger.info(f"[GITHUB] Connected to {repo.get('full_name', self.config.repo)}")
        except (RemoteAPIError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"[GITHUB] Could not reach {self.config.repo}: {e}")

    async def create_item(self, params: CreateItemParams) -> CreatedItem:
        if not params.files or not params.branch_name:
            raise ValueError("GitHub items are pull requests and need a branch name and files")
        return await self.create_change(params.title, params.description, params.branch_name, params.files)

    async def create_change(
        self,
        title: str,
        body: str,
        branch_name: str,
        files: list[FileChange],
    ) -> CreatedItem:
        return await self.transaction.create_change(title, body, branch_name, files)

    async def list_files(self) -> list[str]:
        return await self.client.list_files(self.config.base_branch)

    async def read_file(self, path: str) -> str:
        return await self.client.read_file(path, self.config.base_branch)
