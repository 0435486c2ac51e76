"""Shared fakes: a scripted completion backend, in-memory providers and a chat recorder."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from henchman.config_loader import CompletionConfig
from henchman.errors import ProviderError
from henchman.gateway import CompletionGateway, CompletionResponse
from henchman.models import CreatedItem, CreateItemParams, FileChange, ProviderUser
from henchman.providers import BaseProvider, Capability, ProviderKind
from henchman.providers.registry import ProviderRegistry


class ScriptedBackend:
    """Replays canned replies in order. Exceptions in the script are raised."""

    def __init__(self, *replies: Any, delay: float = 0.0):
        self.replies = list(replies)
        self.delay = delay
        self.calls: list[list[dict[str, str]]] = []
        self.formats: list[dict | None] = []

    async def __call__(self, messages, response_format=None) -> CompletionResponse:
        self.calls.append(messages)
        self.formats.append(response_format)
        if self.delay:
            await asyncio.sleep(self.delay)
        reply = self.replies.pop(0) if self.replies else ""
        if isinstance(reply, BaseException):
            raise reply
        return CompletionResponse(content=reply, model="fake", tokens_used=10, cost=0.001)


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeTracker(BaseProvider):
    name = "tracker"
    kind = ProviderKind.TASK_MANAGER
    capabilities = Capability.LIST_USERS | Capability.MATCH_USER

    def __init__(self, users: list[ProviderUser] | None = None, fail_with: Exception | None = None):
        super().__init__()
        self._users = list(users or [])
        self.fail_with = fail_with
        self.created: list[CreateItemParams] = []

    async def init(self) -> None:
        pass

    async def create_item(self, params: CreateItemParams) -> CreatedItem:
        if self.fail_with:
            raise self.fail_with
        self.created.append(params)
        n = len(self.created)
        return CreatedItem(id=f"T-{n}", url=f"https://tracker.test/T-{n}", title=params.title, provider=self.name)


class FakeCodeHost(BaseProvider):
    name = "codehost"
    kind = ProviderKind.CODE_PLATFORM
    capabilities = Capability.REPOSITORY_FILES | Capability.CODE_CHANGE

    def __init__(self, files: dict[str, str] | None = None, unreadable: set[str] | None = None):
        super().__init__()
        self.files = dict(files or {})
        self.unreadable = set(unreadable or ())
        self.changes: list[dict[str, Any]] = []

    async def init(self) -> None:
        pass

    async def create_item(self, params: CreateItemParams) -> CreatedItem:
        return await self.create_change(params.title, params.description, params.branch_name or "", params.files)

    async def list_files(self) -> list[str]:
        return list(self.files)

    async def read_file(self, path: str) -> str:
        if path in self.unreadable:
            raise ProviderError(f"Not Found: {path}", 404)
        return self.files[path]

    async def create_change(self, title: str, body: str, branch_name: str, files: list[FileChange]) -> CreatedItem:
        self.changes.append({"title": title, "body": body, "branch_name": branch_name, "files": list(files)})
        return CreatedItem(id="#7", url="https://code.test/pull/7", title=title, provider=self.name)


class RecordingChat:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.messages: list[tuple[str, str | None, str]] = []

    async def post_message(self, channel: str, thread_ts: str | None, text: str) -> dict[str, Any]:
        if self.fail:
            raise ConnectionError("chat is down")
        self.messages.append((channel, thread_ts, text))
        return {"ts": str(len(self.messages))}

    @property
    def texts(self) -> list[str]:
        return [text for _, _, text in self.messages]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def completion_config() -> CompletionConfig:
    return CompletionConfig(max_concurrency=2, max_attempts=3, base_delay=0.5, max_delay=4.0, jitter_cap=0.5)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_gateway(completion_config, sleep):
    def _make(*replies: Any, delay: float = 0.0, **overrides: Any) -> CompletionGateway:
        config = completion_config.model_copy(update=overrides) if overrides else completion_config
        return CompletionGateway(config, ScriptedBackend(*replies, delay=delay), sleep=sleep)
    return _make


@pytest.fixture
def users() -> list[ProviderUser]:
    return [
        ProviderUser(id="u1", name="Alexandra Lee", email="alex@x.com"),
        ProviderUser(id="u2", name="Alex Kim", email="a@x.com"),
        ProviderUser(id="u3", name="Sam Rivera", email="sam@x.com"),
    ]


@pytest.fixture
def tracker(users) -> FakeTracker:
    return FakeTracker(users)


@pytest.fixture
def registry(tracker) -> ProviderRegistry:
    return ProviderRegistry([tracker])
