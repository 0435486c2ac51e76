import json

import httpx
import pytest

from henchman.config_loader import load_config
from henchman.handlers import ExecutionContext
from henchman.models import ActionItem
from henchman.runtime import open_runtime

from conftest import ScriptedBackend


class FakeServices:
    """Linear, GitHub and Slack behind one mock transport."""

    def __init__(self):
        self.issues: list[dict] = []
        self.slack: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        body = json.loads(request.content) if request.content else {}

        if host == "api.linear.app":
            query = body["query"]
            if "query Users" in query:
                return httpx.Response(200, json={"data": {"users": {"nodes": [
                    {"id": "u1", "name": "Sam Rivera", "email": "sam@x.com", "active": True},
                ]}}})
            if "query TeamMembers" in query:
                return httpx.Response(200, json={"data": {"team": {"members": {"nodes": [{"id": "u1"}]}}}})
            self.issues.append(body["variables"]["input"])
            n = len(self.issues)
            return httpx.Response(200, json={"data": {"issueCreate": {
                "success": True,
                "issue": {"identifier": f"ENG-{n}", "url": f"https://linear.app/acme/issue/ENG-{n}"},
            }}})

        if host == "slack.com":
            self.slack.append(body)
            return httpx.Response(200, json={"ok": True, "ts": f"9.{len(self.slack)}"})

        return httpx.Response(404, json={"message": "Not Found"})


@pytest.mark.asyncio
async def test_batch_end_to_end_without_code_host():
    services = FakeServices()
    config = load_config(env={
        "LINEAR_API_KEY": "lin_key",
        "LINEAR_TEAM_ID": "team-1",
        "SLACK_BOT_TOKEN": "xoxb-test",
        "SLACK_CHANNEL_ID": "C1",
    })
    backend = ScriptedBackend("Minions, assemble!", "## Problem\nNo dark mode.")
    items = [
        ActionItem(task="Write docs", assignee="Sam", priority="low"),
        ActionItem(task="Login broken", type="bug", priority="high"),
        ActionItem(task="Dark mode", type="feature"),
        ActionItem(task="Send the deck", type="follow_up", assignee="Sam"),
    ]

    async with open_runtime(config, backend=backend, transport=httpx.MockTransport(services)) as rt:
        assert rt.registry.names == ["linear"]
        ctx = ExecutionContext(chat=rt.chat, channel=config.slack.channel_id, thread_ts="9.0")
        outcome = await rt.orchestrator.orchestrate(items, ctx)

    assert (outcome.total, outcome.succeeded, outcome.failed) == (4, 4, 0)
    assert [o.item.task for o in outcome.results] == ["Login broken", "Dark mode", "Send the deck", "Write docs"]

    assert {issue["title"] for issue in services.issues} == {"Write docs", "[Bug] Login broken", "[Feature] Dark mode"}
    assert next(i for i in services.issues if i["title"] == "Write docs")["assigneeId"] == "u1"

    bug = outcome.results[0].result
    assert bug.secondary_items == []
    assert "GitHub not configured" in bug.status_text

    assert services.slack[0]["text"].startswith("Minions, assemble!")
    assert all(msg["thread_ts"] == "9.0" for msg in services.slack)
    assert len(services.slack) == 1 + len(items)


@pytest.mark.asyncio
async def test_runtime_without_credentials_has_no_providers_or_chat():
    config = load_config(env={})
    async with open_runtime(config, backend=ScriptedBackend()) as rt:
        assert len(rt.registry) == 0
        assert rt.chat is None
        assert sorted(rt.router.kinds) == ["bug", "feature", "follow_up", "task"]
