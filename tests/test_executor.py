import json

import pytest

from henchman.errors import ConfigurationError, ParseError
from henchman.executor import ActionExecutor, ExtractedAction, ResolvedAssignee
from henchman.handlers import ExecutionContext
from henchman.providers.registry import ProviderRegistry
from henchman.reporter import Reporter

from conftest import FakeCodeHost, RecordingChat


def _extraction(**fields) -> str:
    return json.dumps(fields)


@pytest.mark.asyncio
async def test_extracts_and_creates_with_first_task_manager(registry, tracker, make_gateway):
    gateway = make_gateway(_extraction(
        title="Update the onboarding doc", description="Add the VPN section", assigneeName="Sam", type="task",
    ))

    result = await ActionExecutor(registry, gateway).execute("Sam should update the onboarding doc with VPN steps")

    assert result.item.id == "T-1"
    assert result.assignee_label == "Sam Rivera"
    params = tracker.created[0]
    assert params.title == "Update the onboarding doc"
    assert params.description == "Add the VPN section"
    assert params.assignee == "Sam"
    assert params.item_type == "task"


@pytest.mark.asyncio
async def test_upstream_assignee_wins(registry, tracker, make_gateway):
    gateway = make_gateway(_extraction(title="Ship it", assigneeName="Someone Else"))

    result = await ActionExecutor(registry, gateway).execute(
        "ship it", resolved_assignee=ResolvedAssignee(name="Alex", email="a@x.com"),
    )

    assert result.assignee_label == "Alex Kim"
    assert tracker.created[0].assignee == "Alex"
    assert tracker.created[0].assignee_email == "a@x.com"


@pytest.mark.asyncio
async def test_unmatched_assignee_label(registry, make_gateway):
    gateway = make_gateway(_extraction(title="Ship it", assigneeName="Jordan"))
    result = await ActionExecutor(registry, gateway).execute("Jordan ships it")
    assert result.assignee_label == "Jordan"

    gateway = make_gateway(_extraction(title="Ship it"))
    result = await ActionExecutor(registry, gateway).execute("ship it")
    assert result.assignee_label == "unassigned"


def test_extraction_defaults():
    extracted = ExtractedAction.model_validate({"title": "", "type": "epic", "description": None})
    assert extracted.title == "Untitled"
    assert extracted.type == "issue"
    assert extracted.description == ""


@pytest.mark.asyncio
async def test_named_provider(tracker, make_gateway):
    host = FakeCodeHost()
    registry = ProviderRegistry([host, tracker])
    gateway = make_gateway(_extraction(title="Ship it"))

    result = await ActionExecutor(registry, gateway).execute("ship it", provider_name="tracker")
    assert result.item.provider == "tracker"

    with pytest.raises(ConfigurationError):
        await ActionExecutor(registry, gateway).execute("ship it", provider_name="jira")


@pytest.mark.asyncio
async def test_no_task_manager(make_gateway):
    gateway = make_gateway(_extraction(title="Ship it"))
    with pytest.raises(ConfigurationError):
        await ActionExecutor(ProviderRegistry(), gateway).execute("ship it")
    assert gateway._backend.calls == []


@pytest.mark.asyncio
async def test_malformed_extraction(registry, tracker, make_gateway):
    gateway = make_gateway("no idea")
    with pytest.raises(ParseError):
        await ActionExecutor(registry, gateway).execute("ship it")
    assert tracker.created == []


@pytest.mark.asyncio
async def test_announces_before_and_after(registry, make_gateway):
    chat = RecordingChat()
    gateway = make_gateway(_extraction(title="Ship it", assigneeName="Sam", type="task"))
    executor = ActionExecutor(registry, gateway, Reporter(persona_intro=False))

    await executor.execute("Sam ships it", ctx=ExecutionContext(chat=chat, channel="C1", thread_ts="1.2"))

    assert chat.texts == [
        "🔔 Creating task in *tracker*: *Ship it* → Sam Rivera",
        "✅ Created in tracker: <https://tracker.test/T-1|Ship it> (T-1) → Sam Rivera",
    ]
