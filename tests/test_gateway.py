import asyncio
import random
import time

import pytest
from pydantic import BaseModel

from henchman.errors import ParseError, RateLimitError, RemoteAPIError
from henchman.gateway import JSON_DIRECTIVE, backoff_delay, parse_json_response


class Verdict(BaseModel):
    ok: bool
    reason: str = ""


# ---------------------------------------------------------------------------
# complete / complete_json
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_complete_returns_text_and_tracks_usage(make_gateway):
    gateway = make_gateway("hello there")
    assert await gateway.complete("be brief", "hi") == "hello there"

    backend = gateway._backend
    assert backend.calls[0][0] == {"role": "system", "content": "be brief"}
    assert backend.calls[0][1] == {"role": "user", "content": "hi"}
    assert backend.formats == [None]
    assert gateway.usage.call_count == 1
    assert gateway.usage.total_tokens == 10


@pytest.mark.asyncio
async def test_complete_json_appends_directive_and_validates(make_gateway):
    gateway = make_gateway('{"ok": true, "reason": "fine"}')
    verdict = await gateway.complete_json("judge", "input", Verdict)

    assert verdict == Verdict(ok=True, reason="fine")
    backend = gateway._backend
    assert backend.calls[0][1]["content"] == "input" + JSON_DIRECTIVE
    assert backend.formats == [{"type": "json_object"}]


@pytest.mark.asyncio
async def test_complete_json_without_schema_returns_data(make_gateway):
    gateway = make_gateway('```json\n{"files": ["a.py"]}\n```')
    assert await gateway.complete_json("pick", "input") == {"files": ["a.py"]}


@pytest.mark.asyncio
async def test_complete_json_malformed_raises_parse_error(make_gateway):
    gateway = make_gateway("sorry, I can't do that")
    with pytest.raises(ParseError):
        await gateway.complete_json("judge", "input", Verdict)
    # Malformed output is not retried
    assert len(gateway._backend.calls) == 1


@pytest.mark.asyncio
async def test_complete_json_schema_mismatch_raises_parse_error(make_gateway):
    gateway = make_gateway('{"reason": "missing ok"}')
    with pytest.raises(ParseError, match="Verdict"):
        await gateway.complete_json("judge", "input", Verdict)


def test_parse_json_response_finds_object_in_chatter():
    assert parse_json_response('Here you go: {"a": 1} hope it helps') == {"a": 1}


def test_parse_json_response_empty():
    with pytest.raises(ParseError):
        parse_json_response("   ")


# ---------------------------------------------------------------------------
# Retry policy
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_rate_limit_is_retried_with_backoff(make_gateway, sleep):
    gateway = make_gateway(RateLimitError("slow down", 429), RateLimitError("slow down", 429), "finally")

    assert await gateway.complete("x", "y") == "finally"
    assert len(gateway._backend.calls) == 3
    assert len(sleep.delays) == 2
    assert 0.5 <= sleep.delays[0] <= 0.6
    assert 1.0 <= sleep.delays[1] <= 1.2
    assert gateway.usage.retry_count == 2


@pytest.mark.asyncio
async def test_retry_hint_wins_over_backoff(make_gateway, sleep):
    gateway = make_gateway(RateLimitError("slow down", 429, retry_after_ms=1500), "ok")

    assert await gateway.complete("x", "y") == "ok"
    assert 1.5 <= sleep.delays[0] <= 1.5 + 0.3


@pytest.mark.asyncio
async def test_quota_text_signature_is_retried(make_gateway, sleep):
    gateway = make_gateway(RemoteAPIError("You exceeded your current quota"), "ok")
    assert await gateway.complete("x", "y") == "ok"
    assert len(sleep.delays) == 1


@pytest.mark.asyncio
async def test_other_errors_propagate_immediately(make_gateway, sleep):
    gateway = make_gateway(RemoteAPIError("invalid request", 400), "never reached")

    with pytest.raises(RemoteAPIError, match="invalid request"):
        await gateway.complete("x", "y")
    assert len(gateway._backend.calls) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_exhausted_retries_raise_last_error(make_gateway, sleep):
    gateway = make_gateway(*[RateLimitError(f"attempt {i}", 429) for i in range(1, 5)])

    with pytest.raises(RateLimitError, match="attempt 3"):
        await gateway.complete("x", "y")
    assert len(gateway._backend.calls) == 3
    assert len(sleep.delays) == 2
    assert gateway.in_flight == 0


def test_backoff_delay_is_capped():
    rng = random.Random(7)
    delay = backoff_delay(10, None, base_delay=1.0, max_delay=30.0, jitter_cap=2.0, rng=rng)
    assert 30.0 <= delay <= 32.0


def test_backoff_jitter_bounded_by_ratio():
    rng = random.Random(7)
    for attempt in range(1, 6):
        base = min(8.0, 0.5 * 2 ** (attempt - 1))
        delay = backoff_delay(attempt, None, base_delay=0.5, max_delay=8.0, jitter_cap=100.0, rng=rng)
        assert base <= delay <= base * 1.2


# ---------------------------------------------------------------------------
# Backpressure
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_in_flight_never_exceeds_bound(make_gateway):
    gateway = make_gateway(*[f"reply {i}" for i in range(6)], delay=0.01, max_concurrency=2)

    replies = await asyncio.gather(*(gateway.complete("x", str(i)) for i in range(6)))

    assert sorted(replies) == sorted(f"reply {i}" for i in range(6))
    assert gateway.peak_in_flight == 2
    assert gateway.in_flight == 0
    assert len(gateway._backend.calls) == 6


@pytest.mark.asyncio
async def test_bound_of_one_serializes_callers(make_gateway):
    t = 0.05
    gateway = make_gateway("a", "b", "c", delay=t, max_concurrency=1)

    start = time.monotonic()
    replies = await asyncio.gather(*(gateway.complete("x", str(i)) for i in range(3)))
    elapsed = time.monotonic() - start

    assert sorted(replies) == ["a", "b", "c"]
    assert elapsed >= 3 * t * 0.95
    assert gateway.peak_in_flight == 1
    assert gateway.usage.call_count == 3


@pytest.mark.asyncio
async def test_queued_callers_admitted_in_submission_order(make_gateway):
    gateway = make_gateway("a", "b", "c", delay=0.01, max_concurrency=1)

    await asyncio.gather(*(gateway.complete("x", f"caller {i}") for i in range(3)))

    seen = [call[1]["content"] for call in gateway._backend.calls]
    assert seen == ["caller 0", "caller 1", "caller 2"]
