"""
HENCHMAN Gateway — Rate-Limited Completion Access

Every handler that needs the language model goes through here.
The gateway bounds how many calls are in flight, retries rate-limit
rejections with backoff + jitter, and keeps a running usage tally.
Handlers never talk to LiteLLM directly.
"""

from __future__ import annotations

import asyncio
import json
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

import litellm
from loguru import logger
from pydantic import BaseModel, ValidationError
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from henchman.config_loader import CompletionConfig
from henchman.errors import ParseError, is_rate_limit_error, remote_error_from_exception

JSON_DIRECTIVE = "\n\nRespond with JSON."
MAX_JITTER_RATIO = 0.2

T = TypeVar("T", bound=BaseModel)


# ---------------------------------------------------------------------------
# Usage Tracking
# ---------------------------------------------------------------------------

class CompletionResponse(BaseModel):
    content: str
    model: str = ""
    tokens_used: int = 0
    cost: float = 0.0
    latency_ms: int = 0


@dataclass
class UsageRecord:
    total_tokens: int = 0
    estimated_cost: float = 0.0
    call_count: int = 0
    retry_count: int = 0

    def record(self, response: CompletionResponse) -> None:
        self.total_tokens += response.tokens_used
        self.estimated_cost += response.cost
        self.call_count += 1

    def summary(self) -> dict:
        return {
            "total_tokens": self.total_tokens,
            "estimated_cost": round(self.estimated_cost, 4),
            "call_count": self.call_count,
            "retry_count": self.retry_count,
        }


# ---------------------------------------------------------------------------
# LiteLLM backend
# ---------------------------------------------------------------------------

Messages = list[dict[str, str]]
CompletionBackend = Callable[[Messages, dict | None], Awaitable[CompletionResponse]]


def _is_gpt5_model(model: str) -> bool:
    """GPT-5 family models have restricted parameter support."""
    normalized = model.lower().replace("openai/", "")
    return normalized.startswith("gpt-5")


def _is_o_series_model(model: str) -> bool:
    """OpenAI o-series reasoning models don't support temperature."""
    normalized = model.lower().replace("openai/", "")
    return normalized.startswith(("o1", "o3", "o4"))


def _build_kwargs(
    model: str,
    messages: Messages,
    temperature: float,
    max_tokens: int,
    response_format: dict | None,
) -> dict[str, Any]:
    """Build LiteLLM kwargs, dropping params the model family rejects."""
    kwargs: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": max_tokens,
    }

    if not _is_gpt5_model(model) and not _is_o_series_model(model):
        kwargs["temperature"] = temperature

    if response_format:
        kwargs["response_format"] = response_format

    return kwargs


class LiteLLMBackend:
    """Default backend: one ``litellm.acompletion`` call per attempt."""

    def __init__(self, config: CompletionConfig):
        self.config = config
        litellm.suppress_debug_info = True

    async def __call__(self, messages: Messages, response_format: dict | None = None) -> CompletionResponse:
        kwargs = _build_kwargs(
            self.config.model,
            messages,
            self.config.temperature,
            self.config.max_tokens,
            response_format,
        )
        start = time.monotonic()
        try:
            response = await litellm.acompletion(**kwargs)
        except Exception as e:
            raise remote_error_from_exception(e) from e
        elapsed_ms = int((time.monotonic() - start) * 1000)

        try:
            cost = litellm.completion_cost(completion_response=response)
        except Exception:
            # Unknown models have no price table entry
            cost = 0.0

        usage = getattr(response, "usage", None)
        return CompletionResponse(
            content=response.choices[0].message.content or "",
            model=self.config.model,
            tokens_used=getattr(usage, "total_tokens", 0) or 0,
            cost=cost,
            latency_ms=elapsed_ms,
        )


# ---------------------------------------------------------------------------
# JSON parsing
# ---------------------------------------------------------------------------

def parse_json_response(raw: str) -> Any:
    """Parse a JSON completion, tolerating code fences and chatter around it."""
    content = (raw or "").strip()
    if not content:
        raise ParseError("Empty response where JSON was expected")

    if content.startswith("```"):
        lines = content.split("\n")
        lines = [l for l in lines if not l.strip().startswith("```")]
        content = "\n".join(lines)

    try:
        return json.loads(content)
    except json.JSONDecodeError:
        pass

    start = content.find("{")
    end = content.rfind("}") + 1
    if start >= 0 and end > start:
        try:
            return json.loads(content[start:end])
        except json.JSONDecodeError:
            pass

    raise ParseError(f"Response is not valid JSON: {content[:120]!r}")


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

def backoff_delay(
    attempt: int,
    retry_after_ms: int | None,
    base_delay: float,
    max_delay: float,
    jitter_cap: float,
    rng: random.Random,
) -> float:
    """Seconds to wait before the next attempt.

    The server's hint wins over exponential backoff. Jitter is at most
    20% of the delay and never more than ``jitter_cap``.
    """
    if retry_after_ms is not None:
        delay = retry_after_ms / 1000
    else:
        delay = min(max_delay, base_delay * 2 ** (attempt - 1))
    jitter = rng.uniform(0, min(delay * MAX_JITTER_RATIO, jitter_cap))
    return delay + jitter


class CompletionGateway:
    """
    Concurrency-bounded, rate-limit-aware access to the completion service.

    Callers beyond ``max_concurrency`` queue on an asyncio.Semaphore and are
    admitted in FIFO order. A slot is held for one attempt only; backoff
    sleeps happen outside it.
    """

    def __init__(
        self,
        config: CompletionConfig,
        backend: CompletionBackend | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        self.config = config
        self._backend = backend or LiteLLMBackend(config)
        self._semaphore = asyncio.Semaphore(config.max_concurrency)
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.usage = UsageRecord()
        self.in_flight = 0
        self.peak_in_flight = 0

    async def complete(self, instructions: str, input: str, *, json_mode: bool = False) -> str:
        """Run one completion and return its text."""
        messages = [
            {"role": "system", "content": instructions},
            {"role": "user", "content": input},
        ]
        response_format = {"type": "json_object"} if json_mode else None

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_attempts),
            retry=retry_if_exception(is_rate_limit_error),
            wait=self._wait,
            sleep=self._sleep,
            before_sleep=self._before_sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                response = await self._attempt(messages, response_format)

        return response.content

    async def complete_json(
        self,
        instructions: str,
        input: str,
        schema: type[T] | None = None,
    ) -> Any:
        """Run a JSON-mode completion and parse it.

        With ``schema`` the parsed object is validated into that model.

        Raises:
            ParseError: if the response is not well-formed (or fails validation).
        """
        raw = await self.complete(instructions, input + JSON_DIRECTIVE, json_mode=True)
        data = parse_json_response(raw)
        if schema is None:
            return data

        try:
            return schema.model_validate(data)
        except ValidationError as e:
            raise ParseError(f"Response did not match {schema.__name__}: {e.error_count()} error(s)") from e

    # -- internals ---------------------------------------------------------

    async def _attempt(self, messages: Messages, response_format: dict | None) -> CompletionResponse:
        async with self._semaphore:
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            logger.debug(f"[GATEWAY] → {self.config.model} ({self.in_flight}/{self.config.max_concurrency} in flight)")
            try:
                response = await self._backend(messages, response_format)
            finally:
                self.in_flight -= 1

        self.usage.record(response)
        logger.debug(
            f"[GATEWAY] complete — {response.tokens_used} tokens, "
            f"${self.usage.estimated_cost:.4f} total, {response.latency_ms}ms"
        )
        return response

    def _wait(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        return backoff_delay(
            attempt=retry_state.attempt_number,
            retry_after_ms=getattr(exc, "retry_after_ms", None),
            base_delay=self.config.base_delay,
            max_delay=self.config.max_delay,
            jitter_cap=self.config.jitter_cap,
            rng=self._rng,
        )

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        self.usage.retry_count += 1
        wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            f"[GATEWAY] Rate limited (attempt {retry_state.attempt_number}/"
            f"{self.config.max_attempts}), retrying in {wait:.1f}s"
        )
