"""
Chat posting.

The core only ever needs ``post_message(channel, thread_ts, text)``.
Slack is the real sink; the console poster is for local runs.
"""

from __future__ import annotations

from typing import Any, Protocol

import httpx
from loguru import logger
from rich.console import Console

from henchman.config_loader import SlackConfig
from henchman.errors import RemoteAPIError, remote_error_from_response


class ChatPoster(Protocol):
    async def post_message(self, channel: str, thread_ts: str | None, text: str) -> dict[str, Any]:
        ...


class SlackChatPoster:
    """Posts through Slack's ``chat.postMessage`` Web API method."""

    def __init__(self, config: SlackConfig, http: httpx.AsyncClient):
        self.config = config
        self._http = http

    async def post_message(self, channel: str, thread_ts: str | None, text: str) -> dict[str, Any]:
        payload: dict[str, Any] = {"channel": channel, "text": text, "unfurl_links": False}
        if thread_ts:
            payload["thread_ts"] = thread_ts

        try:
            response = await self._http.post(
                f"{self.config.api_url.rstrip('/')}/chat.postMessage",
                json=payload,
                headers={"Authorization": f"Bearer {self.config.bot_token}"},
            )
        except httpx.HTTPError as e:
            raise RemoteAPIError(f"Slack request failed: {e}") from e

        if response.is_error:
            raise remote_error_from_response(response)

        data = response.json()
        # Slack reports most failures as HTTP 200 with ok=false
        if not data.get("ok"):
            raise RemoteAPIError(f"Slack rejected message: {data.get('error', 'unknown_error')}", response.status_code)

        logger.debug(f"[SLACK] Posted to {channel} (ts={data.get('ts')})")
        return {"ts": data.get("ts")}


class ConsoleChatPoster:
    """Renders messages to the terminal instead of a chat workspace."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()
        self._counter = 0

    async def post_message(self, channel: str, thread_ts: str | None, text: str) -> dict[str, Any]:
        self._counter += 1
        where = f"#{channel}" + (f" › {thread_ts}" if thread_ts else "")
        self.console.print(f"[dim]{where}[/]")
        self.console.print(text, highlight=False, markup=False)
        self.console.print()
        return {"ts": f"console.{self._counter}"}
