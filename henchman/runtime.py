"""
Runtime assembly.

Everything with a lifetime (the shared HTTP client, warmed provider
caches) is acquired in ``open_runtime`` and released when the block
exits. Configuration is passed in explicitly; nothing here reads the
environment.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

import httpx
from loguru import logger

from henchman.chat import ChatPoster, SlackChatPoster
from henchman.config_loader import HenchmanConfig
from henchman.executor import ActionExecutor
from henchman.gateway import CompletionBackend, CompletionGateway
from henchman.orchestrator import Orchestrator
from henchman.providers.registry import ProviderRegistry, build_registry
from henchman.reporter import Reporter
from henchman.routing import HandlerRouter, build_router


@dataclass
class Runtime:
    config: HenchmanConfig
    registry: ProviderRegistry
    gateway: CompletionGateway
    router: HandlerRouter
    reporter: Reporter
    orchestrator: Orchestrator
    executor: ActionExecutor
    chat: ChatPoster | None


@asynccontextmanager
async def open_runtime(
    config: HenchmanConfig,
    chat: ChatPoster | None = None,
    backend: CompletionBackend | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncIterator[Runtime]:
    """Build the full object graph for one process run.

    ``chat`` defaults to Slack when a bot token is configured. ``backend``
    and ``transport`` replace the completion service and the HTTP layer.
    """
    async with httpx.AsyncClient(timeout=config.http_timeout, transport=transport) as http:
        registry = build_registry(config, http)
        await registry.init_all()

        if chat is None and config.slack.configured:
            chat = SlackChatPoster(config.slack, http)

        gateway = CompletionGateway(config.completion, backend)
        router = build_router(registry, gateway)
        reporter = Reporter(gateway, persona_intro=config.completion.persona_intro)

        logger.debug(
            f"[RUNTIME] providers={registry.names or 'none'} "
            f"chat={chat.__class__.__name__ if chat else 'none'} "
            f"model={config.completion.model}"
        )

        yield Runtime(
            config=config,
            registry=registry,
            gateway=gateway,
            router=router,
            reporter=reporter,
            orchestrator=Orchestrator(router, reporter),
            executor=ActionExecutor(registry, gateway, reporter),
            chat=chat,
        )
