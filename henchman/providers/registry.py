"""
Provider registry.

Built once at startup from configuration. A provider whose credentials are
missing is simply not registered; handlers see "not configured" instead of
a crash.
"""

from __future__ import annotations

import asyncio

import httpx
from loguru import logger

from henchman.config_loader import HenchmanConfig
from henchman.providers import BaseProvider, ProviderKind
from henchman.providers.github import GitHubProvider
from henchman.providers.linear import LinearProvider


class ProviderRegistry:
    def __init__(self, providers: list[BaseProvider] | None = None):
        self._providers: list[BaseProvider] = []
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: BaseProvider) -> None:
        if self.get(provider.name):
            raise ValueError(f"Provider already registered: {provider.name}")
        self._providers.append(provider)

    def get(self, name: str) -> BaseProvider | None:
        return next((p for p in self._providers if p.name == name), None)

    def by_kind(self, kind: ProviderKind) -> list[BaseProvider]:
        return [p for p in self._providers if p.kind == kind]

    def first(self, kind: ProviderKind) -> BaseProvider | None:
        providers = self.by_kind(kind)
        return providers[0] if providers else None

    @property
    def names(self) -> list[str]:
        return [p.name for p in self._providers]

    async def init_all(self) -> None:
        """Initialize every provider. init() is best-effort by contract."""
        await asyncio.gather(*(p.init() for p in self._providers))
        logger.debug(f"[REGISTRY] Ready: {len(self)} provider(s) {self.names}")

    def __len__(self) -> int:
        return len(self._providers)


def build_registry(config: HenchmanConfig, http: httpx.AsyncClient) -> ProviderRegistry:
    """Register the providers whose credentials are present."""
    registry = ProviderRegistry()

    if config.linear.configured:
        registry.register(LinearProvider(config.linear, http))
    else:
        logger.info("[REGISTRY] Linear not configured (LINEAR_API_KEY / LINEAR_TEAM_ID)")

    if config.github.configured:
        registry.register(GitHubProvider(config.github, http))
    else:
        logger.info("[REGISTRY] GitHub not configured (GITHUB_TOKEN / GITHUB_REPO)")

    return registry
