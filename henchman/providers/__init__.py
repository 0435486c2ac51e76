"""
HENCHMAN Providers

Uniform interface over the external systems that receive work:
  - task managers create issues / tickets (Linear)
  - code platforms create pull requests (GitHub)

Optional features are declared up front in ``capabilities`` so callers
check a flag instead of probing for methods.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum, Flag, auto

from henchman.matching import match_user
from henchman.models import CreatedItem, CreateItemParams, FileChange, ProviderUser


class ProviderKind(str, Enum):
    TASK_MANAGER = "task-manager"
    CODE_PLATFORM = "code-platform"


class Capability(Flag):
    NONE = 0
    LIST_USERS = auto()
    MATCH_USER = auto()
    REPOSITORY_FILES = auto()
    CODE_CHANGE = auto()


class BaseProvider(ABC):
    """
    Base class for external system adapters.

    Subclasses define:
      - name: str — short id shown in receipts ("linear", "github")
      - kind: ProviderKind
      - capabilities: Capability flags for the optional operations
      - init() — best-effort warmup, must not raise
      - create_item() — create one work item, raise ProviderError on rejection
    """

    name: str = "unknown"
    kind: ProviderKind = ProviderKind.TASK_MANAGER
    capabilities: Capability = Capability.NONE

    def __init__(self) -> None:
        self._users: list[ProviderUser] = []

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    @abstractmethod
    async def init(self) -> None:
        """Warm caches. Failures are logged, never raised."""
        ...

    @abstractmethod
    async def create_item(self, params: CreateItemParams) -> CreatedItem:
        ...

    async def list_users(self) -> list[ProviderUser]:
        if not self.supports(Capability.LIST_USERS):
            raise NotImplementedError(f"{self.name} does not list users")
        return list(self._users)

    def match_user(self, name: str | None, email: str | None = None) -> ProviderUser | None:
        if not self.supports(Capability.MATCH_USER):
            raise NotImplementedError(f"{self.name} does not match users")
        return match_user(name, email, self._users)

    async def list_files(self) -> list[str]:
        raise NotImplementedError(f"{self.name} has no repository access")

    async def read_file(self, path: str) -> str:
        raise NotImplementedError(f"{self.name} has no repository access")

    async def create_change(
        self,
        title: str,
        body: str,
        branch_name: str,
        files: list[FileChange],
    ) -> CreatedItem:
        raise NotImplementedError(f"{self.name} cannot open code changes")


def resolve_assignee(provider: BaseProvider, name: str | None, email: str | None = None) -> ProviderUser | None:
    """Match an assignee when the provider can, otherwise skip resolution."""
    if not (name or email) or not provider.supports(Capability.MATCH_USER):
        return None
    return provider.match_user(name, email)


__all__ = [
    "BaseProvider",
    "Capability",
    "ProviderKind",
    "resolve_assignee",
]
