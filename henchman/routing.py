"""
Handler routing.

Maps an action item's category to its handler. Unknown or missing
categories go to the task handler; routing never fails.
"""

from __future__ import annotations

from henchman.gateway import CompletionGateway
from henchman.handlers import BaseHandler
from henchman.handlers.bug import BugHandler
from henchman.handlers.feature import FeatureHandler
from henchman.handlers.follow_up import FollowUpHandler
from henchman.handlers.task import TaskHandler
from henchman.providers.registry import ProviderRegistry


class HandlerRouter:
    def __init__(self, handlers: dict[str, BaseHandler], default: str = "task"):
        if default not in handlers:
            raise ValueError(f"Default handler '{default}' is not registered")
        self._handlers = dict(handlers)
        self._default = handlers[default]

    def route(self, item_type: str | None) -> BaseHandler:
        if item_type and item_type in self._handlers:
            return self._handlers[item_type]
        return self._default

    @property
    def kinds(self) -> list[str]:
        return list(self._handlers)


def build_router(registry: ProviderRegistry, gateway: CompletionGateway | None) -> HandlerRouter:
    """The standard roster: task, bug, feature, follow_up."""
    roster: list[BaseHandler] = [
        TaskHandler(registry, gateway),
        BugHandler(registry, gateway),
        FeatureHandler(registry, gateway),
        FollowUpHandler(registry, gateway),
    ]
    return HandlerRouter({handler.kind: handler for handler in roster})
