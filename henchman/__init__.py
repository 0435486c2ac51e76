"""
HENCHMAN — Action-Item Orchestration Engine

Takes the action items extracted from a meeting and turns them into
tickets, pull requests and reminders. One item failing never takes
the rest of the batch down with it.
"""

from henchman.identity import __codename__, __tagline__, __version__

__all__ = ["__codename__", "__tagline__", "__version__"]
