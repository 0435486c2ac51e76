"""
Configuration loader for HENCHMAN.
Merges built-in defaults with an optional override file and the environment.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class CompletionConfig(BaseModel):
    model: str = "openai/gpt-4o"
    max_concurrency: int = Field(default=2, ge=1)
    max_attempts: int = Field(default=5, ge=1)
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter_cap: float = 2.0
    temperature: float = 0.2
    max_tokens: int = 4096
    persona_intro: bool = True


class LinearConfig(BaseModel):
    api_key: str = ""
    team_id: str = ""
    api_url: str = "https://api.linear.app/graphql"

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.team_id)


class GitHubConfig(BaseModel):
    token: str = ""
    repo: str = ""  # "owner/name"
    base_branch: str = "main"
    api_url: str = "https://api.github.com"

    @property
    def configured(self) -> bool:
        return bool(self.token and "/" in self.repo)

    @property
    def owner(self) -> str:
        return self.repo.split("/", 1)[0]

    @property
    def name(self) -> str:
        return self.repo.split("/", 1)[1] if "/" in self.repo else ""


class SlackConfig(BaseModel):
    bot_token: str = ""
    channel_id: str = ""
    api_url: str = "https://slack.com/api"

    @property
    def configured(self) -> bool:
        return bool(self.bot_token)


class HenchmanConfig(BaseModel):
    completion: CompletionConfig = Field(default_factory=CompletionConfig)
    linear: LinearConfig = Field(default_factory=LinearConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    slack: SlackConfig = Field(default_factory=SlackConfig)
    http_timeout: float = 30.0


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"

# env var -> (section, key, caster)
_ENV_OVERRIDES: dict[str, tuple[str, str, type]] = {
    "HENCHMAN_MODEL": ("completion", "model", str),
    "HENCHMAN_MAX_CONCURRENCY": ("completion", "max_concurrency", int),
    "HENCHMAN_MAX_ATTEMPTS": ("completion", "max_attempts", int),
    "HENCHMAN_BASE_DELAY": ("completion", "base_delay", float),
    "LINEAR_API_KEY": ("linear", "api_key", str),
    "LINEAR_TEAM_ID": ("linear", "team_id", str),
    "GITHUB_TOKEN": ("github", "token", str),
    "GITHUB_REPO": ("github", "repo", str),
    "GITHUB_BASE_BRANCH": ("github", "base_branch", str),
    "SLACK_BOT_TOKEN": ("slack", "bot_token", str),
    "SLACK_CHANNEL_ID": ("slack", "channel_id", str),
}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Path | None = None, env: dict[str, str] | None = None) -> HenchmanConfig:
    """
    Load config by merging:
      1. Built-in defaults (henchman/config.yaml)
      2. Override file (if given)
      3. Environment variable overrides
    """
    # 1. Built-in defaults
    with open(_DEFAULT_CONFIG_PATH, "r") as f:
        base: dict[str, Any] = yaml.safe_load(f) or {}

    # 2. File overrides
    if path:
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path, "r") as f:
            overrides: dict[str, Any] = yaml.safe_load(f) or {}
        base = _deep_merge(base, overrides)

    # 3. Env overrides
    environ = os.environ if env is None else env
    for var, (section, key, cast) in _ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            base.setdefault(section, {})[key] = cast(value)

    return HenchmanConfig(**base)


def validate_api_keys(env: dict[str, str] | None = None) -> dict[str, bool]:
    """Check which credentials are available."""
    environ = os.environ if env is None else env
    return {
        "OPENAI_API_KEY":    bool(environ.get("OPENAI_API_KEY")),
        "ANTHROPIC_API_KEY": bool(environ.get("ANTHROPIC_API_KEY")),
        "LINEAR_API_KEY":    bool(environ.get("LINEAR_API_KEY")),
        "GITHUB_TOKEN":      bool(environ.get("GITHUB_TOKEN")),
        "SLACK_BOT_TOKEN":   bool(environ.get("SLACK_BOT_TOKEN")),
    }
