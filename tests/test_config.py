from pathlib import Path

import pytest
from pydantic import ValidationError

from henchman.config_loader import load_config, validate_api_keys


def test_defaults():
    config = load_config(env={})

    assert config.completion.model == "openai/gpt-4o"
    assert config.completion.max_concurrency == 2
    assert config.completion.max_attempts == 5
    assert config.github.base_branch == "main"
    assert not config.linear.configured
    assert not config.github.configured
    assert not config.slack.configured


def test_override_file_is_deep_merged(tmp_path: Path):
    override = tmp_path / "henchman.yaml"
    override.write_text("completion:\n  max_concurrency: 4\ngithub:\n  repo: acme/widgets\n")

    config = load_config(override, env={})

    assert config.completion.max_concurrency == 4
    # untouched keys in the same section survive
    assert config.completion.max_attempts == 5
    assert config.github.repo == "acme/widgets"
    assert config.github.owner == "acme"
    assert config.github.name == "widgets"


def test_env_overrides_file(tmp_path: Path):
    override = tmp_path / "henchman.yaml"
    override.write_text("completion:\n  max_concurrency: 4\n")

    config = load_config(override, env={
        "HENCHMAN_MAX_CONCURRENCY": "1",
        "LINEAR_API_KEY": "lin_key",
        "LINEAR_TEAM_ID": "team-1",
        "GITHUB_TOKEN": "ghp",
        "GITHUB_REPO": "acme/widgets",
    })

    assert config.completion.max_concurrency == 1
    assert config.linear.configured
    assert config.github.configured


def test_github_repo_needs_owner():
    config = load_config(env={"GITHUB_TOKEN": "ghp", "GITHUB_REPO": "widgets"})
    assert not config.github.configured


def test_missing_override_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml", env={})


def test_concurrency_must_be_positive():
    with pytest.raises(ValidationError):
        load_config(env={"HENCHMAN_MAX_CONCURRENCY": "0"})


def test_validate_api_keys():
    keys = validate_api_keys(env={"OPENAI_API_KEY": "sk", "GITHUB_TOKEN": ""})
    assert keys["OPENAI_API_KEY"] is True
    assert keys["GITHUB_TOKEN"] is False
    assert set(keys) == {"OPENAI_API_KEY", "ANTHROPIC_API_KEY", "LINEAR_API_KEY", "GITHUB_TOKEN", "SLACK_BOT_TOKEN"}
