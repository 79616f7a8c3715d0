"""Pytest fixtures and config."""

import pytest


@pytest.fixture(autouse=True)
def env_cleanup(monkeypatch):
    """Avoid picking up real Slack credentials or deployment overrides in tests."""
    for name in (
        "SLACK_TOKEN",
        "SLACK_COOKIE",
        "SLACK_TEAM_ID",
        "SLACK_CHANNEL",
        "SLACK_BOT_USER_ID",
        "SLAUDE_ENV_PREFIX",
        "PORT",
        "REDIS_URL",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
