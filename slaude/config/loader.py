"""Load configuration from YAML and environment variables. Slack credentials come from env."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Default config lives next to this module
_DEFAULT_CONFIG_PATH = Path(__file__).parent / "default.yaml"

# Trailing blank line added to every rendered message, labelled or not
_MESSAGE_SEPARATOR = len("\n\n")
# Label suffix ": " plus the trailing blank line
_LABEL_DECORATION = len(": ") + _MESSAGE_SEPARATOR


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


class SlackSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SLACK_", extra="ignore")
    token: str = ""
    cookie: str = ""
    team_id: str = ""
    channel: str = ""
    bot_user_id: str = ""
    ping_message_prefix: str = ""
    ping_message: str = " "
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:109.0) Gecko/20100101 Firefox/112.0"
    )
    websocket_url: str = "wss://wss-primary.slack.com/"
    post_timeout: float = 15.0
    connect_timeout: float = 10.0


class PromptSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PROMPT_", extra="ignore")
    rename_roles: dict[str, str] = Field(
        default_factory=lambda: {
            "system": "H",
            "user": "H",
            "assistant": "A",
            "example_user": "H",
            "example_assistant": "A",
        }
    )
    omit_first_role_label: bool = True
    max_chunk_length: int = Field(default=12000, gt=0)
    length_overhead: int = Field(default=20, ge=0)
    min_split_length: int = Field(default=500, ge=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> "PromptSettings":
        longest = max((len(v) for v in self.rename_roles.values()), default=0)
        needed = longest + _LABEL_DECORATION if longest else _MESSAGE_SEPARATOR
        if self.length_overhead < needed:
            raise ValueError(
                f"length_overhead={self.length_overhead} cannot hold the rendering overhead "
                f"({needed} chars for the longest role label and separators)"
            )
        if self.max_chunk_length - self.length_overhead <= self.min_split_length:
            raise ValueError("max_chunk_length - length_overhead must exceed min_split_length")
        return self


class StreamSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="STREAM_", extra="ignore")
    typing_indicator: str = "\n\n_Typing…_"
    stop_markers: list[str] = Field(default_factory=lambda: ["\nH: ", "\nHuman: "])
    response_timeout: float = Field(default=120.0, gt=0)


class BlacklistSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BLACKLIST_", extra="ignore")
    backend: str = "memory"
    key: str = "slaude:blacklisted_threads"
    ttl_seconds: int = 86400


class RedisSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="REDIS_", extra="ignore")
    url: str = "redis://localhost:6379/0"


class ServerSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SERVER_", extra="ignore")
    host: str = "127.0.0.1"
    port: int = 5004
    model_id: str = "claude-v1"


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore")
    level: str = "INFO"
    use_json: bool = True


class Config(BaseSettings):
    """Application config: YAML + env. Secrets from env only."""

    model_config = SettingsConfigDict(env_nested_delimiter="__", extra="ignore")

    slack: SlackSettings = Field(default_factory=SlackSettings)
    prompt: PromptSettings = Field(default_factory=PromptSettings)
    stream: StreamSettings = Field(default_factory=StreamSettings)
    blacklist: BlacklistSettings = Field(default_factory=BlacklistSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def load(cls, config_path: str | Path | None = None) -> "Config":
        path = Path(config_path) if config_path else _DEFAULT_CONFIG_PATH
        yaml_data = _load_yaml(path)
        env_prefix = os.getenv("SLAUDE_ENV_PREFIX", "")
        if env_prefix:
            yaml_data = _deep_merge(yaml_data, _load_yaml(Path(f"config/{env_prefix}.yaml")))
        slack = yaml_data.setdefault("slack", {})
        for env_name, key in (
            ("SLACK_TOKEN", "token"),
            ("SLACK_COOKIE", "cookie"),
            ("SLACK_TEAM_ID", "team_id"),
            ("SLACK_CHANNEL", "channel"),
            ("SLACK_BOT_USER_ID", "bot_user_id"),
        ):
            value = os.getenv(env_name)
            if value:
                slack[key] = value
        redis_url = os.getenv("REDIS_URL")
        if redis_url:
            yaml_data.setdefault("redis", {})["url"] = redis_url
        port = os.getenv("PORT")
        if port:
            yaml_data.setdefault("server", {})["port"] = int(port)
        return cls(**yaml_data)


def get_config(config_path: str | Path | None = None) -> Config:
    return Config.load(config_path)


def check_config(config: Config) -> list[str]:
    """Return warnings for settings that look wrong. Never raises."""
    slack = config.slack
    warnings: list[str] = []
    if len(slack.token) <= 9 or not slack.token.startswith("xoxc"):
        warnings.append("SLACK_TOKEN looks abnormal, please verify the token setting")
    if len(slack.cookie) <= 9 or not slack.cookie.startswith("xoxd"):
        warnings.append("SLACK_COOKIE looks abnormal, please verify the cookie setting")
    if ".slack.com" in slack.team_id:
        warnings.append("team_id needs to be the part before '.slack.com', not the entire URL")
    if slack.channel.startswith("D"):
        warnings.append(
            "channel looks like a DM channel id; use a channel you and the bot both have access to"
        )
    elif not slack.channel.startswith("C"):
        warnings.append("channel might be wrong, copy the id of a channel the bot can read")
    if slack.bot_user_id.startswith("D"):
        warnings.append("bot_user_id looks like a DM channel id; use the bot's member id instead")
    elif not slack.bot_user_id.startswith("U"):
        warnings.append("bot_user_id might be wrong, make sure it is the bot's member id")
    if not slack.ping_message:
        warnings.append(
            "ping_message should not be empty or the bot will not reply; use at least a single space"
        )
    return warnings

