"""Client settings using Pydantic.

Settings come from (highest priority first) keyword arguments, ``SOCKETAPI_*``
environment variables, and an optional JSON file at ~/.socketapi/config.json.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from socketapi.errors import ConfigError
from socketapi.protocol.framing import DEFAULT_MAX_FRAME_BYTES


class ClientSettings(BaseSettings):
    """Connection and protocol settings for SocketAPIClient."""
    model_config = SettingsConfigDict(env_prefix="SOCKETAPI_", extra="ignore")

    host: str = "127.0.0.1"
    port: int = Field(default=9000, ge=1, le=65535)
    connect_timeout_ms: int = Field(default=5000, ge=0)
    # Socket inactivity timeout while connecting; 0 disables it. Never active once connected.
    idle_timeout_ms: int = Field(default=2000, ge=0)
    request_timeout_ms: int = Field(default=2000, ge=0)
    frame_buffering: bool = True
    max_frame_bytes: int = Field(default=DEFAULT_MAX_FRAME_BYTES, ge=1)
    terminate_requests: bool = False  # append \0\0 to outbound requests


def get_config_path() -> Path:
    """Get the default settings file path."""
    return Path.home() / ".socketapi" / "config.json"


def load_settings(config_path: Path | None = None, **overrides: Any) -> ClientSettings:
    """
    Load settings from file, environment and keyword overrides.

    Args:
        config_path: Optional path to a JSON settings file. Uses the default if not provided.
        overrides: Field values that win over the file and the environment.

    Returns:
        Validated settings object.

    Raises:
        ConfigError: If the file exists but is not a valid settings object.
    """
    path = config_path or get_config_path()
    data: dict[str, Any] = {}
    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Failed to read settings from {path}: {e}", path=str(path)) from e
        if not isinstance(raw, dict):
            raise ConfigError(f"Settings file {path} must contain a JSON object", path=str(path))
        data = convert_keys(raw)
    # Init kwargs outrank env vars in pydantic-settings, so only pass file values
    # that the environment does not already set.
    environ = {key.upper() for key in os.environ}
    env_set = {name for name in ClientSettings.model_fields if _env_name(name) in environ}
    merged = {k: v for k, v in data.items() if k not in env_set}
    merged.update(overrides)
    try:
        return ClientSettings(**merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {path}: {e}", path=str(path)) from e


def _env_name(field_name: str) -> str:
    return f"SOCKETAPI_{field_name}".upper()


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case for Pydantic."""
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)
