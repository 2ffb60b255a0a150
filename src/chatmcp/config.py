"""Configuration management for chatmcp."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from chatmcp.models.server import ServerDescriptor


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_prefix="CHATMCP_", env_file=".env", extra="ignore")

    # API Settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    # Bridge Settings
    bridge_url: str = "http://localhost:3001"
    bridge_timeout_seconds: float = 5.0
    bridge_health_interval_seconds: float = Field(default=0.0, ge=0.0)

    # MCP Transport Settings
    probe_timeout_seconds: float = 5.0
    handshake_timeout_seconds: float = 10.0
    call_timeout_seconds: float = 30.0
    max_invocation_events: int = 500

    # JSON file with server descriptors connected at startup
    servers_file: Path | None = None


@lru_cache
def get_settings() -> Settings:
    return Settings()


def load_server_descriptors(path: Path) -> list[ServerDescriptor]:
    """Read descriptors from a JSON list or a `{"mcpServers": {id: {...}}}` mapping."""
    raw: Any = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(raw, dict) and isinstance(raw.get("mcpServers"), dict):
        entries = [
            {"id": server_id, "name": server_id, **config}
            for server_id, config in raw["mcpServers"].items()
        ]
    elif isinstance(raw, list):
        entries = raw
    else:
        msg = f"Unsupported server configuration format in {path}"
        raise ValueError(msg)
    return [ServerDescriptor.model_validate(entry) for entry in entries]
