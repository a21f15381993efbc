"""
Client configuration management.

Loads configuration from client_config.yml with environment variable overrides.
Uses Pydantic for validation and type safety.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from ironvein_common.codec import WireFormat
from ironvein_common.constants import (
    CHAT_HISTORY_LIMIT,
    DEFAULT_API_PATH,
    DEFAULT_SERVER_URL,
    DEFAULT_WEBSOCKET_PATH,
    HEARTBEAT_INTERVAL,
    PENDING_CHAT_TIMEOUT,
    PROBE_TIMEOUT,
)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "client_config.yml"


class JoinMode(str, Enum):
    """When the Join message is sent."""
    AUTO = "auto"    # As soon as the channel opens
    LOBBY = "lobby"  # Only on an explicit join_battle()


class ServerConfig(BaseModel):
    """Server connection settings."""
    url: str = Field(default=DEFAULT_SERVER_URL, description="HTTP base URL of the game server")
    websocket_path: str = Field(default=DEFAULT_WEBSOCKET_PATH, description="WebSocket endpoint path")
    api_path: str = Field(default=DEFAULT_API_PATH, description="Path of the server data document")
    http_timeout: float = Field(default=10.0, gt=0, description="HTTP request timeout in seconds")


class SessionConfig(BaseModel):
    """Room and join behaviour."""
    join_mode: JoinMode = Field(default=JoinMode.AUTO, description="auto joins on open, lobby waits for join_battle()")
    default_room: str = Field(default="lobby", description="Room used when none is given")


class HeartbeatConfig(BaseModel):
    """Latency probe settings."""
    enabled: bool = Field(default=True, description="Send latency probes while connected")
    interval: float = Field(default=HEARTBEAT_INTERVAL, gt=0, description="Seconds between probes")
    probe_timeout: float = Field(default=PROBE_TIMEOUT, gt=0, description="Seconds before an unanswered probe is abandoned")


class ChatConfig(BaseModel):
    """Chat reconciliation settings."""
    pending_timeout: float = Field(default=PENDING_CHAT_TIMEOUT, gt=0, description="Seconds before an unechoed message is evicted")
    history_limit: int = Field(default=CHAT_HISTORY_LIMIT, ge=1, description="Chat lines kept in memory")


class ProtocolConfig(BaseModel):
    """Wire settings."""
    wire_format: WireFormat = Field(default=WireFormat.JSON, description="Frame serialization (json or msgpack)")


class DebugConfig(BaseModel):
    """Debug and development settings."""
    log_level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    log_file: Optional[str] = Field(default=None, description="Also write logs to this file")


class ClientConfig(BaseModel):
    """Complete client configuration."""
    server: ServerConfig = Field(default_factory=ServerConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    heartbeat: HeartbeatConfig = Field(default_factory=HeartbeatConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    protocol: ProtocolConfig = Field(default_factory=ProtocolConfig)
    debug: DebugConfig = Field(default_factory=DebugConfig)

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> "ClientConfig":
        """Load configuration from YAML file, falling back to defaults if it is missing."""
        path = Path(path) if path else DEFAULT_CONFIG_PATH

        data: dict = {}
        if path.exists():
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}

        # Apply environment variable overrides
        data = cls._apply_env_overrides(data)

        return cls(**data)

    @staticmethod
    def _apply_env_overrides(data: dict) -> dict:
        """Apply environment variable overrides to config data."""
        env_mappings = {
            "IRONVEIN_SERVER_URL": ("server", "url"),
            "IRONVEIN_JOIN_MODE": ("session", "join_mode"),
            "IRONVEIN_HEARTBEAT_INTERVAL": ("heartbeat", "interval"),
            "IRONVEIN_WIRE_FORMAT": ("protocol", "wire_format"),
            "LOG_LEVEL": ("debug", "log_level"),
        }

        for env_var, (section, key) in env_mappings.items():
            value = os.environ.get(env_var)
            if value is not None:
                if section not in data or data[section] is None:
                    data[section] = {}

                # Convert types based on default
                if key == "interval":
                    data[section][key] = float(value)
                elif key in ("join_mode", "wire_format"):
                    data[section][key] = value.lower()
                else:
                    data[section][key] = value

        return data


def get_config() -> ClientConfig:
    """Get the singleton configuration instance."""
    if not hasattr(get_config, "_instance"):
        get_config._instance = ClientConfig.from_yaml()
    return get_config._instance


def reload_config(path: Optional[Path] = None) -> ClientConfig:
    """Reload configuration from file."""
    get_config._instance = ClientConfig.from_yaml(path)
    return get_config._instance
