"""Runtime configuration, read from the environment and overridden by CLI flags."""

import os
from dataclasses import dataclass
from typing import Mapping

# Environment variable names
HOST_ENV = "HOST"
PORT_ENV = "PORT"
LOCAL_TIMEZONE_ENV = "LOCAL_TIMEZONE"
JSON_RESPONSE_ENV = "MCP_JSON_RESPONSE"
LOG_LEVEL_ENV = "LOG_LEVEL"

# Default values
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
DEFAULT_LOG_LEVEL = "INFO"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def parse_port(value: str | None) -> int:
    """Parse a TCP port, falling back to the default when unset or empty."""
    if value is None or not value.strip():
        return DEFAULT_PORT
    try:
        port = int(value)
    except ValueError:
        raise ValueError(f"Invalid port: {value!r}") from None
    if not 0 <= port <= 65535:
        raise ValueError(f"Port out of range: {port}")
    return port


@dataclass(frozen=True)
class ServerConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    local_timezone: str | None = None
    json_response: bool = False
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ServerConfig":
        env = os.environ if environ is None else environ
        return cls(
            host=env.get(HOST_ENV) or DEFAULT_HOST,
            port=parse_port(env.get(PORT_ENV)),
            local_timezone=env.get(LOCAL_TIMEZONE_ENV) or None,
            json_response=env.get(JSON_RESPONSE_ENV, "").strip().lower() in _TRUE_VALUES,
            log_level=env.get(LOG_LEVEL_ENV) or DEFAULT_LOG_LEVEL,
        )
