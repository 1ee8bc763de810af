"""Server settings loaded from the environment and command line."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from salvo.engine.ship import MAX_COLUMNS
from salvo.errors import ConfigurationError

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 1234

SOCKET_ENV = "SALVO_SOCKET"
FIELD_ENV = {
    "grid_width": "SALVO_GRID_WIDTH",
    "grid_height": "SALVO_GRID_HEIGHT",
    "countdown_seconds": "SALVO_COUNTDOWN_SECONDS",
}


def parse_socket_address(value: str) -> dict[str, Any]:
    """Split ``host:port`` (or ``[v6-host]:port``) into config fields."""
    host, sep, port = value.strip().rpartition(":")
    host = host.strip("[]")
    if not sep or not host or not port.isdigit():
        raise ConfigurationError(f"Expected HOST:PORT, got {value!r}.")
    return {"host": host, "port": int(port)}


class ServerConfig(BaseModel):
    """Bind address and board settings for the game server.

    Port 0 asks the OS for a free port. The grid is at most 26 columns wide
    because columns are addressed by a single letter.
    """

    host: str = DEFAULT_HOST
    port: int = Field(DEFAULT_PORT, ge=0, le=65535)
    grid_width: int = Field(10, ge=1, le=MAX_COLUMNS)
    grid_height: int = Field(10, ge=1)
    countdown_seconds: float = Field(1.0, ge=0)

    @property
    def socket_address(self) -> str:
        return f"{self.host}:{self.port}"

    @classmethod
    def create(cls, **values: Any) -> "ServerConfig":
        """Validate ``values``, raising ConfigurationError instead of ValidationError."""
        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigurationError(str(exc)) from exc

    @classmethod
    def from_env(cls, **overrides: Any) -> "ServerConfig":
        """Construct config from `SALVO_*` env vars; non-None overrides win."""
        data: dict[str, Any] = {}
        socket_value = os.getenv(SOCKET_ENV)
        if socket_value:
            data.update(parse_socket_address(socket_value))
        for name, env_name in FIELD_ENV.items():
            value = os.getenv(env_name)
            if value is not None:
                data[name] = value
        data.update({key: value for key, value in overrides.items() if value is not None})
        return cls.create(**data)


@lru_cache(maxsize=1)
def load_server_config() -> ServerConfig:
    """Load and cache server config from the environment."""
    return ServerConfig.from_env()
