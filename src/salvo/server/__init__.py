"""Network-facing side of the game: sessions, matchmaking and the listener."""

from .config import ServerConfig, load_server_config, parse_socket_address
from .listener import Listener
from .lobby import Lobby, handle_connection
from .session import Session

__all__ = [
    "Listener",
    "Lobby",
    "ServerConfig",
    "Session",
    "handle_connection",
    "load_server_config",
    "parse_socket_address",
]
