"""TCP accept loop handing each connection to the lobby on its own thread."""

from __future__ import annotations

import logging
import socket
import threading

from .config import ServerConfig
from .lobby import Lobby, handle_connection
from .session import Session

logger = logging.getLogger(__name__)


class Listener:
    """Accept connections and run :func:`handle_connection` for each one."""

    def __init__(self, config: ServerConfig, lobby: Lobby | None = None, poll_interval: float = 0.5) -> None:
        self.config = config
        self.lobby = lobby or Lobby.from_config(config)
        self.poll_interval = poll_interval
        self._stopped = threading.Event()
        self._sock: socket.socket | None = None

    @property
    def address(self) -> tuple[str, int]:
        if self._sock is None:
            raise RuntimeError("Listener is not bound.")
        return self._sock.getsockname()[:2]

    def bind(self) -> tuple[str, int]:
        self._sock = socket.create_server((self.config.host, self.config.port))
        self._sock.settimeout(self.poll_interval)
        host, port = self.address
        logger.info("server_listening", extra={"host": host, "port": port})
        return host, port

    def serve_forever(self) -> None:
        if self._sock is None:
            self.bind()
        assert self._sock is not None
        while not self._stopped.is_set():
            try:
                conn, addr = self._sock.accept()
            except TimeoutError:
                continue
            except OSError as exc:
                if self._stopped.is_set():
                    break
                logger.error("connection_failed", extra={"error": str(exc)})
                continue
            address = f"{addr[0]}:{addr[1]}"
            logger.info("new_connection", extra={"address": address})
            session = Session.from_socket(conn, address)
            threading.Thread(
                target=handle_connection,
                args=(self.lobby, session),
                name=f"salvo-{address}",
                daemon=True,
            ).start()

    def close(self) -> None:
        self._stopped.set()
        if self._sock is not None:
            self._sock.close()
