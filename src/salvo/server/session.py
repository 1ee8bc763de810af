"""Server-side handle for one connected player."""

from __future__ import annotations

import contextlib
import logging
import socket
import threading
from types import TracebackType
from typing import TextIO

from salvo.engine.grid import Grid
from salvo.engine.ship import Coordinate
from salvo.errors import TransportError

logger = logging.getLogger(__name__)

WELCOME = "Welcome to Battleship! Please enter your name: "
UNKNOWN_PLAYER = "unknown player"


class Session:
    """Line-based text connection to a player, plus that player's board and shots.

    The name is set once by :meth:`greet`, the grid once the match is made,
    and ``shots`` grows by one coordinate per valid turn. The connection is
    shut down exactly once by :meth:`disconnect`, which also runs when the
    session is used as a context manager.
    """

    def __init__(
        self,
        reader: TextIO,
        writer: TextIO,
        sock: socket.socket | None = None,
        address: str = "-",
    ) -> None:
        self.name = ""
        self.grid: Grid | None = None
        self.shots: list[Coordinate] = []
        self.address = address
        self._reader = reader
        self._writer = writer
        self._sock = sock
        self._closed = False
        self._close_lock = threading.Lock()

    @classmethod
    def from_socket(cls, sock: socket.socket, address: str = "-") -> Session:
        reader = sock.makefile("r", encoding="utf-8", errors="replace", newline="\n")
        writer = sock.makefile("w", encoding="utf-8")
        return cls(reader, writer, sock=sock, address=address)

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, text: str) -> None:
        try:
            self._writer.write(text)
            self._writer.flush()
        except (OSError, ValueError) as exc:
            raise TransportError(f"Sending to {self.name or self.address} failed: {exc}") from exc

    def receive_line(self) -> str:
        """Block until the peer sends a line and return it stripped."""
        try:
            line = self._reader.readline()
        except (OSError, ValueError) as exc:
            raise TransportError(f"Reading from {self.name or self.address} failed: {exc}") from exc
        if not line:
            raise TransportError(f"{self.name or self.address} closed the connection.")
        return line.strip()

    def greet(self) -> str:
        """Send the welcome banner and read the player's display name."""
        self.send(WELCOME)
        self.name = self.receive_line() or UNKNOWN_PLAYER
        logger.info("player_greeted", extra={"player": self.name, "address": self.address})
        return self.name

    def disconnect(self) -> None:
        """Shut the connection down; later calls do nothing."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        logger.debug("session_disconnect", extra={"player": self.name, "address": self.address})
        if self._sock is not None:
            with contextlib.suppress(OSError):
                self._sock.shutdown(socket.SHUT_RDWR)
        for stream in (self._writer, self._reader):
            with contextlib.suppress(OSError, ValueError):
                stream.close()
        if self._sock is not None:
            self._sock.close()

    def __enter__(self) -> Session:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.disconnect()

    def __repr__(self) -> str:
        return f"Session(name={self.name!r}, address={self.address!r}, closed={self._closed})"
