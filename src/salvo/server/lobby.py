"""Matchmaking: seat connections into the one shared, lock-guarded Match."""

from __future__ import annotations

import contextlib
import logging
import random
import threading
from dataclasses import dataclass, field
from typing import Iterator

from salvo.engine.match import Match, MatchPhase
from salvo.errors import CapacityError, TransportError
from salvo.telemetry import get_tracer, record_match_metric

from .config import ServerConfig
from .session import Session

logger = logging.getLogger(__name__)
tracer = get_tracer("salvo.server.lobby")

LOBBY_FULL = "Lobby is full.\n"


@dataclass
class Lobby:
    """The shared Match, the lock that serialises access to it, and board settings.

    Whoever holds ``lock`` may touch ``match``. A handler keeps the lock for
    the whole game once its session completes the pair, so every turn and
    every blocking read happens under it.
    """

    match: Match
    grid_width: int = 10
    grid_height: int = 10
    rng: random.Random | None = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @classmethod
    def from_config(cls, config: ServerConfig, rng: random.Random | None = None) -> Lobby:
        return cls(
            Match(countdown_seconds=config.countdown_seconds),
            grid_width=config.grid_width,
            grid_height=config.grid_height,
            rng=rng,
        )

    @contextlib.contextmanager
    def occupy(self) -> Iterator[Match]:
        """Take the lock without waiting, or raise CapacityError if it is held."""
        if not self.lock.acquire(blocking=False):
            raise CapacityError("Match is busy.")
        try:
            if self.match.is_ready():
                raise CapacityError("Match already has two players.")
            yield self.match
        finally:
            self.lock.release()


def handle_connection(lobby: Lobby, session: Session) -> None:
    """Greet a new connection and seat it; the second seat plays the match.

    The session is disconnected on the way out unless the match has taken
    ownership of it.
    """
    with tracer.start_as_current_span("lobby.handle_connection") as span, contextlib.ExitStack() as cleanup:
        span.set_attribute("peer", session.address)
        cleanup.callback(session.disconnect)
        try:
            with lobby.occupy() as match:
                _seat(lobby, match, session, cleanup)
        except CapacityError as exc:
            span.set_attribute("outcome", "lobby_full")
            record_match_metric("salvo_connections", 1, {"outcome": "lobby_full"})
            logger.info("lobby_full", extra={"address": session.address, "reason": str(exc)})
            _reject(session)


def _seat(lobby: Lobby, match: Match, session: Session, cleanup: contextlib.ExitStack) -> None:
    try:
        session.greet()
        match.add_session(session)
        cleanup.pop_all()
        record_match_metric("salvo_connections", 1, {"outcome": "joined"})
        if match.is_ready():
            match.deal_grids(lobby.grid_width, lobby.grid_height, lobby.rng)
            winner = match.run(lobby.grid_width, lobby.grid_height)
            logger.info("game_over", extra={"winner": winner.name})
    except CapacityError:
        raise
    except TransportError as exc:
        record_match_metric("salvo_connections", 1, {"outcome": "failed"})
        logger.warning("gameplay_error", extra={"player": session.name, "error": str(exc)})
        if session in match.sessions or match.phase is MatchPhase.RUNNING:
            match.abort()
    except Exception:
        logger.exception("gameplay_crashed", extra={"player": session.name})
        match.abort()
        raise


def _reject(session: Session) -> None:
    try:
        session.send(LOBBY_FULL)
    except TransportError:
        logger.debug("lobby_full_notice_undelivered", extra={"address": session.address})
