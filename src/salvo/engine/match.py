"""Two-player match: pairing, countdown and the alternating turn loop."""

from __future__ import annotations

import logging
import random
import time
from enum import Enum
from typing import TYPE_CHECKING

from salvo.errors import CapacityError, CoordinateParseError, TransportError
from salvo.telemetry import get_tracer, record_match_metric

from .grid import Grid
from .ship import Coordinate, Ship, ShipType

if TYPE_CHECKING:
    from salvo.server.session import Session

logger = logging.getLogger(__name__)
tracer = get_tracer("salvo.engine.match")

MAX_SESSIONS = 2
COUNTDOWN_FROM = 3

OPPONENT_LEFT = "Your opponent left the game.\n"


class MatchPhase(Enum):
    """Lifecycle of a Match; FINISHED falls back to EMPTY once cleaned up."""

    EMPTY = "empty"
    AWAITING_OPPONENT = "awaiting_opponent"
    READY = "ready"
    RUNNING = "running"
    FINISHED = "finished"


def shot_board(shots: list[Coordinate], target: Grid, width: int, height: int) -> Grid:
    """Build a grid showing ``shots`` as hits or misses against ``target``'s fleet."""
    ships = [
        Ship(ShipType.boat(), [Coordinate(shot.x, shot.y, hit=target.ship_at(shot) is not None)])
        for shot in shots
    ]
    return Grid(width, height, ships)


class Match:
    """Holds two sessions and runs the game between them.

    Player 0 is whoever joined first and always moves first. The match owns
    its sessions: :meth:`reset` disconnects them and empties the match so it
    can be reused for the next pair.
    """

    def __init__(self, countdown_seconds: float = 1.0) -> None:
        self.sessions: list[Session] = []
        self.phase = MatchPhase.EMPTY
        self.countdown_seconds = countdown_seconds
        self.last_winner: str | None = None

    def is_ready(self) -> bool:
        return len(self.sessions) == MAX_SESSIONS

    def add_session(self, session: Session) -> None:
        """Seat a greeted session and tell the players who they are facing."""
        if self.phase not in (MatchPhase.EMPTY, MatchPhase.AWAITING_OPPONENT):
            raise CapacityError(f"Match is {self.phase.value}.")
        self.sessions.append(session)
        if len(self.sessions) == 1:
            self.phase = MatchPhase.AWAITING_OPPONENT
            logger.info("match_waiting", extra={"player": session.name})
            session.send("Waiting for opponent...\n")
            return
        self.phase = MatchPhase.READY
        logger.info("match_ready", extra={"players": [s.name for s in self.sessions]})
        for index, player in enumerate(self.sessions):
            player.send(f"Your opponent is {self._opponent(index).name}\n")

    def deal_grids(self, width: int, height: int, rng: random.Random | None = None) -> None:
        """Give every seated player a fresh random fleet and clear their shots."""
        for player in self.sessions:
            player.grid = Grid.new_random(width, height, rng)
            player.shots = []
            logger.debug(
                "player_grid", extra={"player": player.name, "grid": player.grid.render(show_ships=True)}
            )

    def run(self, width: int, height: int) -> Session:
        """Play the match to completion and return the winning session.

        The sessions are disconnected and the match is empty again when
        this returns. Transport errors propagate with the match still
        RUNNING; the caller is expected to :meth:`abort`.
        """
        if not self.is_ready():
            raise RuntimeError("Match needs two sessions before it can run.")
        if any(player.grid is None for player in self.sessions):
            raise RuntimeError("Every player needs a grid before the match can run.")
        self.phase = MatchPhase.RUNNING
        with tracer.start_as_current_span("match.run") as span:
            span.set_attribute("grid.width", width)
            span.set_attribute("grid.height", height)
            self._show_countdown()
            winner = self._play(width, height)
            span.set_attribute("winner", winner.name)
        self.phase = MatchPhase.FINISHED
        self.last_winner = winner.name
        record_match_metric("salvo_matches", 1, {"outcome": "finished"})
        self.reset()
        return winner

    def abort(self, message: str = OPPONENT_LEFT) -> None:
        """Tell whoever is still connected that the game is off, then reset."""
        logger.warning("match_aborted", extra={"phase": self.phase.value})
        for player in self.sessions:
            try:
                player.send(message)
            except TransportError:
                logger.debug("abort_notice_undelivered", extra={"player": player.name})
        if self.phase is MatchPhase.RUNNING:
            record_match_metric("salvo_matches", 1, {"outcome": "aborted"})
        self.reset()

    def reset(self) -> None:
        for player in self.sessions:
            player.disconnect()
        self.sessions.clear()
        self.phase = MatchPhase.EMPTY

    def _opponent(self, index: int) -> Session:
        return self.sessions[MAX_SESSIONS - (index + 1)]

    def _broadcast(self, message: str) -> None:
        for player in self.sessions:
            player.send(message)

    def _show_countdown(self) -> None:
        logger.info("match_starting")
        for remaining in range(COUNTDOWN_FROM, 0, -1):
            self._broadcast(f"Game starts in {remaining}...\n")
            time.sleep(self.countdown_seconds)

    def _show_grids(self, width: int, height: int) -> None:
        for index, player in enumerate(self.sessions):
            opponent = self._opponent(index)
            player.send(shot_board(player.shots, opponent.grid, width, height).render(show_ships=False))
            player.send(player.grid.render(show_ships=True))

    def _play(self, width: int, height: int) -> Session:
        while True:
            for index, player in enumerate(self.sessions):
                opponent = self._opponent(index)
                # A player whose fleet is gone loses before getting another turn.
                if player.grid.all_ships_sunk():
                    player.send(f"{opponent.name} won.\n")
                    opponent.send("You won!\n")
                    logger.info("match_won", extra={"winner": opponent.name, "loser": player.name})
                    return opponent
                self._show_grids(width, height)
                self._take_turn(player, opponent)

    def _take_turn(self, player: Session, opponent: Session) -> None:
        with tracer.start_as_current_span("match.turn") as span:
            span.set_attribute("player", player.name)
            player.send("Your turn: ")
            opponent.send(f"{player.name}'s turn.\n")
            logger.info("turn_started", extra={"player": player.name})
            text = player.receive_line()
            try:
                coord = Coordinate.parse(text)
            except CoordinateParseError:
                coord = None
            if coord is None or not opponent.grid.contains(coord):
                span.set_attribute("result", "astray")
                record_match_metric("salvo_shots", 1, {"result": "astray"})
                logger.info("shot_astray", extra={"player": player.name, "input": text})
                player.send("Your shot went astray!\n")
                return

            player.shots.append(coord)
            hit = opponent.grid.fire_at(coord) is not None
            result = "hit" if hit else "miss"
            span.set_attribute("coord", str(coord))
            span.set_attribute("result", result)
            record_match_metric("salvo_shots", 1, {"result": result})
            logger.info("shot_fired", extra={"player": player.name, "coord": str(coord), "result": result})
            player.send("Hit!\n" if hit else "Miss.\n")
            opponent.send(f"{player.name} is firing at {coord}\n")
