"""A player's board: bounded, non-overlapping ships and their rendering."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field

from salvo.errors import FleetPlacementError
from salvo.telemetry import get_tracer, record_match_metric

from .ship import ALPHABET, MAX_COLUMNS, Coordinate, Ship, ShipClass

logger = logging.getLogger(__name__)
tracer = get_tracer("salvo.engine.grid")

HIT_GLYPH = "☒"
MISS_GLYPH = "✕"
EMPTY_GLYPH = "•"

MIN_FLEET = 4
MAX_FLEET = 7


@dataclass
class Grid:
    """A ``width`` x ``height`` board holding a fleet of ships."""

    width: int
    height: int
    ships: list[Ship] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not 1 <= self.width <= MAX_COLUMNS:
            raise ValueError(f"Grid width must be between 1 and {MAX_COLUMNS}, got {self.width}.")
        if self.height < 1:
            raise ValueError(f"Grid height must be at least 1, got {self.height}.")

    def contains(self, coord: Coordinate) -> bool:
        """Check whether a coordinate lies inside the grid boundaries."""
        return 1 <= coord.x <= self.width and 1 <= coord.y <= self.height

    def can_place_ship(self, ship: Ship) -> bool:
        if not all(self.contains(cell) for cell in ship.coordinates):
            return False
        return not any(ship.overlaps(existing) for existing in self.ships)

    def place_ship(self, ship: Ship) -> bool:
        """Add the ship unless it overlaps another ship or leaves the grid."""
        with tracer.start_as_current_span("grid.place_ship") as span:
            span.set_attribute("ship.class", ship.ship_type.ship_class.name)
            span.set_attribute("ship.anchor", f"{ship.coordinates[0].x},{ship.coordinates[0].y}")
            placed = self.can_place_ship(ship)
            span.set_attribute("placed", placed)
            record_match_metric(
                "salvo_ship_placements", 1, {"result": "success" if placed else "failed"}
            )
            if placed:
                self.ships.append(ship)
            return placed

    def ship_at(self, coord: Coordinate) -> Ship | None:
        for ship in self.ships:
            if ship.occupies(coord):
                return ship
        return None

    def fire_at(self, coord: Coordinate) -> Ship | None:
        """Mark the cell at ``coord`` hit and return the ship there, if any."""
        ship = self.ship_at(coord)
        if ship is not None:
            ship.mark_hit(coord)
        return ship

    def all_ships_sunk(self) -> bool:
        """True when every ship is sunk (vacuously true for an empty fleet)."""
        return all(ship.is_sunk() for ship in self.ships)

    @classmethod
    def new_random(
        cls,
        width: int,
        height: int,
        rng: random.Random | None = None,
        max_attempts: int = 1000,
    ) -> Grid:
        """Populate a grid with 4 to 7 random ships plus at most one battleship.

        Ships that do not fit are discarded and regenerated. The battleship
        is held back and placed last; it only gets ``max_attempts`` random
        anchors and is dropped if none fits. The whole fleet is bounded by
        ``max_attempts`` per targeted ship, after which the ships placed so
        far are kept.
        """
        rng = rng or random.Random()
        grid = cls(width, height)
        with tracer.start_as_current_span("grid.new_random") as span:
            ship_count = rng.randint(MIN_FLEET, MAX_FLEET)
            budget = max_attempts * ship_count
            battleship: Ship | None = None
            attempts = 0
            while len(grid.ships) < ship_count and attempts < budget:
                attempts += 1
                ship = Ship.random(width, height, rng)
                if ship.ship_type.ship_class is ShipClass.BATTLESHIP:
                    battleship = ship
                else:
                    grid.place_ship(ship)
            if len(grid.ships) < ship_count:
                logger.warning(
                    "random_fleet_truncated",
                    extra={"wanted": ship_count, "placed": len(grid.ships), "width": width, "height": height},
                )

            if battleship is not None:
                battleship_type = battleship.ship_type
                for attempt in range(max_attempts):
                    if attempt:
                        anchor = Coordinate(rng.randint(1, width), rng.randint(1, height))
                        battleship = Ship.at(battleship_type, anchor)
                    if grid.place_ship(battleship):
                        break

            if not grid.ships:
                raise FleetPlacementError(f"Could not place any ship on a {width}x{height} grid.")
            span.set_attribute("fleet.size", len(grid.ships))
            span.set_attribute("attempts", attempts)
        return grid

    def _glyph_at(self, coord: Coordinate, show_ships: bool) -> str:
        ship = self.ship_at(coord)
        if ship is None:
            return EMPTY_GLYPH
        cell = ship.cell_at(coord)
        if cell is not None and cell.hit:
            return HIT_GLYPH
        if show_ships:
            return ship.ship_type.glyph
        return MISS_GLYPH

    def render(self, show_ships: bool) -> str:
        """Draw the grid as text.

        With ``show_ships`` un-hit ship cells show their ship glyph (the
        owner's view); without it they show as misses, which is how a shot
        history board marks the cells that were fired at but found water.
        """
        lines = ["", "   " + "".join(f"{letter.upper()} " for letter in ALPHABET[: self.width])]
        for y in range(1, self.height + 1):
            cells = "".join(f"{self._glyph_at(Coordinate(x, y), show_ships)} " for x in range(1, self.width + 1))
            label = f"{y} " if len(str(y)) == 2 else f"{y}  "
            lines.append(f"{label}{cells}")
        return "\n".join(lines) + "\n"
