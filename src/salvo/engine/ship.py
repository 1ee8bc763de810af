"""Ship domain model: coordinates, ship types and placed ships."""

from __future__ import annotations

import random
import string
from dataclasses import dataclass, field
from enum import Enum

from salvo.errors import CoordinateParseError

ALPHABET = string.ascii_lowercase
MAX_COLUMNS = len(ALPHABET)


@dataclass(unsafe_hash=True)
class Coordinate:
    """1-based grid position; ``hit`` is annotation state, not identity."""

    x: int
    y: int
    hit: bool = field(default=False, compare=False, repr=False)

    @classmethod
    def parse(cls, text: str) -> Coordinate:
        """Parse text such as ``J10`` or ``a7`` into a coordinate.

        Leading letters are consumed greedily in alphabet order and each
        match overwrites the column, so ``ab5`` resolves to column ``b``.
        The remainder must be a non-negative decimal row number.
        """
        value = text.strip().lower()
        x = 0
        for index, letter in enumerate(ALPHABET):
            if value.startswith(letter):
                value = value.lstrip(letter)
                x = index + 1
        if x == 0:
            raise CoordinateParseError(f"No column letter in {text!r}.")
        if not (value.isascii() and value.isdigit()):
            raise CoordinateParseError(f"Invalid row number in {text!r}.")
        try:
            y = int(value)
        except ValueError as exc:
            raise CoordinateParseError(f"Row number with {len(value)} digits is too long.") from exc
        return cls(x, y)

    def __str__(self) -> str:
        if not 1 <= self.x <= MAX_COLUMNS:
            raise ValueError(f"Column {self.x} is outside A-Z.")
        return f"{ALPHABET[self.x - 1].upper()}{self.y}"

    def shifted(self, dx: int, dy: int) -> Coordinate:
        """Return a fresh, un-hit coordinate offset from this one."""
        return Coordinate(self.x + dx, self.y + dy)


class Orientation(Enum):
    """Allowed ship orientations."""

    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


class ShipClass(Enum):
    """Ship hulls and the glyph used to draw them on the owner's board."""

    BOAT = "△"
    DESTROYER = "▭"
    BATTLESHIP = "▣"

    @property
    def glyph(self) -> str:
        return self.value

    @property
    def size(self) -> int:
        """Return the number of cells the hull occupies."""
        return {ShipClass.BOAT: 1, ShipClass.DESTROYER: 2, ShipClass.BATTLESHIP: 6}[self]

    @property
    def oriented(self) -> bool:
        return self is not ShipClass.BOAT


@dataclass(frozen=True)
class ShipType:
    """A ship class together with its orientation, if the class has one."""

    ship_class: ShipClass
    orientation: Orientation | None = None

    def __post_init__(self) -> None:
        if self.ship_class.oriented and self.orientation is None:
            raise ValueError(f"{self.ship_class.name} requires an orientation.")
        if not self.ship_class.oriented and self.orientation is not None:
            raise ValueError(f"{self.ship_class.name} has no orientation.")

    @classmethod
    def boat(cls) -> ShipType:
        return cls(ShipClass.BOAT)

    @classmethod
    def destroyer(cls, orientation: Orientation) -> ShipType:
        return cls(ShipClass.DESTROYER, orientation)

    @classmethod
    def battleship(cls, orientation: Orientation) -> ShipType:
        return cls(ShipClass.BATTLESHIP, orientation)

    @classmethod
    def variants(cls) -> tuple[ShipType, ...]:
        """Return every ship type, one per class and orientation."""
        types: list[ShipType] = []
        for ship_class in ShipClass:
            if ship_class.oriented:
                types.extend(cls(ship_class, orientation) for orientation in Orientation)
            else:
                types.append(cls(ship_class))
        return tuple(types)

    @classmethod
    def random(cls, rng: random.Random | None = None) -> ShipType:
        """Pick a ship type uniformly over all variants."""
        return (rng or random).choice(cls.variants())

    @property
    def glyph(self) -> str:
        return self.ship_class.glyph

    def __str__(self) -> str:
        return self.glyph

    def hitbox(self, anchor: Coordinate) -> list[Coordinate]:
        """Expand the anchor into the ordered cells this ship type occupies."""
        if self.ship_class is ShipClass.BOAT:
            return [anchor.shifted(0, 0)]
        vertical = self.orientation is Orientation.VERTICAL
        if self.ship_class is ShipClass.DESTROYER:
            step = (0, 1) if vertical else (1, 0)
            return [anchor.shifted(0, 0), anchor.shifted(*step)]
        # Battleship: a 2x3 block, two wide when vertical and two tall when horizontal.
        cells: list[Coordinate] = []
        for outer in range(2):
            for inner in range(3):
                if vertical:
                    cells.append(anchor.shifted(outer, inner))
                else:
                    cells.append(anchor.shifted(inner, outer))
        return cells


@dataclass
class Ship:
    """A ship placed on a grid; its coordinates carry the hit flags."""

    ship_type: ShipType
    coordinates: list[Coordinate]

    def __post_init__(self) -> None:
        if not self.coordinates:
            raise ValueError("A ship needs at least one coordinate.")
        if self.coordinates != self.ship_type.hitbox(self.coordinates[0]):
            raise ValueError(
                f"Coordinates {self.coordinates} do not match the {self.ship_type.ship_class.name} hitbox."
            )

    @classmethod
    def at(cls, ship_type: ShipType, anchor: Coordinate) -> Ship:
        """Build a ship of the given type anchored at ``anchor``."""
        return cls(ship_type, ship_type.hitbox(anchor))

    @classmethod
    def random(cls, max_x: int, max_y: int, rng: random.Random | None = None) -> Ship:
        """Return a random ship whose anchor, but not necessarily whole hull, is in bounds."""
        rng = rng or random.Random()
        ship_type = ShipType.random(rng)
        anchor = Coordinate(rng.randint(1, max_x), rng.randint(1, max_y))
        return cls.at(ship_type, anchor)

    def occupies(self, coord: Coordinate) -> bool:
        return coord in self.coordinates

    def cell_at(self, coord: Coordinate) -> Coordinate | None:
        """Return this ship's own coordinate object at ``coord``, if any."""
        for cell in self.coordinates:
            if cell == coord:
                return cell
        return None

    def mark_hit(self, coord: Coordinate) -> bool:
        """Flag the cell at ``coord`` as hit; False if the ship is not there."""
        cell = self.cell_at(coord)
        if cell is None:
            return False
        cell.hit = True
        return True

    def is_sunk(self) -> bool:
        """Determine whether every coordinate belonging to the ship has been hit."""
        return all(cell.hit for cell in self.coordinates)

    def overlaps(self, other: Ship) -> bool:
        """Return True if any coordinate overlaps with another ship."""
        return any(other.occupies(cell) for cell in self.coordinates)
