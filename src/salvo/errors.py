"""Exception hierarchy shared by the engine and the server."""

from __future__ import annotations


class SalvoError(Exception):
    """Base class for every error raised by salvo."""


class CoordinateParseError(SalvoError, ValueError):
    """Raised when text cannot be parsed as a grid coordinate."""


class TransportError(SalvoError):
    """Raised when reading from or writing to a player's connection fails."""


class CapacityError(SalvoError):
    """Raised when a match cannot accept another session."""


class ConfigurationError(SalvoError):
    """Raised when server settings are invalid."""


class FleetPlacementError(SalvoError):
    """Raised when no ship at all could be placed on a random grid."""
