"""Exceptions raised by the game backend."""

from __future__ import annotations


class CampusGuessrError(Exception):
    """Base class for all game backend errors."""


class DataLoadError(CampusGuessrError):
    """The location dataset is missing, unreadable or malformed."""


class EmptyPackError(CampusGuessrError):
    """A map pack resolved to no selectable locations."""


class BridgePayloadError(CampusGuessrError):
    """A bridge envelope could not be decoded or validated."""


class MapNotReadyError(CampusGuessrError):
    """The mapping library never reported ready during start-up polling."""
