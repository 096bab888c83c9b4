"""Backend package for the campus location-guessing game."""

from .bridge import BridgeMessage, MapBridge, MessageType, decode_message
from .client import MapClientState, wait_for_map_ready, z_level_name
from .config import GameSettings, load_settings
from .engine import RoundController
from .errors import BridgePayloadError, DataLoadError, EmptyPackError, MapNotReadyError
from .events import EventChannel, GameEvent
from .locations import LocationStore
from .models import RoundPhase
from .scheduler import AsyncioScheduler, CancelToken, FrameScheduler
from .scoring import ScoringEngine, distance, score

__all__ = [
    "AsyncioScheduler",
    "BridgeMessage",
    "BridgePayloadError",
    "CancelToken",
    "DataLoadError",
    "decode_message",
    "distance",
    "EmptyPackError",
    "EventChannel",
    "FrameScheduler",
    "GameEvent",
    "GameSettings",
    "load_settings",
    "LocationStore",
    "MapBridge",
    "MapClientState",
    "MapNotReadyError",
    "MessageType",
    "RoundController",
    "RoundPhase",
    "score",
    "ScoringEngine",
    "wait_for_map_ready",
    "z_level_name",
]
