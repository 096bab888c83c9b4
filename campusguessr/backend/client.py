"""Map client mirror: pin marker, actual marker, guess line and guessing flag.

The client never scores anything. It renders what the engine tells it and
forwards the player's pin when they submit.
"""

from __future__ import annotations

import itertools
import logging
import time
from typing import Any, Callable

from campusguessr.backend.bridge import (
    ActualLocationPayload,
    BridgeMessage,
    GuessingStatePayload,
    GuessPayload,
    MapBridge,
    MessageType,
    ScoreDisplayPayload,
    build_message,
)
from campusguessr.backend.config import GameSettings
from campusguessr.backend.errors import MapNotReadyError
from campusguessr.backend.models import GuessLine, MarkerVisual

logger = logging.getLogger(__name__)

GUESS_MARKER_STYLE: dict[str, Any] = {
    "size": 60,
    "imgUrl": "assets/img/markers/handthing.png",
    "imgScale": 1.7,
    "color": "white",
    "innerCircle": False,
    "markerType": "player",
}
ACTUAL_MARKER_STYLE: dict[str, Any] = {
    "size": 60,
    "imgUrl": "assets/img/markers/fat.png",
    "imgScale": 1.7,
    "color": "#9D9DDC",
    "innerCircle": False,
    "markerType": "actual",
}
GUESS_LINE_STYLE: dict[str, Any] = {
    "color": "#D31F40",
    "opacity": 0.9,
    "dashArray": "6,6",
    "interactive": False,
}

Z_LEVEL_NAMES: dict[int, str] = {
    -4: "P4 (Parking Level 4)",
    -3: "P3 (Parking Level 3)",
    -2: "P2 (Parking Level 2)",
    -1: "P1 (Parking Level 1)",
    0: "LG (Lower Ground)",
    1: "G (Ground)",
    2: "1 (First Floor)",
    3: "2 (Second Floor)",
    4: "3 (Third Floor)",
    5: "4 (Fourth Floor)",
    6: "5 (Fifth Floor)",
    7: "6 (Sixth Floor)",
    8: "7 (Seventh Floor)",
    9: "8 (Eighth Floor)",
    10: "9 (Ninth Floor)",
    11: "10 (Tenth Floor)",
    12: "11 (Eleventh Floor)",
}


def z_level_name(z_level: int) -> str:
    if z_level in Z_LEVEL_NAMES:
        return Z_LEVEL_NAMES[z_level]
    if z_level < -4:
        return f"B{abs(z_level)} (Basement {abs(z_level)})"
    return f"{z_level} (Level {z_level})"


def wait_for_map_ready(
    is_ready: Callable[[], bool],
    attempts: int = 10,
    interval: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Poll the mapping library until it reports ready.

    Returns the attempt number that succeeded. Raises :class:`MapNotReadyError`
    once every attempt has failed.
    """
    for attempt in range(1, attempts + 1):
        if is_ready():
            return attempt
        if attempt < attempts:
            sleep(interval)
    logger.critical(f"Map library failed to load after {attempts} attempts")
    raise MapNotReadyError(f"Map library failed to load after {attempts} attempts")


class MapClientState:
    def __init__(
        self,
        bridge: MapBridge,
        *,
        min_z_level: int = -4,
        max_z_level: int = 12,
        map_ready_attempts: int = 10,
        map_ready_interval: float = 1.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if min_z_level > max_z_level:
            raise ValueError("min_z_level must not exceed max_z_level")
        self.bridge = bridge
        self.min_z_level = min_z_level
        self.max_z_level = max_z_level
        self.map_ready_attempts = map_ready_attempts
        self.map_ready_interval = map_ready_interval
        self._clock = clock
        self._marker_ids = itertools.count(1)

        self.visible = False
        self.is_guessing = False
        self.z_level = min(max(0, min_z_level), max_z_level)
        self.guess_marker: MarkerVisual | None = None
        self.actual_marker: MarkerVisual | None = None
        self.guess_line: GuessLine | None = None
        self.score_display: tuple[int, int] | None = None
        self.sequence: int | None = None

        bridge.attach_client(self.handle_message)

    @classmethod
    def from_settings(cls, settings: GameSettings, bridge: MapBridge) -> "MapClientState":
        return cls(
            bridge,
            min_z_level=settings.min_z_level,
            max_z_level=settings.max_z_level,
            map_ready_attempts=settings.map_ready_attempts,
            map_ready_interval=settings.map_ready_interval,
        )

    def wait_until_ready(self, is_ready: Callable[[], bool], sleep: Callable[[float], None] = time.sleep) -> int:
        return wait_for_map_ready(
            is_ready,
            attempts=self.map_ready_attempts,
            interval=self.map_ready_interval,
            sleep=sleep,
        )

    def handle_message(self, message: BridgeMessage) -> None:
        if message.seq is not None:
            self.sequence = message.seq
        handler = self._handlers().get(message.type)
        if handler is None:
            logger.warning(f"Map client ignoring {message.type.value}")
            return
        handler(message.payload)

    def _handlers(self) -> dict[MessageType, Callable[[Any], None]]:
        return {
            MessageType.SHOW_MAP: self._show_map,
            MessageType.HIDE_MAP: self._hide_map,
            MessageType.SET_ACTUAL_LOCATION: self._set_actual_location,
            MessageType.SET_GUESSING_STATE: self._set_guessing_state,
            MessageType.UPDATE_SCORE_DISPLAY: self._update_score_display,
            MessageType.CLEAR_MAP_STATE: self._clear_map_state,
        }

    def is_valid_z_level(self, z_level: int) -> bool:
        return self.min_z_level <= z_level <= self.max_z_level

    def set_z_level(self, z_level: int) -> bool:
        if not self.is_valid_z_level(z_level):
            logger.warning(f"Invalid z-level: {z_level}. Must be between {self.min_z_level} and {self.max_z_level}")
            return False
        self.z_level = z_level
        logger.debug(f"Z-level changed to: {z_level_name(z_level)}")
        return True

    def click(self, latitude: float, longitude: float, z_level: int | None = None) -> MarkerVisual | None:
        """Place the guess pin, replacing any earlier one."""
        if not self.is_guessing:
            logger.debug("Map click ignored - guessing disabled")
            return None
        level = self.z_level if z_level is None else z_level
        if not self.is_valid_z_level(level):
            logger.warning(f"Map click rejected: z-level {level} outside {self.min_z_level}..{self.max_z_level}")
            return None

        self.guess_marker = MarkerVisual(
            marker_id=next(self._marker_ids),
            latitude=latitude,
            longitude=longitude,
            z_level=level,
            style=dict(GUESS_MARKER_STYLE),
        )
        self._refresh_line()
        return self.guess_marker

    def submit(self) -> bool:
        """Send the current pin to the engine as a ``SubmitGuess`` envelope."""
        if not self.is_guessing:
            logger.warning("Guess not submitted - guessing disabled")
            return False
        marker = self.guess_marker
        if marker is None:
            logger.warning("No guess marker placed. Please click on the map first.")
            return False
        payload = GuessPayload(
            latitude=marker.latitude,
            longitude=marker.longitude,
            zLevel=marker.z_level,
            zLevelName=z_level_name(marker.z_level),
            timestamp=self._clock(),
        )
        message = build_message(MessageType.SUBMIT_GUESS, payload, seq=self.sequence)
        self.bridge.send_to_engine(message.to_json())
        return True

    def visible_markers(self) -> list[MarkerVisual]:
        markers = [marker for marker in (self.guess_marker,) if marker is not None]
        if not self.is_guessing and self.actual_marker is not None:
            markers.append(self.actual_marker)
        return markers

    @property
    def can_submit(self) -> bool:
        return self.is_guessing and self.guess_marker is not None

    def _show_map(self, _payload: Any) -> None:
        if self.visible:
            return
        self.visible = True

    def _hide_map(self, _payload: Any) -> None:
        if not self.visible:
            return
        self.visible = False

    def _set_actual_location(self, payload: ActualLocationPayload) -> None:
        self.actual_marker = MarkerVisual(
            marker_id=next(self._marker_ids),
            latitude=payload.latitude,
            longitude=payload.longitude,
            z_level=payload.zLevel,
            style=dict(ACTUAL_MARKER_STYLE),
        )
        self._refresh_line()

    def _set_guessing_state(self, payload: GuessingStatePayload) -> None:
        self.is_guessing = payload.isGuessing
        self._refresh_line()

    def _update_score_display(self, payload: ScoreDisplayPayload) -> None:
        self.score_display = (payload.score, payload.round)

    def _clear_map_state(self, _payload: Any) -> None:
        self.guess_marker = None
        self.actual_marker = None
        self.guess_line = None

    def _refresh_line(self) -> None:
        if self.is_guessing or self.guess_marker is None or self.actual_marker is None:
            self.guess_line = None
            return
        self.guess_line = GuessLine(
            start=(self.guess_marker.latitude, self.guess_marker.longitude),
            end=(self.actual_marker.latitude, self.actual_marker.longitude),
            z_level=self.guess_marker.z_level,
            style=dict(GUESS_LINE_STYLE),
        )
