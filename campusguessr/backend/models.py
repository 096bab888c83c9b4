"""Domain models shared by the round engine, the bridge and the map client."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RoundPhase(str, Enum):
    IDLE = "idle"
    GUESSING = "guessing"
    SUBMITTED = "submitted"
    COMPLETE = "complete"


@dataclass(frozen=True)
class Location:
    location_id: int
    name: str
    latitude: float
    longitude: float
    z_level: int
    image_ref: str = ""


@dataclass(frozen=True)
class MapPack:
    pack_id: int
    name: str
    location_ids: tuple[int, ...] = ()

    @property
    def is_all(self) -> bool:
        return self.name.strip().lower() in ("all", "")


@dataclass(frozen=True)
class ActualCoordinate:
    latitude: float
    longitude: float
    z_level: int

    @classmethod
    def from_location(cls, location: Location) -> "ActualCoordinate":
        return cls(latitude=location.latitude, longitude=location.longitude, z_level=location.z_level)


@dataclass(frozen=True)
class GuessCoordinate:
    latitude: float
    longitude: float
    z_level: int
    timestamp: float


@dataclass
class RoundState:
    round_number: int
    total_rounds: int
    total_score: int = 0
    round_score: int = 0
    phase: RoundPhase = RoundPhase.IDLE
    sequence: int = 0


@dataclass(frozen=True)
class RoundResult:
    round_number: int
    location: Location
    guess: GuessCoordinate | None
    distance: float | None
    score: int


@dataclass(frozen=True)
class MarkerVisual:
    marker_id: int
    latitude: float
    longitude: float
    z_level: int
    style: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GuessLine:
    start: tuple[float, float]
    end: tuple[float, float]
    z_level: int
    style: dict[str, Any] = field(default_factory=dict)
