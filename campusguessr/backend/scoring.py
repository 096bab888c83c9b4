"""Distance approximation and the piecewise-linear distance to score table.

Scores are computed on whole meters. Within each segment the score falls
linearly from ``max_score`` at ``min_distance`` to ``min_score`` at
``max_distance``; results round half away from zero. Interpolation runs on
``Fraction`` so that exact ``.5`` results never drift through float error.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from fractions import Fraction
from typing import Protocol, Sequence

METERS_PER_DEGREE = 111000
REFERENCE_MAX_SCORE = 500


class LatLng(Protocol):
    latitude: float
    longitude: float


@dataclass(frozen=True)
class ScoreSegment:
    min_distance: int
    max_distance: int
    max_score: int
    min_score: int

    def interpolate(self, distance: int) -> int:
        span = self.max_distance - self.min_distance
        value = self.max_score + Fraction((self.min_score - self.max_score) * (distance - self.min_distance), span)
        return round_half_away(value)


DEFAULT_SEGMENTS: tuple[ScoreSegment, ...] = (
    ScoreSegment(4, 25, 495, 450),
    ScoreSegment(26, 50, 447, 350),
    ScoreSegment(51, 250, 345, 200),
    ScoreSegment(251, 300, 198, 100),
    ScoreSegment(301, 500, 98, 10),
    ScoreSegment(501, 700, 10, 0),
)


def round_half_away(value: Fraction | float) -> int:
    magnitude = math.floor(abs(Fraction(value)) + Fraction(1, 2))
    return magnitude if value >= 0 else -magnitude


def distance(first: LatLng, second: LatLng) -> float:
    """Planar distance in meters, valid at campus scale only.

    Longitude is scaled by the cosine of ``first.latitude``; callers pass the
    actual coordinate first so that scoring does not depend on argument order.
    """
    d_lat = (second.latitude - first.latitude) * METERS_PER_DEGREE
    d_lng = (second.longitude - first.longitude) * METERS_PER_DEGREE * math.cos(math.radians(first.latitude))
    return math.sqrt(d_lat * d_lat + d_lng * d_lng)


def segments_are_monotonic(segments: Sequence[ScoreSegment]) -> bool:
    previous = math.inf
    for segment in segments:
        if segment.max_score > previous or segment.min_score > segment.max_score:
            return False
        previous = segment.min_score
    return True


@dataclass(frozen=True)
class ScoringEngine:
    segments: tuple[ScoreSegment, ...] = DEFAULT_SEGMENTS
    perfect_radius: int = 3
    perfect_score: int = REFERENCE_MAX_SCORE

    def __post_init__(self) -> None:
        if not segments_are_monotonic(self.segments):
            raise ValueError("score segments must be non-increasing")
        if self.segments and self.segments[0].max_score > self.perfect_score:
            raise ValueError("first segment must not exceed the perfect score")

    @classmethod
    def scaled(cls, max_score: int) -> "ScoringEngine":
        """Rescale the reference 500-point table to a different ceiling."""
        if max_score == REFERENCE_MAX_SCORE:
            return cls()
        ratio = Fraction(max_score, REFERENCE_MAX_SCORE)
        segments = tuple(
            ScoreSegment(
                min_distance=segment.min_distance,
                max_distance=segment.max_distance,
                max_score=round_half_away(segment.max_score * ratio),
                min_score=round_half_away(segment.min_score * ratio),
            )
            for segment in DEFAULT_SEGMENTS
        )
        return cls(segments=segments, perfect_score=max_score)

    @property
    def max_score(self) -> int:
        return self.perfect_score

    def score(self, distance_m: float) -> int:
        if math.isnan(distance_m) or distance_m < 0:
            raise ValueError(f"distance must be a non-negative number, got {distance_m}")
        if math.isinf(distance_m):
            return 0
        meters = round_half_away(distance_m)
        if meters <= self.perfect_radius:
            return self.perfect_score
        for segment in self.segments:
            if meters <= segment.max_distance:
                return segment.interpolate(max(meters, segment.min_distance))
        return 0

    def distance(self, first: LatLng, second: LatLng) -> float:
        return distance(first, second)


_DEFAULT_ENGINE = ScoringEngine()


def score(distance_m: float) -> int:
    return _DEFAULT_ENGINE.score(distance_m)
