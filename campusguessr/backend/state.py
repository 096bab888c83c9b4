"""State builders for round snapshots."""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Iterable

from campusguessr.backend.models import (
    ActualCoordinate,
    GuessCoordinate,
    Location,
    RoundPhase,
    RoundResult,
    RoundState,
)


def build_initial_round_state(total_rounds: int) -> RoundState:
    """Return the state of a game that has not started yet."""
    if total_rounds < 1:
        raise ValueError("total_rounds must be at least 1")
    return RoundState(
        round_number=1,
        total_rounds=total_rounds,
        total_score=0,
        round_score=0,
        phase=RoundPhase.IDLE,
        sequence=0,
    )


def _coordinate_json(coordinate: ActualCoordinate | GuessCoordinate | None) -> dict[str, Any] | None:
    if coordinate is None:
        return None
    data: dict[str, Any] = {
        "latitude": coordinate.latitude,
        "longitude": coordinate.longitude,
        "zLevel": coordinate.z_level,
    }
    if isinstance(coordinate, GuessCoordinate):
        data["timestamp"] = coordinate.timestamp
    return data


def _location_json(location: Location | None) -> dict[str, Any] | None:
    if location is None:
        return None
    return {
        "id": location.location_id,
        "name": location.name,
        "imageRef": location.image_ref,
    }


def format_breakdown(history: Iterable[RoundResult]) -> list[str]:
    return [f"{result.round_number}: {result.location.name} - {result.score}" for result in history]


def build_round_snapshot(
    state: RoundState,
    actual: ActualCoordinate | None,
    guess: GuessCoordinate | None,
    location: Location | None,
    history: Iterable[RoundResult],
) -> dict[str, Any]:
    """Return a JSON-ready view of the authoritative round state.

    The actual coordinate and location are withheld while the player is
    still guessing.
    """
    hide_answer = state.phase == RoundPhase.GUESSING
    results = list(history)
    return {
        "phase": state.phase.value,
        "roundNumber": state.round_number,
        "totalRounds": state.total_rounds,
        "totalScore": state.total_score,
        "roundScore": state.round_score,
        "sequence": state.sequence,
        "guess": _coordinate_json(guess),
        "actual": None if hide_answer else _coordinate_json(actual),
        "location": None if hide_answer else _location_json(location),
        "history": [
            {
                "round": result.round_number,
                "location": _location_json(result.location),
                "guess": _coordinate_json(result.guess),
                "distance": result.distance,
                "score": result.score,
            }
            for result in results
        ],
        "breakdown": format_breakdown(results),
    }


def copy_state(state: RoundState) -> RoundState:
    return replace(state)
