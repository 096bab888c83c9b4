"""Configuration helpers for the game runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_DATASET_PATH = Path(__file__).with_name("locations.json")


@dataclass(frozen=True)
class GameSettings:
    dataset_path: str
    total_rounds: int
    map_pack_id: int
    round_time_limit: float
    next_round_delay: float
    min_z_level: int
    max_z_level: int
    max_score: int
    map_ready_attempts: int
    map_ready_interval: float


def load_settings() -> GameSettings:
    total_rounds = int(os.getenv("CAMPUSGUESSR_TOTAL_ROUNDS", "5"))
    if total_rounds < 1:
        raise ValueError("CAMPUSGUESSR_TOTAL_ROUNDS must be at least 1")

    min_z_level = int(os.getenv("CAMPUSGUESSR_MIN_Z_LEVEL", "-4"))
    max_z_level = int(os.getenv("CAMPUSGUESSR_MAX_Z_LEVEL", "12"))
    if min_z_level > max_z_level:
        raise ValueError("CAMPUSGUESSR_MIN_Z_LEVEL must not exceed CAMPUSGUESSR_MAX_Z_LEVEL")

    return GameSettings(
        dataset_path=os.getenv("CAMPUSGUESSR_DATASET_PATH", str(DEFAULT_DATASET_PATH)),
        total_rounds=total_rounds,
        map_pack_id=int(os.getenv("CAMPUSGUESSR_MAP_PACK_ID", "0")),
        round_time_limit=float(os.getenv("CAMPUSGUESSR_ROUND_TIME_LIMIT", "0")),
        next_round_delay=float(os.getenv("CAMPUSGUESSR_NEXT_ROUND_DELAY", "0")),
        min_z_level=min_z_level,
        max_z_level=max_z_level,
        max_score=int(os.getenv("CAMPUSGUESSR_MAX_SCORE", "500")),
        map_ready_attempts=int(os.getenv("CAMPUSGUESSR_MAP_READY_ATTEMPTS", "10")),
        map_ready_interval=float(os.getenv("CAMPUSGUESSR_MAP_READY_INTERVAL", "1.0")),
    )
