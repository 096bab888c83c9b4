"""Round lifecycle controller: the authoritative side of the map bridge."""

from __future__ import annotations

import logging
import math
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
)
from campusguessr.backend.config import GameSettings
from campusguessr.backend.errors import DataLoadError
from campusguessr.backend.events import EventChannel, GameEvent
from campusguessr.backend.locations import LocationStore
from campusguessr.backend.models import (
    ActualCoordinate,
    GuessCoordinate,
    Location,
    RoundPhase,
    RoundResult,
    RoundState,
)
from campusguessr.backend.scheduler import CancelToken, Scheduler
from campusguessr.backend.scoring import ScoringEngine
from campusguessr.backend.state import build_initial_round_state, build_round_snapshot, copy_state, format_breakdown

logger = logging.getLogger(__name__)


class RoundController:
    """Owns round number, scores and the guess/actual coordinates.

    Phases move Idle -> Guessing -> Submitted -> (Guessing | Complete).
    Calls that do not fit the current phase are logged and ignored; they
    never raise and never change state.
    """

    def __init__(
        self,
        store: LocationStore,
        bridge: MapBridge,
        *,
        total_rounds: int = 5,
        pack_id: int = 0,
        scoring: ScoringEngine | None = None,
        events: EventChannel | None = None,
        scheduler: Scheduler | None = None,
        round_time_limit: float = 0.0,
        next_round_delay: float = 0.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if (round_time_limit > 0 or next_round_delay > 0) and scheduler is None:
            raise ValueError("a scheduler is required for round time limits and next-round delays")
        self.store = store
        self.bridge = bridge
        self.scoring = scoring if scoring is not None else ScoringEngine()
        self.events = events if events is not None else EventChannel()
        self.pack_id = pack_id
        self.round_time_limit = round_time_limit
        self.next_round_delay = next_round_delay
        self._scheduler = scheduler
        self._clock = clock

        self._state = build_initial_round_state(total_rounds)
        self._actual: ActualCoordinate | None = None
        self._guess: GuessCoordinate | None = None
        self._location: Location | None = None
        self._history: list[RoundResult] = []
        self._round_timer: CancelToken | None = None
        self._advance_timer: CancelToken | None = None

        bridge.attach_engine(self.handle_message)

    @classmethod
    def from_settings(
        cls,
        settings: GameSettings,
        store: LocationStore,
        bridge: MapBridge,
        *,
        events: EventChannel | None = None,
        scheduler: Scheduler | None = None,
    ) -> "RoundController":
        return cls(
            store,
            bridge,
            total_rounds=settings.total_rounds,
            pack_id=settings.map_pack_id,
            scoring=ScoringEngine.scaled(settings.max_score),
            events=events,
            scheduler=scheduler,
            round_time_limit=settings.round_time_limit,
            next_round_delay=settings.next_round_delay,
        )

    @property
    def state(self) -> RoundState:
        return copy_state(self._state)

    @property
    def phase(self) -> RoundPhase:
        return self._state.phase

    @property
    def guess(self) -> GuessCoordinate | None:
        return self._guess

    @property
    def actual(self) -> ActualCoordinate | None:
        return self._actual

    @property
    def current_location(self) -> Location | None:
        return self._location

    @property
    def history(self) -> list[RoundResult]:
        return list(self._history)

    def breakdown(self) -> list[str]:
        return format_breakdown(self._history)

    def snapshot(self) -> dict[str, Any]:
        return build_round_snapshot(
            state=self._state,
            actual=self._actual,
            guess=self._guess,
            location=self._location,
            history=self._history,
        )

    def start_game(self, pack_id: int | None = None, total_rounds: int | None = None) -> None:
        if self._state.phase != RoundPhase.IDLE:
            logger.warning(f"start_game ignored in phase {self._state.phase.value}")
            return
        self._start(*self._prepare_game(pack_id, total_rounds))

    def restart_game(self, pack_id: int | None = None, total_rounds: int | None = None) -> None:
        prepared = self._prepare_game(pack_id, total_rounds)
        self._cancel_timers()
        self._send(MessageType.CLEAR_MAP_STATE)
        self._reset_to_idle()
        logger.info("Game restarted")
        self._start(*prepared)

    def abort_game(self) -> None:
        if self._state.phase == RoundPhase.IDLE:
            return
        self._cancel_timers()
        self._send(MessageType.CLEAR_MAP_STATE)
        self._send(MessageType.HIDE_MAP)
        self._reset_to_idle()
        logger.info("Game aborted")

    def on_map_clicked(self, coordinate: GuessCoordinate) -> bool:
        if self._state.phase != RoundPhase.GUESSING:
            logger.debug(f"Map click ignored in phase {self._state.phase.value}")
            return False
        if not (math.isfinite(coordinate.latitude) and math.isfinite(coordinate.longitude)):
            logger.warning(f"Map click ignored: non-finite coordinate {coordinate}")
            return False
        self._guess = coordinate
        return True

    def submit_guess(self) -> RoundResult | None:
        if self._state.phase != RoundPhase.GUESSING:
            logger.warning(f"submit_guess ignored in phase {self._state.phase.value}")
            return None
        if self._guess is None or self._actual is None or self._location is None:
            logger.warning("Cannot calculate score: guess or actual location missing")
            return None

        meters = self.scoring.distance(self._actual, self._guess)
        points = self.scoring.score(meters)
        logger.info(f"Round {self._state.round_number}: distance {meters:.2f}m, score {points}")
        return self._finish_round(distance=meters, points=points)

    def expire_round(self) -> RoundResult | None:
        """End the current round with no score because its time ran out."""
        if self._state.phase != RoundPhase.GUESSING or self._location is None:
            return None
        logger.info(f"Round {self._state.round_number} time limit reached")
        self._guess = None
        return self._finish_round(distance=None, points=0)

    def next_round(self) -> None:
        if self._state.phase != RoundPhase.SUBMITTED:
            logger.warning(f"next_round ignored in phase {self._state.phase.value}")
            return
        self._cancel(self._advance_timer)
        self._advance_timer = None

        if self._state.round_number >= self._state.total_rounds:
            self._complete()
            return
        location = self.store.select_random(self.pack_id)
        self._state.round_number += 1
        self._begin_round(location)

    def handle_message(self, message: BridgeMessage) -> None:
        """Apply a client-to-engine bridge message."""
        if message.type not in (MessageType.SUBMIT_GUESS, MessageType.MAP_CLICKED):
            logger.warning(f"Engine ignoring unexpected {message.type.value} message")
            return
        if self._state.phase != RoundPhase.GUESSING:
            logger.warning(f"Discarding {message.type.value} received in phase {self._state.phase.value}")
            return
        if message.seq is not None and message.seq != self._state.sequence:
            logger.warning(
                f"Discarding stale {message.type.value} for sequence {message.seq} "
                f"(current {self._state.sequence})"
            )
            return

        payload = message.payload
        if not isinstance(payload, GuessPayload):
            logger.warning(f"Discarding {message.type.value} without a guess payload")
            return
        accepted = self.on_map_clicked(
            GuessCoordinate(
                latitude=payload.latitude,
                longitude=payload.longitude,
                z_level=payload.zLevel,
                timestamp=payload.timestamp if payload.timestamp is not None else self._clock(),
            )
        )
        if accepted and message.type == MessageType.SUBMIT_GUESS:
            self.submit_guess()

    def sync_client(self) -> None:
        """Replay what a freshly connected map client needs for the current phase."""
        self._send(MessageType.CLEAR_MAP_STATE)
        phase = self._state.phase
        if phase not in (RoundPhase.GUESSING, RoundPhase.SUBMITTED) or self._actual is None:
            self._send(MessageType.HIDE_MAP)
            return
        self._send_actual_location(self._actual)
        self._send(MessageType.SET_GUESSING_STATE, GuessingStatePayload(isGuessing=phase == RoundPhase.GUESSING))
        self._send(MessageType.SHOW_MAP)
        if phase == RoundPhase.SUBMITTED:
            self._send(
                MessageType.UPDATE_SCORE_DISPLAY,
                ScoreDisplayPayload(score=self._state.total_score, round=self._state.round_number),
            )

    def _prepare_game(self, pack_id: int | None, total_rounds: int | None) -> tuple[int, RoundState, Location]:
        """Validate a new game and pick its first location without touching current state."""
        if not self.store.locations:
            raise DataLoadError("Cannot start a game without loaded locations")
        pack = self.pack_id if pack_id is None else pack_id
        state = build_initial_round_state(total_rounds if total_rounds is not None else self._state.total_rounds)
        location = self.store.select_random(pack)
        return pack, state, location

    def _start(self, pack_id: int, state: RoundState, first_location: Location) -> None:
        state.sequence = self._state.sequence
        self.pack_id = pack_id
        self._state = state
        self._history = []
        logger.info(f"Game started: {state.total_rounds} rounds, map pack {pack_id}")
        self._begin_round(first_location)

    def _begin_round(self, location: Location | None = None) -> None:
        if location is None:
            location = self.store.select_random(self.pack_id)

        self._state.sequence += 1
        self._location = location
        self._actual = ActualCoordinate.from_location(location)
        self._guess = None
        self._state.round_score = 0

        self._send(MessageType.CLEAR_MAP_STATE)
        self._send_actual_location(self._actual)
        self._send(MessageType.SET_GUESSING_STATE, GuessingStatePayload(isGuessing=True))
        self._send(MessageType.SHOW_MAP)
        self._state.phase = RoundPhase.GUESSING

        logger.info(f"Round {self._state.round_number} started - Location: {location.name}")
        self.events.emit(
            GameEvent.ROUND_STARTED,
            round=self._state.round_number,
            totalRounds=self._state.total_rounds,
        )

        if self.round_time_limit > 0 and self._scheduler is not None:
            sequence = self._state.sequence
            self._round_timer = self._scheduler.schedule(
                self.round_time_limit,
                lambda: self._expire_if_current(sequence),
                label=f"round-limit seq={sequence}",
            )

    def _finish_round(self, distance: float | None, points: int) -> RoundResult:
        assert self._location is not None
        self._cancel(self._round_timer)
        self._round_timer = None

        self._state.round_score = points
        self._state.total_score += points
        self._state.phase = RoundPhase.SUBMITTED
        result = RoundResult(
            round_number=self._state.round_number,
            location=self._location,
            guess=self._guess,
            distance=distance,
            score=points,
        )
        self._history.append(result)

        self._send(MessageType.SET_GUESSING_STATE, GuessingStatePayload(isGuessing=False))
        self._send(
            MessageType.UPDATE_SCORE_DISPLAY,
            ScoreDisplayPayload(score=self._state.total_score, round=self._state.round_number),
        )
        self.events.emit(
            GameEvent.SCORE_UPDATED,
            totalScore=self._state.total_score,
            roundScore=points,
            round=self._state.round_number,
        )
        self.events.emit(
            GameEvent.ROUND_ENDED,
            round=self._state.round_number,
            roundScore=points,
            distance=distance,
        )

        if self.next_round_delay > 0 and self._scheduler is not None:
            sequence = self._state.sequence
            self._advance_timer = self._scheduler.schedule(
                self.next_round_delay,
                lambda: self._advance_if_current(sequence),
                label=f"next-round seq={sequence}",
            )
        return result

    def _complete(self) -> None:
        self._cancel_timers()
        self._state.phase = RoundPhase.COMPLETE
        self._send(MessageType.HIDE_MAP)
        logger.info(f"Game ended - Final Score: {self._state.total_score}")
        self.events.emit(
            GameEvent.GAME_ENDED,
            totalScore=self._state.total_score,
            rounds=self._state.total_rounds,
        )

    def _expire_if_current(self, sequence: int) -> None:
        self._round_timer = None
        if self._state.sequence != sequence or self._state.phase != RoundPhase.GUESSING:
            logger.debug(f"[timer-abort] round limit for stale sequence {sequence}")
            return
        self.expire_round()

    def _advance_if_current(self, sequence: int) -> None:
        self._advance_timer = None
        if self._state.sequence != sequence or self._state.phase != RoundPhase.SUBMITTED:
            logger.debug(f"[timer-abort] next round for stale sequence {sequence}")
            return
        self.next_round()

    def _reset_to_idle(self) -> None:
        sequence = self._state.sequence
        self._state = build_initial_round_state(self._state.total_rounds)
        self._state.sequence = sequence
        self._actual = None
        self._guess = None
        self._location = None
        self._history = []

    def _cancel_timers(self) -> None:
        self._cancel(self._round_timer)
        self._cancel(self._advance_timer)
        self._round_timer = None
        self._advance_timer = None

    @staticmethod
    def _cancel(token: CancelToken | None) -> None:
        if token is not None:
            token.cancel()

    def _send_actual_location(self, actual: ActualCoordinate) -> None:
        self._send(
            MessageType.SET_ACTUAL_LOCATION,
            ActualLocationPayload(latitude=actual.latitude, longitude=actual.longitude, zLevel=actual.z_level),
        )

    def _send(self, message_type: MessageType, payload: Any = None) -> None:
        self.bridge.send_to_client(message_type, payload, seq=self._state.sequence)
