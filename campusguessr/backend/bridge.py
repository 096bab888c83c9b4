"""Message catalog and in-process channel between the round engine and the map client.

Every message is one-way and fire-and-forget. The engine stamps its per-round
sequence number on what it sends (``seq``) and the client echoes it back on
guesses, which lets the engine discard guesses that belong to a round that
has already moved on.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from campusguessr.backend.errors import BridgePayloadError

logger = logging.getLogger(__name__)


class MessageType(str, Enum):
    SHOW_MAP = "ShowMap"
    HIDE_MAP = "HideMap"
    SET_ACTUAL_LOCATION = "SetActualLocation"
    SET_GUESSING_STATE = "SetGuessingState"
    UPDATE_SCORE_DISPLAY = "UpdateScoreDisplay"
    CLEAR_MAP_STATE = "ClearMapState"
    SUBMIT_GUESS = "SubmitGuess"
    MAP_CLICKED = "MapClicked"


ENGINE_TO_CLIENT = frozenset(
    {
        MessageType.SHOW_MAP,
        MessageType.HIDE_MAP,
        MessageType.SET_ACTUAL_LOCATION,
        MessageType.SET_GUESSING_STATE,
        MessageType.UPDATE_SCORE_DISPLAY,
        MessageType.CLEAR_MAP_STATE,
    }
)
CLIENT_TO_ENGINE = frozenset({MessageType.SUBMIT_GUESS, MessageType.MAP_CLICKED})


class ActualLocationPayload(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    latitude: float
    longitude: float
    zLevel: int = 0


class GuessingStatePayload(BaseModel):
    isGuessing: bool


class ScoreDisplayPayload(BaseModel):
    score: int
    round: int


class GuessPayload(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    latitude: float
    longitude: float
    zLevel: int = 0
    zLevelName: str | None = None
    timestamp: float | None = None


Payload = Union[ActualLocationPayload, GuessingStatePayload, ScoreDisplayPayload, GuessPayload]

PAYLOAD_MODELS: dict[MessageType, type[BaseModel] | None] = {
    MessageType.SHOW_MAP: None,
    MessageType.HIDE_MAP: None,
    MessageType.SET_ACTUAL_LOCATION: ActualLocationPayload,
    MessageType.SET_GUESSING_STATE: GuessingStatePayload,
    MessageType.UPDATE_SCORE_DISPLAY: ScoreDisplayPayload,
    MessageType.CLEAR_MAP_STATE: None,
    MessageType.SUBMIT_GUESS: GuessPayload,
    MessageType.MAP_CLICKED: GuessPayload,
}


class BridgeEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: MessageType
    seq: int | None = Field(default=None, ge=0)
    payload: dict[str, Any] | None = None


@dataclass(frozen=True)
class BridgeMessage:
    type: MessageType
    payload: Payload | None = None
    seq: int | None = None

    @property
    def engine_bound(self) -> bool:
        return self.type in CLIENT_TO_ENGINE

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value}
        if self.seq is not None:
            data["seq"] = self.seq
        if self.payload is not None:
            data["payload"] = self.payload.model_dump(mode="json", exclude_none=True)
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def build_message(
    message_type: MessageType,
    payload: BaseModel | dict[str, Any] | None = None,
    seq: int | None = None,
) -> BridgeMessage:
    model = PAYLOAD_MODELS[message_type]
    if model is None:
        if payload is not None:
            raise BridgePayloadError(f"{message_type.value} takes no payload")
        return BridgeMessage(type=message_type, seq=seq)
    if payload is None:
        raise BridgePayloadError(f"{message_type.value} requires a payload")
    if isinstance(payload, model):
        return BridgeMessage(type=message_type, payload=payload, seq=seq)
    try:
        validated = model.model_validate(payload if isinstance(payload, dict) else payload.model_dump())
    except ValidationError as exc:
        raise BridgePayloadError(f"Invalid {message_type.value} payload: {exc}") from exc
    return BridgeMessage(type=message_type, payload=validated, seq=seq)


def decode_message(raw: str | bytes | dict[str, Any]) -> BridgeMessage:
    """Parse a wire envelope, raising :class:`BridgePayloadError` on any problem."""
    try:
        data = json.loads(raw) if isinstance(raw, (str, bytes, bytearray)) else raw
        envelope = BridgeEnvelope.model_validate(data)
    except (ValidationError, ValueError, TypeError) as exc:
        raise BridgePayloadError(f"Undecodable bridge envelope: {exc}") from exc
    return build_message(envelope.type, envelope.payload, seq=envelope.seq)


Handler = Callable[[BridgeMessage], None]


class MapBridge:
    """Two FIFO queues, one per direction, delivered by explicit flushes.

    Senders never block and never get an acknowledgement. Client-bound
    messages with no attached client handler are dropped on flush; a host
    that relays them elsewhere uses :meth:`drain_client_outbox` instead.
    """

    def __init__(self) -> None:
        self._to_client: deque[BridgeMessage] = deque()
        self._to_engine: deque[BridgeMessage | str | bytes | dict[str, Any]] = deque()
        self._engine_handler: Handler | None = None
        self._client_handler: Handler | None = None
        self.dropped = 0

    def attach_engine(self, handler: Handler) -> None:
        self._engine_handler = handler

    def attach_client(self, handler: Handler) -> None:
        self._client_handler = handler

    def detach_client(self) -> None:
        self._client_handler = None

    @property
    def pending_for_client(self) -> int:
        return len(self._to_client)

    @property
    def pending_for_engine(self) -> int:
        return len(self._to_engine)

    def send_to_client(
        self,
        message_type: MessageType,
        payload: BaseModel | dict[str, Any] | None = None,
        seq: int | None = None,
    ) -> BridgeMessage:
        if message_type not in ENGINE_TO_CLIENT:
            raise BridgePayloadError(f"{message_type.value} cannot be sent to the map client")
        message = build_message(message_type, payload, seq=seq)
        self._to_client.append(message)
        return message

    def send_to_engine(self, message: BridgeMessage | str | bytes | dict[str, Any]) -> None:
        """Queue a client message. Raw payloads are decoded at delivery."""
        self._to_engine.append(message)

    def drain_client_outbox(self) -> list[BridgeMessage]:
        messages = list(self._to_client)
        self._to_client.clear()
        return messages

    def flush_client(self) -> int:
        delivered = 0
        while self._to_client:
            message = self._to_client.popleft()
            if self._client_handler is None:
                self.dropped += 1
                logger.debug(f"No map client attached, dropping {message.type.value}")
                continue
            self._client_handler(message)
            delivered += 1
        return delivered

    def flush_engine(self) -> int:
        delivered = 0
        while self._to_engine:
            item = self._to_engine.popleft()
            message = self._decode_engine_bound(item)
            if message is None:
                self.dropped += 1
                continue
            if self._engine_handler is None:
                self.dropped += 1
                logger.warning(f"No engine attached, dropping {message.type.value}")
                continue
            self._engine_handler(message)
            delivered += 1
        return delivered

    def flush(self) -> int:
        """Deliver both directions until neither queue has anything left."""
        delivered = 0
        while self._to_client or self._to_engine:
            delivered += self.flush_client()
            delivered += self.flush_engine()
        return delivered

    def _decode_engine_bound(self, item: BridgeMessage | str | bytes | dict[str, Any]) -> BridgeMessage | None:
        if isinstance(item, BridgeMessage):
            message = item
        else:
            try:
                message = decode_message(item)
            except BridgePayloadError as exc:
                logger.warning(f"Dropping bridge message from map client: {exc}")
                return None
        if not message.engine_bound:
            logger.warning(f"Dropping {message.type.value}: not a client-to-engine message")
            return None
        return message
