import json

import pytest

from campusguessr.backend.bridge import (
    ActualLocationPayload,
    GuessPayload,
    MapBridge,
    MessageType,
    build_message,
    decode_message,
)
from campusguessr.backend.errors import BridgePayloadError


def test_to_json_uses_wire_field_names() -> None:
    message = build_message(
        MessageType.SET_ACTUAL_LOCATION,
        ActualLocationPayload(latitude=-37.9, longitude=145.1, zLevel=2),
        seq=4,
    )

    assert json.loads(message.to_json()) == {
        "type": "SetActualLocation",
        "seq": 4,
        "payload": {"latitude": -37.9, "longitude": 145.1, "zLevel": 2},
    }


def test_payloadless_message_omits_payload_key() -> None:
    assert build_message(MessageType.SHOW_MAP).to_dict() == {"type": "ShowMap"}


def test_build_message_validates_payload_shape() -> None:
    with pytest.raises(BridgePayloadError):
        build_message(MessageType.SHOW_MAP, {"unexpected": True})
    with pytest.raises(BridgePayloadError):
        build_message(MessageType.SET_GUESSING_STATE)
    with pytest.raises(BridgePayloadError):
        build_message(MessageType.UPDATE_SCORE_DISPLAY, {"score": "lots"})


def test_decode_message_parses_guess_envelope() -> None:
    raw = json.dumps(
        {
            "type": "SubmitGuess",
            "seq": 3,
            "payload": {"latitude": 1.5, "longitude": 2.5, "zLevel": -1, "zLevelName": "P1 (Parking Level 1)"},
        }
    )

    message = decode_message(raw)

    assert message.type == MessageType.SUBMIT_GUESS
    assert message.seq == 3
    assert message.payload == GuessPayload(latitude=1.5, longitude=2.5, zLevel=-1, zLevelName="P1 (Parking Level 1)")
    assert message.engine_bound


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        '{"type": "Teleport"}',
        '{"type": "SubmitGuess"}',
        '{"type": "SubmitGuess", "payload": {"latitude": "north"}}',
        '{"type": "ShowMap", "seq": -1}',
        "[]",
    ],
)
def test_decode_message_rejects_bad_envelopes(raw) -> None:
    with pytest.raises(BridgePayloadError):
        decode_message(raw)


def test_send_to_client_rejects_client_to_engine_types() -> None:
    bridge = MapBridge()

    with pytest.raises(BridgePayloadError):
        bridge.send_to_client(MessageType.SUBMIT_GUESS, {"latitude": 0, "longitude": 0})


def test_flush_client_delivers_in_send_order() -> None:
    bridge = MapBridge()
    received: list[MessageType] = []
    bridge.attach_client(lambda message: received.append(message.type))

    bridge.send_to_client(MessageType.CLEAR_MAP_STATE)
    bridge.send_to_client(MessageType.SET_GUESSING_STATE, {"isGuessing": True})
    bridge.send_to_client(MessageType.SHOW_MAP)

    assert bridge.pending_for_client == 3
    assert bridge.flush_client() == 3
    assert received == [MessageType.CLEAR_MAP_STATE, MessageType.SET_GUESSING_STATE, MessageType.SHOW_MAP]


def test_flush_client_without_client_drops_messages() -> None:
    bridge = MapBridge()
    bridge.send_to_client(MessageType.HIDE_MAP)

    assert bridge.flush_client() == 0
    assert bridge.dropped == 1
    assert bridge.pending_for_client == 0


def test_flush_engine_drops_undecodable_and_wrong_direction_messages() -> None:
    bridge = MapBridge()
    received: list[MessageType] = []
    bridge.attach_engine(lambda message: received.append(message.type))

    bridge.send_to_engine("{broken")
    bridge.send_to_engine({"type": "ShowMap"})
    bridge.send_to_engine({"type": "MapClicked", "payload": {"latitude": 0, "longitude": 0}})

    assert bridge.flush_engine() == 1
    assert received == [MessageType.MAP_CLICKED]
    assert bridge.dropped == 2


def test_flush_drains_replies_queued_during_delivery() -> None:
    bridge = MapBridge()
    engine_seen: list[MessageType] = []
    bridge.attach_engine(lambda message: engine_seen.append(message.type))

    def client(message) -> None:
        if message.type == MessageType.SHOW_MAP:
            bridge.send_to_engine(build_message(MessageType.MAP_CLICKED, {"latitude": 1, "longitude": 2}))

    bridge.attach_client(client)
    bridge.send_to_client(MessageType.SHOW_MAP)

    assert bridge.flush() == 2
    assert engine_seen == [MessageType.MAP_CLICKED]


def test_drain_client_outbox_returns_and_clears_queue() -> None:
    bridge = MapBridge()
    bridge.send_to_client(MessageType.SHOW_MAP, seq=1)

    drained = bridge.drain_client_outbox()

    assert [message.to_dict() for message in drained] == [{"type": "ShowMap", "seq": 1}]
    assert bridge.drain_client_outbox() == []


@pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity"])
def test_decode_message_rejects_non_finite_coordinates(value) -> None:
    raw = f'{{"type": "SubmitGuess", "seq": 1, "payload": {{"latitude": {value}, "longitude": 145.1}}}}'

    with pytest.raises(BridgePayloadError):
        decode_message(raw)


def test_flush_engine_drops_non_finite_guess_without_calling_engine() -> None:
    bridge = MapBridge()
    received: list[MessageType] = []
    bridge.attach_engine(lambda message: received.append(message.type))

    bridge.send_to_engine('{"type": "SubmitGuess", "payload": {"latitude": -37.9, "longitude": Infinity}}')

    assert bridge.flush_engine() == 0
    assert received == []
    assert bridge.dropped == 1


def test_actual_location_payload_rejects_nan() -> None:
    with pytest.raises(BridgePayloadError):
        build_message(MessageType.SET_ACTUAL_LOCATION, {"latitude": float("nan"), "longitude": 0.0})
