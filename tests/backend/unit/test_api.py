import random

import pytest

fastapi = pytest.importorskip("fastapi")
pytest.importorskip("httpx")
from fastapi.testclient import TestClient

from campusguessr.backend.api import create_app
from campusguessr.backend.bridge import MapBridge
from campusguessr.backend.engine import RoundController
from campusguessr.backend.locations import LocationStore

DATASET = {
    "Locations": [
        {"ID": 1, "Name": "Library", "FileName": "library", "lat": -37.91291, "lng": 145.13337, "zLevel": 1},
        {"ID": 2, "Name": "Lawn", "FileName": "lawn", "lat": -37.91380, "lng": 145.13445, "zLevel": 1},
    ],
    "MapPacks": [
        {"ID": 0, "Name": "all", "locationIDs": []},
        {"ID": 1, "Name": "Library only", "locationIDs": [1]},
        {"ID": 2, "Name": "Nothing", "locationIDs": []},
    ],
}


def make_client(total_rounds: int = 2) -> tuple[TestClient, RoundController]:
    store = LocationStore.load(DATASET, rng=random.Random(5))
    controller = RoundController(store, MapBridge(), total_rounds=total_rounds, pack_id=1)
    return TestClient(create_app(controller=controller)), controller


def test_get_packs_lists_location_counts() -> None:
    client, _ = make_client()

    response = client.get("/api/packs")

    assert response.status_code == 200
    assert response.json()["packs"] == [
        {"id": 0, "name": "all", "locationCount": 2},
        {"id": 1, "name": "Library only", "locationCount": 1},
        {"id": 2, "name": "Nothing", "locationCount": 0},
    ]


def test_get_game_before_start_is_idle() -> None:
    client, _ = make_client()

    state = client.get("/api/game").json()["state"]

    assert state["phase"] == "idle"
    assert state["roundNumber"] == 1
    assert state["actual"] is None


def test_start_game_enters_guessing_without_revealing_answer() -> None:
    client, _ = make_client()

    response = client.post("/api/game/start", json={"packId": 1, "totalRounds": 3})

    assert response.status_code == 200
    state = response.json()["state"]
    assert state["phase"] == "guessing"
    assert state["totalRounds"] == 3
    assert state["actual"] is None
    assert state["location"] is None


def test_start_game_without_body_uses_defaults() -> None:
    client, controller = make_client(total_rounds=4)

    response = client.post("/api/game/start")

    assert response.status_code == 200
    assert response.json()["state"]["totalRounds"] == 4
    assert controller.pack_id == 1


def test_start_game_rejects_out_of_range_round_count() -> None:
    client, _ = make_client()

    response = client.post("/api/game/start", json={"totalRounds": 0})

    assert response.status_code == 422


def test_start_game_with_empty_pack_returns_conflict() -> None:
    client, _ = make_client()

    response = client.post("/api/game/start", json={"packId": 2})

    assert response.status_code == 409


def test_next_round_while_guessing_is_ignored() -> None:
    client, _ = make_client()
    client.post("/api/game/start")

    state = client.post("/api/game/next").json()["state"]

    assert state["phase"] == "guessing"
    assert state["roundNumber"] == 1


def test_websocket_syncs_round_and_relays_submitted_guess() -> None:
    client, controller = make_client()
    client.post("/api/game/start")

    with client.websocket_connect("/ws/map") as websocket:
        synced = [websocket.receive_json() for _ in range(4)]
        assert [message["type"] for message in synced] == [
            "ClearMapState",
            "SetActualLocation",
            "SetGuessingState",
            "ShowMap",
        ]
        assert synced[1]["payload"] == {"latitude": -37.91291, "longitude": 145.13337, "zLevel": 1}
        assert synced[2]["payload"] == {"isGuessing": True}
        seq = synced[0]["seq"]

        websocket.send_json(
            {
                "type": "SubmitGuess",
                "seq": seq,
                "payload": {"latitude": -37.91291, "longitude": 145.13337, "zLevel": 1, "timestamp": 10.0},
            }
        )
        results = [websocket.receive_json() for _ in range(2)]

    assert results == [
        {"type": "SetGuessingState", "seq": seq, "payload": {"isGuessing": False}},
        {"type": "UpdateScoreDisplay", "seq": seq, "payload": {"score": 500, "round": 1}},
    ]
    state = client.get("/api/game").json()["state"]
    assert state["phase"] == "submitted"
    assert state["totalScore"] == 500
    assert state["location"]["name"] == "Library"
    assert controller.breakdown() == ["1: Library - 500"]


def test_websocket_next_round_is_published_to_connected_map() -> None:
    client, _ = make_client()

    with client, client.websocket_connect("/ws/map") as websocket:
        assert [websocket.receive_json()["type"] for _ in range(2)] == ["ClearMapState", "HideMap"]
        client.post("/api/game/start")
        assert websocket.receive_json() == {"type": "ClearMapState", "seq": 0}
        seq = [websocket.receive_json() for _ in range(4)][0]["seq"]
        websocket.send_json(
            {"type": "SubmitGuess", "seq": seq, "payload": {"latitude": -37.9, "longitude": 145.1}}
        )
        [websocket.receive_json() for _ in range(2)]

        client.post("/api/game/next")
        started = [websocket.receive_json() for _ in range(4)]

    assert [message["type"] for message in started] == [
        "ClearMapState",
        "SetActualLocation",
        "SetGuessingState",
        "ShowMap",
    ]
    assert {message["seq"] for message in started} == {seq + 1}


def test_second_map_connection_does_not_reset_first_page() -> None:
    client, _ = make_client()
    client.post("/api/game/start")
    round_start = ["ClearMapState", "SetActualLocation", "SetGuessingState", "ShowMap"]

    with client, client.websocket_connect("/ws/map") as first:
        assert [first.receive_json()["type"] for _ in range(4)] == round_start

        with client.websocket_connect("/ws/map") as second:
            synced = [second.receive_json() for _ in range(4)]
            assert [message["type"] for message in synced] == round_start
            second.send_json(
                {
                    "type": "SubmitGuess",
                    "seq": synced[0]["seq"],
                    "payload": {"latitude": -37.91291, "longitude": 145.13337},
                }
            )
            assert second.receive_json()["type"] == "SetGuessingState"

        assert first.receive_json() == {
            "type": "SetGuessingState",
            "seq": synced[0]["seq"],
            "payload": {"isGuessing": False},
        }


def test_map_config_reports_settings_z_range(monkeypatch) -> None:
    monkeypatch.setenv("CAMPUSGUESSR_MIN_Z_LEVEL", "-1")
    monkeypatch.setenv("CAMPUSGUESSR_MAX_Z_LEVEL", "2")
    monkeypatch.setenv("CAMPUSGUESSR_MAP_READY_ATTEMPTS", "4")
    client, _ = make_client()

    config = client.get("/api/map-config").json()

    assert config["minZLevel"] == -1
    assert config["maxZLevel"] == 2
    assert [option["name"] for option in config["zLevels"]] == [
        "P1 (Parking Level 1)",
        "LG (Lower Ground)",
        "G (Ground)",
        "1 (First Floor)",
    ]
    assert config["readyAttempts"] == 4
    assert config["readyInterval"] == 1.0
