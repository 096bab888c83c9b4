"""FastAPI host that relays bridge envelopes to a browser map page."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from .bridge import BridgeMessage, MapBridge
from .client import z_level_name
from .config import GameSettings, load_settings
from .errors import EmptyPackError
from .locations import LocationStore
from .engine import RoundController
from .scheduler import AsyncioScheduler

logger = logging.getLogger(__name__)


class StartGameRequest(BaseModel):
    packId: int | None = None
    totalRounds: int | None = Field(default=None, ge=1, le=50)


class GameStateResponse(BaseModel):
    state: dict[str, Any]


class MapPackSummary(BaseModel):
    id: int
    name: str
    locationCount: int


class MapPacksResponse(BaseModel):
    packs: list[MapPackSummary]


class ZLevelOption(BaseModel):
    level: int
    name: str


class MapConfigResponse(BaseModel):
    minZLevel: int
    maxZLevel: int
    zLevels: list[ZLevelOption]
    readyAttempts: int
    readyInterval: float


class MapWebSocketHub:
    def __init__(self) -> None:
        self._connections: set[WebSocket] = set()
        self._send_lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket, replay: list[BridgeMessage] | None = None) -> None:
        """Accept ``websocket`` and send ``replay`` to it alone before it joins broadcasts."""
        await websocket.accept()
        async with self._send_lock:
            for message in replay or []:
                await websocket.send_text(message.to_json())
            self._connections.add(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        self._connections.discard(websocket)

    async def broadcast(self, messages: list[BridgeMessage]) -> None:
        if not messages:
            return
        async with self._send_lock:
            stale_connections: list[WebSocket] = []
            for websocket in list(self._connections):
                try:
                    for message in messages:
                        await websocket.send_text(message.to_json())
                except RuntimeError:
                    stale_connections.append(websocket)
            for websocket in stale_connections:
                self.disconnect(websocket)


def _default_controller(bridge: MapBridge, settings: GameSettings, scheduler: AsyncioScheduler) -> RoundController:
    store = LocationStore.from_path(settings.dataset_path)
    return RoundController.from_settings(settings, store, bridge, scheduler=scheduler)


def create_app(
    controller: RoundController | None = None,
    settings: GameSettings | None = None,
) -> FastAPI:
    """Build the host app around ``controller``.

    Without a controller one is built from ``settings`` (or the environment),
    with an asyncio scheduler whose timer callbacks publish to the map page.
    """
    app = FastAPI(title="CampusGuessr Map Host", version="0.1.0")
    websocket_hub = MapWebSocketHub()
    bridge = controller.bridge if controller is not None else MapBridge()

    async def publish() -> None:
        await websocket_hub.broadcast(bridge.drain_client_outbox())

    def publish_soon() -> None:
        asyncio.get_running_loop().create_task(publish())

    resolved_settings = settings if settings is not None else load_settings()
    if controller is None:
        controller = _default_controller(
            bridge,
            resolved_settings,
            AsyncioScheduler(after_fire=publish_soon),
        )
    round_controller = controller
    app.state.websocket_hub = websocket_hub
    app.state.controller = round_controller
    app.state.publish = publish

    def get_controller() -> RoundController:
        return round_controller

    @app.get("/api/packs", response_model=MapPacksResponse)
    def list_packs(local_controller: RoundController = Depends(get_controller)) -> MapPacksResponse:
        store = local_controller.store
        return MapPacksResponse(
            packs=[
                MapPackSummary(id=pack.pack_id, name=pack.name, locationCount=len(store.candidates(pack.pack_id)))
                for pack in store.packs.values()
            ]
        )

    @app.get("/api/map-config", response_model=MapConfigResponse)
    def map_config() -> MapConfigResponse:
        levels = range(resolved_settings.min_z_level, resolved_settings.max_z_level + 1)
        return MapConfigResponse(
            minZLevel=resolved_settings.min_z_level,
            maxZLevel=resolved_settings.max_z_level,
            zLevels=[ZLevelOption(level=level, name=z_level_name(level)) for level in levels],
            readyAttempts=resolved_settings.map_ready_attempts,
            readyInterval=resolved_settings.map_ready_interval,
        )

    @app.get("/api/game", response_model=GameStateResponse)
    def get_game(local_controller: RoundController = Depends(get_controller)) -> GameStateResponse:
        return GameStateResponse(state=local_controller.snapshot())

    @app.post("/api/game/start", response_model=GameStateResponse)
    async def start_game(
        payload: StartGameRequest | None = None,
        local_controller: RoundController = Depends(get_controller),
    ) -> GameStateResponse:
        request = payload if payload is not None else StartGameRequest()
        try:
            local_controller.restart_game(pack_id=request.packId, total_rounds=request.totalRounds)
        except EmptyPackError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        await publish()
        return GameStateResponse(state=local_controller.snapshot())

    @app.post("/api/game/next", response_model=GameStateResponse)
    async def next_round(local_controller: RoundController = Depends(get_controller)) -> GameStateResponse:
        local_controller.next_round()
        await publish()
        return GameStateResponse(state=local_controller.snapshot())

    @app.websocket("/ws/map")
    async def map_ws(
        websocket: WebSocket,
        local_controller: RoundController = Depends(get_controller),
    ) -> None:
        await publish()
        local_controller.sync_client()
        await websocket_hub.connect(websocket, replay=bridge.drain_client_outbox())
        logger.info(f"Map client connected ({websocket_hub.connection_count} open)")

        try:
            while True:
                raw = await websocket.receive_text()
                bridge.send_to_engine(raw)
                bridge.flush_engine()
                await publish()
        except WebSocketDisconnect:
            logger.info("Map client disconnected")
        finally:
            websocket_hub.disconnect(websocket)

    return app
