"""
Web control surface for a running flock.

``create_app`` wires a :class:`SimulationController` into a FastAPI app: REST
routes to pace the simulation, drop boids into the disc and send a predator
into its eating freeze, plus a ``/ws`` stream of snapshots that clients
acknowledge by tick.

Run with ``uvicorn flockworld.app.server:app``; set ``FLOCKWORLD_CONFIG`` to a
YAML file to override the defaults.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field
from pygame.math import Vector2

from ..sim.core.agent import MovementState
from ..sim.core.config import BoidKind, SimulationConfig
from ..sim.core.world import World, describe_boid
from ..sim.types.metrics import TickMetrics

logger = logging.getLogger(__name__)

MIN_SPEED_MULTIPLIER = 0.1
MAX_SPEED_MULTIPLIER = 5.0


@dataclass(frozen=True)
class QueuedSnapshot:
    tick: int
    payload: str


class SnapshotQueue:
    """Serialized snapshots held until a client acknowledges their tick."""

    def __init__(self, limit: int = 256):
        self._items: deque[QueuedSnapshot] = deque(maxlen=limit)

    @property
    def ticks(self) -> List[int]:
        return [item.tick for item in self._items]

    def push(self, item: QueuedSnapshot) -> None:
        self._items.append(item)

    def acknowledge(self, tick: int) -> int:
        dropped = 0
        while self._items and self._items[0].tick <= tick:
            self._items.popleft()
            dropped += 1
        return dropped

    def after(self, tick: int) -> List[QueuedSnapshot]:
        return [item for item in self._items if item.tick > tick]

    def clear(self) -> None:
        self._items.clear()


class SimulationController:
    def __init__(self, config: SimulationConfig, broadcast_interval: int = 1):
        self.config = config
        self.world = World(config)
        self.broadcast_interval = max(1, broadcast_interval)
        self.running = False
        self.tick = 0
        self.speed_multiplier = 1.0
        self.snapshots = SnapshotQueue()
        # client -> last tick sent to it
        self._clients: Dict[WebSocket, int] = {}
        self._lock = asyncio.Lock()
        self._loop_task: asyncio.Task | None = None

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def start_loop(self) -> None:
        if self._loop_task is None:
            self._loop_task = asyncio.create_task(self._loop())

    async def start(self) -> None:
        self.start_loop()
        self.running = True
        logger.info("simulation started at tick %d", self.tick)

    async def stop(self) -> None:
        self.running = False
        logger.info("simulation paused at tick %d", self.tick)

    async def shutdown(self) -> None:
        self.running = False
        task, self._loop_task = self._loop_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    def set_speed(self, multiplier: float) -> float:
        self.speed_multiplier = max(MIN_SPEED_MULTIPLIER, min(MAX_SPEED_MULTIPLIER, multiplier))
        return self.speed_multiplier

    async def reset(self) -> None:
        async with self._lock:
            self.world.reset()
            self.tick = 0
        self.snapshots.clear()
        for client in self._clients:
            self._clients[client] = -1
        await self._broadcast_snapshot()

    async def advance(self, ticks: int = 1) -> Optional[TickMetrics]:
        metrics = None
        for _ in range(ticks):
            async with self._lock:
                metrics = self.world.step(self.tick)
                self.tick += 1
            if self.tick % self.broadcast_interval == 0:
                await self._broadcast_snapshot()
            if metrics.population == 0:
                if self.running:
                    self.running = False
                    logger.warning("population went extinct at tick %d; pausing", metrics.tick)
                break
        return metrics

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.time_step / self.speed_multiplier)
            if self.running:
                await self.advance()

    def status(self) -> Dict[str, Any]:
        prey = predators = eating = 0
        for boid in self.world.boids:
            if not boid.alive:
                continue
            if boid.is_prey:
                prey += 1
            else:
                predators += 1
                if boid.movement_state is MovementState.EATING:
                    eating += 1
        metrics = self.world.metrics
        return {
            "running": self.running,
            "tick": self.tick,
            "speed_multiplier": self.speed_multiplier,
            "prey": prey,
            "predators": predators,
            "eating_predators": eating,
            "clients": self.client_count,
            "last_tick": asdict(metrics) if metrics is not None else None,
        }

    async def spawn(self, kind: BoidKind, position: Vector2, velocity: Vector2) -> Dict[str, Any]:
        async with self._lock:
            boid = self.world.spawn(kind, position, velocity)
        logger.info("spawned %s %d at (%.1f, %.1f)", kind.value, boid.id, position.x, position.y)
        return describe_boid(boid)

    def describe(self, boid_id: int) -> Optional[Dict[str, Any]]:
        boid = self.world.find(boid_id)
        return describe_boid(boid) if boid is not None else None

    async def feed_predator(self, boid_id: int, ticks: int) -> Optional[Dict[str, Any]]:
        async with self._lock:
            boid = self.world.find(boid_id)
            if boid is None:
                return None
            boid.start_eating(ticks)
        return describe_boid(boid)

    async def acknowledge(self, tick: int) -> None:
        self.snapshots.acknowledge(tick)

    async def handle_message(self, message: str) -> Optional[Dict[str, Any]]:
        """Process one client message; the return value, if any, is the reply."""
        try:
            payload = json.loads(message)
        except json.JSONDecodeError:
            logger.warning("ignoring malformed client message")
            return {"type": "error", "detail": "malformed JSON"}
        if not isinstance(payload, dict):
            return {"type": "error", "detail": "expected a JSON object"}
        if payload.get("type") == "ack":
            tick = payload.get("tick")
            if not isinstance(tick, int):
                return {"type": "error", "detail": "ack needs an integer tick"}
            await self.acknowledge(tick)
            return None
        return {"type": "error", "detail": f"unknown message type {payload.get('type')!r}"}

    async def connect(self, client: WebSocket) -> None:
        self._clients[client] = -1
        await self._send_pending_snapshots(client)

    def disconnect(self, client: WebSocket) -> None:
        self._clients.pop(client, None)

    def _serialize_snapshot(self) -> QueuedSnapshot:
        snapshot = self.world.snapshot(self.tick)
        payload = {
            "type": "snapshot",
            "tick": snapshot.tick,
            "payload": {
                "metrics": asdict(snapshot.metrics),
                "agents": snapshot.agents,
                "world": asdict(snapshot.world),
                "metadata": asdict(snapshot.metadata),
            },
        }
        return QueuedSnapshot(tick=snapshot.tick, payload=json.dumps(payload))

    async def _send_pending_snapshots(self, client: WebSocket) -> None:
        last_sent = self._clients.get(client, -1)
        for item in self.snapshots.after(last_sent):
            await client.send_text(item.payload)
            last_sent = item.tick
        self._clients[client] = last_sent

    async def _broadcast_snapshot(self) -> None:
        self.snapshots.push(self._serialize_snapshot())
        stale = []
        for client in list(self._clients):
            try:
                await self._send_pending_snapshots(client)
            except WebSocketDisconnect:
                stale.append(client)
        for client in stale:
            self.disconnect(client)
            logger.info("dropped disconnected client")


class SpeedRequest(BaseModel):
    multiplier: float = 1.0


class StepRequest(BaseModel):
    ticks: int = Field(default=1, ge=1, le=10_000)


class SpawnRequest(BaseModel):
    kind: BoidKind
    x: float
    y: float
    vx: float = 0.0
    vy: float = 0.0


class EatRequest(BaseModel):
    ticks: int = Field(ge=0)


def setup_control_router(controller: SimulationController) -> APIRouter:
    router = APIRouter(prefix="/api", tags=["control"])

    @router.get("/status")
    async def status() -> Dict[str, Any]:
        return controller.status()

    @router.post("/control/start")
    async def start_simulation() -> Dict[str, Any]:
        await controller.start()
        return {"running": controller.running}

    @router.post("/control/stop")
    async def stop_simulation() -> Dict[str, Any]:
        await controller.stop()
        return {"running": controller.running}

    @router.post("/control/reset")
    async def reset_simulation() -> Dict[str, Any]:
        await controller.reset()
        return {"running": controller.running, "tick": controller.tick}

    @router.post("/control/speed")
    async def set_speed(request: SpeedRequest) -> Dict[str, Any]:
        return {"multiplier": controller.set_speed(request.multiplier)}

    @router.post("/control/step")
    async def step_simulation(request: StepRequest) -> Dict[str, Any]:
        if controller.running:
            raise HTTPException(status_code=409, detail="stop the simulation before stepping it by hand")
        metrics = await controller.advance(request.ticks)
        return {"tick": controller.tick, "metrics": asdict(metrics) if metrics is not None else None}

    return router


def setup_boid_router(controller: SimulationController) -> APIRouter:
    router = APIRouter(prefix="/api/boids", tags=["boids"])

    @router.post("", status_code=201)
    async def spawn_boid(request: SpawnRequest) -> Dict[str, Any]:
        try:
            return await controller.spawn(
                request.kind, Vector2(request.x, request.y), Vector2(request.vx, request.vy)
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))

    @router.get("/{boid_id}")
    async def get_boid(boid_id: int) -> Dict[str, Any]:
        described = controller.describe(boid_id)
        if described is None:
            raise HTTPException(status_code=404, detail=f"Boid not found: {boid_id}")
        return described

    @router.post("/{boid_id}/eat")
    async def feed_boid(boid_id: int, request: EatRequest) -> Dict[str, Any]:
        try:
            described = await controller.feed_predator(boid_id, request.ticks)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        if described is None:
            raise HTTPException(status_code=404, detail=f"Boid not found: {boid_id}")
        return described

    return router


def _load_app_config() -> SimulationConfig:
    config_path = os.environ.get("FLOCKWORLD_CONFIG")
    if config_path:
        logger.info("loading configuration from %s", config_path)
        return SimulationConfig.from_yaml(Path(config_path))
    return SimulationConfig()


def create_app(controller: Optional[SimulationController] = None, autostart: bool = True) -> FastAPI:
    if controller is None:
        controller = SimulationController(_load_app_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        controller.start_loop()
        if autostart:
            await controller.start()
        try:
            yield
        finally:
            await controller.shutdown()

    app = FastAPI(title="Flockworld Simulation", lifespan=lifespan)
    app.state.controller = controller
    app.include_router(setup_control_router(controller))
    app.include_router(setup_boid_router(controller))

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        await websocket.accept()
        try:
            await controller.connect(websocket)
            while True:
                reply = await controller.handle_message(await websocket.receive_text())
                if reply is not None:
                    await websocket.send_json(reply)
        except WebSocketDisconnect:
            controller.disconnect(websocket)

    return app


app = create_app()

__all__ = ["app", "create_app", "SimulationController"]
