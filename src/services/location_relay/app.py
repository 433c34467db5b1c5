# src/services/location_relay/app.py
"""
FastAPI приложение Location Relay.

WebSocket endpoint:
- /ws — офис, мерчанты и курьеры (протокол {"event": ..., "data": ...})

REST endpoints:
- GET /health — проверка здоровья
- GET /stats — статистика релея
- POST /api/location/update — приём позиции от бэкенда
- GET /api/location/all — все закэшированные позиции
- GET /api/location/{courier_id} — последняя позиция курьера
"""

from __future__ import annotations

import json
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from src.common.constants import ClientEvent, RelayEvent, TypeMsg
from src.common.logger import log_error, log_info, setup_logging
from src.config import settings
from src.services.location_relay.dependencies import (
    close_dependencies,
    get_engine,
    init_dependencies,
)
from src.services.location_relay.engine import BroadcastEngine
from src.services.location_relay.errors import InvalidPayload
from src.services.location_relay.rooms import Connection
from src.shared.models.common import ErrorResponse, HealthStatus, RelayStats
from src.shared.models.location import (
    LocationAccepted,
    MerchantJoinRequest,
    MerchantLeaveRequest,
    RiderJoinRequest,
    utc_now_iso,
)


_started_at: float = time.monotonic()


# =============================================================================
# LIFESPAN
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Жизненный цикл приложения."""
    global _started_at

    setup_logging()
    await log_info("Location Relay запускается...", type_msg=TypeMsg.INFO)

    await init_dependencies()
    _started_at = time.monotonic()

    yield

    await close_dependencies()
    await log_info("Location Relay остановлен", type_msg=TypeMsg.INFO)


# =============================================================================
# ПРИЛОЖЕНИЕ
# =============================================================================

app = FastAPI(
    title="Courier Location Relay",
    description="Рассылка геопозиций курьеров офису и мерчантам в реальном времени.",
    version=settings.system.VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.relay.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.exception_handler(InvalidPayload)
async def invalid_payload_handler(request: Request, exc: InvalidPayload) -> JSONResponse:
    """Ошибка валидации позиции -> 400."""
    body = ErrorResponse(error_code="invalid_payload", message=exc.message, details=exc.details)
    return JSONResponse(status_code=400, content=body.model_dump())


# =============================================================================
# HEALTH CHECK / STATS
# =============================================================================

@app.get("/health", response_model=HealthStatus, tags=["Health"])
async def health_check() -> HealthStatus:
    """Проверка здоровья сервиса."""
    return HealthStatus(
        status="healthy",
        service="location_relay",
        version=settings.system.VERSION,
        timestamp=utc_now_iso(),
        uptime_seconds=round(time.monotonic() - _started_at, 3),
    )


@app.get("/stats", response_model=RelayStats, tags=["Stats"])
async def get_stats() -> RelayStats:
    """Счётчики соединений, рассылок и внешнего сервиса."""
    return RelayStats(**get_engine().get_stats())


# =============================================================================
# LOCATION ENDPOINTS
# =============================================================================

@app.post(
    "/api/location/update",
    response_model=LocationAccepted,
    responses={400: {"model": ErrorResponse}},
    tags=["Location"],
    summary="Принять позицию курьера",
)
async def update_location(
    payload: dict[str, Any],
    package_status: str | None = Query(default=None),
) -> LocationAccepted:
    """
    Принять позицию от бэкенда и разослать её.

    Если передан `package_status`, он используется как статус посылки
    и внешний сервис не опрашивается.
    """
    position = await get_engine().handle_update(payload, package_status=package_status)
    return LocationAccepted(
        courier_id=position.courier_id,
        package_id=position.package_id,
        position=position.to_payload(),
    )


@app.get("/api/location/all", tags=["Location"], summary="Все последние позиции")
async def get_all_locations() -> list[dict[str, Any]]:
    """Снимок кэша (для отладки и админки)."""
    return [position.to_payload() for position in get_engine().cache.list_all()]


@app.get(
    "/api/location/{courier_id}",
    responses={404: {"description": "Курьер не найден"}},
    tags=["Location"],
    summary="Последняя позиция курьера",
)
async def get_courier_location(courier_id: int) -> dict[str, Any]:
    position = get_engine().cache.get(courier_id)
    if position is None:
        raise HTTPException(status_code=404, detail="Courier not found")
    return position.to_payload()


# =============================================================================
# WEBSOCKET
# =============================================================================

@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """
    WebSocket для всех клиентов релея.

    Входящие события:
    - {"event": "join:office"}
    - {"event": "join:merchant", "data": {"merchant_id": 1, "package_id": 99}}
    - {"event": "leave:merchant", "data": {"package_id": 99}}
    - {"event": "join:rider", "data": {"courier_id": 7}}
    - {"event": "location:update", "data": {"courier_id": 7, "latitude": ..., "longitude": ...}}
    - {"event": "ping"}
    """
    engine = get_engine()

    await websocket.accept()
    connection = Connection(websocket=websocket)
    engine.track(connection)

    await log_info(f"Client connected: {connection.connection_id}")
    await engine.router.send_direct(connection, RelayEvent.CONNECTED, {
        "message": "Connected to location tracking server",
        "connection_id": connection.connection_id,
    })

    try:
        while True:
            raw = await websocket.receive_text()
            await _handle_client_message(engine, connection, raw)

    except WebSocketDisconnect:
        pass
    except Exception as e:
        await log_error(f"WebSocket error on {connection.connection_id}: {e}", exc_info=True)
    finally:
        await engine.disconnect(connection)


async def _send_error(engine: BroadcastEngine, connection: Connection, message: str, **extra: Any) -> None:
    await engine.router.send_direct(connection, RelayEvent.ERROR, {"message": message, **extra})


async def _handle_client_message(engine: BroadcastEngine, connection: Connection, raw: str) -> None:
    """Обработать одно сообщение клиента."""
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError:
        await _send_error(engine, connection, "Invalid JSON")
        return

    if not isinstance(frame, dict):
        await _send_error(engine, connection, "Message must be an object with an 'event' field")
        return

    event = frame.get("event")
    data = frame.get("data") or {}

    match event:
        case ClientEvent.JOIN_OFFICE:
            await engine.join_office(connection)

        case ClientEvent.JOIN_MERCHANT:
            try:
                request = MerchantJoinRequest.model_validate(data)
            except ValidationError:
                await _send_error(engine, connection, "merchant_id and package_id required")
                return
            await engine.join_merchant(connection, request.package_id)

        case ClientEvent.LEAVE_MERCHANT:
            try:
                leave = MerchantLeaveRequest.model_validate(data)
            except ValidationError:
                await _send_error(engine, connection, "package_id required")
                return
            await engine.leave_merchant(connection, leave.package_id)
            await engine.router.send_direct(connection, RelayEvent.LEFT, {
                "package_id": leave.package_id,
            })

        case ClientEvent.JOIN_RIDER:
            try:
                rider = RiderJoinRequest.model_validate(data)
            except ValidationError:
                await _send_error(engine, connection, "courier_id required")
                return
            engine.register_courier(rider.courier_id, connection)
            await engine.router.send_direct(connection, RelayEvent.JOINED, {
                "courier_id": rider.courier_id,
            })

        case ClientEvent.LOCATION_UPDATE:
            try:
                await engine.handle_update(data, origin=connection)
            except InvalidPayload as e:
                await _send_error(engine, connection, e.message, details=e.details)

        case ClientEvent.PING:
            await engine.router.send_direct(connection, RelayEvent.PONG, {})

        case _:
            await _send_error(engine, connection, f"Unknown event: {event}")


# === STARTUP ===

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.deployment.RELAY_HOST, port=settings.deployment.RELAY_PORT)
