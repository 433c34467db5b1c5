# src/services/location_relay/dependencies.py
"""
Зависимости Location Relay.
Инициализация и управление ресурсами.
"""

from __future__ import annotations

from typing import Optional

import httpx

from src.services.location_relay.engine import BroadcastEngine
from src.services.location_relay.upstream import UpstreamClient


# Глобальные экземпляры ресурсов
_upstream: Optional[UpstreamClient] = None
_engine: Optional[BroadcastEngine] = None


def _build_http_client() -> httpx.AsyncClient:
    """HTTP клиент внешнего сервиса по настройкам."""
    from src.config import settings
    from src.services.location_relay.upstream import build_http_client

    return build_http_client(
        settings.upstream.UPSTREAM_BASE_URL,
        settings.upstream.UPSTREAM_API_TOKEN,
    )


async def init_dependencies() -> None:
    """Собрать кэш, реестр, маршрутизатор и клиентов внешнего сервиса."""
    global _upstream, _engine

    from src.common.constants import TypeMsg
    from src.common.logger import log_info
    from src.config import settings
    from src.services.location_relay.cache import LocationCache
    from src.services.location_relay.registry import ConnectionRegistry
    from src.services.location_relay.rooms import RoomRouter
    from src.services.location_relay.upstream import PersistenceForwarder, StatusResolver

    _upstream = UpstreamClient(_build_http_client())
    await log_info(
        f"Внешний сервис: {settings.upstream.UPSTREAM_BASE_URL}",
        type_msg=TypeMsg.DEBUG,
    )

    _engine = BroadcastEngine(
        cache=LocationCache(),
        registry=ConnectionRegistry(),
        router=RoomRouter(),
        status_resolver=StatusResolver(
            _upstream,
            timeout=settings.upstream.STATUS_TIMEOUT,
            path_template=settings.upstream.PACKAGE_STATUS_PATH,
        ),
        forwarder=PersistenceForwarder(
            _upstream,
            timeout=settings.upstream.STORE_TIMEOUT,
            path=settings.upstream.LOCATION_STORE_PATH,
            enabled=settings.upstream.PERSIST_ENABLED,
        ),
        in_transit_status=settings.relay.IN_TRANSIT_STATUS,
    )

    await log_info("Location Relay инициализирован", type_msg=TypeMsg.INFO)


async def close_dependencies() -> None:
    """Дождаться фоновых записей и закрыть HTTP клиент."""
    global _upstream, _engine

    from src.common.constants import TypeMsg
    from src.common.logger import log_info

    if _engine:
        await _engine.shutdown()
        _engine = None

    if _upstream:
        await _upstream.aclose()
        _upstream = None
        await log_info("HTTP клиент внешнего сервиса закрыт", type_msg=TypeMsg.DEBUG)


def get_engine() -> BroadcastEngine:
    """Получение экземпляра BroadcastEngine."""
    if _engine is None:
        raise RuntimeError("BroadcastEngine не инициализирован")
    return _engine
