# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

# Переменные окружения до импорта модулей проекта
os.environ.setdefault("UPSTREAM_API_TOKEN", "")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from src.services.location_relay.cache import LocationCache
from src.services.location_relay.engine import BroadcastEngine
from src.services.location_relay.registry import ConnectionRegistry
from src.services.location_relay.rooms import Connection, RoomRouter
from src.services.location_relay.upstream import (
    PersistenceForwarder,
    StatusResolver,
    UpstreamClient,
    build_http_client,
)


UPSTREAM_BASE_URL = "http://upstream.test/api"


# =============================================================================
# ФЕЙКОВЫЙ ВНЕШНИЙ СЕРВИС
# =============================================================================

class FakeUpstream:
    """
    Внешний сервис на httpx.MockTransport.

    statuses: package_id -> тело ответа GET /packages/{id}
    store_calls: тела всех POST /location/store
    """

    def __init__(self) -> None:
        self.statuses: dict[int, Any] = {}
        self.status_http_code: int = 200
        self.store_http_code: int = 200
        self.delay: float = 0.0
        self.raise_connect_error: bool = False
        self.status_requests: list[int] = []
        self.store_calls: list[dict[str, Any]] = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.raise_connect_error:
            raise httpx.ConnectError("connection refused", request=request)

        path = request.url.path
        if request.method == "GET" and path.startswith("/api/packages/"):
            package_id = int(path.rsplit("/", 1)[-1])
            self.status_requests.append(package_id)
            if package_id not in self.statuses:
                return httpx.Response(404, json={"message": "Not found"})
            return httpx.Response(self.status_http_code, json=self.statuses[package_id])

        if request.method == "POST" and path == "/api/location/store":
            self.store_calls.append(json.loads(request.content))
            return httpx.Response(self.store_http_code, json={"success": True})

        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        return build_http_client(UPSTREAM_BASE_URL, transport=httpx.MockTransport(self.handler))


@pytest.fixture
def fake_upstream() -> FakeUpstream:
    """Фейковый внешний сервис."""
    return FakeUpstream()


@pytest.fixture
def upstream_client(fake_upstream: FakeUpstream) -> UpstreamClient:
    """UpstreamClient поверх фейкового сервиса."""
    return UpstreamClient(fake_upstream.client())


# =============================================================================
# ФИКСТУРЫ РЕЛЕЯ
# =============================================================================

@pytest.fixture
def make_connection():
    """Фабрика соединений с мок-вебсокетом."""

    def _make() -> Connection:
        websocket = MagicMock()
        websocket.send_json = AsyncMock(return_value=None)
        return Connection(websocket=websocket)

    return _make


@pytest.fixture
def sent_events():
    """Все события, отправленные в соединение, в порядке отправки."""

    def _events(connection: Connection) -> list[dict[str, Any]]:
        return [call.args[0] for call in connection.websocket.send_json.await_args_list]

    return _events


@pytest.fixture
def engine(upstream_client: UpstreamClient) -> BroadcastEngine:
    """Движок с настоящими компонентами и фейковым внешним сервисом."""
    return BroadcastEngine(
        cache=LocationCache(),
        registry=ConnectionRegistry(),
        router=RoomRouter(),
        status_resolver=StatusResolver(upstream_client, timeout=0.2),
        forwarder=PersistenceForwarder(upstream_client, timeout=0.2),
        in_transit_status="in transit",
    )


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов загрузчика."""
    return {
        "_comment_system": "test",
        "PROJECT_NAME": "courier_relay_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "LOG_LEVEL": "DEBUG",
        "ENVIRONMENT": "test",
        "RELAY_HOST": "127.0.0.1",
        "RELAY_PORT": 3100,
        "LOG_TO_FILE": False,
        "LOG_FILE_PATH": "logs/test.log",
        "LOG_FORMAT": "json",
        "UPSTREAM_BASE_URL": "http://laravel.test/api/",
        "UPSTREAM_API_TOKEN": "",
        "STATUS_TIMEOUT": 1.0,
        "STORE_TIMEOUT": 2.5,
        "IN_TRANSIT_STATUS": "on_the_way",
        "CORS_ORIGINS": ["https://office.example.com"],
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file
