# src/services/location_relay/upstream.py
"""
Синхронизация с внешним сервисом: статусы посылок и хранение истории.

Оба вызова best-effort: ограничены таймаутом, не повторяются
и никогда не роняют обработку обновления.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from src.common.logger import log_debug, log_error, log_warning
from src.services.location_relay.errors import UpstreamUnavailable
from src.shared.models.location import CourierPosition


def build_http_client(
    base_url: str,
    api_token: str = "",
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Общий httpx клиент для внешнего сервиса."""
    headers = {"Accept": "application/json"}
    if api_token:
        headers["Authorization"] = f"Bearer {api_token}"
    return httpx.AsyncClient(base_url=base_url, headers=headers, transport=transport)


class UpstreamClient:
    """
    Тонкая обёртка над httpx.AsyncClient.

    Любая сетевая ошибка, неуспешный статус ответа или превышение
    дедлайна превращаются в UpstreamUnavailable. Дедлайн ограничивает
    запрос целиком через asyncio.wait_for, таймаут httpx дублирует его
    на уровне отдельных фаз соединения.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_json(self, path: str, *, timeout: float, operation: str) -> Any:
        response = await self._request("GET", path, timeout=timeout, operation=operation)
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamUnavailable(operation, f"invalid JSON: {e}") from e

    async def post_json(
        self,
        path: str,
        payload: dict[str, Any],
        *,
        timeout: float,
        operation: str,
    ) -> httpx.Response:
        return await self._request("POST", path, json=payload, timeout=timeout, operation=operation)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        timeout: float,
        operation: str,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        try:
            response = await asyncio.wait_for(
                self._client.request(method, path, json=json, timeout=timeout),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailable(operation, f"timed out after {timeout}s") from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(operation, f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise UpstreamUnavailable(operation, f"HTTP {response.status_code}")

        return response


# =============================================================================
# СТАТУС ПОСЫЛКИ
# =============================================================================

def extract_status(body: Any) -> str | None:
    """
    Достать статус из ответа внешнего сервиса.

    Поддерживаются формы {"status": ...} и {"data": {"status": ...}}.
    """
    if not isinstance(body, dict):
        return None

    status = body.get("status")
    if isinstance(status, str):
        return status

    data = body.get("data")
    if isinstance(data, dict) and isinstance(data.get("status"), str):
        return data["status"]

    return None


def is_merchant_eligible(status: str | None, in_transit_status: str) -> bool:
    """
    Можно ли слать позицию в канал посылки.

    Неизвестный статус (ошибка, таймаут, нет поля) считается «в пути»:
    лучше показать мерчанту устаревшую позицию, чем оставить его без трекинга.
    Явный статус сравнивается с in_transit_status строго.
    """
    if status is None:
        return True
    return status == in_transit_status


class StatusResolver:
    """Получение текущего статуса посылки с коротким дедлайном."""

    def __init__(
        self,
        upstream: UpstreamClient,
        *,
        timeout: float,
        path_template: str = "/packages/{package_id}",
    ) -> None:
        self._upstream = upstream
        self._timeout = timeout
        self._path_template = path_template

        self.failures: int = 0

    async def resolve(self, package_id: int) -> str | None:
        """
        Returns:
            Статус посылки или None, если его не удалось узнать
        """
        path = self._path_template.format(package_id=package_id)
        try:
            body = await self._upstream.get_json(
                path,
                timeout=self._timeout,
                operation="package status",
            )
        except UpstreamUnavailable as e:
            self.failures += 1
            await log_warning(
                f"Статус посылки {package_id} недоступен, считаем её в пути: {e.reason}",
                extra={"package_id": package_id},
            )
            return None

        status = extract_status(body)
        if status is None:
            await log_debug(
                f"Ответ по посылке {package_id} без статуса",
                extra={"package_id": package_id},
            )
        return status


# =============================================================================
# ХРАНЕНИЕ ИСТОРИИ
# =============================================================================

class PersistenceForwarder:
    """
    Фоновая запись точки во внешнее хранилище (at-most-once).

    forward() только планирует задачу и сразу возвращается.
    Ссылки на задачи держатся до завершения, чтобы их не собрал GC
    и чтобы при остановке можно было дождаться хвоста через drain().
    """

    def __init__(
        self,
        upstream: UpstreamClient,
        *,
        timeout: float,
        path: str = "/location/store",
        enabled: bool = True,
    ) -> None:
        self._upstream = upstream
        self._timeout = timeout
        self._path = path
        self._enabled = enabled
        self._tasks: set[asyncio.Task[None]] = set()

        self.stored: int = 0
        self.failures: int = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def forward(self, position: CourierPosition) -> asyncio.Task[None] | None:
        if not self._enabled:
            return None

        task = asyncio.create_task(
            self._store(position),
            name=f"persist-courier-{position.courier_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _store(self, position: CourierPosition) -> None:
        try:
            await self._upstream.post_json(
                self._path,
                position.to_payload(),
                timeout=self._timeout,
                operation="location store",
            )
        except UpstreamUnavailable as e:
            self.failures += 1
            await log_warning(
                f"Не удалось сохранить позицию курьера {position.courier_id}: {e.reason}",
                extra={"courier_id": position.courier_id},
            )
            return
        except Exception as e:
            self.failures += 1
            await log_error(
                f"Ошибка фоновой записи позиции курьера {position.courier_id}: {e}",
                exc_info=True,
            )
            return

        self.stored += 1

    async def drain(self) -> None:
        """Дождаться завершения всех запланированных записей."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)
