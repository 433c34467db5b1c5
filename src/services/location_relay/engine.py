# src/services/location_relay/engine.py
"""
Бизнес-логика рассылки геопозиций.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from src.common.constants import RelayEvent
from src.common.logger import log_debug, log_info, log_warning
from src.services.location_relay.cache import LocationCache
from src.services.location_relay.errors import InvalidPayload
from src.services.location_relay.registry import ConnectionRegistry
from src.services.location_relay.rooms import Channel, Connection, RoomRouter
from src.services.location_relay.upstream import (
    PersistenceForwarder,
    StatusResolver,
    is_merchant_eligible,
)
from src.shared.models.location import CourierPosition


class BroadcastEngine:
    """
    Оркестратор релея.

    Ответственности:
    - Валидация и кэширование входящих позиций
    - Рассылка в офисный канал (всегда) и в канал посылки (по статусу)
    - Фоновая запись истории во внешний сервис
    - Снимки состояния для новых подписчиков
    - Регистрация и отключение соединений
    """

    def __init__(
        self,
        cache: LocationCache,
        registry: ConnectionRegistry,
        router: RoomRouter,
        status_resolver: StatusResolver,
        forwarder: PersistenceForwarder,
        *,
        in_transit_status: str = "in transit",
    ) -> None:
        self.cache = cache
        self.registry = registry
        self.router = router
        self._status = status_resolver
        self._forwarder = forwarder
        self._in_transit_status = in_transit_status

        # Статистика
        self._connections: set[Connection] = set()
        self._total_connections = 0
        self._updates_accepted = 0
        self._updates_rejected = 0
        self._merchant_broadcasts = 0
        self._merchant_suppressed = 0

    # === ОБНОВЛЕНИЯ ПОЗИЦИИ ===

    async def handle_update(
        self,
        payload: Mapping[str, Any] | CourierPosition,
        *,
        origin: Connection | None = None,
        package_status: str | None = None,
    ) -> CourierPosition:
        """
        Обработать одно входящее обновление позиции.

        1. Валидация (InvalidPayload, состояние не меняется)
        2. Запись в кэш
        3. Публикация в офисный канал до любых внешних вызовов
        4. Если есть package_id: статус посылки и, если можно, публикация в её канал
        5. Фоновая запись истории (не ждём)
        6. Подтверждение отправителю-соединению

        Args:
            payload: Сырые данные или готовая позиция
            origin: Соединение-отправитель, получит location:received
            package_status: Статус, уже известный вызывающему; если задан и не пуст,
                внешний сервис не опрашивается

        Returns:
            Принятая позиция (для ответа HTTP-вызывающему)
        """
        position = await self._validate(payload)

        self.cache.put(position.courier_id, position)
        self._updates_accepted += 1

        message = position.to_payload()
        await self.router.publish(Channel.all_couriers(), RelayEvent.LOCATION_UPDATE, message)

        status: str | None = None
        if position.package_id is not None:
            status = package_status or await self._status.resolve(position.package_id)

            if is_merchant_eligible(status, self._in_transit_status):
                channel = Channel.for_package(position.package_id)
                await self.router.publish(channel, RelayEvent.LOCATION_UPDATE, message)
                self._merchant_broadcasts += 1
            else:
                self._merchant_suppressed += 1

        self._forwarder.forward(position)

        if origin is not None:
            await self.router.send_direct(origin, RelayEvent.LOCATION_RECEIVED, message)

        await log_debug(
            f"Location update broadcasted: courier_id={position.courier_id}, "
            f"lat={position.latitude}, lng={position.longitude}, "
            f"package_id={position.package_id}, status={status}",
        )
        return position

    async def _validate(self, payload: Mapping[str, Any] | CourierPosition) -> CourierPosition:
        if isinstance(payload, CourierPosition):
            return payload
        try:
            return CourierPosition.model_validate(payload)
        except ValidationError as e:
            self._updates_rejected += 1
            details = e.errors(include_url=False, include_context=False, include_input=False)
            await log_warning(
                f"Отклонено обновление позиции: {e.error_count()} ошибок",
                extra={"errors": details},
            )
            raise InvalidPayload("Invalid location payload", details) from e

    # === ПОДПИСКИ ===

    async def join_office(self, connection: Connection) -> int:
        """
        Подписать соединение на офисный канал и отправить снимок всех позиций.

        Returns:
            Количество позиций в снимке
        """
        channel = Channel.all_couriers()
        await self.router.subscribe(connection, channel)

        snapshot = [position.to_payload() for position in self.cache.list_all()]
        await self.router.send_direct(connection, RelayEvent.LOCATION_ALL, snapshot)

        await log_info(
            f"Client {connection.connection_id} joined office channel "
            f"({len(snapshot)} cached positions, {len(self.router.subscribers(channel))} viewers)",
        )
        return len(snapshot)

    async def join_merchant(self, connection: Connection, package_id: int) -> CourierPosition | None:
        """
        Подписать соединение на канал посылки.

        Если в кэше есть курьер с этой посылкой, сразу отправляется его позиция.
        Отсутствие позиции ошибкой не считается.
        """
        channel = Channel.for_package(package_id)
        await self.router.subscribe(connection, channel)

        position = self.cache.find_by_package(package_id)
        if position is not None:
            await self.router.send_direct(connection, RelayEvent.LOCATION_UPDATE, position.to_payload())

        await log_info(
            f"Client {connection.connection_id} joined {channel.name} "
            f"({len(self.router.subscribers(channel))} viewers)",
        )
        return position

    async def leave_merchant(self, connection: Connection, package_id: int) -> bool:
        """
        Отписать соединение от канала посылки.

        Returns:
            True если соединение было подписано
        """
        channel = Channel.for_package(package_id)
        left = await self.router.unsubscribe(connection, channel)
        if left:
            await log_info(f"Client {connection.connection_id} left {channel.name}")
        return left

    def register_courier(self, courier_id: int, connection: Connection) -> None:
        """Связать курьера с соединением. Рассылок не вызывает."""
        self.registry.register(courier_id, connection)

    # === ЖИЗНЕННЫЙ ЦИКЛ СОЕДИНЕНИЙ ===

    def track(self, connection: Connection) -> None:
        self._connections.add(connection)
        self._total_connections += 1

    async def disconnect(self, connection: Connection) -> None:
        """
        Очистить всё, что связано с соединением.

        Позиция курьера в кэше остаётся: зрители продолжают видеть
        последнюю известную точку.
        """
        self._connections.discard(connection)
        couriers = self.registry.unregister_by_handle(connection)
        await self.router.remove(connection)

        await log_info(
            f"Client disconnected: {connection.connection_id}"
            + (f" (couriers {couriers})" if couriers else ""),
        )

    async def shutdown(self) -> None:
        """Дождаться фоновых записей истории."""
        await self._forwarder.drain()

    def get_stats(self) -> dict[str, Any]:
        return {
            "active_connections": len(self._connections),
            "total_connections_ever": self._total_connections,
            "total_channels": self.router.total_channels,
            "registered_couriers": len(self.registry),
            "cached_couriers": len(self.cache),
            "updates_accepted": self._updates_accepted,
            "updates_rejected": self._updates_rejected,
            "merchant_broadcasts": self._merchant_broadcasts,
            "merchant_suppressed": self._merchant_suppressed,
            "messages_sent": self.router.total_messages_sent,
            "status_lookup_failures": self._status.failures,
            "persist_failures": self._forwarder.failures,
            "pending_persist_tasks": self._forwarder.pending,
        }
