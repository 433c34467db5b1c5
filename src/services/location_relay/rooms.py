# src/services/location_relay/rooms.py
"""
Соединения и каналы рассылки.
Управляет членством в каналах и доставкой событий подписчикам.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from fastapi import WebSocket

from src.common.constants import RelayEvent
from src.config import settings


@dataclass(eq=False)
class Connection:
    """
    Одно WebSocket соединение.

    Сравнивается по идентичности объекта, поэтому пригодно как ключ
    в множествах подписчиков.
    """
    websocket: WebSocket
    connection_id: str = field(default_factory=lambda: uuid4().hex)
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    channels: set["Channel"] = field(default_factory=set)
    _send_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    async def send(self, event: RelayEvent | str, data: Any) -> None:
        """Отправить событие в формате {"event": ..., "data": ...}."""
        name = event.value if isinstance(event, RelayEvent) else event
        async with self._send_lock:
            await self.websocket.send_json({"event": name, "data": data})


@dataclass(frozen=True)
class Channel:
    """
    Канал рассылки: глобальный офисный или канал конкретной посылки.

    Имя канала посылки выводится из package_id, поэтому независимые
    подписки на одну посылку сходятся в один канал.
    """
    name: str
    package_id: int | None = None

    @classmethod
    def all_couriers(cls) -> "Channel":
        return cls(name=settings.relay.OFFICE_CHANNEL)

    @classmethod
    def for_package(cls, package_id: int) -> "Channel":
        name = settings.relay.MERCHANT_CHANNEL_TEMPLATE.format(package_id=package_id)
        return cls(name=name, package_id=package_id)


class RoomRouter:
    """
    Членство соединений в каналах и публикация событий.

    Поддерживает:
    - Идемпотентную подписку и отписку
    - Публикацию в канал (только текущим подписчикам)
    - Удаление соединения из всех каналов при отключении
    """

    def __init__(self) -> None:
        # channel -> set of connections
        self._members: dict[Channel, set[Connection]] = {}
        self._lock = asyncio.Lock()

        self._total_messages_sent: int = 0

    @property
    def total_channels(self) -> int:
        return len(self._members)

    @property
    def total_messages_sent(self) -> int:
        return self._total_messages_sent

    async def subscribe(self, connection: Connection, channel: Channel) -> bool:
        """
        Подписать соединение на канал.

        Returns:
            True если подписка новая, False если соединение уже было в канале
        """
        async with self._lock:
            members = self._members.setdefault(channel, set())
            if connection in members:
                return False
            members.add(connection)
            connection.channels.add(channel)
            return True

    async def unsubscribe(self, connection: Connection, channel: Channel) -> bool:
        """
        Отписать соединение от канала.

        Returns:
            True если соединение было в канале
        """
        async with self._lock:
            was_member = channel in connection.channels
            self._discard(connection, channel)
            return was_member

    async def remove(self, connection: Connection) -> None:
        """Убрать соединение из всех каналов."""
        async with self._lock:
            for channel in list(connection.channels):
                self._discard(connection, channel)

    def _discard(self, connection: Connection, channel: Channel) -> None:
        connection.channels.discard(channel)
        members = self._members.get(channel)
        if members is None:
            return
        members.discard(connection)
        if not members:
            del self._members[channel]

    def subscribers(self, channel: Channel) -> set[Connection]:
        return set(self._members.get(channel, ()))

    async def publish(self, channel: Channel, event: RelayEvent | str, data: Any) -> int:
        """
        Отправить событие всем, кто подписан на канал в момент публикации.

        Список подписчиков снимается под блокировкой, отправка идёт без неё.
        Соединения, на которые отправка не удалась, удаляются из всех каналов.

        Returns:
            Количество успешно доставленных сообщений
        """
        async with self._lock:
            members = list(self._members.get(channel, ()))

        if not members:
            return 0

        sent_count = 0
        failed: list[Connection] = []

        for connection in members:
            try:
                await connection.send(event, data)
            except Exception:
                failed.append(connection)
            else:
                sent_count += 1
                self._total_messages_sent += 1

        for connection in failed:
            await self.remove(connection)

        return sent_count

    async def send_direct(self, connection: Connection, event: RelayEvent | str, data: Any) -> bool:
        """
        Персональное сообщение одному соединению.

        Returns:
            True если отправлено, False если соединение разорвано
        """
        try:
            await connection.send(event, data)
        except Exception:
            await self.remove(connection)
            return False
        self._total_messages_sent += 1
        return True
