# src/services/location_relay/registry.py
"""
Реестр соединений курьеров: courier_id -> соединение.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.services.location_relay.rooms import Connection


class ConnectionRegistry:
    """
    Не больше одного живого соединения на курьера.

    Повторная регистрация молча заменяет прежнее соединение и не закрывает его.
    Методы не содержат точек переключения, поэтому атомарны в event loop.
    """

    def __init__(self) -> None:
        self._by_courier: dict[int, "Connection"] = {}

    def __len__(self) -> int:
        return len(self._by_courier)

    def register(self, courier_id: int, handle: "Connection") -> None:
        self._by_courier[courier_id] = handle

    def unregister_by_handle(self, handle: "Connection") -> list[int]:
        """
        Удалить записи, указывающие на это соединение.

        Returns:
            courier_id удалённых записей (пусто, если соединение не регистрировалось)
        """
        removed = [cid for cid, conn in self._by_courier.items() if conn is handle]
        for courier_id in removed:
            del self._by_courier[courier_id]
        return removed

    def lookup(self, courier_id: int) -> "Connection | None":
        return self._by_courier.get(courier_id)
