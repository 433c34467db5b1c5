# src/services/location_relay/cache.py
"""
Кэш последней известной позиции курьеров.
"""

from __future__ import annotations

from itertools import count

from src.shared.models.location import CourierPosition


class LocationCache:
    """
    courier_id -> последняя принятая позиция.

    Записи живут всё время работы процесса (без TTL), каждая новая
    позиция курьера целиком заменяет предыдущую. Для каждой записи
    хранится порядковый номер put(), по нему find_by_package выбирает
    самую свежую позицию, если посылку указали несколько курьеров.
    """

    def __init__(self) -> None:
        self._positions: dict[int, tuple[int, CourierPosition]] = {}
        self._seq = count(1)

    def __len__(self) -> int:
        return len(self._positions)

    def put(self, courier_id: int, position: CourierPosition) -> None:
        self._positions[courier_id] = (next(self._seq), position)

    def get(self, courier_id: int) -> CourierPosition | None:
        entry = self._positions.get(courier_id)
        return entry[1] if entry else None

    def list_all(self) -> list[CourierPosition]:
        """Снимок всех позиций для нового зрителя офисного канала."""
        return [position for _, position in self._positions.values()]

    def find_by_package(self, package_id: int) -> CourierPosition | None:
        """Самая поздно закэшированная позиция с этим package_id или None."""
        best: tuple[int, CourierPosition] | None = None
        for seq, position in self._positions.values():
            if position.package_id != package_id:
                continue
            if best is None or seq > best[0]:
                best = (seq, position)
        return best[1] if best else None
