# src/services/location_relay/errors.py
"""
Исключения релея.
"""

from __future__ import annotations

from typing import Any


class RelayError(Exception):
    """Базовое исключение релея."""


class InvalidPayload(RelayError):
    """
    Обновление отклонено локально: нет обязательных полей
    или координаты вне допустимого диапазона.

    Состояние релея при этом не меняется.
    """

    def __init__(self, message: str, details: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []


class UpstreamUnavailable(RelayError):
    """
    Внешний сервис не ответил вовремя или ответил ошибкой.

    Клиентам не показывается: статус уходит в fallback,
    запись истории молча отбрасывается.
    """

    def __init__(self, operation: str, reason: str) -> None:
        super().__init__(f"{operation}: {reason}")
        self.operation = operation
        self.reason = reason
