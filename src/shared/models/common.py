# src/shared/models/common.py
"""
Общие модели ответов сервиса.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Стандартный ответ с ошибкой."""

    error_code: str
    message: str
    details: list[dict[str, Any]] | dict[str, Any] | None = None


class HealthStatus(BaseModel):
    """Статус здоровья сервиса."""

    service: str
    status: str = "healthy"  # healthy, degraded, unhealthy
    version: str | None = None
    timestamp: str | None = None
    uptime_seconds: float | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)


class RelayStats(BaseModel):
    """Счётчики релея для /stats."""

    active_connections: int
    total_connections_ever: int
    total_channels: int
    registered_couriers: int
    cached_couriers: int
    updates_accepted: int
    updates_rejected: int
    merchant_broadcasts: int
    merchant_suppressed: int
    messages_sent: int
    status_lookup_failures: int
    persist_failures: int
    pending_persist_tasks: int
