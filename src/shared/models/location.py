# src/shared/models/location.py
"""
Модели геопозиции курьера и запросов на подписку.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def utc_now_iso() -> str:
    """Текущее время UTC в ISO-8601 с суффиксом Z."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _reject_bool(v: Any) -> Any:
    """JSON true/false не считаются числами."""
    if isinstance(v, bool):
        raise ValueError("boolean is not a valid number")
    return v


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


class CourierPosition(BaseModel):
    """
    Одна точка геопозиции курьера.

    Неизменяема: новая точка полностью заменяет предыдущую в кэше,
    поля никогда не сливаются. Принимает устаревшие имена полей
    rider_id и last_update.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, allow_inf_nan=False)

    courier_id: int = Field(validation_alias=AliasChoices("courier_id", "rider_id"))
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    speed: float | None = None
    heading: float | None = None
    package_id: int | None = None
    timestamp: str = Field(
        default_factory=utc_now_iso,
        validation_alias=AliasChoices("timestamp", "last_update"),
    )

    @field_validator("courier_id", "latitude", "longitude", mode="before")
    @classmethod
    def numeric_required(cls, v: Any) -> Any:
        return _reject_bool(v)

    @field_validator("speed", "heading", "package_id", mode="before")
    @classmethod
    def blank_optional(cls, v: Any) -> Any:
        return _blank_to_none(_reject_bool(v))

    @field_validator("timestamp", mode="before")
    @classmethod
    def default_timestamp(cls, v: Any) -> Any:
        """Пустая метка времени заменяется текущим временем сервера."""
        if v is None or _blank_to_none(v) is None:
            return utc_now_iso()
        return v

    def to_payload(self) -> dict[str, Any]:
        """
        Представление для рассылки клиентам.

        package_id присутствует всегда (None, если посылки нет),
        speed и heading добавляются, только если курьер их прислал.
        """
        payload: dict[str, Any] = {
            "courier_id": self.courier_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timestamp": self.timestamp,
            "package_id": self.package_id,
        }
        if self.speed is not None:
            payload["speed"] = self.speed
        if self.heading is not None:
            payload["heading"] = self.heading
        return payload


class MerchantJoinRequest(BaseModel):
    """
    Подписка мерчанта на канал посылки.

    Пустые и нулевые идентификаторы считаются отсутствующими.
    """
    merchant_id: int | str
    package_id: int = Field(gt=0)

    @field_validator("merchant_id", "package_id", mode="before")
    @classmethod
    def no_bool(cls, v: Any) -> Any:
        return _reject_bool(v)

    @field_validator("merchant_id")
    @classmethod
    def merchant_present(cls, v: int | str) -> int | str:
        if isinstance(v, str) and not v.strip():
            raise ValueError("merchant_id is empty")
        if isinstance(v, int) and v <= 0:
            raise ValueError("merchant_id must be positive")
        return v


class RiderJoinRequest(BaseModel):
    """Регистрация соединения курьера."""
    courier_id: int = Field(gt=0, validation_alias=AliasChoices("courier_id", "rider_id"))

    @field_validator("courier_id", mode="before")
    @classmethod
    def no_bool(cls, v: Any) -> Any:
        return _reject_bool(v)


class MerchantLeaveRequest(BaseModel):
    """Отписка мерчанта от канала посылки."""
    package_id: int = Field(gt=0)

    @field_validator("package_id", mode="before")
    @classmethod
    def no_bool(cls, v: Any) -> Any:
        return _reject_bool(v)


class LocationAccepted(BaseModel):
    """Ответ HTTP-адаптера на принятое обновление."""
    message: str = "Location update received and broadcasted"
    courier_id: int
    package_id: int | None = None
    position: dict[str, Any]
