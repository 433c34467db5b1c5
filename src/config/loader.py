# src/config/loader.py
"""
Загрузчик конфигурации релея.
Единственный источник значений по умолчанию — config/config.json.
Адреса и секреты переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации (можно переопределить RELAY_CONFIG_PATH)."""
    override = os.getenv("RELAY_CONFIG_PATH")
    if override:
        return Path(override)
    return get_project_root() / "config" / "config.json"


def load_config_json() -> dict[str, Any]:
    """Загружает config.json и возвращает словарь без служебных _comment_ ключей."""
    config_path = get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    return {k: v for k, v in data.items() if not k.startswith("_comment_")}


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "courier_relay"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"


class DeploymentSettings(BaseModel):
    """Сетевые параметры сервиса."""
    RELAY_HOST: str = "0.0.0.0"
    RELAY_PORT: int = 3000


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/relay.log"
    LOG_FORMAT: str = "colored"
    LOG_MAX_BYTES: int = 10485760
    LOG_BACKUP_COUNT: int = 5

    @field_validator("LOG_FORMAT")
    @classmethod
    def check_format(cls, v: str) -> str:
        """Допустимы только json и colored."""
        if v not in ("json", "colored"):
            raise ValueError(f"Неизвестный формат логов: {v}")
        return v


class UpstreamSettings(BaseModel):
    """
    Внешний сервис (источник статусов посылок и хранилище истории).

    Таймауты задаются в секундах и ограничивают запрос целиком,
    а не только отдельные фазы соединения.
    """
    UPSTREAM_BASE_URL: str = "http://localhost:8000/api"
    UPSTREAM_API_TOKEN: str = ""
    STATUS_TIMEOUT: float = Field(default=1.5, gt=0)
    STORE_TIMEOUT: float = Field(default=2.0, gt=0)
    PACKAGE_STATUS_PATH: str = "/packages/{package_id}"
    LOCATION_STORE_PATH: str = "/location/store"
    PERSIST_ENABLED: bool = True

    @field_validator("UPSTREAM_BASE_URL")
    @classmethod
    def strip_slash(cls, v: str) -> str:
        return v.rstrip("/")


class RelaySettings(BaseModel):
    """Политика рассылки и имена каналов."""
    IN_TRANSIT_STATUS: str = "in transit"
    OFFICE_CHANNEL: str = "office.riders.locations"
    MERCHANT_CHANNEL_TEMPLATE: str = "merchant.package.{package_id}.location"
    CORS_ORIGINS: list[str] = Field(default_factory=lambda: ["*"])


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    system: SystemSettings = Field(default_factory=SystemSettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    upstream: UpstreamSettings = Field(default_factory=UpstreamSettings)
    relay: RelaySettings = Field(default_factory=RelaySettings)

    @classmethod
    def from_config_json(cls) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Хосты, порты и токены переопределяются из переменных окружения.
        """
        data = load_config_json()

        return cls(
            system=SystemSettings(
                PROJECT_NAME=data.get("PROJECT_NAME", "courier_relay"),
                VERSION=data.get("VERSION", "1.0.0"),
                DEBUG=data.get("DEBUG", False),
                LOG_LEVEL=os.getenv("LOG_LEVEL", data.get("LOG_LEVEL", "INFO")),
                ENVIRONMENT=os.getenv("ENVIRONMENT", data.get("ENVIRONMENT", "development")),
            ),
            deployment=DeploymentSettings(
                RELAY_HOST=os.getenv("RELAY_HOST", data.get("RELAY_HOST", "0.0.0.0")),
                RELAY_PORT=int(os.getenv("PORT", data.get("RELAY_PORT", 3000))),
            ),
            logging=LoggingSettings(
                LOG_LEVEL=os.getenv("LOG_LEVEL", data.get("LOG_LEVEL", "INFO")),
                LOG_TO_FILE=data.get("LOG_TO_FILE", False),
                LOG_FILE_PATH=data.get("LOG_FILE_PATH", "logs/relay.log"),
                LOG_FORMAT=data.get("LOG_FORMAT", "colored"),
                LOG_MAX_BYTES=data.get("LOG_MAX_BYTES", 10485760),
                LOG_BACKUP_COUNT=data.get("LOG_BACKUP_COUNT", 5),
            ),
            upstream=UpstreamSettings(
                UPSTREAM_BASE_URL=os.getenv(
                    "UPSTREAM_BASE_URL",
                    data.get("UPSTREAM_BASE_URL", "http://localhost:8000/api"),
                ),
                UPSTREAM_API_TOKEN=os.getenv("UPSTREAM_API_TOKEN", data.get("UPSTREAM_API_TOKEN", "")),
                STATUS_TIMEOUT=float(os.getenv("STATUS_TIMEOUT", data.get("STATUS_TIMEOUT", 1.5))),
                STORE_TIMEOUT=float(os.getenv("STORE_TIMEOUT", data.get("STORE_TIMEOUT", 2.0))),
                PACKAGE_STATUS_PATH=data.get("PACKAGE_STATUS_PATH", "/packages/{package_id}"),
                LOCATION_STORE_PATH=data.get("LOCATION_STORE_PATH", "/location/store"),
                PERSIST_ENABLED=data.get("PERSIST_ENABLED", True),
            ),
            relay=RelaySettings(
                IN_TRANSIT_STATUS=data.get("IN_TRANSIT_STATUS", "in transit"),
                OFFICE_CHANNEL=data.get("OFFICE_CHANNEL", "office.riders.locations"),
                MERCHANT_CHANNEL_TEMPLATE=data.get(
                    "MERCHANT_CHANNEL_TEMPLATE",
                    "merchant.package.{package_id}.location",
                ),
                CORS_ORIGINS=data.get("CORS_ORIGINS", ["*"]),
            ),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Перед чтением config.json подгружает .env из корня проекта.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
