# src/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ClientEvent(str, Enum):
    """События, которые клиент присылает по WebSocket."""
    JOIN_OFFICE = "join:office"
    JOIN_MERCHANT = "join:merchant"
    JOIN_RIDER = "join:rider"
    LEAVE_MERCHANT = "leave:merchant"
    LOCATION_UPDATE = "location:update"
    PING = "ping"


class RelayEvent(str, Enum):
    """События, которые релей отправляет клиентам."""
    CONNECTED = "connected"
    JOINED = "joined"
    LEFT = "left"
    LOCATION_UPDATE = "location:update"
    LOCATION_ALL = "location:all"
    LOCATION_RECEIVED = "location:received"
    PONG = "pong"
    ERROR = "error"


# Имя корневого логгера сервиса
LOGGER_NAME = "courier_relay"
