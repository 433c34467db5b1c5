# src/shared/models/__init__.py
"""
Pydantic-модели релея: геопозиция, запросы подписки и служебные ответы.
"""

from src.shared.models.location import (
    CourierPosition,
    LocationAccepted,
    MerchantJoinRequest,
    MerchantLeaveRequest,
    RiderJoinRequest,
    utc_now_iso,
)
from src.shared.models.common import (
    ErrorResponse,
    HealthStatus,
    RelayStats,
)

__all__ = [
    "CourierPosition",
    "LocationAccepted",
    "MerchantJoinRequest",
    "MerchantLeaveRequest",
    "RiderJoinRequest",
    "utc_now_iso",
    "ErrorResponse",
    "HealthStatus",
    "RelayStats",
]
