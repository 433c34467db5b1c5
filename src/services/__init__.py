# src/services/__init__.py
"""
Сервисы приложения.

- location_relay: WebSocket релей геопозиций курьеров (офис + мерчанты)
  с синхронизацией статусов и истории через внешний HTTP сервис
"""

__all__: list[str] = []
