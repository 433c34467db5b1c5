# src/services/location_relay/__init__.py
"""
Location Relay — рассылка геопозиций курьеров в реальном времени.

Обеспечивает:
- WebSocket соединения офиса, мерчантов и курьеров
- Кэш последней известной позиции каждого курьера
- Рассылку в канал посылки только пока доставка в пути
- Best-effort синхронизацию с внешним сервисом статусов и истории
"""
