#!/usr/bin/env python3
"""
Entrypoint для Location Relay.

Запуск:
    python entrypoints/entrypoint_location_relay.py

Порт по умолчанию: 3000 (переопределяется переменной PORT)
"""

import sys
from pathlib import Path

# Корень проекта в путь, чтобы импортировался пакет src
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

import uvicorn

from src.config import settings


def main() -> None:
    """Запустить Location Relay."""
    uvicorn.run(
        "src.services.location_relay.app:app",
        host=settings.deployment.RELAY_HOST,
        port=settings.deployment.RELAY_PORT,
        reload=settings.system.DEBUG,
        log_level=settings.system.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
