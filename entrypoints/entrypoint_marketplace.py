#!/usr/bin/env python3
"""
Entrypoint для Marketplace API.

Запуск:
    python entrypoints/entrypoint_marketplace.py

Порт по умолчанию: 8090
"""

import sys
from pathlib import Path

# Добавляем корневую директорию проекта в путь
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

import uvicorn

from src.config import settings


def main() -> None:
    """Запустить Marketplace API."""
    uvicorn.run(
        "src.services.marketplace.app:app",
        host=settings.deployment.MARKETPLACE_HOST,
        port=settings.deployment.MARKETPLACE_PORT,
        workers=settings.deployment.MARKETPLACE_WORKERS,
        log_level=settings.logging.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
