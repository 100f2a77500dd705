#!/usr/bin/env python3
# main.py
"""
Главная точка входа Companion Hub.

Режимы:
    api      - Marketplace API (по умолчанию)
    migrate  - применить схему БД и выйти
    check    - проверить подключения к PostgreSQL, Redis и RabbitMQ
"""

from __future__ import annotations

import asyncio
import signal
import sys

from src.config import settings
from src.common.logger import setup_logging, log_info, log_error
from src.common.constants import TypeMsg
from src.infra.database import init_db, close_db
from src.infra.redis_client import init_redis, close_redis, get_redis
from src.infra.event_bus import init_event_bus, close_event_bus, get_event_bus


MODES = ("api", "migrate", "check")

# Глобальный флаг для graceful shutdown
_shutdown_event: asyncio.Event | None = None
_running_tasks: list[asyncio.Task] = []


def setup_signal_handlers() -> None:
    """Настраивает обработчики сигналов для graceful shutdown."""
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    def signal_handler(sig: int) -> None:
        """Обработчик сигналов SIGINT и SIGTERM."""
        if _shutdown_event and not _shutdown_event.is_set():
            print(f"\nПолучен сигнал остановки (sig={sig}), завершаем работу...")
            _shutdown_event.set()
            for task in _running_tasks:
                if not task.done():
                    task.cancel()

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
    except NotImplementedError:
        # Windows не поддерживает add_signal_handler
        signal.signal(signal.SIGINT, lambda s, f: signal_handler(s))
        signal.signal(signal.SIGTERM, lambda s, f: signal_handler(s))


async def init_infrastructure() -> None:
    """Инициализирует все подключения к инфраструктуре."""
    await log_info("Инициализация инфраструктуры...", type_msg=TypeMsg.INFO)

    await init_db()
    await init_redis()
    await init_event_bus()

    await log_info("Инфраструктура инициализирована", type_msg=TypeMsg.INFO)


async def close_infrastructure() -> None:
    """Закрывает все подключения."""
    await log_info("Закрытие подключений...", type_msg=TypeMsg.INFO)

    await close_event_bus()
    await close_redis()
    await close_db()

    await log_info("Подключения закрыты", type_msg=TypeMsg.INFO)


async def run_migrate() -> None:
    """Применяет migrations/init.sql."""
    await init_db()
    await close_db()


async def run_check() -> bool:
    """Проверяет доступность инфраструктуры."""
    await init_infrastructure()
    try:
        redis_ok = await get_redis().health_check()
        rabbit_ok = await get_event_bus().health_check()
        await log_info(f"Redis: {'OK' if redis_ok else 'FAIL'}, RabbitMQ: {'OK' if rabbit_ok else 'FAIL'}")
        return redis_ok and rabbit_ok
    finally:
        await close_infrastructure()


async def run_api() -> None:
    """
    Запускает Marketplace API.

    Подключения к инфраструктуре открывает lifespan приложения.
    """
    import uvicorn

    await log_info(
        f"Запуск Marketplace API на {settings.deployment.MARKETPLACE_HOST}:{settings.deployment.MARKETPLACE_PORT}...",
        type_msg=TypeMsg.INFO,
    )

    config = uvicorn.Config(
        "src.services.marketplace.app:app",
        host=settings.deployment.MARKETPLACE_HOST,
        port=settings.deployment.MARKETPLACE_PORT,
        reload=False,
        log_level="debug" if settings.system.DEBUG else "info",
    )

    server = uvicorn.Server(config)
    task = asyncio.create_task(server.serve())
    _running_tasks.append(task)
    try:
        await task
    except asyncio.CancelledError:
        await log_info("Marketplace API: graceful shutdown", type_msg=TypeMsg.DEBUG)
        await server.shutdown()


async def main(mode: str = "api") -> int:
    """
    Главная функция запуска.

    Args:
        mode: Режим запуска (api, migrate, check)

    Returns:
        Код завершения процесса
    """
    setup_logging()
    setup_signal_handlers()

    await log_info(
        f"{settings.system.PROJECT_NAME} v{settings.system.VERSION} - запуск в режиме '{mode}'",
        type_msg=TypeMsg.INFO,
    )

    try:
        if mode == "migrate":
            await run_migrate()
        elif mode == "check":
            return 0 if await run_check() else 1
        else:
            await run_api()
    except Exception as e:
        await log_error(f"Критическая ошибка в режиме '{mode}': {e}", exc_info=True)
        return 1

    return 0


def print_usage() -> None:
    """Выводит справку по использованию."""
    print("""
Использование: python main.py [режим]

Режимы:
    api        - Marketplace API (по умолчанию)
    migrate    - применить схему БД и выйти
    check      - проверить PostgreSQL, Redis и RabbitMQ

Примеры:
    python main.py
    python main.py migrate
    """)


if __name__ == "__main__":
    mode = "api"

    if len(sys.argv) > 1:
        arg = sys.argv[1].lower()
        if arg in ("--help", "-h"):
            print_usage()
            sys.exit(0)
        elif arg in MODES:
            mode = arg
        else:
            print(f"Ошибка: неизвестный режим '{arg}'")
            print_usage()
            sys.exit(1)

    try:
        sys.exit(asyncio.run(main(mode)))
    except KeyboardInterrupt:
        pass
