# src/services/marketplace/dependencies.py
"""
Dependency Injection для Marketplace API.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated, Optional

from fastapi import Header

from src.common.constants import UserRole
from src.common.identity import Actor

if TYPE_CHECKING:
    from src.core.catalog.service import ListingService
    from src.core.catalog.store import CatalogStore
    from src.core.disputes.service import DisputeResolver
    from src.core.escrow.processor import PaymentProcessor
    from src.core.escrow.service import EscrowLedger
    from src.core.matching.coordinator import MatchCoordinator
    from src.core.matching.profiles import HelperDirectory
    from src.core.matching.service import MatchingEngine
    from src.core.notifications.gateway import NotificationGateway
    from src.core.notifications.service import NotificationDispatcher
    from src.infra.redis_client import RedisClient


# Синглтоны для инфраструктуры
_store: "CatalogStore | None" = None
_processor: "PaymentProcessor | None" = None
_dispatcher: "NotificationDispatcher | None" = None
_profiles: "HelperDirectory | None" = None

# Синглтоны для сервисов
_listing_service: "ListingService | None" = None
_matching_engine: "MatchingEngine | None" = None
_escrow_ledger: "EscrowLedger | None" = None
_match_coordinator: "MatchCoordinator | None" = None
_dispute_resolver: "DisputeResolver | None" = None


def init_dependencies(
    store: "CatalogStore",
    processor: "PaymentProcessor",
    gateway: "NotificationGateway",
    redis: Optional["RedisClient"] = None,
) -> None:
    """Инициализировать зависимости при старте приложения."""
    global _store, _processor, _dispatcher, _profiles
    from src.core.matching.profiles import HelperDirectory
    from src.core.notifications.service import NotificationDispatcher

    _store = store
    _processor = processor
    _dispatcher = NotificationDispatcher(gateway)
    _profiles = HelperDirectory(store, redis=redis)


def get_store() -> "CatalogStore":
    """Получить хранилище каталога."""
    if _store is None:
        raise RuntimeError("Хранилище не инициализировано. Вызовите init_dependencies()")
    return _store


def get_processor() -> "PaymentProcessor":
    """Получить платёжный процессор."""
    if _processor is None:
        raise RuntimeError("Процессор не инициализирован. Вызовите init_dependencies()")
    return _processor


def get_notification_dispatcher() -> "NotificationDispatcher":
    """Получить диспетчер уведомлений."""
    if _dispatcher is None:
        raise RuntimeError("Диспетчер не инициализирован. Вызовите init_dependencies()")
    return _dispatcher


def get_helper_directory() -> "HelperDirectory":
    if _profiles is None:
        raise RuntimeError("Справочник профилей не инициализирован. Вызовите init_dependencies()")
    return _profiles


def get_listing_service() -> "ListingService":
    """Получить сервис объявлений."""
    global _listing_service

    if _listing_service is None:
        from src.core.catalog.service import ListingService
        _listing_service = ListingService(store=get_store(), profiles=get_helper_directory())

    return _listing_service


def get_matching_engine() -> "MatchingEngine":
    """Получить движок подбора."""
    global _matching_engine

    if _matching_engine is None:
        from src.core.matching.service import MatchingEngine
        _matching_engine = MatchingEngine(store=get_store(), profiles=get_helper_directory())

    return _matching_engine


def get_escrow_ledger() -> "EscrowLedger":
    """Получить реестр эскроу."""
    global _escrow_ledger

    if _escrow_ledger is None:
        from src.core.escrow.service import EscrowLedger
        _escrow_ledger = EscrowLedger(
            store=get_store(),
            processor=get_processor(),
            notifications=get_notification_dispatcher(),
        )

    return _escrow_ledger


def get_match_coordinator() -> "MatchCoordinator":
    """Получить координатор сопоставлений."""
    global _match_coordinator

    if _match_coordinator is None:
        from src.core.matching.coordinator import MatchCoordinator
        _match_coordinator = MatchCoordinator(
            store=get_store(),
            ledger=get_escrow_ledger(),
            notifications=get_notification_dispatcher(),
        )

    return _match_coordinator


def get_dispute_resolver() -> "DisputeResolver":
    """Получить сервис споров."""
    global _dispute_resolver

    if _dispute_resolver is None:
        from src.core.disputes.service import DisputeResolver
        _dispute_resolver = DisputeResolver(
            store=get_store(),
            ledger=get_escrow_ledger(),
            notifications=get_notification_dispatcher(),
        )

    return _dispute_resolver


def get_actor(
    x_user_id: Annotated[int, Header(description="ID пользователя, подтверждённый шлюзом")],
    x_user_role: Annotated[UserRole, Header(description="Роль пользователя")] = UserRole.USER,
) -> Actor:
    """Участник операции из заголовков аутентифицирующего шлюза."""
    return Actor(user_id=x_user_id, role=x_user_role)


async def cleanup_dependencies() -> None:
    """Очистить ресурсы при остановке приложения."""
    global _store, _processor, _dispatcher, _profiles
    global _listing_service, _matching_engine, _escrow_ledger, _match_coordinator, _dispute_resolver

    if _dispatcher is not None:
        await _dispatcher.drain()

    _listing_service = None
    _matching_engine = None
    _escrow_ledger = None
    _match_coordinator = None
    _dispute_resolver = None
    _store = None
    _processor = None
    _dispatcher = None
    _profiles = None
