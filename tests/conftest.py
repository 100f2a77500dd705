# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import asyncio
import json
import os
from datetime import date, datetime, time
from decimal import Decimal
from pathlib import Path
from typing import Any, Awaitable, Callable
from unittest.mock import AsyncMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("REDIS_PASSWORD", "")
os.environ.setdefault("PROCESSOR_API_KEY", "test_processor_key")

from src.common.constants import ServiceCategory, UserRole
from src.common.identity import Actor
from src.core.catalog.memory import InMemoryCatalogStore
from src.core.catalog.models import HelperProfile, ServiceOffer, ServiceRequest
from src.core.catalog.service import ListingService
from src.core.disputes.service import DisputeResolver
from src.core.escrow.service import EscrowLedger
from src.core.matching.coordinator import Match, MatchCoordinator
from src.core.matching.service import MatchingEngine
from src.core.notifications.service import NotificationDispatcher


REQUESTER_ID = 1001
HELPER_ID = 2001
OTHER_HELPER_ID = 2002
STRANGER_ID = 3001
ADMIN_ID = 9001

SERVICE_DATE = date(2026, 12, 1)


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "PROJECT_NAME": "companion_hub_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "ENVIRONMENT": "test",
        "MARKETPLACE_HOST": "127.0.0.1",
        "MARKETPLACE_PORT": 8190,
        "LOG_LEVEL": "DEBUG",
        "LOG_TO_FILE": False,
        "LOG_FILE_PATH": "logs/test.log",
        "LOG_FORMAT": "colored",
        "DB_HOST": "localhost",
        "DB_PORT": 5432,
        "DB_NAME": "companion_hub_test",
        "DB_USER": "postgres",
        "REDIS_HOST": "localhost",
        "REDIS_PORT": 6379,
        "REDIS_DB": 1,
        "REDIS_NAMESPACE": "hub_test",
        "PROFILE_TTL": 60,
        "RABBITMQ_HOST": "localhost",
        "RABBITMQ_EXCHANGE": "hub.test",
        "DEFAULT_CURRENCY": "NZD",
        "PLATFORM_FEE_PERCENT": 10.0,
        "HOLD_TIMEOUT_SECONDS": 2.0,
        "PROCESSOR_URL": "http://processor.test",
        "DEFAULT_MAX_RESULTS": 5,
        "MAX_RESULTS_LIMIT": 20,
        "SUPPORTED_AIRPORTS": ["AKL", "PVG"],
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def mock_redis() -> AsyncMock:
    """Мок клиента Redis."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.get_models = AsyncMock(return_value={})
    redis.set_model = AsyncMock(return_value=True)
    return redis


@pytest.fixture
def mock_event_bus() -> AsyncMock:
    """Мок шины событий."""
    event_bus = AsyncMock()
    event_bus.publish = AsyncMock(return_value=None)
    event_bus.is_connected = True
    return event_bus


class FakePaymentProcessor:
    """Процессор в памяти: считает вызовы, умеет отказывать и тормозить."""

    def __init__(self) -> None:
        self.holds: list[dict[str, Any]] = []
        self.released: list[str] = []
        self.refunded: list[str] = []
        self.hold_error: Exception | None = None
        self.release_error: Exception | None = None
        self.refund_error: Exception | None = None
        self.hold_delay = 0.0
        self.release_delay = 0.0

    async def authorize_hold(
        self,
        amount: Decimal,
        currency: str,
        payer_id: int,
        payee_id: int,
        idempotency_key: str,
    ) -> str:
        if self.hold_delay:
            await asyncio.sleep(self.hold_delay)
        if self.hold_error is not None:
            raise self.hold_error
        reference = f"hold-{len(self.holds) + 1}"
        self.holds.append({
            "reference": reference,
            "amount": amount,
            "currency": currency,
            "payer_id": payer_id,
            "payee_id": payee_id,
            "idempotency_key": idempotency_key,
        })
        return reference

    async def release(self, reference: str) -> None:
        if self.release_delay:
            await asyncio.sleep(self.release_delay)
        if self.release_error is not None:
            raise self.release_error
        self.released.append(reference)

    async def refund(self, reference: str) -> None:
        if self.refund_error is not None:
            raise self.refund_error
        self.refunded.append(reference)


class RecordingGateway:
    """Шлюз уведомлений, запоминающий отправки."""

    def __init__(self) -> None:
        self.sent: list[tuple[int, str, dict[str, Any]]] = []
        self.error: Exception | None = None

    async def notify(self, user_id: int, event_type: str, payload: dict[str, Any]) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append((user_id, event_type, payload))

    def events_for(self, user_id: int) -> list[str]:
        return [event for uid, event, _ in self.sent if uid == user_id]


# =============================================================================
# ФИКСТУРЫ СЕРВИСОВ
# =============================================================================

@pytest.fixture
def store() -> InMemoryCatalogStore:
    return InMemoryCatalogStore()


@pytest.fixture
def processor() -> FakePaymentProcessor:
    return FakePaymentProcessor()


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def dispatcher(gateway: RecordingGateway) -> NotificationDispatcher:
    return NotificationDispatcher(gateway, send_timeout=1.0)


@pytest.fixture
def ledger(
    store: InMemoryCatalogStore,
    processor: FakePaymentProcessor,
    dispatcher: NotificationDispatcher,
) -> EscrowLedger:
    return EscrowLedger(store, processor, dispatcher, fee_percent=15.0, hold_timeout=1.0)


@pytest.fixture
def engine(store: InMemoryCatalogStore) -> MatchingEngine:
    return MatchingEngine(store)


@pytest.fixture
def coordinator(
    store: InMemoryCatalogStore,
    ledger: EscrowLedger,
    dispatcher: NotificationDispatcher,
) -> MatchCoordinator:
    return MatchCoordinator(store, ledger, dispatcher)


@pytest.fixture
def resolver(
    store: InMemoryCatalogStore,
    ledger: EscrowLedger,
    dispatcher: NotificationDispatcher,
) -> DisputeResolver:
    return DisputeResolver(store, ledger, dispatcher)


@pytest.fixture
def listing(store: InMemoryCatalogStore) -> ListingService:
    return ListingService(store)


# =============================================================================
# УЧАСТНИКИ
# =============================================================================

@pytest.fixture
def requester() -> Actor:
    return Actor(user_id=REQUESTER_ID)


@pytest.fixture
def helper() -> Actor:
    return Actor(user_id=HELPER_ID)


@pytest.fixture
def other_helper() -> Actor:
    return Actor(user_id=OTHER_HELPER_ID)


@pytest.fixture
def stranger() -> Actor:
    return Actor(user_id=STRANGER_ID)


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id=ADMIN_ID, role=UserRole.ADMIN)


# =============================================================================
# ФИКСТУРЫ МОДЕЛЕЙ
# =============================================================================

@pytest.fixture
def make_request() -> Callable[..., ServiceRequest]:
    """Фабрика запроса на сопровождение AKL -> PVG."""

    def _make(**overrides: Any) -> ServiceRequest:
        data: dict[str, Any] = {
            "requester_id": REQUESTER_ID,
            "category": ServiceCategory.FLIGHT_COMPANION,
            "origin_airport": "AKL",
            "destination_airport": "PVG",
            "flight_number": "NZ289",
            "service_date": SERVICE_DATE,
            "service_time": time(10, 0),
            "passenger_count": 1,
            "has_luggage": False,
            "offered_amount": Decimal("120.00"),
            "currency": "NZD",
        }
        data.update(overrides)
        return ServiceRequest(**data)

    return _make


@pytest.fixture
def make_offer() -> Callable[..., ServiceOffer]:
    """Фабрика предложения, совместимого с запросом по умолчанию."""

    def _make(**overrides: Any) -> ServiceOffer:
        data: dict[str, Any] = {
            "helper_id": HELPER_ID,
            "category": ServiceCategory.FLIGHT_COMPANION,
            "origin_airport": "AKL",
            "destination_airport": "PVG",
            "window_start": datetime.combine(SERVICE_DATE, time(6, 0)),
            "window_end": datetime.combine(SERVICE_DATE, time(18, 0)),
            "capacity": 2,
            "supports_luggage": True,
            "price": Decimal("100.00"),
            "currency": "NZD",
            "languages": ["en", "zh"],
        }
        data.update(overrides)
        return ServiceOffer(**data)

    return _make


@pytest.fixture
def matched(
    store: InMemoryCatalogStore,
    coordinator: MatchCoordinator,
    requester: Actor,
    make_request: Callable[..., ServiceRequest],
    make_offer: Callable[..., ServiceOffer],
) -> Callable[..., Awaitable[Match]]:
    """Создаёт запрос и предложение и фиксирует сопоставление с удержанием."""

    async def _matched(**request_overrides: Any) -> Match:
        request = await store.add_request(make_request(**request_overrides))
        offer = await store.add_offer(make_offer())
        result = await coordinator.commit_match(request.id, offer.id, requester)
        return result.unwrap()

    return _matched


@pytest.fixture
def helper_profiles(store: InMemoryCatalogStore) -> Callable[..., Awaitable[None]]:
    async def _seed(*profiles: HelperProfile) -> None:
        for profile in profiles:
            await store.upsert_helper_profile(profile)

    return _seed
