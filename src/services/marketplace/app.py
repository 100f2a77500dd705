# src/services/marketplace/app.py
"""
FastAPI приложение Marketplace API.

Endpoints:
- POST /api/v1/requests - опубликовать запрос
- GET /api/v1/requests/{id} - получить запрос
- POST /api/v1/requests/{id}/close - снять запрос с публикации
- GET /api/v1/requests/{id}/candidates - подобрать предложения
- POST /api/v1/requests/{id}/match - выбрать предложение
- POST /api/v1/requests/{id}/cancel - отменить сопоставление
- POST /api/v1/offers - опубликовать предложение
- GET /api/v1/offers/{id} - получить предложение
- PUT /api/v1/helpers/{user_id}/profile - обновить профиль помощника (админ)
- GET /api/v1/payments/{id} - получить платёж
- GET /api/v1/payments/{id}/escrow - получить эскроу
- POST /api/v1/payments/{id}/complete - подтвердить услугу и выплатить
- POST /api/v1/payments/{id}/disputes - открыть спор
- GET /api/v1/users/{user_id}/payments - история платежей
- GET /api/v1/disputes - список споров
- GET /api/v1/disputes/{id} - получить спор
- POST /api/v1/disputes/{id}/review - взять спор на рассмотрение (админ)
- POST /api/v1/disputes/{id}/resolve - вынести решение (админ)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Annotated, Any, Optional, TypeVar

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from src.common.constants import DisputeStatus
from src.common.errors import DomainError, ErrorKind
from src.common.identity import Actor
from src.common.logger import log_info, setup_logging
from src.common.result import OperationResult
from src.core.catalog.models import HelperProfile, ServiceOffer, ServiceRequest
from src.core.catalog.service import ListingService
from src.core.disputes.models import Dispute
from src.core.disputes.service import DisputeResolver
from src.core.escrow.models import Escrow, Payment
from src.core.escrow.service import EscrowLedger
from src.core.matching.coordinator import Match, MatchCoordinator
from src.core.matching.service import MatchCandidate, MatchingEngine
from src.services.marketplace.dependencies import (
    cleanup_dependencies,
    get_actor,
    get_dispute_resolver,
    get_escrow_ledger,
    get_listing_service,
    get_match_coordinator,
    get_matching_engine,
    init_dependencies,
)
from src.services.marketplace.schemas import (
    CommitMatchRequest,
    ErrorResponse,
    HealthStatus,
    HelperProfileUpdate,
    OpenDisputeRequest,
    ResolveDisputeRequest,
    ServiceOfferCreate,
    ServiceRequestCreate,
)


T = TypeVar("T")

SERVICE_NAME = "marketplace"

HTTP_STATUS_FOR_KIND = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.STATE_TRANSITION: 409,
    ErrorKind.EXTERNAL_SERVICE: 502,
}

ActorDep = Annotated[Actor, Depends(get_actor)]

router = APIRouter()


def respond(result: OperationResult[T]) -> T:
    """Значение операции или DomainError, который превратится в HTTP-ответ."""
    return result.unwrap()


def _default_currency(currency: Optional[str]) -> str:
    from src.config import settings
    return (currency or settings.payments.DEFAULT_CURRENCY).upper()


# === LIFESPAN ===

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Жизненный цикл приложения."""
    # Startup
    from src.core.catalog.repository import PostgresCatalogStore
    from src.infra.database import close_db, init_db
    from src.infra.event_bus import close_event_bus, get_event_bus, init_event_bus
    from src.infra.notification_gateway import EventBusNotificationGateway
    from src.infra.payment_processor import HttpPaymentProcessor
    from src.infra.redis_client import close_redis, get_redis, init_redis

    setup_logging()
    db = await init_db()
    await init_redis()
    await init_event_bus()

    processor = HttpPaymentProcessor.from_settings()
    init_dependencies(
        store=PostgresCatalogStore(db),
        processor=processor,
        gateway=EventBusNotificationGateway(get_event_bus()),
        redis=get_redis(),
    )
    await log_info("Marketplace API запущен")

    yield

    # Shutdown
    await cleanup_dependencies()
    await processor.close()
    await close_event_bus()
    await close_redis()
    await close_db()
    await log_info("Marketplace API остановлен")


# === APP ===

def create_app(with_infrastructure: bool = True) -> FastAPI:
    """
    Собирает приложение.

    Args:
        with_infrastructure: Подключать PostgreSQL, Redis и RabbitMQ в lifespan.
            Без инфраструктуры зависимости настраиваются через init_dependencies().
    """
    from src.config import settings

    application = FastAPI(
        title="Companion Hub Marketplace",
        description="Подбор помощников, эскроу и споры.",
        version=settings.system.VERSION,
        lifespan=lifespan if with_infrastructure else None,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    application.add_exception_handler(DomainError, domain_error_handler)
    application.include_router(router)
    return application


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """DomainError -> HTTP-ответ со статусом по виду ошибки."""
    body = ErrorResponse(
        error_code=exc.code.value,
        kind=exc.kind.value,
        message=exc.message,
        retryable=exc.retryable,
        details=exc.details or None,
    )
    return JSONResponse(
        status_code=HTTP_STATUS_FOR_KIND.get(exc.kind, 400),
        content=body.model_dump(mode="json"),
    )


# === ROUTES ===


@router.get("/health", response_model=HealthStatus, tags=["Health"])
async def health_check() -> HealthStatus:
    """Проверка здоровья сервиса."""
    from src.config import settings
    from src.infra.event_bus import get_event_bus
    from src.infra.redis_client import get_redis

    dependencies: dict[str, str] = {}
    redis = get_redis()
    if redis.is_connected:
        dependencies["redis"] = "healthy" if await redis.health_check() else "unhealthy"
    event_bus = get_event_bus()
    dependencies["rabbitmq"] = "healthy" if await event_bus.health_check() else "unhealthy"

    status = "healthy" if all(v == "healthy" for v in dependencies.values()) else "degraded"
    return HealthStatus(
        service=SERVICE_NAME,
        status=status,
        version=settings.system.VERSION,
        dependencies=dependencies,
    )


# === REQUESTS ===

@router.post("/api/v1/requests", response_model=ServiceRequest, status_code=201, tags=["Requests"])
async def publish_request(
    body: ServiceRequestCreate,
    actor: ActorDep,
    service: Annotated[ListingService, Depends(get_listing_service)],
) -> ServiceRequest:
    """Опубликовать запрос на услугу от имени текущего пользователя."""
    data: dict[str, Any] = body.model_dump()
    data["currency"] = _default_currency(body.currency)
    request = ServiceRequest(requester_id=actor.user_id, **data)
    return respond(await service.publish_request(request, actor))


@router.get("/api/v1/requests/{request_id}", response_model=ServiceRequest, tags=["Requests"])
async def get_request(
    request_id: str,
    service: Annotated[ListingService, Depends(get_listing_service)],
) -> ServiceRequest:
    return respond(await service.get_request(request_id))


@router.post("/api/v1/requests/{request_id}/close", response_model=ServiceRequest, tags=["Requests"])
async def close_request(
    request_id: str,
    actor: ActorDep,
    service: Annotated[ListingService, Depends(get_listing_service)],
) -> ServiceRequest:
    return respond(await service.close_request(request_id, actor))


@router.get(
    "/api/v1/requests/{request_id}/candidates",
    response_model=list[MatchCandidate],
    tags=["Matching"],
    summary="Подобрать предложения",
)
async def find_candidates(
    request_id: str,
    engine: Annotated[MatchingEngine, Depends(get_matching_engine)],
    max_results: Annotated[Optional[int], Query()] = None,
) -> list[MatchCandidate]:
    """
    Совместимые доступные предложения, лучшие первыми.

    Пустой список означает, что подходящих предложений сейчас нет.
    """
    return respond(await engine.find_scored_candidates(request_id, max_results))


@router.post("/api/v1/requests/{request_id}/match", response_model=Match, tags=["Matching"])
async def commit_match(
    request_id: str,
    body: CommitMatchRequest,
    actor: ActorDep,
    coordinator: Annotated[MatchCoordinator, Depends(get_match_coordinator)],
) -> Match:
    """
    Выбрать предложение для запроса.

    Фиксирует сопоставление и удерживает оплату в эскроу. 409 означает,
    что предложение или запрос успели измениться: обновите данные.
    """
    return respond(await coordinator.commit_match(request_id, body.offer_id, actor))


@router.post("/api/v1/requests/{request_id}/cancel", response_model=ServiceRequest, tags=["Matching"])
async def cancel_match(
    request_id: str,
    actor: ActorDep,
    coordinator: Annotated[MatchCoordinator, Depends(get_match_coordinator)],
) -> ServiceRequest:
    return respond(await coordinator.cancel_match(request_id, actor))


# === OFFERS ===

@router.post("/api/v1/offers", response_model=ServiceOffer, status_code=201, tags=["Offers"])
async def publish_offer(
    body: ServiceOfferCreate,
    actor: ActorDep,
    service: Annotated[ListingService, Depends(get_listing_service)],
) -> ServiceOffer:
    data: dict[str, Any] = body.model_dump()
    data["currency"] = _default_currency(body.currency)
    offer = ServiceOffer(helper_id=actor.user_id, **data)
    return respond(await service.publish_offer(offer, actor))


@router.get("/api/v1/offers/{offer_id}", response_model=ServiceOffer, tags=["Offers"])
async def get_offer(
    offer_id: str,
    service: Annotated[ListingService, Depends(get_listing_service)],
) -> ServiceOffer:
    return respond(await service.get_offer(offer_id))


@router.put("/api/v1/helpers/{user_id}/profile", response_model=HelperProfile, tags=["Offers"])
async def update_helper_profile(
    user_id: int,
    body: HelperProfileUpdate,
    actor: ActorDep,
    service: Annotated[ListingService, Depends(get_listing_service)],
) -> HelperProfile:
    profile = HelperProfile(user_id=user_id, **body.model_dump())
    return respond(await service.update_helper_profile(profile, actor))


# === PAYMENTS ===

@router.get("/api/v1/payments/{payment_id}", response_model=Payment, tags=["Payments"])
async def get_payment(
    payment_id: str,
    actor: ActorDep,
    ledger: Annotated[EscrowLedger, Depends(get_escrow_ledger)],
) -> Payment:
    return respond(await ledger.get_payment(payment_id, actor))


@router.get("/api/v1/payments/{payment_id}/escrow", response_model=Escrow, tags=["Payments"])
async def get_escrow(
    payment_id: str,
    actor: ActorDep,
    ledger: Annotated[EscrowLedger, Depends(get_escrow_ledger)],
) -> Escrow:
    return respond(await ledger.get_escrow(payment_id, actor))


@router.post("/api/v1/payments/{payment_id}/complete", response_model=Payment, tags=["Payments"])
async def mark_completed(
    payment_id: str,
    actor: ActorDep,
    ledger: Annotated[EscrowLedger, Depends(get_escrow_ledger)],
) -> Payment:
    """Подтвердить оказание услуги и выплатить средства помощнику."""
    return respond(await ledger.mark_completed(payment_id, actor))


@router.get("/api/v1/users/{user_id}/payments", response_model=list[Payment], tags=["Payments"])
async def payment_history(
    user_id: int,
    actor: ActorDep,
    ledger: Annotated[EscrowLedger, Depends(get_escrow_ledger)],
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> list[Payment]:
    return respond(await ledger.payment_history(user_id, actor, limit=limit))


# === DISPUTES ===

@router.post(
    "/api/v1/payments/{payment_id}/disputes",
    response_model=Dispute,
    status_code=201,
    tags=["Disputes"],
)
async def open_dispute(
    payment_id: str,
    body: OpenDisputeRequest,
    actor: ActorDep,
    resolver: Annotated[DisputeResolver, Depends(get_dispute_resolver)],
) -> Dispute:
    return respond(await resolver.open_dispute(payment_id, actor, body.reason, body.evidence_url))


@router.get("/api/v1/disputes", response_model=list[Dispute], tags=["Disputes"])
async def list_disputes(
    actor: ActorDep,
    resolver: Annotated[DisputeResolver, Depends(get_dispute_resolver)],
    status: Annotated[Optional[DisputeStatus], Query()] = None,
) -> list[Dispute]:
    return respond(await resolver.list_disputes(actor, status=status))


@router.get("/api/v1/disputes/{dispute_id}", response_model=Dispute, tags=["Disputes"])
async def get_dispute(
    dispute_id: str,
    actor: ActorDep,
    resolver: Annotated[DisputeResolver, Depends(get_dispute_resolver)],
) -> Dispute:
    return respond(await resolver.get_dispute(dispute_id, actor))


@router.post("/api/v1/disputes/{dispute_id}/review", response_model=Dispute, tags=["Disputes"])
async def begin_review(
    dispute_id: str,
    actor: ActorDep,
    resolver: Annotated[DisputeResolver, Depends(get_dispute_resolver)],
) -> Dispute:
    return respond(await resolver.begin_review(dispute_id, actor))


@router.post("/api/v1/disputes/{dispute_id}/resolve", response_model=Dispute, tags=["Disputes"])
async def resolve_dispute(
    dispute_id: str,
    body: ResolveDisputeRequest,
    actor: ActorDep,
    resolver: Annotated[DisputeResolver, Depends(get_dispute_resolver)],
) -> Dispute:
    """Вынести решение: resolved/rejected выплачивают помощнику, refunded возвращает заказчику."""
    return respond(await resolver.resolve(dispute_id, body.outcome, actor, notes=body.notes))


app = create_app()
