# src/core/matching/compatibility.py
"""
Жёсткие ограничения совместимости запроса и предложения.

Одни и те же проверки используются движком подбора и координатором
при фиксации сопоставления.
"""

from __future__ import annotations

from src.common.constants import ServiceCategory
from src.core.catalog.models import ServiceOffer, ServiceRequest


# Имена нарушенных ограничений (попадают в details ошибки)
CATEGORY = "category"
ROUTE = "route"
TIME_WINDOW = "time_window"
CAPACITY = "capacity"
LUGGAGE = "luggage"
SELF_MATCH = "self_match"


def _route_matches(request: ServiceRequest, offer: ServiceOffer) -> bool:
    if request.origin_airport != offer.origin_airport:
        return False
    if request.category == ServiceCategory.FLIGHT_COMPANION:
        return request.destination_airport == offer.destination_airport
    # Встреча привязана к одному аэропорту
    return True


def _window_covers(request: ServiceRequest, offer: ServiceOffer) -> bool:
    if request.service_time is not None:
        return offer.window_start <= request.requested_at <= offer.window_end
    return offer.window_start.date() <= request.service_date <= offer.window_end.date()


def broken_constraints(request: ServiceRequest, offer: ServiceOffer) -> list[str]:
    """
    Проверяет предложение против запроса.

    Доступность предложения сюда не входит: это состояние, а не
    совместимость.

    Returns:
        Список нарушенных ограничений, пустой если предложение подходит
    """
    broken: list[str] = []

    if offer.category != request.category:
        broken.append(CATEGORY)
    if not _route_matches(request, offer):
        broken.append(ROUTE)
    if not _window_covers(request, offer):
        broken.append(TIME_WINDOW)
    if offer.capacity < request.passenger_count:
        broken.append(CAPACITY)
    if request.has_luggage and not offer.supports_luggage:
        broken.append(LUGGAGE)
    if offer.helper_id == request.requester_id:
        broken.append(SELF_MATCH)

    return broken


def is_compatible(request: ServiceRequest, offer: ServiceOffer) -> bool:
    return not broken_constraints(request, offer)
