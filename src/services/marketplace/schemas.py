# src/services/marketplace/schemas.py
"""
Модели запросов и ответов HTTP API.
"""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from src.common.constants import DisputeOutcome, ServiceCategory


# === ЗАПРОСЫ ===

class ServiceRequestCreate(BaseModel):
    """Публикация запроса. Заказчик берётся из заголовков."""
    category: ServiceCategory
    origin_airport: str
    destination_airport: Optional[str] = None
    destination_address: Optional[str] = None
    flight_number: Optional[str] = None
    service_date: date
    service_time: Optional[time] = None
    passenger_count: int = Field(1, ge=1)
    has_luggage: bool = False
    special_needs: Optional[str] = None
    offered_amount: Decimal = Field(..., gt=0)
    currency: Optional[str] = None


class ServiceOfferCreate(BaseModel):
    """Публикация предложения. Помощник берётся из заголовков."""
    category: ServiceCategory
    origin_airport: str
    destination_airport: Optional[str] = None
    window_start: datetime
    window_end: datetime
    capacity: int = Field(1, ge=1)
    supports_luggage: bool = False
    price: Decimal = Field(..., gt=0)
    currency: Optional[str] = None
    languages: list[str] = Field(default_factory=list)
    services: list[str] = Field(default_factory=list)
    service_area: Optional[str] = None

    @field_validator("window_end")
    @classmethod
    def window_not_reversed(cls, v: datetime, info) -> datetime:
        start = info.data.get("window_start")
        if start is not None and v.replace(tzinfo=None) < start.replace(tzinfo=None):
            raise ValueError("window_end раньше window_start")
        return v


class HelperProfileUpdate(BaseModel):
    rating: float = Field(0.0, ge=0.0, le=5.0)
    completed_services: int = Field(0, ge=0)
    is_verified: bool = False


# === СОПОСТАВЛЕНИЕ ===

class CommitMatchRequest(BaseModel):
    offer_id: str = Field(..., min_length=1)


# === СПОРЫ ===

class OpenDisputeRequest(BaseModel):
    reason: str = Field(..., min_length=1, description="Причина спора")
    evidence_url: Optional[str] = Field(None, description="Ссылка на доказательства")


class ResolveDisputeRequest(BaseModel):
    outcome: DisputeOutcome
    notes: Optional[str] = None


# === ОБЩЕЕ ===

class ErrorResponse(BaseModel):
    """Стандартный ответ с ошибкой."""
    error_code: str
    kind: str
    message: str
    retryable: bool = False
    details: dict[str, Any] | None = None


class HealthStatus(BaseModel):
    """Статус здоровья сервиса."""
    service: str
    status: str = "healthy"  # healthy, degraded
    version: str | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)
