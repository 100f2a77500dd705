# src/core/catalog/models.py
"""
Модели каталога: запросы на услугу, предложения помощников и профили.
"""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from src.common.constants import ServiceCategory
from src.common.utils import quantize_money, utc_now


class ServiceRequest(BaseModel):
    """Запрос на услугу (сопровождение в полёте или встреча в аэропорту)."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="UUID запроса")
    requester_id: int = Field(..., description="ID заказчика")
    category: ServiceCategory = Field(..., description="Категория услуги")

    # Маршрут
    origin_airport: str = Field(..., description="Аэропорт вылета / аэропорт встречи")
    destination_airport: Optional[str] = Field(None, description="Аэропорт прилёта (только сопровождение)")
    destination_address: Optional[str] = Field(None, description="Адрес доставки (только встреча)")
    flight_number: Optional[str] = Field(None, description="Номер рейса")

    # Время
    service_date: date = Field(..., description="Дата услуги")
    service_time: Optional[time] = Field(None, description="Время услуги")

    # Требования
    passenger_count: int = Field(1, ge=1, description="Требуемая вместимость")
    has_luggage: bool = Field(False, description="Есть багаж")
    special_needs: Optional[str] = Field(None, description="Особые потребности")

    # Оплата
    offered_amount: Decimal = Field(..., gt=0, description="Предлагаемая сумма")
    currency: str = Field("NZD", description="Валюта")

    # Состояние
    is_active: bool = Field(True, description="Запрос активен")
    is_matched: bool = Field(False, description="Запрос сопоставлен")
    matched_offer_id: Optional[str] = Field(None, description="ID выбранного предложения")
    matched_at: Optional[datetime] = Field(None, description="Время сопоставления")

    created_at: datetime = Field(default_factory=utc_now, description="Время создания")
    version: int = Field(1, ge=1, description="Версия строки")

    class Config:
        from_attributes = True

    @field_validator("origin_airport", "destination_airport")
    @classmethod
    def normalize_airport(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else v

    @field_validator("offered_amount")
    @classmethod
    def normalize_amount(cls, v: Decimal) -> Decimal:
        return quantize_money(v)

    @property
    def requested_at(self) -> datetime:
        """Момент оказания услуги (полночь, если время не указано)."""
        return datetime.combine(self.service_date, self.service_time or time.min)


class ServiceOffer(BaseModel):
    """Предложение помощника."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="UUID предложения")
    helper_id: int = Field(..., description="ID помощника")
    category: ServiceCategory = Field(..., description="Категория услуги")

    origin_airport: str = Field(..., description="Аэропорт вылета / аэропорт встречи")
    destination_airport: Optional[str] = Field(None, description="Аэропорт прилёта")

    window_start: datetime = Field(..., description="Начало окна доступности")
    window_end: datetime = Field(..., description="Конец окна доступности")

    capacity: int = Field(1, ge=1, description="Вместимость")
    supports_luggage: bool = Field(False, description="Может взять багаж")
    price: Decimal = Field(..., gt=0, description="Цена (для встречи: базовый тариф)")
    currency: str = Field("NZD", description="Валюта")

    languages: list[str] = Field(default_factory=list, description="Языки")
    services: list[str] = Field(default_factory=list, description="Дополнительные услуги")
    service_area: Optional[str] = Field(None, description="Район обслуживания")

    is_available: bool = Field(True, description="Предложение доступно")
    created_at: datetime = Field(default_factory=utc_now, description="Время создания")
    version: int = Field(1, ge=1, description="Версия строки")

    class Config:
        from_attributes = True

    @field_validator("origin_airport", "destination_airport")
    @classmethod
    def normalize_airport(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else v

    @field_validator("price")
    @classmethod
    def normalize_price(cls, v: Decimal) -> Decimal:
        return quantize_money(v)

    @field_validator("window_start", "window_end")
    @classmethod
    def local_wall_clock(cls, v: datetime) -> datetime:
        # Окно задаётся в местном времени аэропорта, как и дата запроса
        return v.replace(tzinfo=None) if v.tzinfo else v

    @field_validator("window_end")
    @classmethod
    def window_not_reversed(cls, v: datetime, info) -> datetime:
        start = info.data.get("window_start")
        if start is not None and v < start:
            raise ValueError("window_end раньше window_start")
        return v


class HelperProfile(BaseModel):
    """Профиль помощника, используемый при ранжировании."""

    user_id: int = Field(..., description="ID пользователя")
    rating: float = Field(0.0, ge=0.0, le=5.0, description="Средний рейтинг")
    completed_services: int = Field(0, ge=0, description="Выполнено услуг")
    is_verified: bool = Field(False, description="Подтверждённый пользователь")

    class Config:
        from_attributes = True


class OfferCriteria(BaseModel):
    """Предварительный фильтр предложений на стороне хранилища."""

    category: ServiceCategory
    origin_airport: str
    destination_airport: Optional[str] = None
    available_only: bool = True
    exclude_helper_id: Optional[int] = None
