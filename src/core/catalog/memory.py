# src/core/catalog/memory.py
"""
Хранилище каталога в памяти процесса.

Используется в режиме разработки и в тестах. Соблюдает тот же контракт
условной записи, что и PostgreSQL-реализация.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Sequence

from pydantic import BaseModel

from src.common.constants import DisputeStatus, EntityKind
from src.common.errors import ConflictError, ErrorCode
from src.core.catalog.models import HelperProfile, OfferCriteria, ServiceOffer, ServiceRequest
from src.core.catalog.operations import ConditionalUpdate, Insert, WriteOperation
from src.core.catalog.store import CatalogStore
from src.core.disputes.models import Dispute
from src.core.escrow.models import Escrow, Payment


class InMemoryCatalogStore(CatalogStore):
    """Хранилище на словарях с атомарным пакетным compare-and-swap."""

    def __init__(self) -> None:
        self._rows: dict[EntityKind, dict[str, BaseModel]] = {kind: {} for kind in EntityKind}
        self._profiles: dict[int, HelperProfile] = {}
        self._write_lock = asyncio.Lock()

    def _get(self, kind: EntityKind, entity_id: str) -> Optional[BaseModel]:
        row = self._rows[kind].get(entity_id)
        return row.model_copy(deep=True) if row is not None else None

    def _all(self, kind: EntityKind) -> list:
        return [row.model_copy(deep=True) for row in self._rows[kind].values()]

    # === ЧТЕНИЕ ===

    async def get_request(self, request_id: str) -> Optional[ServiceRequest]:
        return self._get(EntityKind.REQUEST, request_id)  # type: ignore[return-value]

    async def get_offer(self, offer_id: str) -> Optional[ServiceOffer]:
        return self._get(EntityKind.OFFER, offer_id)  # type: ignore[return-value]

    async def find_offers(self, criteria: OfferCriteria) -> list[ServiceOffer]:
        offers: list[ServiceOffer] = self._all(EntityKind.OFFER)
        return [
            offer
            for offer in offers
            if offer.category == criteria.category
            and offer.origin_airport == criteria.origin_airport
            and (
                criteria.destination_airport is None
                or offer.destination_airport == criteria.destination_airport
            )
            and (offer.is_available or not criteria.available_only)
            and offer.helper_id != criteria.exclude_helper_id
        ]

    async def get_helper_profiles(self, user_ids: Sequence[int]) -> dict[int, HelperProfile]:
        return {
            user_id: self._profiles[user_id].model_copy()
            for user_id in user_ids
            if user_id in self._profiles
        }

    async def upsert_helper_profile(self, profile: HelperProfile) -> None:
        self._profiles[profile.user_id] = profile.model_copy()

    async def get_payment(self, payment_id: str) -> Optional[Payment]:
        return self._get(EntityKind.PAYMENT, payment_id)  # type: ignore[return-value]

    async def get_payment_for_match(self, request_id: str, offer_id: str) -> Optional[Payment]:
        payments: list[Payment] = [
            p for p in self._all(EntityKind.PAYMENT)
            if p.request_id == request_id and p.offer_id == offer_id
        ]
        if not payments:
            return None
        return max(payments, key=lambda p: p.created_at)

    async def get_escrow_for_payment(self, payment_id: str) -> Optional[Escrow]:
        for escrow in self._all(EntityKind.ESCROW):
            if escrow.payment_id == payment_id:
                return escrow
        return None

    async def list_payments_for_user(self, user_id: int, limit: int = 50) -> list[Payment]:
        payments: list[Payment] = [p for p in self._all(EntityKind.PAYMENT) if p.involves(user_id)]
        payments.sort(key=lambda p: p.created_at, reverse=True)
        return payments[:limit]

    async def get_dispute(self, dispute_id: str) -> Optional[Dispute]:
        return self._get(EntityKind.DISPUTE, dispute_id)  # type: ignore[return-value]

    async def get_active_dispute(self, payment_id: str) -> Optional[Dispute]:
        for dispute in self._all(EntityKind.DISPUTE):
            if dispute.payment_id == payment_id and dispute.is_active:
                return dispute
        return None

    async def list_disputes(
        self,
        raised_by: Optional[int] = None,
        status: Optional[DisputeStatus] = None,
    ) -> list[Dispute]:
        disputes: list[Dispute] = [
            d for d in self._all(EntityKind.DISPUTE)
            if (raised_by is None or d.raised_by_user_id == raised_by)
            and (status is None or d.status == status)
        ]
        disputes.sort(key=lambda d: d.created_at, reverse=True)
        return disputes

    # === ЗАПИСЬ ===

    async def apply(self, operations: Sequence[WriteOperation]) -> list[BaseModel]:
        async with self._write_lock:
            # Промежуточное состояние пакета: операции над одной строкой
            # видят результат предыдущих операций того же пакета
            staged: dict[tuple[EntityKind, str], BaseModel] = {}
            results: list[BaseModel] = []

            for op in operations:
                if isinstance(op, Insert):
                    entity_id = op.entity.id  # type: ignore[attr-defined]
                    key = (op.kind, entity_id)
                    if key in staged or entity_id in self._rows[op.kind]:
                        raise ConflictError(
                            f"{op.kind.value} {entity_id} уже существует",
                            code=ErrorCode.CONCURRENT_UPDATE,
                            details={"kind": op.kind.value, "id": entity_id},
                        )
                    row = op.entity.model_copy(deep=True)
                elif isinstance(op, ConditionalUpdate):
                    key = (op.kind, op.entity_id)
                    current = staged.get(key) or self._rows[op.kind].get(op.entity_id)
                    if current is None or current.version != op.expected_version:  # type: ignore[attr-defined]
                        raise ConflictError(
                            f"{op.kind.value} {op.entity_id} изменён конкурентно",
                            code=ErrorCode.CONCURRENT_UPDATE,
                            details={
                                "kind": op.kind.value,
                                "id": op.entity_id,
                                "expected_version": op.expected_version,
                            },
                        )
                    row = current.model_copy(
                        update={**op.changes, "version": op.expected_version + 1},
                        deep=True,
                    )
                else:
                    raise TypeError(f"Неизвестная операция записи: {op!r}")

                staged[key] = row
                results.append(row)

            for (kind, entity_id), row in staged.items():
                self._rows[kind][entity_id] = row

            return [row.model_copy(deep=True) for row in results]
