# src/core/catalog/repository.py
"""
Хранилище каталога в PostgreSQL.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional, Sequence

import asyncpg
from pydantic import BaseModel

from src.common.constants import DisputeStatus, EntityKind
from src.common.errors import ConflictError, ErrorCode
from src.common.logger import log_debug, log_error
from src.core.catalog.models import HelperProfile, OfferCriteria, ServiceOffer, ServiceRequest
from src.core.catalog.operations import ConditionalUpdate, Insert, WriteOperation
from src.core.catalog.store import ENTITY_MODELS, CatalogStore
from src.core.disputes.models import Dispute
from src.core.escrow.models import Escrow, Payment
from src.infra.database import DatabaseManager


TABLES: dict[EntityKind, str] = {
    EntityKind.REQUEST: "service_requests",
    EntityKind.OFFER: "service_offers",
    EntityKind.PAYMENT: "payments",
    EntityKind.ESCROW: "escrows",
    EntityKind.DISPUTE: "disputes",
}


def _to_db(value: Any) -> Any:
    """Приводит значение поля модели к типу, понятному asyncpg."""
    if isinstance(value, Enum):
        return value.value
    return value


def _row_to_model(kind: EntityKind, row: asyncpg.Record) -> BaseModel:
    return ENTITY_MODELS[kind].model_validate(dict(row))


class PostgresCatalogStore(CatalogStore):
    """Хранилище каталога поверх asyncpg."""

    def __init__(self, db: DatabaseManager) -> None:
        """
        Args:
            db: Менеджер базы данных (Dependency Injection)
        """
        self._db = db

    async def _fetch_one(self, kind: EntityKind, where: str, *args: Any) -> Optional[BaseModel]:
        row = await self._db.fetchrow(f"SELECT * FROM {TABLES[kind]} WHERE {where}", *args)
        return _row_to_model(kind, row) if row is not None else None

    # === ЗАПРОСЫ И ПРЕДЛОЖЕНИЯ ===

    async def get_request(self, request_id: str) -> Optional[ServiceRequest]:
        return await self._fetch_one(EntityKind.REQUEST, "id = $1", request_id)  # type: ignore[return-value]

    async def get_offer(self, offer_id: str) -> Optional[ServiceOffer]:
        return await self._fetch_one(EntityKind.OFFER, "id = $1", offer_id)  # type: ignore[return-value]

    async def find_offers(self, criteria: OfferCriteria) -> list[ServiceOffer]:
        rows = await self._db.fetch(
            """
            SELECT *
            FROM service_offers
            WHERE category = $1
              AND origin_airport = $2
              AND ($3::text IS NULL OR destination_airport = $3)
              AND (NOT $4::boolean OR is_available)
              AND ($5::bigint IS NULL OR helper_id <> $5)
            ORDER BY created_at, id
            """,
            criteria.category.value,
            criteria.origin_airport,
            criteria.destination_airport,
            criteria.available_only,
            criteria.exclude_helper_id,
        )
        return [ServiceOffer.model_validate(dict(row)) for row in rows]

    async def get_helper_profiles(self, user_ids: Sequence[int]) -> dict[int, HelperProfile]:
        if not user_ids:
            return {}
        rows = await self._db.fetch(
            """
            SELECT user_id, rating, completed_services, is_verified
            FROM helper_profiles
            WHERE user_id = ANY($1::bigint[])
            """,
            list(user_ids),
        )
        return {row["user_id"]: HelperProfile.model_validate(dict(row)) for row in rows}

    async def upsert_helper_profile(self, profile: HelperProfile) -> None:
        await self._db.execute(
            """
            INSERT INTO helper_profiles (user_id, rating, completed_services, is_verified)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (user_id) DO UPDATE
               SET rating = EXCLUDED.rating,
                   completed_services = EXCLUDED.completed_services,
                   is_verified = EXCLUDED.is_verified
            """,
            profile.user_id,
            profile.rating,
            profile.completed_services,
            profile.is_verified,
        )

    # === ПЛАТЕЖИ ===

    async def get_payment(self, payment_id: str) -> Optional[Payment]:
        return await self._fetch_one(EntityKind.PAYMENT, "id = $1", payment_id)  # type: ignore[return-value]

    async def get_payment_for_match(self, request_id: str, offer_id: str) -> Optional[Payment]:
        return await self._fetch_one(  # type: ignore[return-value]
            EntityKind.PAYMENT,
            "request_id = $1 AND offer_id = $2 ORDER BY created_at DESC LIMIT 1",
            request_id,
            offer_id,
        )

    async def get_escrow_for_payment(self, payment_id: str) -> Optional[Escrow]:
        return await self._fetch_one(EntityKind.ESCROW, "payment_id = $1", payment_id)  # type: ignore[return-value]

    async def list_payments_for_user(self, user_id: int, limit: int = 50) -> list[Payment]:
        rows = await self._db.fetch(
            """
            SELECT *
            FROM payments
            WHERE payer_id = $1 OR payee_id = $1
            ORDER BY created_at DESC
            LIMIT $2
            """,
            user_id,
            limit,
        )
        return [Payment.model_validate(dict(row)) for row in rows]

    # === СПОРЫ ===

    async def get_dispute(self, dispute_id: str) -> Optional[Dispute]:
        return await self._fetch_one(EntityKind.DISPUTE, "id = $1", dispute_id)  # type: ignore[return-value]

    async def get_active_dispute(self, payment_id: str) -> Optional[Dispute]:
        return await self._fetch_one(  # type: ignore[return-value]
            EntityKind.DISPUTE,
            "payment_id = $1 AND status IN ($2, $3)",
            payment_id,
            DisputeStatus.OPEN.value,
            DisputeStatus.UNDER_REVIEW.value,
        )

    async def list_disputes(
        self,
        raised_by: Optional[int] = None,
        status: Optional[DisputeStatus] = None,
    ) -> list[Dispute]:
        rows = await self._db.fetch(
            """
            SELECT *
            FROM disputes
            WHERE ($1::bigint IS NULL OR raised_by_user_id = $1)
              AND ($2::text IS NULL OR status = $2)
            ORDER BY created_at DESC
            """,
            raised_by,
            status.value if status else None,
        )
        return [Dispute.model_validate(dict(row)) for row in rows]

    # === ЗАПИСЬ ===

    async def apply(self, operations: Sequence[WriteOperation]) -> list[BaseModel]:
        results: list[BaseModel] = []
        try:
            async with self._db.transaction() as conn:
                for op in operations:
                    if isinstance(op, ConditionalUpdate):
                        results.append(await self._conditional_update(conn, op))
                    elif isinstance(op, Insert):
                        results.append(await self._insert(conn, op))
                    else:
                        raise TypeError(f"Неизвестная операция записи: {op!r}")
        except asyncpg.UniqueViolationError as e:
            raise ConflictError(
                "Строка с таким ключом уже существует",
                code=ErrorCode.CONCURRENT_UPDATE,
                details={"constraint": e.constraint_name},
            ) from e
        except asyncpg.PostgresError as e:
            await log_error(f"Ошибка пакетной записи ({len(operations)} операций): {e}")
            raise

        await log_debug(f"Применён пакет из {len(operations)} операций")
        return results

    async def _conditional_update(self, conn: asyncpg.Connection, op: ConditionalUpdate) -> BaseModel:
        # Имена колонок подставляются в SQL, поэтому только поля модели
        allowed = set(ENTITY_MODELS[op.kind].model_fields) - {"id", "version"}
        unknown = set(op.changes) - allowed
        if unknown:
            raise ValueError(f"Недопустимые поля для обновления {op.kind.value}: {sorted(unknown)}")

        columns = list(op.changes)
        assignments = ", ".join(f"{col} = ${i}" for i, col in enumerate(columns, start=3))
        set_clause = f"{assignments}, version = version + 1" if assignments else "version = version + 1"

        row = await conn.fetchrow(
            f"UPDATE {TABLES[op.kind]} SET {set_clause} "
            f"WHERE id = $1 AND version = $2 RETURNING *",
            op.entity_id,
            op.expected_version,
            *(_to_db(op.changes[col]) for col in columns),
        )
        if row is None:
            raise ConflictError(
                f"{op.kind.value} {op.entity_id} изменён конкурентно",
                code=ErrorCode.CONCURRENT_UPDATE,
                details={
                    "kind": op.kind.value,
                    "id": op.entity_id,
                    "expected_version": op.expected_version,
                },
            )
        return _row_to_model(op.kind, row)

    async def _insert(self, conn: asyncpg.Connection, op: Insert) -> BaseModel:
        values = op.entity.model_dump()
        columns = list(values)
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))

        row = await conn.fetchrow(
            f"INSERT INTO {TABLES[op.kind]} ({', '.join(columns)}) VALUES ({placeholders}) "
            f"ON CONFLICT (id) DO NOTHING RETURNING *",
            *(_to_db(values[col]) for col in columns),
        )
        if row is None:
            raise ConflictError(
                f"{op.kind.value} {values['id']} уже существует",
                code=ErrorCode.CONCURRENT_UPDATE,
                details={"kind": op.kind.value, "id": values["id"]},
            )
        return _row_to_model(op.kind, row)
