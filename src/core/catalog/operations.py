# src/core/catalog/operations.py
"""
Операции записи в хранилище каталога.

Все изменения состояния проходят через CatalogStore.apply(): пакет из
условных обновлений и вставок применяется целиком или не применяется.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from pydantic import BaseModel

from src.common.constants import EntityKind


@dataclass(frozen=True)
class ConditionalUpdate:
    """
    Обновление строки при совпадении версии.

    Attributes:
        kind: Тип сущности
        entity_id: ID строки
        expected_version: Версия, которую видел вызывающий код
        changes: Новые значения полей
    """
    kind: EntityKind
    entity_id: str
    expected_version: int
    changes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Insert:
    """Вставка новой строки. Конфликт, если ID уже занят."""
    kind: EntityKind
    entity: BaseModel


WriteOperation = Union[ConditionalUpdate, Insert]


def update_of(entity: BaseModel, kind: EntityKind, **changes: Any) -> ConditionalUpdate:
    """Условное обновление относительно прочитанной версии сущности."""
    return ConditionalUpdate(
        kind=kind,
        entity_id=entity.id,  # type: ignore[attr-defined]
        expected_version=entity.version,  # type: ignore[attr-defined]
        changes=changes,
    )
