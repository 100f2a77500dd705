# src/core/catalog/__init__.py
"""
Каталог: запросы, предложения и хранилище с условной записью.
"""

from src.core.catalog.models import HelperProfile, OfferCriteria, ServiceOffer, ServiceRequest
from src.core.catalog.operations import ConditionalUpdate, Insert, WriteOperation, update_of
from src.core.catalog.store import CatalogStore
from src.core.catalog.memory import InMemoryCatalogStore
from src.core.catalog.service import ListingService

__all__ = [
    "ServiceRequest",
    "ServiceOffer",
    "HelperProfile",
    "OfferCriteria",
    "ConditionalUpdate",
    "Insert",
    "WriteOperation",
    "update_of",
    "CatalogStore",
    "InMemoryCatalogStore",
    "ListingService",
]
