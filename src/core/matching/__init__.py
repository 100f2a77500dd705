# src/core/matching/__init__.py
"""
Домен подбора и сопоставления.
Поиск совместимых предложений и фиксация выбора заказчика.
"""

from src.core.matching.compatibility import broken_constraints, is_compatible
from src.core.matching.profiles import HelperDirectory
from src.core.matching.service import MatchCandidate, MatchingEngine
from src.core.matching.coordinator import Match, MatchCoordinator

__all__ = [
    "broken_constraints",
    "is_compatible",
    "HelperDirectory",
    "MatchCandidate",
    "MatchingEngine",
    "Match",
    "MatchCoordinator",
]
