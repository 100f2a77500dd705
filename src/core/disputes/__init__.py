# src/core/disputes/__init__.py
"""
Домен споров по платежам.
"""

from src.core.disputes.models import Dispute
from src.core.disputes.state_machine import DisputeStateMachine
from src.core.disputes.service import DisputeResolver

__all__ = [
    "Dispute",
    "DisputeStateMachine",
    "DisputeResolver",
]
