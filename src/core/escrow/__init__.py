# src/core/escrow/__init__.py
"""
Домен платежей и эскроу.
"""

from src.core.escrow.models import Escrow, Payment
from src.core.escrow.processor import PaymentProcessor
from src.core.escrow.state_machine import PaymentStateMachine
from src.core.escrow.service import EscrowLedger, calculate_platform_fee

__all__ = [
    "Escrow",
    "Payment",
    "PaymentProcessor",
    "PaymentStateMachine",
    "EscrowLedger",
    "calculate_platform_fee",
]
