"""
Payment domain vocabulary: providers, payment status lifecycle, refund status.

This layer never persists anything; it only states which transitions a
caller's order state machine may apply when reconciling a PaymentResult.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional


class PaymentProvider(str, Enum):
    """Supported gateways (closed set)."""
    MOMO = "momo"
    VNPAY = "vnpay"
    ZALOPAY = "zalopay"

    @classmethod
    def from_name(cls, name: Optional[str]) -> Optional["PaymentProvider"]:
        """Resolve a provider name or alias; None when unknown."""
        key = (name or "").strip().lower()
        return PROVIDER_ALIASES.get(key)


PROVIDER_ALIASES: dict[str, PaymentProvider] = {
    "momo": PaymentProvider.MOMO,
    "vnpay": PaymentProvider.VNPAY,
    "vnp": PaymentProvider.VNPAY,
    "zalopay": PaymentProvider.ZALOPAY,
    "zalo": PaymentProvider.ZALOPAY,
    "zlp": PaymentProvider.ZALOPAY,
}


class PaymentStatus(str, Enum):
    """Payment status enum."""
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"

    @property
    def is_terminal(self) -> bool:
        # paid only moves on through a refund; partially_refunded can still be fully refunded
        return self in (PaymentStatus.PAID, PaymentStatus.FAILED, PaymentStatus.CANCELLED, PaymentStatus.REFUNDED)

    @property
    def is_settled(self) -> bool:
        """Money was captured at some point."""
        return self in (PaymentStatus.PAID, PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED)

    def can_transition_to(self, target: "PaymentStatus") -> bool:
        return target in ALLOWED_TRANSITIONS.get(self, frozenset())


ALLOWED_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({
        PaymentStatus.PROCESSING,
        PaymentStatus.PAID,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    }),
    PaymentStatus.PROCESSING: frozenset({
        PaymentStatus.PAID,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    }),
    PaymentStatus.PAID: frozenset({
        PaymentStatus.REFUNDED,
        PaymentStatus.PARTIALLY_REFUNDED,
    }),
    PaymentStatus.PARTIALLY_REFUNDED: frozenset({
        PaymentStatus.PARTIALLY_REFUNDED,
        PaymentStatus.REFUNDED,
    }),
}


class RefundStatus(str, Enum):
    """Refund status enum."""
    COMPLETED = "completed"
    FAILED = "failed"
