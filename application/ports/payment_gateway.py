"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, runtime_checkable

from application.dtos.payments import (
    OrderDescriptor,
    PaymentOptions,
    PaymentSession,
    PaymentResult,
    RefundResult,
)


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for third-party payment providers.

    Implementations hold read-only configuration only. `verify_signature`,
    `process_callback` and `acknowledge` are pure; the async methods are the
    only ones that perform IO.
    """

    provider: str

    async def create_payment(self, order: OrderDescriptor, options: Optional[PaymentOptions] = None) -> PaymentSession: ...

    def verify_signature(self, payload: Mapping[str, Any]) -> bool: ...

    def process_callback(self, payload: Mapping[str, Any], *, verified: bool = False) -> PaymentResult: ...

    async def get_status(self, payment_id: str, provider_order_id: str) -> PaymentResult: ...

    async def refund(
        self,
        payment_id: str,
        provider_transaction_id: str,
        amount: int,
        reason: Optional[str] = None,
    ) -> RefundResult: ...

    def acknowledge(self, error: Optional[Exception] = None) -> dict[str, Any]: ...

    async def aclose(self) -> None: ...
