"""
Application service orchestrating payment use-cases.

This class depends only on the application PaymentGateway port and DTOs.
Gateway implementations are provided by infrastructure and must be injected
from the composition root, keeping dependencies one-way.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping, Optional, Union

from application.dtos.payments import (
    OrderDescriptor,
    PaymentOptions,
    PaymentSession,
    PaymentResult,
    RefundResult,
)
from application.ports.payment_gateway import PaymentGateway
from application.services.callback_dispatcher import CallbackDispatcher, CallbackOutcome
from core.logging_config import get_logger
from domain.payment.entity import PaymentProvider, PaymentStatus
from domain.payment.exceptions import AmountMismatchError, OrderAlreadyPaidError


logger = get_logger(__name__)


class PaymentService:
    def __init__(self, gateways: Mapping[PaymentProvider, PaymentGateway]) -> None:
        self.gateways = dict(gateways)
        self.dispatcher = CallbackDispatcher(self.gateways)

    def gateway(self, provider: Optional[str]) -> PaymentGateway:
        return self.dispatcher.resolve(provider)

    async def create_payment(
        self,
        provider: str,
        order: OrderDescriptor,
        options: Optional[PaymentOptions] = None,
    ) -> PaymentSession:
        gateway = self.gateway(provider)
        logger.info("payment_create_request", order_id=order.id, provider=gateway.provider, amount=str(order.amount))
        session = await gateway.create_payment(order, options)
        logger.info(
            "payment_create_response",
            order_id=order.id,
            provider=session.provider,
            provider_order_id=session.provider_order_id,
            status=session.status.value,
        )
        return session

    async def get_status(self, provider: str, payment_id: str, provider_order_id: str) -> PaymentResult:
        gateway = self.gateway(provider)
        logger.info("payment_query_request", payment_id=payment_id, provider=gateway.provider)
        return await gateway.get_status(payment_id, provider_order_id)

    async def refund(
        self,
        provider: str,
        payment_id: str,
        provider_transaction_id: str,
        amount: int,
        reason: Optional[str] = None,
    ) -> RefundResult:
        gateway = self.gateway(provider)
        logger.info("payment_refund_request", payment_id=payment_id, provider=gateway.provider, amount=amount)
        result = await gateway.refund(payment_id, provider_transaction_id, amount, reason)
        if not result.success:
            logger.warning("payment_refund_declined", payment_id=payment_id, provider=gateway.provider, error_code=result.error_code)
        return result

    def handle_callback(self, provider: str, payload: Mapping[str, Any]) -> CallbackOutcome:
        return self.dispatcher.handle(provider, payload)

    @staticmethod
    def ensure_payable(payment_id: str, current_status: Union[PaymentStatus, str]) -> None:
        """Refuse to start another payment for an order that already captured money."""
        status = PaymentStatus(current_status)
        if status.is_settled:
            raise OrderAlreadyPaidError(payment_id, status=status.value)

    @staticmethod
    def ensure_amount(result: PaymentResult, expected: Union[int, Decimal]) -> None:
        if Decimal(result.amount) != Decimal(expected):
            raise AmountMismatchError(
                result.payment_id,
                expected=expected,
                actual=result.amount,
                provider=result.provider,
            )

    async def aclose(self) -> None:
        for gateway in self.gateways.values():
            await gateway.aclose()
