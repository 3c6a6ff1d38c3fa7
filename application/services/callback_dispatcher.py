"""
Routes inbound gateway callbacks to the matching adapter.

The provider name is resolved before the payload is looked at, and the
signature is checked before any business field is interpreted.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from application.dtos.payments import PaymentResult
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from domain.payment.entity import PaymentProvider
from domain.payment.exceptions import InvalidProviderError
from infrastructure.external.payments.exceptions import PaymentSignatureError


logger = get_logger(__name__)


@dataclass(frozen=True)
class CallbackOutcome:
    """What to record and what to answer the gateway with."""

    provider: Optional[str]
    result: Optional[PaymentResult] = None
    acknowledgement: dict[str, Any] = field(default_factory=dict)
    error: Optional[BusinessException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CallbackDispatcher:
    def __init__(self, gateways: Mapping[PaymentProvider, PaymentGateway]) -> None:
        self._gateways = dict(gateways)

    def resolve(self, provider_name: Optional[str]) -> PaymentGateway:
        provider = PaymentProvider.from_name(provider_name)
        if provider is None or provider not in self._gateways:
            logger.warning("payment_callback_unknown_provider", provider=provider_name)
            raise InvalidProviderError(provider_name)
        return self._gateways[provider]

    def dispatch(self, provider_name: Optional[str], payload: Mapping[str, Any]) -> PaymentResult:
        gateway = self.resolve(provider_name)
        if not gateway.verify_signature(payload):
            logger.warning("payment_callback_rejected", provider=gateway.provider, reason="signature_invalid")
            raise PaymentSignatureError(provider=gateway.provider)
        return gateway.process_callback(payload, verified=True)

    def handle(self, provider_name: Optional[str], payload: Mapping[str, Any]) -> CallbackOutcome:
        """Like dispatch, but classified failures become an acknowledgement instead of an exception."""
        try:
            gateway = self.resolve(provider_name)
        except InvalidProviderError as exc:
            return CallbackOutcome(
                provider=provider_name,
                acknowledgement={"error": exc.error_type, "message": exc.message},
                error=exc,
            )

        try:
            result = self.dispatch(provider_name, payload)
        except BusinessException as exc:
            logger.warning(
                "payment_callback_failed",
                provider=gateway.provider,
                error_type=exc.error_type,
                error=exc.message,
            )
            return CallbackOutcome(provider=gateway.provider, acknowledgement=gateway.acknowledge(exc), error=exc)

        logger.info(
            "payment_callback_handled",
            provider=gateway.provider,
            payment_id=result.payment_id,
            status=result.status.value,
        )
        return CallbackOutcome(provider=gateway.provider, result=result, acknowledgement=gateway.acknowledge())
