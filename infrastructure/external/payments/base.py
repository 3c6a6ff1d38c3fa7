"""
Base payment client implementing shared concerns: bounded http, logging,
order validation, amount normalization, identifiers and code mapping.

Concrete providers subclass and implement provider-specific logic. Remote
calls are bounded by a deadline and never retried here; retry policy belongs
to the caller.
"""
from __future__ import annotations

import asyncio
import secrets
import string
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Mapping, Optional, Union

import httpx

from application.dtos.payments import (
    OrderDescriptor,
    PaymentOptions,
    PaymentSession,
    PaymentResult,
    RefundResult,
)
from application.ports.payment_gateway import PaymentGateway
from core.config import settings
from core.logging_config import get_logger
from core.settings import PaymentTimeouts
from domain.payment.entity import PaymentStatus, RefundStatus
from domain.payment.exceptions import PaymentValidationError
from infrastructure.external.payments.exceptions import (
    PaymentConfigurationError,
    PaymentProviderError,
    PaymentSignatureError,
    PaymentTimeoutError,
)
from shared.codes.payment_codes import (
    PAYMENT_ERROR_MESSAGES,
    PAYMENT_STATUS_MESSAGES,
    PROVIDER_STATUS_TO_INTERNAL,
    NativeOutcome,
    PaymentErrorKind,
)


logger = get_logger(__name__)

# Payment sessions expire 15 minutes after creation, whatever the gateway
SESSION_TTL = timedelta(minutes=15)
# Vietnamese gateways expect local wall-clock dates
GATEWAY_TZ = timezone(timedelta(hours=7), name="ICT")

UNKNOWN_OUTCOME = NativeOutcome(PaymentStatus.FAILED.value, PaymentErrorKind.PAYMENT_FAILED)
_REQUEST_ID_ALPHABET = string.ascii_lowercase + string.digits


@dataclass(frozen=True)
class GatewayConfigState:
    """Result of credential validation performed at construction time."""

    provider: str
    missing: tuple[str, ...] = ()

    @property
    def configured(self) -> bool:
        return not self.missing


class BasePaymentClient(PaymentGateway):
    provider: str = "base"

    def __init__(
        self,
        *,
        credentials: Optional[Mapping[str, Optional[str]]] = None,
        timeouts: Union[PaymentTimeouts, dict[str, float], None] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if isinstance(timeouts, PaymentTimeouts):
            timeouts = timeouts.model_dump()
        self._timeouts_cfg = timeouts or PaymentTimeouts().model_dump()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.config_state = self._check_credentials(credentials or {})

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    @property
    def deadline(self) -> float:
        return float(self._timeouts_cfg["total"])

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeouts, transport=self._transport)
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _request(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        json: Optional[dict[str, Any]] = None,
        data: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        """Send one request under the deadline and return the decoded JSON body."""

        async def _send() -> httpx.Response:
            async with self.client() as client:
                return await client.request(method, url, json=json, data=data, headers=headers)

        self._log("payment_provider_request", operation=operation, url=url)
        started = time.perf_counter()
        try:
            response = await asyncio.wait_for(_send(), timeout=self.deadline)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            self._log("payment_provider_timeout", level="warning", operation=operation, timeout=self.deadline)
            raise PaymentTimeoutError(provider=self.provider, timeout=self.deadline, operation=operation) from exc
        except httpx.HTTPError as exc:
            self._log("payment_provider_network_error", level="error", operation=operation, error=str(exc))
            raise PaymentProviderError(f"Network error: {exc}", provider=self.provider) from exc

        elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_error:
            message = body.get("message") if isinstance(body, dict) else None
            self._log(
                "payment_provider_http_error",
                level="error",
                operation=operation,
                status_code=response.status_code,
                elapsed_ms=elapsed_ms,
            )
            raise PaymentProviderError(
                message or PAYMENT_ERROR_MESSAGES[PaymentErrorKind.PROVIDER_ERROR],
                provider=self.provider,
                provider_code=str(response.status_code),
            )
        if not isinstance(body, dict):
            raise PaymentProviderError("Malformed provider response", provider=self.provider)

        self._log("payment_provider_response", operation=operation, status_code=response.status_code, elapsed_ms=elapsed_ms)
        return body

    # Contract: adapters must override, the base fails loudly
    async def create_payment(self, order: OrderDescriptor, options: Optional[PaymentOptions] = None) -> PaymentSession:
        raise NotImplementedError(f"{type(self).__name__} must implement create_payment")

    def verify_signature(self, payload: Mapping[str, Any]) -> bool:
        raise NotImplementedError(f"{type(self).__name__} must implement verify_signature")

    async def get_status(self, payment_id: str, provider_order_id: str) -> PaymentResult:
        raise NotImplementedError(f"{type(self).__name__} must implement get_status")

    async def refund(
        self,
        payment_id: str,
        provider_transaction_id: str,
        amount: int,
        reason: Optional[str] = None,
    ) -> RefundResult:
        raise NotImplementedError(f"{type(self).__name__} must implement refund")

    def acknowledge(self, error: Optional[Exception] = None) -> dict[str, Any]:
        raise NotImplementedError(f"{type(self).__name__} must implement acknowledge")

    def _parse_callback(self, payload: Mapping[str, Any]) -> PaymentResult:
        raise NotImplementedError(f"{type(self).__name__} must implement _parse_callback")

    def process_callback(self, payload: Mapping[str, Any], *, verified: bool = False) -> PaymentResult:
        """Verify the payload, then interpret it. Business fields are not read on a bad signature.

        Pass `verified=True` when the caller has already checked the signature.
        """
        self._log("payment_callback_received", fields=sorted(payload.keys()))
        if not verified and not self.verify_signature(payload):
            self._log("payment_callback_rejected", level="warning", reason="signature_invalid")
            raise PaymentSignatureError(provider=self.provider)
        result = self._parse_callback(payload)
        self._log(
            "payment_callback_processed",
            payment_id=result.payment_id,
            status=result.status.value,
            success=result.success,
        )
        return result

    # Helpers
    def _check_credentials(self, values: Mapping[str, Optional[str]]) -> GatewayConfigState:
        missing = tuple(name for name, value in values.items() if not value)
        if missing:
            self._log("payment_gateway_unconfigured", level="warning", missing=list(missing))
        return GatewayConfigState(provider=self.provider, missing=missing)

    def _ensure_configured(self) -> None:
        if not self.config_state.configured:
            raise PaymentConfigurationError(provider=self.provider, missing=self.config_state.missing)

    def validate_order(self, order: OrderDescriptor) -> None:
        if not order.id:
            raise PaymentValidationError("Order ID is required", field="id", provider=self.provider)
        if order.amount is None or order.amount <= 0 or self.format_amount(order.amount) <= 0:
            raise PaymentValidationError("Valid amount is required", field="amount", provider=self.provider)

    @staticmethod
    def format_amount(amount: Union[int, float, Decimal]) -> int:
        """Round half-up to a whole number of the smallest currency unit."""
        return int(Decimal(str(amount)).quantize(Decimal(1), rounding=ROUND_HALF_UP))

    def parse_amount(self, value: Any, divisor: int = 1) -> int:
        """Convert a gateway amount back to the caller's unit."""
        if value is None or value == "":
            return 0
        try:
            return int(Decimal(str(value))) // divisor
        except (InvalidOperation, ValueError) as exc:
            raise PaymentProviderError(f"Malformed amount: {value!r}", provider=self.provider) from exc

    @staticmethod
    def _now_millis() -> int:
        return time.time_ns() // 1_000_000

    def generate_request_id(self) -> str:
        suffix = "".join(secrets.choice(_REQUEST_ID_ALPHABET) for _ in range(13))
        return f"{self._now_millis()}_{suffix}"

    def generate_provider_order_id(self, order_id: str) -> str:
        return f"{order_id}_{self._now_millis()}"

    @staticmethod
    def extract_order_id(provider_order_id: str) -> str:
        """Strip the `_<millis>` suffix added by generate_provider_order_id."""
        head, sep, tail = (provider_order_id or "").rpartition("_")
        if sep and head and tail.isdigit():
            return head
        return provider_order_id

    @staticmethod
    def build_order_info(order: OrderDescriptor) -> str:
        return order.description or f"Payment for order {order.order_number or order.id}"

    @staticmethod
    def session_expiry(created_at: Optional[datetime] = None) -> datetime:
        return (created_at or datetime.now(timezone.utc)) + SESSION_TTL

    def get_return_url(self) -> str:
        return f"{settings.APP_URL}/api/payments/callback/{self.provider}"

    def get_notify_url(self) -> str:
        return f"{settings.APP_URL}/api/payments/webhook/{self.provider}"

    def _error_code(self, native_code: Any) -> str:
        return f"{self.provider.upper()}_{native_code}"

    def _map_status(self, native_code: Any) -> NativeOutcome:
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.provider, {})
        return mapping.get(native_code, UNKNOWN_OUTCOME)

    @staticmethod
    def _outcome_message(outcome: NativeOutcome) -> str:
        if outcome.error_kind is not None:
            return PAYMENT_ERROR_MESSAGES[outcome.error_kind]
        return PAYMENT_STATUS_MESSAGES.get(outcome.status, PAYMENT_ERROR_MESSAGES[PaymentErrorKind.PAYMENT_FAILED])

    @staticmethod
    def _text(value: Any) -> Optional[str]:
        """Gateway fields may arrive as numbers once JSON-decoded."""
        if value is None or value == "":
            return None
        return str(value)

    def _build_result(
        self,
        outcome: NativeOutcome,
        *,
        native_code: Any,
        payment_id: str,
        amount: int,
        message: Optional[str] = None,
        **fields: Any,
    ) -> PaymentResult:
        status = PaymentStatus(outcome.status)
        success = status == PaymentStatus.PAID
        if success:
            return PaymentResult(success=True, provider=self.provider, payment_id=payment_id, status=status, amount=amount, **fields)
        return PaymentResult(
            success=False,
            provider=self.provider,
            payment_id=payment_id,
            status=status,
            amount=amount,
            error_code=self._error_code(native_code),
            error_message=message or self._outcome_message(outcome),
            error_kind=outcome.error_kind,
            **fields,
        )

    def _build_refund_result(
        self,
        *,
        success: bool,
        native_code: Any,
        amount: int,
        refund_reference: str,
        refund_id: Optional[Any] = None,
        message: Optional[str] = None,
        raw_data: Optional[dict[str, Any]] = None,
    ) -> RefundResult:
        if success:
            return RefundResult(
                success=True,
                provider=self.provider,
                amount=amount,
                status=RefundStatus.COMPLETED,
                refund_id=str(refund_id) if refund_id is not None else None,
                refund_reference=refund_reference,
                raw_data=raw_data,
            )
        return RefundResult(
            success=False,
            provider=self.provider,
            amount=amount,
            status=RefundStatus.FAILED,
            refund_id=str(refund_id) if refund_id is not None else None,
            refund_reference=refund_reference,
            error_code=self._error_code(native_code),
            error_message=message or PAYMENT_ERROR_MESSAGES[PaymentErrorKind.REFUND_FAILED],
            error_kind=PaymentErrorKind.REFUND_FAILED,
            raw_data=raw_data,
        )

    def _validate_refund(self, provider_transaction_id: str, amount: int) -> int:
        if not provider_transaction_id:
            raise PaymentValidationError(
                "Provider transaction ID is required", field="provider_transaction_id", provider=self.provider
            )
        if amount is None or amount <= 0 or self.format_amount(amount) <= 0:
            raise PaymentValidationError("Valid refund amount is required", field="amount", provider=self.provider)
        return self.format_amount(amount)

    def _log(self, event: str, level: str = "info", **kwargs) -> None:
        getattr(logger, level)(
            event,
            provider=self.provider,
            **kwargs,
        )
