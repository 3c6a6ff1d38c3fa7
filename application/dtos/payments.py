"""
Payment DTOs (Pydantic v2) used at application boundaries.

Results are frozen: every gateway interaction produces a new record which the
caller reconciles against its own order state machine.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

from domain.payment.entity import PaymentStatus, RefundStatus
from shared.codes.payment_codes import PaymentErrorKind


class OrderDescriptor(BaseModel):
    """Caller-owned order data.

    `amount` is in the smallest currency unit. Positivity and a non-empty `id`
    are checked by the gateway adapter so that violations surface as
    VALIDATION_ERROR rather than a model error.
    """

    id: str = ""
    order_number: Optional[str] = None
    amount: Decimal = Decimal(0)
    currency: str = Field(default="VND")
    description: Optional[str] = None
    user_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class PaymentOptions(BaseModel):
    """Optional per-call knobs; gateways ignore what they do not use."""

    return_url: Optional[str] = None
    notify_url: Optional[str] = None
    ip_address: Optional[str] = None
    locale: Optional[str] = None
    bank_code: Optional[str] = None
    order_type: Optional[str] = None
    request_type: Optional[str] = None
    extra_data: Optional[str] = None
    partner_name: Optional[str] = None
    store_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class PaymentSession(BaseModel):
    payment_id: str
    provider_order_id: str
    provider: str
    amount: int
    status: PaymentStatus = PaymentStatus.PENDING
    expires_at: datetime
    pay_url: Optional[str] = None
    deeplink: Optional[str] = None
    qr_code_url: Optional[str] = None
    provider_request_id: Optional[str] = None
    payment_token: Optional[str] = None
    # audit only, never parsed by callers
    raw_response: Optional[dict[str, Any]] = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _require_redirect_target(self) -> "PaymentSession":
        if not (self.pay_url or self.deeplink or self.qr_code_url):
            raise ValueError("payment session needs pay_url, deeplink or qr_code_url")
        return self


class PaymentResult(BaseModel):
    success: bool
    payment_id: str
    provider: str
    status: PaymentStatus
    amount: int = 0
    provider_order_id: Optional[str] = None
    provider_transaction_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    error_kind: Optional[PaymentErrorKind] = None
    bank_code: Optional[str] = None
    pay_date: Optional[str] = None
    raw_data: Optional[dict[str, Any]] = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _errors_iff_failure(self) -> "PaymentResult":
        has_error = any(v is not None for v in (self.error_code, self.error_message, self.error_kind))
        if self.success and has_error:
            raise ValueError("successful result must not carry an error")
        if not self.success and (self.error_code is None or self.error_message is None):
            raise ValueError("unsuccessful result requires error_code and error_message")
        return self


class RefundResult(BaseModel):
    success: bool
    provider: str
    amount: int
    status: RefundStatus
    refund_id: Optional[str] = None
    refund_reference: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    error_kind: Optional[PaymentErrorKind] = None
    raw_data: Optional[dict[str, Any]] = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _status_matches_success(self) -> "RefundResult":
        expected = RefundStatus.COMPLETED if self.success else RefundStatus.FAILED
        if self.status != expected:
            raise ValueError(f"refund status must be {expected.value}")
        return self
