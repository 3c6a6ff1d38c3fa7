"""
Payment business exceptions raised before or after talking to a gateway.

Gateway/transport failures live in infrastructure.external.payments.exceptions.
"""
from __future__ import annotations

from typing import Any, Optional

from domain.common.exceptions import BusinessException, DomainValidationException
from shared.codes.payment_codes import PAYMENT_ERROR_MESSAGES, PaymentCode, PaymentErrorKind


class PaymentValidationError(DomainValidationException):
    """Malformed input; never sent to a gateway and never retried."""

    kind = PaymentErrorKind.VALIDATION_ERROR

    def __init__(self, message: str, *, field: str | None = None, provider: str | None = None):
        details = {"provider": provider} if provider else None
        super().__init__(
            message,
            field=field,
            details=details,
            code=PaymentCode.VALIDATION_ERROR,
            error_type=self.kind.value,
        )


class InvalidProviderError(BusinessException):
    kind = PaymentErrorKind.INVALID_PROVIDER

    def __init__(self, provider: Optional[str]):
        super().__init__(
            code=PaymentCode.INVALID_PROVIDER,
            message=f"{PAYMENT_ERROR_MESSAGES[self.kind]}: {provider!r}",
            error_type=self.kind.value,
            details={"provider": provider},
            field="provider",
        )


class OrderAlreadyPaidError(BusinessException):
    kind = PaymentErrorKind.ORDER_ALREADY_PAID

    def __init__(self, payment_id: str, *, status: str):
        super().__init__(
            code=PaymentCode.ORDER_ALREADY_PAID,
            message=PAYMENT_ERROR_MESSAGES[self.kind],
            error_type=self.kind.value,
            details={"payment_id": payment_id, "status": status},
        )


class AmountMismatchError(BusinessException):
    kind = PaymentErrorKind.AMOUNT_MISMATCH

    def __init__(self, payment_id: str, *, expected: Any, actual: Any, provider: str | None = None):
        super().__init__(
            code=PaymentCode.AMOUNT_MISMATCH,
            message=f"{PAYMENT_ERROR_MESSAGES[self.kind]}: expected {expected}, got {actual}",
            error_type=self.kind.value,
            details={"payment_id": payment_id, "expected": expected, "actual": actual, "provider": provider},
            field="amount",
        )


class PaymentNotFoundError(BusinessException):
    kind = PaymentErrorKind.PAYMENT_NOT_FOUND

    def __init__(self, payment_id: str, *, provider: str | None = None):
        super().__init__(
            code=PaymentCode.PAYMENT_NOT_FOUND,
            message=PAYMENT_ERROR_MESSAGES[self.kind],
            error_type=self.kind.value,
            details={"payment_id": payment_id, "provider": provider},
        )
