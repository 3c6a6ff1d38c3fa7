"""
Exceptions for payment providers mapped to unified BusinessException variants.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PAYMENT_ERROR_MESSAGES, PaymentCode, PaymentErrorKind


class PaymentProviderError(BusinessException):
    kind = PaymentErrorKind.PROVIDER_ERROR

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PROVIDER_ERROR,
            message=message,
            error_type=self.kind.value,
            details=full_details,
        )
        self.provider = provider
        self.provider_code = provider_code


class PaymentTimeoutError(BusinessException):
    """Local deadline expired; the gateway-side outcome is unknown."""

    kind = PaymentErrorKind.TIMEOUT

    def __init__(self, *, provider: str, timeout: float, operation: str | None = None):
        super().__init__(
            code=PaymentCode.TIMEOUT,
            message=f"{PAYMENT_ERROR_MESSAGES[self.kind]} after {timeout}s",
            error_type=self.kind.value,
            details={"provider": provider, "timeout": timeout, "operation": operation},
        )
        self.provider = provider


class PaymentSignatureError(BusinessException):
    kind = PaymentErrorKind.SIGNATURE_INVALID

    def __init__(self, message: str = PAYMENT_ERROR_MESSAGES[PaymentErrorKind.SIGNATURE_INVALID], *, provider: str, details: Optional[dict] = None):
        full_details = {"provider": provider}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.SIGNATURE_INVALID,
            message=message,
            error_type=self.kind.value,
            details=full_details,
        )
        self.provider = provider


class PaymentConfigurationError(BusinessException):
    kind = PaymentErrorKind.CONFIGURATION_ERROR

    def __init__(self, *, provider: str, missing: tuple[str, ...]):
        super().__init__(
            code=PaymentCode.CONFIGURATION_ERROR,
            message=f"{provider} is not configured, missing: {', '.join(missing)}",
            error_type=self.kind.value,
            details={"provider": provider, "missing": list(missing)},
        )
        self.provider = provider
