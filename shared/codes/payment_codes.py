"""
Payment specific codes, the provider-independent error taxonomy and the
native result-code tables of every gateway.

Both the callback path and the status-query path of an adapter read the same
table, so a given native code always means the same thing.
"""
from __future__ import annotations

from enum import Enum, IntEnum
from typing import NamedTuple, Optional


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Caller/business errors (6xxxx)
    VALIDATION_ERROR = 60000
    INVALID_PROVIDER = 60001
    PAYMENT_NOT_FOUND = 60002
    ORDER_ALREADY_PAID = 60003
    AMOUNT_MISMATCH = 60004
    PAYMENT_FAILED = 60005
    REFUND_FAILED = 60006

    # Provider/Network errors (61xxx)
    PROVIDER_ERROR = 61000
    SIGNATURE_INVALID = 61001
    TIMEOUT = 61002
    CONFIGURATION_ERROR = 61003


class PaymentErrorKind(str, Enum):
    """Provider-independent error classification exposed to callers."""

    INVALID_PROVIDER = "INVALID_PROVIDER"
    PAYMENT_NOT_FOUND = "PAYMENT_NOT_FOUND"
    SIGNATURE_INVALID = "SIGNATURE_INVALID"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    REFUND_FAILED = "REFUND_FAILED"
    ORDER_ALREADY_PAID = "ORDER_ALREADY_PAID"
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    TIMEOUT = "TIMEOUT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    @property
    def code(self) -> PaymentCode:
        return PaymentCode[self.name]


# Default human readable messages per error kind
PAYMENT_ERROR_MESSAGES: dict[PaymentErrorKind, str] = {
    PaymentErrorKind.INVALID_PROVIDER: "Invalid payment provider",
    PaymentErrorKind.PAYMENT_NOT_FOUND: "Payment not found",
    PaymentErrorKind.SIGNATURE_INVALID: "Invalid signature",
    PaymentErrorKind.PAYMENT_FAILED: "Payment failed",
    PaymentErrorKind.REFUND_FAILED: "Refund failed",
    PaymentErrorKind.ORDER_ALREADY_PAID: "Order already paid",
    PaymentErrorKind.AMOUNT_MISMATCH: "Amount mismatch",
    PaymentErrorKind.PROVIDER_ERROR: "Payment provider error",
    PaymentErrorKind.TIMEOUT: "Payment timeout",
    PaymentErrorKind.VALIDATION_ERROR: "Invalid payment request",
    PaymentErrorKind.CONFIGURATION_ERROR: "Payment provider is not configured",
}

# Unsuccessful outcomes with no error kind still need a message
PAYMENT_STATUS_MESSAGES: dict[str, str] = {
    "pending": "Payment pending",
    "processing": "Payment processing",
}


class NativeOutcome(NamedTuple):
    """Internal meaning of one native gateway code."""

    status: str
    error_kind: Optional[PaymentErrorKind] = None


_PAID = NativeOutcome("paid")
_PENDING = NativeOutcome("pending")
_PROCESSING = NativeOutcome("processing")
_CANCELLED = NativeOutcome("cancelled", PaymentErrorKind.PAYMENT_FAILED)
_FAILED = NativeOutcome("failed", PaymentErrorKind.PAYMENT_FAILED)


MOMO_RESULT_CODES: dict[int, NativeOutcome] = {
    0: _PAID,
    1000: _PENDING,  # initiated, waiting for user confirmation
    7000: _PROCESSING,
    7002: _PROCESSING,
    9000: _PROCESSING,  # authorized, awaiting capture
    1001: _FAILED,
    1002: NativeOutcome("failed", PaymentErrorKind.PROVIDER_ERROR),
    1003: NativeOutcome("failed", PaymentErrorKind.AMOUNT_MISMATCH),
    1004: NativeOutcome("failed", PaymentErrorKind.PAYMENT_NOT_FOUND),
    1005: _FAILED,
    1006: NativeOutcome("failed", PaymentErrorKind.TIMEOUT),
    1017: _CANCELLED,
}

# vnp_ResponseCode values (payment result and merchant API result share one space)
VNPAY_RESPONSE_CODES: dict[str, NativeOutcome] = {
    "00": _PAID,
    "24": _CANCELLED,
    "91": NativeOutcome("failed", PaymentErrorKind.PAYMENT_NOT_FOUND),
    "97": NativeOutcome("failed", PaymentErrorKind.PROVIDER_ERROR),
    "99": NativeOutcome("failed", PaymentErrorKind.PROVIDER_ERROR),
}

# vnp_TransactionStatus values, consulted only when vnp_ResponseCode == "00"
VNPAY_TRANSACTION_STATUSES: dict[str, NativeOutcome] = {
    "00": _PAID,
    "01": _PENDING,
    "02": _FAILED,
    "04": _FAILED,
    "05": _PROCESSING,
    "07": _FAILED,
}

VNPAY_RESPONSE_MESSAGES: dict[str, str] = {
    "07": "Amount deducted, transaction flagged as suspicious",
    "09": "Card/account not registered for internet banking",
    "10": "Card/account authentication failed more than 3 times",
    "11": "Payment window expired",
    "12": "Card/account is locked",
    "13": "Wrong one-time password",
    "24": "Customer cancelled the transaction",
    "51": "Insufficient balance",
    "65": "Daily transaction limit exceeded",
    "75": "Issuing bank under maintenance",
    "79": "Too many wrong payment passwords",
    "91": "Transaction not found",
    "97": "Invalid checksum",
    "99": "Unknown error",
}

ZALOPAY_RETURN_CODES: dict[int, NativeOutcome] = {
    1: _PAID,
    2: _FAILED,
    3: _PROCESSING,
}


PROVIDER_STATUS_TO_INTERNAL = {
    "momo": MOMO_RESULT_CODES,
    "vnpay": VNPAY_RESPONSE_CODES,
    "zalopay": ZALOPAY_RETURN_CODES,
}
