"""
VNPay adapter.

Payments are started by redirecting the buyer to a signed URL; no outbound
call is made at creation. Query and refund go through the merchant web API.
Signature: sha512(hash_secret + sorted, url-encoded, non-empty vnp_* params).
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Optional
from urllib.parse import quote_plus

from application.dtos.payments import (
    OrderDescriptor,
    PaymentOptions,
    PaymentSession,
    PaymentResult,
    RefundResult,
)
from core.settings import PaymentTimeouts, VnpaySettings, payment_settings
from domain.payment.exceptions import (
    AmountMismatchError,
    OrderAlreadyPaidError,
    PaymentNotFoundError,
    PaymentValidationError,
)
from infrastructure.external.payments.base import GATEWAY_TZ, UNKNOWN_OUTCOME, BasePaymentClient
from infrastructure.external.payments.exceptions import PaymentSignatureError
from infrastructure.external.payments.signing import sha512, signatures_match
from shared.codes.payment_codes import NativeOutcome, VNPAY_RESPONSE_MESSAGES, VNPAY_TRANSACTION_STATUSES


VNPAY_SUCCESS = "00"
# vnp_Amount is expressed in 1/100 of the currency unit
AMOUNT_MULTIPLIER = 100
DEFAULT_IP = "127.0.0.1"
HASH_FIELDS = ("vnp_SecureHash", "vnp_SecureHashType")

# IPN answers, matched by exception type; anything else is "99"
_ACK_BY_ERROR = (
    (PaymentSignatureError, "97", "Invalid Checksum"),
    (OrderAlreadyPaidError, "02", "Order already confirmed"),
    (AmountMismatchError, "04", "Invalid amount"),
    (PaymentNotFoundError, "01", "Order not found"),
)


def canonical_query(params: Mapping[str, Any]) -> str:
    """Sorted, `quote_plus`-encoded query of non-empty params."""
    return "&".join(
        f"{key}={quote_plus(str(params[key]))}"
        for key in sorted(params)
        if params[key] not in (None, "")
    )


def format_vnp_date(moment: datetime) -> str:
    return moment.astimezone(GATEWAY_TZ).strftime("%Y%m%d%H%M%S")


class VnpayClient(BasePaymentClient):
    provider = "vnpay"

    def __init__(
        self,
        config: Optional[VnpaySettings] = None,
        *,
        timeouts: Optional[PaymentTimeouts] = None,
        transport=None,
    ):
        self._cfg = config or payment_settings.vnpay
        super().__init__(
            credentials={"tmn_code": self._cfg.tmn_code, "hash_secret": self._cfg.hash_secret},
            timeouts=timeouts or payment_settings.timeouts,
            transport=transport,
        )

    def _secure_hash(self, params: Mapping[str, Any]) -> str:
        return sha512((self._cfg.hash_secret or "") + canonical_query(params))

    def _signed(self, params: dict[str, Any]) -> dict[str, Any]:
        return {**params, "vnp_SecureHash": self._secure_hash(params)}

    def _classify(self, response_code: Any, transaction_status: Any) -> tuple[NativeOutcome, Optional[str]]:
        """Return the outcome and the native code it was derived from."""
        response_code, transaction_status = self._text(response_code), self._text(transaction_status)
        if response_code == VNPAY_SUCCESS:
            return VNPAY_TRANSACTION_STATUSES.get(transaction_status, UNKNOWN_OUTCOME), transaction_status
        return self._map_status(response_code), response_code

    @staticmethod
    def _message(code: Optional[str], fallback: Optional[str] = None) -> str:
        return fallback or VNPAY_RESPONSE_MESSAGES.get(code or "", VNPAY_RESPONSE_MESSAGES["99"])

    async def create_payment(self, order: OrderDescriptor, options: Optional[PaymentOptions] = None) -> PaymentSession:
        self.validate_order(order)
        self._ensure_configured()
        options = options or PaymentOptions()
        cfg = self._cfg

        created_at = datetime.now(timezone.utc)
        expires_at = self.session_expiry(created_at)
        order_id = self.generate_provider_order_id(order.id)
        amount = self.format_amount(order.amount)

        params: dict[str, Any] = {
            "vnp_Version": cfg.version,
            "vnp_Command": "pay",
            "vnp_TmnCode": cfg.tmn_code,
            "vnp_Locale": options.locale or cfg.locale,
            "vnp_CurrCode": cfg.currency,
            "vnp_TxnRef": order_id,
            "vnp_OrderInfo": self.build_order_info(order),
            "vnp_OrderType": options.order_type or "other",
            "vnp_Amount": amount * AMOUNT_MULTIPLIER,
            "vnp_ReturnUrl": options.return_url or self.get_return_url(),
            "vnp_IpAddr": options.ip_address or DEFAULT_IP,
            "vnp_CreateDate": format_vnp_date(created_at),
            "vnp_ExpireDate": format_vnp_date(expires_at),
        }
        if options.bank_code:
            params["vnp_BankCode"] = options.bank_code

        query = canonical_query(params)
        pay_url = f"{cfg.payment_url}?{query}&vnp_SecureHash={self._secure_hash(params)}"
        self._log("payment_create_request", payment_id=order.id, provider_order_id=order_id, amount=amount)

        return PaymentSession(
            payment_id=order.id,
            provider_order_id=order_id,
            provider=self.provider,
            amount=amount,
            pay_url=pay_url,
            expires_at=expires_at,
        )

    def verify_signature(self, payload: Mapping[str, Any]) -> bool:
        self._ensure_configured()
        params = {
            key: value
            for key, value in payload.items()
            if key.startswith("vnp_") and key not in HASH_FIELDS
        }
        return signatures_match(self._secure_hash(params), payload.get("vnp_SecureHash"))

    def _parse_callback(self, payload: Mapping[str, Any]) -> PaymentResult:
        txn_ref = self._text(payload.get("vnp_TxnRef")) or ""
        outcome, code = self._classify(payload.get("vnp_ResponseCode"), payload.get("vnp_TransactionStatus"))
        return self._build_result(
            outcome,
            native_code=code,
            payment_id=self.extract_order_id(txn_ref),
            amount=self.parse_amount(payload.get("vnp_Amount"), AMOUNT_MULTIPLIER),
            message=self._message(code),
            provider_order_id=txn_ref,
            provider_transaction_id=self._text(payload.get("vnp_TransactionNo")),
            bank_code=self._text(payload.get("vnp_BankCode")),
            pay_date=self._text(payload.get("vnp_PayDate")),
            raw_data=dict(payload),
        )

    async def get_status(self, payment_id: str, provider_order_id: str) -> PaymentResult:
        if not provider_order_id:
            raise PaymentValidationError("Provider order ID is required", field="provider_order_id", provider=self.provider)
        self._ensure_configured()
        cfg = self._cfg
        now = format_vnp_date(datetime.now(timezone.utc))
        body = self._signed({
            "vnp_RequestId": self.generate_request_id(),
            "vnp_Version": cfg.version,
            "vnp_Command": "querydr",
            "vnp_TmnCode": cfg.tmn_code,
            "vnp_TxnRef": provider_order_id,
            "vnp_OrderInfo": f"Query order {provider_order_id}",
            "vnp_TransactionDate": now,
            "vnp_CreateDate": now,
            "vnp_IpAddr": DEFAULT_IP,
        })
        data = await self._request("POST", cfg.api_url, json=body, operation="querydr")

        outcome, code = self._classify(data.get("vnp_ResponseCode"), data.get("vnp_TransactionStatus"))
        return self._build_result(
            outcome,
            native_code=code,
            payment_id=payment_id,
            amount=self.parse_amount(data.get("vnp_Amount"), AMOUNT_MULTIPLIER),
            message=self._message(code, data.get("vnp_Message")),
            provider_order_id=provider_order_id,
            provider_transaction_id=self._text(data.get("vnp_TransactionNo")),
            bank_code=self._text(data.get("vnp_BankCode")),
            pay_date=self._text(data.get("vnp_PayDate")),
            raw_data=data,
        )

    async def refund(
        self,
        payment_id: str,
        provider_transaction_id: str,
        amount: int,
        reason: Optional[str] = None,
    ) -> RefundResult:
        amount = self._validate_refund(provider_transaction_id, amount)
        self._ensure_configured()
        cfg = self._cfg
        now = format_vnp_date(datetime.now(timezone.utc))
        request_id = self.generate_request_id()
        txn_ref = f"refund_{payment_id}_{request_id}"
        body = self._signed({
            "vnp_RequestId": request_id,
            "vnp_Version": cfg.version,
            "vnp_Command": "refund",
            "vnp_TmnCode": cfg.tmn_code,
            "vnp_TransactionType": "02",
            "vnp_TxnRef": txn_ref,
            "vnp_Amount": amount * AMOUNT_MULTIPLIER,
            "vnp_OrderInfo": reason or f"Refund for order {payment_id}",
            "vnp_TransactionNo": provider_transaction_id,
            "vnp_TransactionDate": now,
            "vnp_CreateDate": now,
            "vnp_CreateBy": "system",
            "vnp_IpAddr": DEFAULT_IP,
        })
        self._log("payment_refund_request", payment_id=payment_id, refund_reference=txn_ref, amount=amount)
        data = await self._request("POST", cfg.api_url, json=body, operation="refund")

        response_code = data.get("vnp_ResponseCode")
        return self._build_refund_result(
            success=response_code == VNPAY_SUCCESS,
            native_code=response_code,
            amount=amount,
            refund_reference=txn_ref,
            refund_id=data.get("vnp_TransactionNo"),
            message=data.get("vnp_Message"),
            raw_data=data,
        )

    def acknowledge(self, error: Optional[Exception] = None) -> dict[str, Any]:
        if error is None:
            return {"RspCode": "00", "Message": "Confirm Success"}
        for error_type, code, message in _ACK_BY_ERROR:
            if isinstance(error, error_type):
                return {"RspCode": code, "Message": message}
        return {"RspCode": "99", "Message": "Unknown error"}
