"""
MoMo adapter (API v2, JSON over https).

Every request and the IPN carry an HMAC-SHA256 `signature` computed with the
partner secret key over a fixed-order `k=v&k=v` canonical string.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional

from application.dtos.payments import (
    OrderDescriptor,
    PaymentOptions,
    PaymentSession,
    PaymentResult,
    RefundResult,
)
from core.settings import MomoSettings, PaymentTimeouts, payment_settings
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import PaymentProviderError
from infrastructure.external.payments.signing import hmac_sha256, join_pairs, signatures_match
from domain.payment.exceptions import PaymentValidationError


MOMO_SUCCESS = 0


class MomoClient(BasePaymentClient):
    provider = "momo"

    def __init__(
        self,
        config: Optional[MomoSettings] = None,
        *,
        timeouts: Optional[PaymentTimeouts] = None,
        transport=None,
    ):
        self._cfg = config or payment_settings.momo
        super().__init__(
            credentials={
                "partner_code": self._cfg.partner_code,
                "access_key": self._cfg.access_key,
                "secret_key": self._cfg.secret_key,
            },
            timeouts=timeouts or payment_settings.timeouts,
            transport=transport,
        )

    def _sign(self, pairs: list[tuple[str, Any]]) -> str:
        return hmac_sha256(join_pairs(pairs), self._cfg.secret_key or "")

    @staticmethod
    def _native_code(value: Any) -> Any:
        try:
            return int(value)
        except (TypeError, ValueError):
            return value

    async def create_payment(self, order: OrderDescriptor, options: Optional[PaymentOptions] = None) -> PaymentSession:
        self.validate_order(order)
        self._ensure_configured()
        options = options or PaymentOptions()
        cfg = self._cfg

        request_id = self.generate_request_id()
        order_id = self.generate_provider_order_id(order.id)
        amount = self.format_amount(order.amount)
        order_info = self.build_order_info(order)
        redirect_url = options.return_url or self.get_return_url()
        ipn_url = options.notify_url or self.get_notify_url()
        request_type = options.request_type or cfg.request_type
        extra_data = options.extra_data or ""

        signature = self._sign([
            ("accessKey", cfg.access_key),
            ("amount", amount),
            ("extraData", extra_data),
            ("ipnUrl", ipn_url),
            ("orderId", order_id),
            ("orderInfo", order_info),
            ("partnerCode", cfg.partner_code),
            ("redirectUrl", redirect_url),
            ("requestId", request_id),
            ("requestType", request_type),
        ])
        body = {
            "partnerCode": cfg.partner_code,
            "partnerName": options.partner_name or cfg.partner_name,
            "storeId": options.store_id or cfg.partner_code,
            "requestId": request_id,
            "amount": amount,
            "orderId": order_id,
            "orderInfo": order_info,
            "redirectUrl": redirect_url,
            "ipnUrl": ipn_url,
            "lang": options.locale or cfg.lang,
            "requestType": request_type,
            "autoCapture": True,
            "extraData": extra_data,
            "signature": signature,
        }

        self._log("payment_create_request", payment_id=order.id, provider_order_id=order_id, amount=amount)
        data = await self._request("POST", f"{cfg.endpoint}/create", json=body, operation="create")

        result_code = self._native_code(data.get("resultCode"))
        if result_code != MOMO_SUCCESS:
            self._log("payment_create_rejected", level="warning", payment_id=order.id, result_code=result_code)
            raise PaymentProviderError(
                data.get("message") or "MoMo payment creation failed",
                provider=self.provider,
                provider_code=self._error_code(result_code),
            )
        if not (data.get("payUrl") or data.get("deeplink") or data.get("qrCodeUrl")):
            raise PaymentProviderError("MoMo response has no payment URL", provider=self.provider)

        return PaymentSession(
            payment_id=order.id,
            provider_order_id=order_id,
            provider_request_id=request_id,
            provider=self.provider,
            amount=amount,
            pay_url=data.get("payUrl"),
            deeplink=data.get("deeplink"),
            qr_code_url=data.get("qrCodeUrl"),
            expires_at=self.session_expiry(),
            raw_response=data,
        )

    def verify_signature(self, payload: Mapping[str, Any]) -> bool:
        self._ensure_configured()
        expected = self._sign([
            ("accessKey", self._cfg.access_key),
            ("amount", payload.get("amount")),
            ("extraData", payload.get("extraData") or ""),
            ("message", payload.get("message")),
            ("orderId", payload.get("orderId")),
            ("orderInfo", payload.get("orderInfo")),
            ("orderType", payload.get("orderType")),
            ("partnerCode", payload.get("partnerCode")),
            ("payType", payload.get("payType")),
            ("requestId", payload.get("requestId")),
            ("responseTime", payload.get("responseTime")),
            ("resultCode", payload.get("resultCode")),
            ("transId", payload.get("transId")),
        ])
        return signatures_match(expected, payload.get("signature"))

    def _parse_callback(self, payload: Mapping[str, Any]) -> PaymentResult:
        provider_order_id = str(payload.get("orderId") or "")
        result_code = self._native_code(payload.get("resultCode"))
        trans_id = payload.get("transId")
        return self._build_result(
            self._map_status(result_code),
            native_code=result_code,
            payment_id=self.extract_order_id(provider_order_id),
            amount=self.parse_amount(payload.get("amount")),
            message=payload.get("message"),
            provider_order_id=provider_order_id,
            provider_transaction_id=str(trans_id) if trans_id is not None else None,
            raw_data=dict(payload),
        )

    async def get_status(self, payment_id: str, provider_order_id: str) -> PaymentResult:
        if not provider_order_id:
            raise PaymentValidationError("Provider order ID is required", field="provider_order_id", provider=self.provider)
        self._ensure_configured()
        cfg = self._cfg
        request_id = self.generate_request_id()
        body = {
            "partnerCode": cfg.partner_code,
            "requestId": request_id,
            "orderId": provider_order_id,
            "lang": cfg.lang,
            "signature": self._sign([
                ("accessKey", cfg.access_key),
                ("orderId", provider_order_id),
                ("partnerCode", cfg.partner_code),
                ("requestId", request_id),
            ]),
        }
        data = await self._request("POST", f"{cfg.endpoint}/query", json=body, operation="query")

        result_code = self._native_code(data.get("resultCode"))
        trans_id = data.get("transId")
        return self._build_result(
            self._map_status(result_code),
            native_code=result_code,
            payment_id=payment_id,
            amount=self.parse_amount(data.get("amount")),
            message=data.get("message"),
            provider_order_id=provider_order_id,
            provider_transaction_id=str(trans_id) if trans_id else None,
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
        request_id = self.generate_request_id()
        refund_order_id = f"refund_{payment_id}_{request_id}"
        description = reason or f"Refund for order {payment_id}"
        body = {
            "partnerCode": cfg.partner_code,
            "orderId": refund_order_id,
            "requestId": request_id,
            "amount": amount,
            "transId": provider_transaction_id,
            "lang": cfg.lang,
            "description": description,
            "signature": self._sign([
                ("accessKey", cfg.access_key),
                ("amount", amount),
                ("description", description),
                ("orderId", refund_order_id),
                ("partnerCode", cfg.partner_code),
                ("requestId", request_id),
                ("transId", provider_transaction_id),
            ]),
        }
        self._log("payment_refund_request", payment_id=payment_id, refund_reference=refund_order_id, amount=amount)
        data = await self._request("POST", f"{cfg.endpoint}/refund", json=body, operation="refund")

        result_code = self._native_code(data.get("resultCode"))
        return self._build_refund_result(
            success=result_code == MOMO_SUCCESS,
            native_code=result_code,
            amount=amount,
            refund_reference=refund_order_id,
            refund_id=data.get("transId"),
            message=data.get("message"),
            raw_data=data,
        )

    def acknowledge(self, error: Optional[Exception] = None) -> dict[str, Any]:
        # MoMo only needs HTTP 204; a body is sent back for diagnostics on failure
        if error is None:
            return {}
        return {"message": str(error)}
