"""
ZaloPay adapter (API v2, form-encoded requests).

Outbound requests are signed with key1; callbacks are signed with key2 over
the raw `data` string, which is only decoded once the mac checks out.
"""
from __future__ import annotations

import json
import secrets
from datetime import datetime
from typing import Any, Mapping, Optional

from application.dtos.payments import (
    OrderDescriptor,
    PaymentOptions,
    PaymentSession,
    PaymentResult,
    RefundResult,
)
from core.config import settings
from core.settings import PaymentTimeouts, ZalopaySettings, payment_settings
from domain.payment.exceptions import PaymentValidationError
from infrastructure.external.payments.base import GATEWAY_TZ, BasePaymentClient
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentSignatureError
from infrastructure.external.payments.signing import hmac_sha256, signatures_match


ZALOPAY_SUCCESS = 1
ANONYMOUS_USER = "anonymous"


def _compact_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


class ZalopayClient(BasePaymentClient):
    provider = "zalopay"

    def __init__(
        self,
        config: Optional[ZalopaySettings] = None,
        *,
        timeouts: Optional[PaymentTimeouts] = None,
        transport=None,
    ):
        self._cfg = config or payment_settings.zalopay
        super().__init__(
            credentials={"app_id": self._cfg.app_id, "key1": self._cfg.key1, "key2": self._cfg.key2},
            timeouts=timeouts or payment_settings.timeouts,
            transport=transport,
        )

    def _mac(self, *parts: Any) -> str:
        return hmac_sha256("|".join(str(p) for p in parts), self._cfg.key1 or "")

    def _date_prefix(self) -> str:
        return datetime.now(GATEWAY_TZ).strftime("%y%m%d")

    def generate_app_trans_id(self) -> str:
        """`yyMMdd_` followed by the last 8 digits of the clock and 4 random digits."""
        millis = str(self._now_millis())[-8:]
        return f"{self._date_prefix()}_{millis}{secrets.randbelow(10_000):04d}"

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

        app_trans_id = self.generate_app_trans_id()
        amount = self.format_amount(order.amount)
        app_time = self._now_millis()
        app_user = order.user_id or ANONYMOUS_USER
        redirect_url = options.return_url or f"{settings.FRONTEND_URL}/payment/success?orderId={order.id}"
        embed_data = _compact_json({"redirecturl": redirect_url, "orderId": order.id})
        item = _compact_json([])

        form = {
            "app_id": cfg.app_id,
            "app_user": app_user,
            "app_trans_id": app_trans_id,
            "app_time": app_time,
            "amount": amount,
            "item": item,
            "description": self.build_order_info(order),
            "embed_data": embed_data,
            "bank_code": options.bank_code or "",
            "callback_url": options.notify_url or self.get_notify_url(),
            "mac": self._mac(cfg.app_id, app_trans_id, app_user, amount, app_time, embed_data, item),
        }

        self._log("payment_create_request", payment_id=order.id, provider_order_id=app_trans_id, amount=amount)
        data = await self._request("POST", f"{cfg.endpoint}/create", data=form, operation="create")

        return_code = self._native_code(data.get("return_code"))
        if return_code != ZALOPAY_SUCCESS:
            self._log("payment_create_rejected", level="warning", payment_id=order.id, return_code=return_code)
            raise PaymentProviderError(
                data.get("return_message") or data.get("sub_return_message") or "ZaloPay payment creation failed",
                provider=self.provider,
                provider_code=self._error_code(return_code),
                details={"sub_return_code": data.get("sub_return_code")},
            )
        if not data.get("order_url"):
            raise PaymentProviderError("ZaloPay response has no order_url", provider=self.provider)

        return PaymentSession(
            payment_id=order.id,
            provider_order_id=app_trans_id,
            provider=self.provider,
            amount=amount,
            pay_url=data["order_url"],
            payment_token=data.get("zp_trans_token"),
            expires_at=self.session_expiry(),
            raw_response=data,
        )

    def verify_signature(self, payload: Mapping[str, Any]) -> bool:
        self._ensure_configured()
        raw = payload.get("data")
        if not isinstance(raw, str):
            return False
        return signatures_match(hmac_sha256(raw, self._cfg.key2 or ""), payload.get("mac"))

    def _order_id_from(self, callback: Mapping[str, Any]) -> str:
        app_trans_id = str(callback.get("app_trans_id") or "")
        try:
            embed = json.loads(callback.get("embed_data") or "{}")
        except (TypeError, ValueError):
            embed = {}
        if isinstance(embed, dict) and embed.get("orderId"):
            return str(embed["orderId"])
        self._log("payment_callback_order_id_fallback", level="warning", app_trans_id=app_trans_id)
        return app_trans_id.split("_", 1)[-1]

    def _parse_callback(self, payload: Mapping[str, Any]) -> PaymentResult:
        try:
            callback = json.loads(payload["data"])
        except ValueError as exc:
            raise PaymentProviderError("Malformed callback data", provider=self.provider) from exc
        if not isinstance(callback, dict):
            raise PaymentProviderError("Malformed callback data", provider=self.provider)

        zp_trans_id = callback.get("zp_trans_id")
        # ZaloPay only calls back for completed payments
        return self._build_result(
            self._map_status(ZALOPAY_SUCCESS),
            native_code=ZALOPAY_SUCCESS,
            payment_id=self._order_id_from(callback),
            amount=self.parse_amount(callback.get("amount")),
            provider_order_id=self._text(callback.get("app_trans_id")),
            provider_transaction_id=str(zp_trans_id) if zp_trans_id is not None else None,
            raw_data=callback,
        )

    async def get_status(self, payment_id: str, provider_order_id: str) -> PaymentResult:
        if not provider_order_id:
            raise PaymentValidationError("Provider order ID is required", field="provider_order_id", provider=self.provider)
        self._ensure_configured()
        cfg = self._cfg
        form = {
            "app_id": cfg.app_id,
            "app_trans_id": provider_order_id,
            "mac": self._mac(cfg.app_id, provider_order_id, cfg.key1),
        }
        data = await self._request("POST", f"{cfg.endpoint}/query", data=form, operation="query")

        return_code = self._native_code(data.get("return_code"))
        zp_trans_id = data.get("zp_trans_id")
        return self._build_result(
            self._map_status(return_code),
            native_code=return_code,
            payment_id=payment_id,
            amount=self.parse_amount(data.get("amount")),
            message=data.get("return_message"),
            provider_order_id=provider_order_id,
            provider_transaction_id=str(zp_trans_id) if zp_trans_id else None,
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
        timestamp = self._now_millis()
        description = reason or f"Refund for order {payment_id}"
        m_refund_id = f"{self._date_prefix()}_{cfg.app_id}_{timestamp}{secrets.randbelow(1_000_000)}"
        form = {
            "app_id": cfg.app_id,
            "zp_trans_id": provider_transaction_id,
            "amount": amount,
            "description": description,
            "timestamp": timestamp,
            "m_refund_id": m_refund_id,
            "mac": self._mac(cfg.app_id, provider_transaction_id, amount, description, timestamp),
        }
        self._log("payment_refund_request", payment_id=payment_id, refund_reference=m_refund_id, amount=amount)
        data = await self._request("POST", f"{cfg.endpoint}/refund", data=form, operation="refund")

        return_code = self._native_code(data.get("return_code"))
        return self._build_refund_result(
            success=return_code == ZALOPAY_SUCCESS,
            native_code=return_code,
            amount=amount,
            refund_reference=m_refund_id,
            refund_id=data.get("refund_id"),
            message=data.get("return_message"),
            raw_data=data,
        )

    def acknowledge(self, error: Optional[Exception] = None) -> dict[str, Any]:
        if error is None:
            return {"return_code": 1, "return_message": "success"}
        if isinstance(error, PaymentSignatureError):
            return {"return_code": -1, "return_message": "mac not equal"}
        return {"return_code": 0, "return_message": str(error)}
