"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Credentials are optional on purpose: an adapter whose credentials are missing
is still constructed (in an "unconfigured" state) and fails per call.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 10.0
    read: float = 30.0
    write: float = 30.0
    # Overall deadline of one outbound gateway call
    total: float = 30.0


class MomoSettings(BaseModel):
    partner_code: Optional[str] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    endpoint: str = "https://test-payment.momo.vn/v2/gateway/api"
    partner_name: str = "E-Commerce Platform"
    request_type: str = "payWithMethod"
    lang: str = "vi"


class VnpaySettings(BaseModel):
    tmn_code: Optional[str] = None
    hash_secret: Optional[str] = None
    payment_url: str = "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"
    api_url: str = "https://sandbox.vnpayment.vn/merchant_webapi/api/transaction"
    version: str = "2.1.0"
    locale: str = "vn"
    currency: str = "VND"


class ZalopaySettings(BaseModel):
    app_id: Optional[str] = None
    key1: Optional[str] = None
    key2: Optional[str] = None
    endpoint: str = "https://sb-openapi.zalopay.vn/v2"


class PaymentSettings(BaseSettings):
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)

    momo: MomoSettings = Field(default_factory=MomoSettings)
    vnpay: VnpaySettings = Field(default_factory=VnpaySettings)
    zalopay: ZalopaySettings = Field(default_factory=ZalopaySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
