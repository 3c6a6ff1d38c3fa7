"""
Registry of payment gateway clients.

The set of gateways is closed; each adapter is built once per process from
`payment_settings` and looked up by name or alias.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from application.ports.payment_gateway import PaymentGateway
from core.settings import PaymentSettings, payment_settings
from domain.payment.entity import PaymentProvider
from domain.payment.exceptions import InvalidProviderError

from .momo_client import MomoClient
from .vnpay_client import VnpayClient
from .zalopay_client import ZalopayClient


def build_payment_gateways(
    config: Optional[PaymentSettings] = None,
    *,
    transport=None,
) -> dict[PaymentProvider, PaymentGateway]:
    cfg = config or payment_settings
    return {
        PaymentProvider.MOMO: MomoClient(cfg.momo, timeouts=cfg.timeouts, transport=transport),
        PaymentProvider.VNPAY: VnpayClient(cfg.vnpay, timeouts=cfg.timeouts, transport=transport),
        PaymentProvider.ZALOPAY: ZalopayClient(cfg.zalopay, timeouts=cfg.timeouts, transport=transport),
    }


@lru_cache(maxsize=1)
def get_payment_gateways() -> dict[PaymentProvider, PaymentGateway]:
    return build_payment_gateways()


def get_payment_gateway(provider: Optional[str]) -> PaymentGateway:
    name = PaymentProvider.from_name(provider)
    if name is None:
        raise InvalidProviderError(provider)
    return get_payment_gateways()[name]


__all__ = [
    "MomoClient",
    "VnpayClient",
    "ZalopayClient",
    "build_payment_gateways",
    "get_payment_gateways",
    "get_payment_gateway",
]
