"""Pytest bootstrap configuration.

Gateway credentials are passed to adapters explicitly through settings
objects, and every outbound call goes through a recording MockTransport so
tests can assert on exact request bodies and call counts.
"""
import json
from urllib.parse import parse_qsl

import httpx
import pytest

from core.settings import MomoSettings, PaymentTimeouts, VnpaySettings, ZalopaySettings


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, responder):
        self.requests: list[httpx.Request] = []

        async def handler(request: httpx.Request):
            self.requests.append(request)
            response = responder(request)
            if not isinstance(response, httpx.Response):
                response = await response
            return response

        super().__init__(handler)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def json_body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)

    def form_body(self, index: int = -1) -> dict:
        return dict(parse_qsl(self.requests[index].content.decode(), keep_blank_values=True))


@pytest.fixture
def recording_transport():
    """Wrap a custom responder (sync or async) in a RecordingTransport."""
    return RecordingTransport


@pytest.fixture
def reply():
    """Build a transport answering every request with the same JSON body."""

    def _make(payload=None, status_code: int = 200) -> RecordingTransport:
        return RecordingTransport(lambda request: httpx.Response(status_code, json=payload or {}))

    return _make


@pytest.fixture
def timeouts():
    return PaymentTimeouts(total=5.0)


@pytest.fixture
def momo_settings():
    return MomoSettings(
        partner_code="MOMOTEST2024",
        access_key="F8BBA842ECF85",
        secret_key="K951B6PE1waDMi640xX08PD3vg6EkVlz",
        endpoint="https://momo.test/v2/gateway/api",
    )


@pytest.fixture
def vnpay_settings():
    return VnpaySettings(
        tmn_code="DEMOTMN1",
        hash_secret="SECRETHASHKEYFORVNPAYTESTING0001",
        payment_url="https://vnpay.test/paymentv2/vpcpay.html",
        api_url="https://vnpay.test/merchant_webapi/api/transaction",
    )


@pytest.fixture
def zalopay_settings():
    return ZalopaySettings(
        app_id="2553",
        key1="PcY4iZIKFCIdgZvA6ueMcMHHUbRLYjPL",
        key2="kLtgPl8HHhfvMuDHPwKfgfsY4Ydm9eIz",
        endpoint="https://zalopay.test/v2",
    )
