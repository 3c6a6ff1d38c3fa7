import hashlib
import re
from datetime import datetime
from urllib.parse import parse_qsl, quote_plus, urlsplit

import pytest

from application.dtos.payments import OrderDescriptor, PaymentOptions
from domain.payment.entity import PaymentStatus, RefundStatus
from domain.payment.exceptions import AmountMismatchError, OrderAlreadyPaidError, PaymentNotFoundError
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentSignatureError
from infrastructure.external.payments.vnpay_client import VnpayClient, canonical_query
from shared.codes.payment_codes import PaymentErrorKind


def _secure_hash(params: dict, secret: str) -> str:
    query = "&".join(f"{k}={quote_plus(str(params[k]))}" for k in sorted(params) if params[k] not in ("", None))
    return hashlib.sha512((secret + query).encode()).hexdigest()


def _callback(cfg, **overrides):
    params = {
        "vnp_Amount": "5000000",
        "vnp_BankCode": "NCB",
        "vnp_BankTranNo": "VNP14012345",
        "vnp_CardType": "ATM",
        "vnp_OrderInfo": "Payment for order o2",
        "vnp_PayDate": "20240101120000",
        "vnp_ResponseCode": "00",
        "vnp_TmnCode": cfg.tmn_code,
        "vnp_TransactionNo": "14012345",
        "vnp_TransactionStatus": "00",
        "vnp_TxnRef": "o2_1700000000000",
    }
    params.update(overrides)
    return {**params, "vnp_SecureHash": _secure_hash(params, cfg.hash_secret), "vnp_SecureHashType": "SHA512"}


@pytest.mark.asyncio
async def test_create_payment_builds_signed_url_without_network(vnpay_settings, timeouts, reply):
    transport = reply()
    client = VnpayClient(vnpay_settings, timeouts=timeouts, transport=transport)

    session = await client.create_payment(OrderDescriptor(id="o2", amount=50000))

    assert transport.calls == 0
    assert session.amount == 50000
    assert re.fullmatch(r"o2_\d+", session.provider_order_id)
    url = urlsplit(session.pay_url)
    assert f"{url.scheme}://{url.netloc}{url.path}" == vnpay_settings.payment_url
    params = dict(parse_qsl(url.query, keep_blank_values=True))
    assert params["vnp_Amount"] == "5000000"
    assert params["vnp_TxnRef"] == session.provider_order_id
    assert params["vnp_Command"] == "pay"
    assert params["vnp_TmnCode"] == vnpay_settings.tmn_code
    assert params["vnp_ReturnUrl"].endswith("/api/payments/callback/vnpay")
    assert "vnp_BankCode" not in params

    received = params.pop("vnp_SecureHash")
    assert received == _secure_hash(params, vnpay_settings.hash_secret)

    created = datetime.strptime(params["vnp_CreateDate"], "%Y%m%d%H%M%S")
    expires = datetime.strptime(params["vnp_ExpireDate"], "%Y%m%d%H%M%S")
    assert (expires - created).total_seconds() == 15 * 60


@pytest.mark.asyncio
async def test_create_payment_with_options(vnpay_settings, timeouts):
    client = VnpayClient(vnpay_settings, timeouts=timeouts)
    session = await client.create_payment(
        OrderDescriptor(id="o2", amount=50000),
        PaymentOptions(bank_code="NCB", locale="en", ip_address="10.0.0.8", return_url="https://shop.test/back"),
    )
    params = dict(parse_qsl(urlsplit(session.pay_url).query))
    assert params["vnp_BankCode"] == "NCB"
    assert params["vnp_Locale"] == "en"
    assert params["vnp_IpAddr"] == "10.0.0.8"
    assert params["vnp_ReturnUrl"] == "https://shop.test/back"


def test_canonical_query_skips_empty_and_sorts():
    assert canonical_query({"b": "x y", "a": "1", "c": "", "d": None}) == "a=1&b=x+y"


def test_callback_paid(vnpay_settings):
    client = VnpayClient(vnpay_settings)
    payload = {**_callback(vnpay_settings), "provider": "vnpay"}

    assert client.verify_signature(payload)
    result = client.process_callback(payload)

    assert result.success is True
    assert result.status == PaymentStatus.PAID
    assert result.amount == 50000
    assert result.payment_id == "o2"
    assert result.provider_transaction_id == "14012345"
    assert result.bank_code == "NCB"
    assert result.pay_date == "20240101120000"


@pytest.mark.parametrize(
    "response_code,transaction_status,status,error_code",
    [
        ("24", "02", PaymentStatus.CANCELLED, "VNPAY_24"),
        ("51", "02", PaymentStatus.FAILED, "VNPAY_51"),
        ("00", "01", PaymentStatus.PENDING, "VNPAY_01"),
        ("00", "05", PaymentStatus.PROCESSING, "VNPAY_05"),
        ("00", "02", PaymentStatus.FAILED, "VNPAY_02"),
    ],
)
def test_callback_outcomes(vnpay_settings, response_code, transaction_status, status, error_code):
    client = VnpayClient(vnpay_settings)
    result = client.process_callback(
        _callback(vnpay_settings, vnp_ResponseCode=response_code, vnp_TransactionStatus=transaction_status)
    )
    assert result.success is False
    assert result.status == status
    assert result.error_code == error_code


def test_cancelled_message(vnpay_settings):
    result = VnpayClient(vnpay_settings).process_callback(_callback(vnpay_settings, vnp_ResponseCode="24"))
    assert result.error_message == "Customer cancelled the transaction"
    assert result.error_kind == PaymentErrorKind.PAYMENT_FAILED


@pytest.mark.parametrize(
    "field,value",
    [
        ("vnp_Amount", "100"),
        ("vnp_ResponseCode", "24"),
        ("vnp_TxnRef", "o9_1700000000000"),
        ("vnp_TransactionStatus", "02"),
    ],
)
def test_tampered_callback_is_rejected(vnpay_settings, field, value):
    client = VnpayClient(vnpay_settings)
    payload = {**_callback(vnpay_settings), field: value}
    assert client.verify_signature(payload) is False
    with pytest.raises(PaymentSignatureError):
        client.process_callback(payload)


@pytest.mark.asyncio
async def test_get_status(vnpay_settings, timeouts, reply):
    transport = reply({
        "vnp_ResponseCode": "00",
        "vnp_Message": "QueryDR Success",
        "vnp_TransactionStatus": "00",
        "vnp_Amount": "5000000",
        "vnp_TransactionNo": "14012345",
        "vnp_BankCode": "NCB",
    })
    client = VnpayClient(vnpay_settings, timeouts=timeouts, transport=transport)

    result = await client.get_status("o2", "o2_1700000000000")

    assert result.status == PaymentStatus.PAID
    assert result.amount == 50000
    assert str(transport.requests[0].url) == vnpay_settings.api_url
    body = transport.json_body()
    assert body["vnp_Command"] == "querydr"
    assert body["vnp_TxnRef"] == "o2_1700000000000"
    received = body.pop("vnp_SecureHash")
    assert received == _secure_hash(body, vnpay_settings.hash_secret)


@pytest.mark.asyncio
async def test_get_status_not_found(vnpay_settings, timeouts, reply):
    client = VnpayClient(vnpay_settings, timeouts=timeouts, transport=reply({"vnp_ResponseCode": "91"}))
    result = await client.get_status("o2", "o2_1700000000000")
    assert result.status == PaymentStatus.FAILED
    assert result.error_kind == PaymentErrorKind.PAYMENT_NOT_FOUND
    assert result.error_code == "VNPAY_91"


@pytest.mark.asyncio
async def test_refund_uses_fresh_reference(vnpay_settings, timeouts, reply):
    transport = reply({"vnp_ResponseCode": "00", "vnp_TransactionNo": "14019999", "vnp_Message": "Refund success"})
    client = VnpayClient(vnpay_settings, timeouts=timeouts, transport=transport)

    first = await client.refund("o2", "14012345", 50000, "Damaged item")
    second = await client.refund("o2", "14012345", 50000, "Damaged item")

    assert first.success is True
    assert first.status == RefundStatus.COMPLETED
    assert first.refund_id == "14019999"
    assert first.amount == 50000
    body = transport.json_body(0)
    assert body["vnp_Command"] == "refund"
    assert body["vnp_TransactionType"] == "02"
    assert body["vnp_Amount"] == 5000000
    assert body["vnp_TxnRef"] == first.refund_reference
    assert second.refund_reference != first.refund_reference


@pytest.mark.asyncio
async def test_refund_declined(vnpay_settings, timeouts, reply):
    client = VnpayClient(vnpay_settings, timeouts=timeouts, transport=reply({"vnp_ResponseCode": "94"}))
    result = await client.refund("o2", "14012345", 50000)
    assert result.success is False
    assert result.error_kind == PaymentErrorKind.REFUND_FAILED
    assert result.error_code == "VNPAY_94"


@pytest.mark.asyncio
async def test_provider_outage(vnpay_settings, timeouts, reply):
    client = VnpayClient(vnpay_settings, timeouts=timeouts, transport=reply(status_code=503))
    with pytest.raises(PaymentProviderError):
        await client.get_status("o2", "o2_1700000000000")


def test_acknowledge(vnpay_settings):
    client = VnpayClient(vnpay_settings)
    assert client.acknowledge() == {"RspCode": "00", "Message": "Confirm Success"}
    assert client.acknowledge(PaymentSignatureError(provider="vnpay"))["RspCode"] == "97"
    assert client.acknowledge(OrderAlreadyPaidError("o2", status="paid"))["RspCode"] == "02"
    assert client.acknowledge(AmountMismatchError("o2", expected=1, actual=2))["RspCode"] == "04"
    assert client.acknowledge(PaymentNotFoundError("o2"))["RspCode"] == "01"
    assert client.acknowledge(RuntimeError("boom"))["RspCode"] == "99"


def test_callback_with_numeric_fields(vnpay_settings):
    payload = _callback(vnpay_settings, vnp_TransactionNo=14012345, vnp_PayDate=20240101120000, vnp_Amount=5000000)
    client = VnpayClient(vnpay_settings)

    assert client.verify_signature(payload) is True
    result = client.process_callback(payload)

    assert result.success is True
    assert result.provider_transaction_id == "14012345"
    assert result.pay_date == "20240101120000"
    assert result.amount == 50000


@pytest.mark.asyncio
async def test_created_order_round_trips_through_callback(vnpay_settings, timeouts, reply):
    client = VnpayClient(vnpay_settings, timeouts=timeouts, transport=reply())
    session = await client.create_payment(OrderDescriptor(id="order_7", amount=50000))
    sent = dict(parse_qsl(urlsplit(session.pay_url).query, keep_blank_values=True))

    # the signed redirect itself verifies with the same secret
    assert client.verify_signature(sent) is True

    result = client.process_callback(
        _callback(
            vnpay_settings,
            vnp_TxnRef=sent["vnp_TxnRef"],
            vnp_Amount=sent["vnp_Amount"],
            vnp_OrderInfo=sent["vnp_OrderInfo"],
        )
    )

    assert result.success is True
    assert result.payment_id == "order_7"
    assert result.provider_order_id == session.provider_order_id
    assert result.amount == session.amount
