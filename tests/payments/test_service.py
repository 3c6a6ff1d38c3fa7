import pytest

from application.dtos.payments import OrderDescriptor, PaymentResult
from application.services.payment_service import PaymentService
from core.settings import PaymentSettings
from domain.payment.entity import PaymentProvider, PaymentStatus
from domain.payment.exceptions import AmountMismatchError, InvalidProviderError, OrderAlreadyPaidError
from infrastructure.external.payments import (
    MomoClient,
    VnpayClient,
    ZalopayClient,
    build_payment_gateways,
    get_payment_gateway,
)


@pytest.fixture
def service(momo_settings, vnpay_settings, zalopay_settings, reply):
    config = PaymentSettings(momo=momo_settings, vnpay=vnpay_settings, zalopay=zalopay_settings)
    transport = reply({"resultCode": 0, "payUrl": "https://momo.test/pay", "transId": 1})
    return PaymentService(build_payment_gateways(config, transport=transport)), transport


def test_registry_is_closed():
    gateways = build_payment_gateways()
    assert set(gateways) == {PaymentProvider.MOMO, PaymentProvider.VNPAY, PaymentProvider.ZALOPAY}
    assert isinstance(gateways[PaymentProvider.MOMO], MomoClient)
    assert isinstance(gateways[PaymentProvider.VNPAY], VnpayClient)
    assert isinstance(gateways[PaymentProvider.ZALOPAY], ZalopayClient)


@pytest.mark.parametrize(
    "alias,cls",
    [("momo", MomoClient), ("VNPAY", VnpayClient), ("vnp", VnpayClient), ("zalo", ZalopayClient), ("zlp", ZalopayClient)],
)
def test_get_payment_gateway_aliases(alias, cls):
    assert isinstance(get_payment_gateway(alias), cls)
    assert get_payment_gateway(alias) is get_payment_gateway(alias)


def test_get_payment_gateway_unknown():
    with pytest.raises(InvalidProviderError):
        get_payment_gateway("stripe")


@pytest.mark.asyncio
async def test_create_payment_routes_by_provider(service):
    svc, transport = service
    session = await svc.create_payment("momo", OrderDescriptor(id="o1", amount=100000))
    assert session.provider == "momo"
    assert transport.calls == 1

    vn_session = await svc.create_payment("vnp", OrderDescriptor(id="o2", amount=50000))
    assert vn_session.provider == "vnpay"
    # VNPay builds a redirect URL locally
    assert transport.calls == 1
    await svc.aclose()


@pytest.mark.asyncio
async def test_unknown_provider_is_rejected(service):
    svc, transport = service
    with pytest.raises(InvalidProviderError):
        await svc.create_payment("paypal", OrderDescriptor(id="o1", amount=1000))
    assert transport.calls == 0


@pytest.mark.asyncio
async def test_refund_routes(service):
    svc, transport = service
    result = await svc.refund("momo", "o1", "4088878653", 1000)
    assert result.success is True
    assert transport.calls == 1


def test_handle_callback_unknown_provider(service):
    svc, _ = service
    outcome = svc.handle_callback("paypal", {})
    assert isinstance(outcome.error, InvalidProviderError)


@pytest.mark.parametrize("status", [PaymentStatus.PAID, "refunded", PaymentStatus.PARTIALLY_REFUNDED])
def test_ensure_payable_rejects_settled_orders(status):
    with pytest.raises(OrderAlreadyPaidError):
        PaymentService.ensure_payable("o1", status)


@pytest.mark.parametrize("status", [PaymentStatus.PENDING, "failed", PaymentStatus.CANCELLED])
def test_ensure_payable_accepts_open_orders(status):
    PaymentService.ensure_payable("o1", status)


def test_ensure_amount():
    result = PaymentResult(success=True, payment_id="o1", provider="momo", status=PaymentStatus.PAID, amount=100000)
    PaymentService.ensure_amount(result, 100000)
    with pytest.raises(AmountMismatchError) as exc:
        PaymentService.ensure_amount(result, 99000)
    assert exc.value.details["expected"] == 99000
    assert exc.value.details["actual"] == 100000
