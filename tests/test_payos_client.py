import hashlib
import hmac
import json

import httpx
import pytest

from app.config import settings
from app.services.payos_client import (
    PayOSClient,
    PaymentNotFoundError,
    PaymentProviderError,
    PaymentProviderUnavailableError,
)

CHECKSUM_KEY = "1a2b3c"


def make_client(handler):
    return PayOSClient(
        client_id="client-1",
        api_key="key-1",
        checksum_key=CHECKSUM_KEY,
        base_url="https://payos.test",
        transport=httpx.MockTransport(handler),
    )


def signature(message):
    return hmac.new(CHECKSUM_KEY.encode(), message.encode(), hashlib.sha256).hexdigest()


async def test_create_payment_link_sends_signed_request():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={
            "code": "00",
            "desc": "success",
            "data": {
                "checkoutUrl": "https://pay.payos.vn/web/abc",
                "qrCode": "000201",
                "paymentLinkId": "abc",
            },
        })

    link = await make_client(handler).create_payment_link("f" * 24 + "deadbeef", 150000, 123456)

    assert link.checkout_url == "https://pay.payos.vn/web/abc"
    assert link.payment_link_id == "abc"
    request = requests[0]
    assert request.url == "https://payos.test/v2/payment-requests"
    assert request.headers["x-client-id"] == "client-1"
    assert request.headers["x-api-key"] == "key-1"
    body = json.loads(request.content)
    assert body["description"] == "Order DEADBEEF"
    assert body["orderCode"] == 123456
    assert body["signature"] == signature(
        f"amount=150000&cancelUrl={settings.PAYOS_CANCEL_URL}&description=Order DEADBEEF"
        f"&orderCode=123456&returnUrl={settings.PAYOS_RETURN_URL}"
    )


async def test_description_is_truncated():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"code": "00", "data": {"checkoutUrl": "u", "paymentLinkId": "p"}})

    await make_client(handler).create_payment_link("abc", 1000, 1, description="x" * 40)

    assert bodies[0]["description"] == "x" * 25


async def test_provider_rejection():
    def handler(request):
        return httpx.Response(200, json={"code": "231", "desc": "Order code already exists", "data": None})

    with pytest.raises(PaymentProviderError, match="Order code already exists"):
        await make_client(handler).create_payment_link("abc", 1000, 1)


async def test_provider_server_error():
    def handler(request):
        return httpx.Response(503, text="maintenance")

    with pytest.raises(PaymentProviderUnavailableError):
        await make_client(handler).get_payment_info(1)


async def test_payment_info():
    def handler(request):
        assert request.url.path == "/v2/payment-requests/123456"
        return httpx.Response(200, json={
            "code": "00",
            "desc": "success",
            "data": {
                "id": "abc",
                "orderCode": 123456,
                "amount": 150000,
                "amountPaid": 150000,
                "amountRemaining": 0,
                "status": "PAID",
                "createdAt": "2026-10-18T09:00:00+07:00",
                "transactions": [{"amount": 150000, "reference": "FT123", "accountNumber": "0123"}],
            },
        })

    info = await make_client(handler).get_payment_info(123456)

    assert info.status == "PAID"
    assert info.amount_paid == 150000
    assert info.transactions[0].reference == "FT123"


async def test_unknown_payment():
    def handler(request):
        return httpx.Response(404, json={"code": "101", "desc": "Not found"})

    with pytest.raises(PaymentNotFoundError):
        await make_client(handler).get_payment_info(1)


def test_webhook_signature():
    client = make_client(lambda request: httpx.Response(200))
    data = {"orderCode": 123, "amount": 3000, "description": "VQRIO123", "reference": None, "code": "00"}
    valid = signature("amount=3000&code=00&description=VQRIO123&orderCode=123&reference=")

    assert client.verify_webhook_data(data, valid)
    assert not client.verify_webhook_data(dict(data, amount=1), valid)
    assert not client.verify_webhook_data(data, "")


@pytest.mark.parametrize("data", [
    {"paymentLinkId": "p1"},
    {"checkoutUrl": "https://pay.payos.vn/web/p1"},
    ["https://pay.payos.vn/web/p1"],
])
async def test_incomplete_payment_link_is_a_provider_error(data):
    def handler(request):
        return httpx.Response(200, json={"code": "00", "desc": "success", "data": data})

    with pytest.raises(PaymentProviderError):
        await make_client(handler).create_payment_link("abc", 1000, 1)


@pytest.mark.parametrize("data", [
    {"status": "PAID", "amount": 1000},
    {"orderCode": 1, "amount": 1000},
    {"orderCode": 1, "status": "PAID", "transactions": ["FT123"]},
    "PAID",
])
async def test_incomplete_payment_info_is_a_provider_error(data):
    def handler(request):
        return httpx.Response(200, json={"code": "00", "desc": "success", "data": data})

    with pytest.raises(PaymentProviderError):
        await make_client(handler).get_payment_info(1)


async def test_non_object_envelope_is_a_provider_error():
    def handler(request):
        return httpx.Response(200, json=["00"])

    with pytest.raises(PaymentProviderError):
        await make_client(handler).get_payment_info(1)
