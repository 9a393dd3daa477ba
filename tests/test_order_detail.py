import pytest

from app.exceptions import OrderNotFoundError, ProviderCodeNotFoundError
from app.models.order import PaymentStatus
from app.services.order_detail import (
    OrderDetailController,
    PaymentMarker,
    order_detail_path,
    strip_payment_marker,
)
from app.services.payment_reconciliation import ReconciliationOutcome

from conftest import checkout_request, persist_order


@pytest.fixture
def controller(db, reconciliation):
    return OrderDetailController(db, reconciliation, orders_url="/user/orders")


@pytest.fixture
async def linked_order(order_service):
    response = await order_service.create_order(checkout_request())
    return response.order


def detail_url(order_id, query=""):
    return f"http://shop.local/orders/{order_id}{query}"


@pytest.mark.parametrize("url, expected", [
    ("http://shop.local/orders/abc?payment=success", "http://shop.local/orders/abc"),
    ("http://shop.local/orders/abc?tab=items&payment=cancelled", "http://shop.local/orders/abc?tab=items"),
    ("/orders/abc?tab=items", "/orders/abc?tab=items"),
])
def test_strip_payment_marker(url, expected):
    assert strip_payment_marker(url) == expected


def test_order_detail_path():
    assert order_detail_path("abc") == "/orders/abc"
    assert order_detail_path("abc", PaymentMarker.SUCCESS) == "/orders/abc?payment=success"


async def test_return_from_successful_payment(controller, linked_order, payos):
    payos.statuses[linked_order.payos_order_code] = "PAID"

    view = await controller.enter(
        linked_order.id, detail_url(linked_order.id, "?payment=success&tab=items"), PaymentMarker.SUCCESS
    )

    assert view.order.payment_status == PaymentStatus.PAID.value
    assert view.reconciliation is ReconciliationOutcome.PAID
    assert view.notice == "Payment received, thank you!"
    assert view.canonical_url == detail_url(linked_order.id, "?tab=items")


async def test_return_while_payment_still_open(controller, linked_order):
    view = await controller.enter(linked_order.id, detail_url(linked_order.id), PaymentMarker.SUCCESS)

    assert view.reconciliation is ReconciliationOutcome.UNCHANGED
    assert "being confirmed" in view.notice


async def test_cancelled_payment_skips_lookup(controller, linked_order, payos):
    payos.statuses[linked_order.payos_order_code] = "PAID"

    view = await controller.enter(
        linked_order.id, detail_url(linked_order.id, "?payment=cancelled"), PaymentMarker.CANCELLED
    )

    assert payos.lookups == []
    assert view.order.payment_status == PaymentStatus.PENDING.value
    assert "cancelled" in view.notice
    assert view.canonical_url == detail_url(linked_order.id)


async def test_plain_entry_with_checkout_link_does_not_query_provider(controller, linked_order, payos):
    view = await controller.enter(linked_order.id, detail_url(linked_order.id))

    assert payos.lookups == []
    assert view.reconciliation is None
    assert view.notice is None


async def test_plain_entry_without_checkout_link_refreshes(controller, db):
    order = persist_order(db)

    view = await controller.enter(order.id, detail_url(order.id))

    assert view.reconciliation is ReconciliationOutcome.NO_PAYMENT_LINK


async def test_lookup_failure_shows_last_known_state(controller, linked_order, payos):
    payos.lookup_error = True

    view = await controller.enter(linked_order.id, detail_url(linked_order.id), PaymentMarker.SUCCESS)

    assert view.order.payment_status == PaymentStatus.PENDING.value
    assert view.reconciliation is None
    assert "try again later" in view.notice


async def test_unknown_order(controller):
    with pytest.raises(OrderNotFoundError):
        await controller.enter("missing", detail_url("missing"))


async def test_provider_code_resolves_to_order(controller, linked_order):
    assert controller.resolve_provider_code(str(linked_order.payos_order_code)) == linked_order.id
    assert controller.return_path(linked_order.payos_order_code, cancelled=True) == (
        f"/orders/{linked_order.id}?payment=cancelled"
    )


@pytest.mark.parametrize("code", ["424242", "not-a-number", None])
def test_unknown_provider_code_points_to_order_list(controller, code):
    with pytest.raises(ProviderCodeNotFoundError) as exc:
        controller.resolve_provider_code(code)

    assert exc.value.to_detail()["orders_url"] == "/user/orders"
