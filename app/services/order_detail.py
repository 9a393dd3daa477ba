"""
Order detail view and the return flow from the PayOS hosted checkout
"""
import enum
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import OrderNotFoundError, ProviderCodeNotFoundError, ReconciliationLookupError
from app.models.order import Order, PaymentStatus
from app.repositories.order_repository import OrderRepository
from app.services.payment_reconciliation import PaymentReconciliationService, ReconciliationOutcome

logger = logging.getLogger(__name__)

PAYMENT_MARKER_PARAM = "payment"


class PaymentMarker(str, enum.Enum):
    """One-shot query marker set when returning from the hosted checkout"""
    SUCCESS = "success"
    CANCELLED = "cancelled"


PAYMENT_NOTICES = {
    PaymentStatus.PAID: "Payment received, thank you!",
    PaymentStatus.FAILED: "Payment failed. Please contact support or place a new order.",
    PaymentStatus.PENDING: "Your payment is being confirmed, this page will update shortly.",
}


def strip_payment_marker(url: str) -> str:
    """Remove the payment marker from a URL, keeping every other query parameter"""
    parts = urlsplit(url)
    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key != PAYMENT_MARKER_PARAM
    ]
    return urlunsplit(parts._replace(query=urlencode(query)))


def order_detail_path(order_id: str, marker: Optional[PaymentMarker] = None) -> str:
    path = f"/orders/{order_id}"
    if marker is not None:
        path += f"?{PAYMENT_MARKER_PARAM}={marker.value}"
    return path


@dataclass
class OrderDetailView:
    order: Order
    canonical_url: str
    reconciliation: Optional[ReconciliationOutcome] = None
    notice: Optional[str] = None


class OrderDetailController:
    """Decides what the customer sees when landing on an order"""

    def __init__(
        self,
        db: Session,
        reconciliation_service: PaymentReconciliationService,
        orders_url: Optional[str] = None,
    ):
        self.repository = OrderRepository(db)
        self.reconciliation_service = reconciliation_service
        self.orders_url = orders_url or settings.ORDERS_URL

    async def enter(self, order_id: str, url: str, marker: Optional[PaymentMarker] = None) -> OrderDetailView:
        """
        Build the order detail view

        Args:
            order_id: Order ID
            url: URL the customer landed on
            marker: Payment marker from the query string, if any

        Returns:
            View with the canonical order state and the marker-free URL

        Raises:
            OrderNotFoundError: If the order does not exist
        """
        order = self.repository.get_by_id(order_id)
        if not order:
            raise OrderNotFoundError(order_id)
        canonical_url = strip_payment_marker(url)

        if marker is PaymentMarker.CANCELLED:
            logger.info(f"Customer cancelled payment for order {order.id}")
            return OrderDetailView(
                order,
                canonical_url,
                notice="Payment was cancelled. You can pay again from this page.",
            )

        needs_refresh = (
            order.payment_status == PaymentStatus.PENDING.value and not order.checkout_url
        )
        if marker is not PaymentMarker.SUCCESS and not needs_refresh:
            return OrderDetailView(order, canonical_url)

        try:
            result = await self.reconciliation_service.reconcile(order.id)
        except ReconciliationLookupError as e:
            return OrderDetailView(self.repository.get_by_id(order.id), canonical_url, notice=e.message)

        notice = PAYMENT_NOTICES[result.payment_status] if marker is PaymentMarker.SUCCESS else None
        return OrderDetailView(result.order, canonical_url, reconciliation=result.outcome, notice=notice)

    def resolve_provider_code(self, order_code) -> str:
        """
        Internal order ID for a PayOS order code

        Raises:
            ProviderCodeNotFoundError: If no order carries the code
        """
        try:
            code = int(order_code)
        except (TypeError, ValueError):
            raise ProviderCodeNotFoundError(order_code, self.orders_url)

        order = self.repository.get_by_payos_order_code(code)
        if not order:
            logger.warning(f"✗ No order found for PayOS code {order_code}")
            raise ProviderCodeNotFoundError(order_code, self.orders_url)
        return order.id

    def return_path(self, order_code, cancelled: bool) -> str:
        """Order detail URL to send the customer to after the hosted checkout"""
        order_id = self.resolve_provider_code(order_code)
        marker = PaymentMarker.CANCELLED if cancelled else PaymentMarker.SUCCESS
        return order_detail_path(order_id, marker)
