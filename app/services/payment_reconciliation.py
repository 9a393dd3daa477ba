"""
Payment reconciliation against PayOS

Reads the live status of an order's payment link and applies it to the
order's payment_status. Settled payments are never touched again, and the
write itself is a conditional update, so repeated or concurrent calls are
safe.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from app.exceptions import OrderNotFoundError, ReconciliationLookupError
from app.models.order import Order, PaymentStatus
from app.publishers.event_publisher import EventPublisher
from app.repositories.order_repository import OrderRepository
from app.schemas.payment import PaymentInfo
from app.services.payos_client import PayOSClient, PaymentProviderError

logger = logging.getLogger(__name__)

PROVIDER_PAID = "PAID"
PROVIDER_FAILURE_STATUSES = frozenset({"CANCELLED", "EXPIRED", "FAILED"})


class ReconciliationOutcome(str, enum.Enum):
    PAID = "paid"
    FAILED = "failed"
    UNCHANGED = "unchanged"
    ALREADY_SETTLED = "already_settled"
    NO_PAYMENT_LINK = "no_payment_link"


def map_provider_status(status: str) -> Optional[PaymentStatus]:
    """Local payment status for a provider status, None while still open"""
    status = (status or "").upper()
    if status == PROVIDER_PAID:
        return PaymentStatus.PAID
    if status in PROVIDER_FAILURE_STATUSES:
        return PaymentStatus.FAILED
    return None


@dataclass
class ReconciliationResult:
    order: Order
    outcome: ReconciliationOutcome
    payment_info: Optional[PaymentInfo] = None

    @property
    def payment_status(self) -> PaymentStatus:
        return PaymentStatus(self.order.payment_status)


class PaymentReconciliationService:
    """Applies PayOS payment status to local orders"""

    def __init__(
        self,
        db: Session,
        payment_client: Optional[PayOSClient] = None,
        event_publisher: Optional[EventPublisher] = None,
    ):
        self.repository = OrderRepository(db)
        self.payment_client = payment_client or PayOSClient()
        self.event_publisher = event_publisher or EventPublisher()

    async def reconcile(self, order_id: str) -> ReconciliationResult:
        """
        Query PayOS for the order's payment and apply the result

        Args:
            order_id: Order ID

        Returns:
            The order as persisted after reconciliation and what happened

        Raises:
            OrderNotFoundError: If the order does not exist
            ReconciliationLookupError: If PayOS could not be queried
        """
        order = self.repository.get_by_id(order_id)
        if not order:
            raise OrderNotFoundError(order_id)
        if order.payment_status != PaymentStatus.PENDING.value:
            return ReconciliationResult(order, ReconciliationOutcome.ALREADY_SETTLED)
        if order.payos_order_code is None:
            return ReconciliationResult(order, ReconciliationOutcome.NO_PAYMENT_LINK)

        try:
            info = await self.payment_client.get_payment_info(order.payos_order_code)
        except PaymentProviderError as e:
            logger.warning(f"✗ Payment lookup for order {order.id} failed: {e}")
            raise ReconciliationLookupError(
                "Payment status could not be retrieved, please try again later",
                order_id=order.id,
            )

        target = map_provider_status(info.status)
        if target is None:
            return ReconciliationResult(order, ReconciliationOutcome.UNCHANGED, info)

        if target is PaymentStatus.PAID and info.amount_paid < order.total_amount:
            logger.warning(
                f"Order {order.id} reported PAID with amount_paid={info.amount_paid} "
                f"below total {order.total_amount}"
            )

        applied = self.repository.settle_payment(order.id, target)
        order = self.repository.get_by_id(order.id)
        if not applied:
            # Another reconciliation settled the payment first
            return ReconciliationResult(order, ReconciliationOutcome.ALREADY_SETTLED, info)

        logger.info(f"✓ Order {order.id} payment {target.value} (PayOS status: {info.status})")
        self.event_publisher.publish_payment_status_changed({
            'order_id': order.id,
            'old_status': PaymentStatus.PENDING.value,
            'new_status': target.value,
            'payos_order_code': order.payos_order_code,
            'amount_paid': info.amount_paid,
        })
        outcome = ReconciliationOutcome.PAID if target is PaymentStatus.PAID else ReconciliationOutcome.FAILED
        return ReconciliationResult(order, outcome, info)

    async def reconcile_by_code(self, order_code: int) -> Optional[ReconciliationResult]:
        """Reconcile the order owning a PayOS order code; None when no order has it"""
        order = self.repository.get_by_payos_order_code(order_code)
        if not order:
            return None
        return await self.reconcile(order.id)
