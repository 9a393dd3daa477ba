"""
Admin-driven order fulfillment workflow

pending -> confirmed -> processing -> completed, with cancel allowed from
every non-terminal status. completed and cancelled are terminal.
"""
import enum
import logging
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import FeedbackError, OrderNotFoundError, StateTransitionError
from app.models.order import Order, OrderStatus, PaymentStatus
from app.publishers.event_publisher import EventPublisher
from app.repositories.order_repository import OrderRepository

logger = logging.getLogger(__name__)


class OrderAction(str, enum.Enum):
    CONFIRM = "confirm"
    START_PROCESSING = "processing"
    COMPLETE = "complete"
    CANCEL = "cancel"


TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})

ALLOWED_SOURCES: Dict[OrderAction, FrozenSet[OrderStatus]] = {
    OrderAction.CONFIRM: frozenset({OrderStatus.PENDING}),
    OrderAction.START_PROCESSING: frozenset({OrderStatus.CONFIRMED}),
    OrderAction.COMPLETE: frozenset({OrderStatus.PROCESSING}),
    OrderAction.CANCEL: frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING}),
}

TARGETS: Dict[OrderAction, OrderStatus] = {
    OrderAction.CONFIRM: OrderStatus.CONFIRMED,
    OrderAction.START_PROCESSING: OrderStatus.PROCESSING,
    OrderAction.COMPLETE: OrderStatus.COMPLETED,
    OrderAction.CANCEL: OrderStatus.CANCELLED,
}

ACTION_MESSAGES: Dict[OrderAction, str] = {
    OrderAction.CONFIRM: "Order confirmed",
    OrderAction.START_PROCESSING: "Order processing started",
    OrderAction.COMPLETE: "Order completed",
    OrderAction.CANCEL: "Order cancelled",
}


def check_transition(action: OrderAction, current: OrderStatus) -> OrderStatus:
    """Target status for an action, or StateTransitionError if not allowed from current"""
    allowed = ALLOWED_SOURCES[action]
    if current not in allowed:
        raise StateTransitionError(action.value, current.value, [status.value for status in allowed])
    return TARGETS[action]


def transition_changes(action: OrderAction, actor_id: Optional[str], now: datetime) -> Dict:
    """Lifecycle fields written by a transition"""
    if action is OrderAction.CONFIRM:
        return {"confirmed_at": now, "confirmed_by": actor_id}
    if action is OrderAction.START_PROCESSING:
        return {"processing_at": now}
    if action is OrderAction.COMPLETE:
        return {"completed_at": now}
    return {}


class OrderStateMachine:
    """Applies admin actions to orders"""

    def __init__(
        self,
        db: Session,
        event_publisher: Optional[EventPublisher] = None,
        require_payment_for_completion: Optional[bool] = None,
    ):
        self.repository = OrderRepository(db)
        self.event_publisher = event_publisher or EventPublisher()
        if require_payment_for_completion is None:
            require_payment_for_completion = settings.REQUIRE_PAYMENT_FOR_COMPLETION
        self.require_payment_for_completion = require_payment_for_completion

    def _get_order(self, order_id: str) -> Order:
        order = self.repository.get_by_id(order_id)
        if not order:
            raise OrderNotFoundError(order_id)
        return order

    def apply(self, order_id: str, action: OrderAction, actor_id: Optional[str] = None) -> Order:
        """
        Apply an admin action to an order

        Args:
            order_id: Order ID
            action: Workflow action
            actor_id: Acting admin, recorded on confirm

        Returns:
            Updated order

        Raises:
            OrderNotFoundError: If the order does not exist
            StateTransitionError: If the action is not allowed in the current status
        """
        order = self._get_order(order_id)
        current = OrderStatus(order.order_status)
        target = check_transition(action, current)

        if (
            action is OrderAction.COMPLETE
            and self.require_payment_for_completion
            and order.payment_status != PaymentStatus.PAID.value
        ):
            raise StateTransitionError(
                action.value,
                current.value,
                [status.value for status in ALLOWED_SOURCES[action]],
                message=f"Cannot complete order while payment is '{order.payment_status}', expected 'paid'",
            )

        changes = transition_changes(action, actor_id, datetime.now(timezone.utc))
        if not self.repository.transition_status(order.id, current, target, changes):
            # Status moved since it was read; report the fresh one
            fresh = self._get_order(order_id)
            raise StateTransitionError(
                action.value, fresh.order_status, [status.value for status in ALLOWED_SOURCES[action]]
            )

        order = self._get_order(order_id)
        logger.info(f"✓ Order {order.id}: {current.value} → {target.value} (by {actor_id or 'unknown'})")
        self.event_publisher.publish_order_status_changed({
            'order_id': order.id,
            'old_status': current.value,
            'new_status': target.value,
            'actor_id': actor_id,
            'updated_at': order.updated_at.isoformat(),
        })
        return order

    def confirm(self, order_id: str, actor_id: str) -> Order:
        return self.apply(order_id, OrderAction.CONFIRM, actor_id)

    def start_processing(self, order_id: str, actor_id: Optional[str] = None) -> Order:
        return self.apply(order_id, OrderAction.START_PROCESSING, actor_id)

    def complete(self, order_id: str, actor_id: Optional[str] = None) -> Order:
        return self.apply(order_id, OrderAction.COMPLETE, actor_id)

    def cancel(self, order_id: str, actor_id: Optional[str] = None) -> Order:
        return self.apply(order_id, OrderAction.CANCEL, actor_id)

    def update_admin_notes(self, order_id: str, admin_notes: str) -> Order:
        """Replace internal notes; independent of the workflow"""
        self._get_order(order_id)
        self.repository.update_admin_notes(order_id, admin_notes)
        return self._get_order(order_id)

    def submit_feedback(
        self, order_id: str, product_id: str, rating: int, comment: Optional[str] = None
    ) -> Order:
        """
        Record customer feedback on one line of a completed order

        Raises:
            OrderNotFoundError: If the order does not exist
            StateTransitionError: If the order is not completed
            FeedbackError: If the product is not in the order or already rated
        """
        order = self._get_order(order_id)
        if order.order_status != OrderStatus.COMPLETED.value:
            raise StateTransitionError(
                "review",
                order.order_status,
                [OrderStatus.COMPLETED.value],
                message="Feedback can only be left on completed orders",
            )
        if not 1 <= rating <= 5:
            raise FeedbackError("Rating must be between 1 and 5")

        lines = [item for item in order.items if item.product_id == product_id]
        if not lines:
            raise FeedbackError(f"Product {product_id} is not part of this order")

        line = next((item for item in lines if item.feedback_rating is None), None)
        comment = comment.strip() if comment else None
        if line is None or not self.repository.set_item_feedback(line.id, rating, comment or None):
            raise FeedbackError(f"Feedback for product {product_id} was already submitted")

        logger.info(f"✓ Feedback recorded for order {order.id}, product {product_id}")
        return self._get_order(order_id)
