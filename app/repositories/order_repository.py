"""
Order Repository - Data Access Layer
"""
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy import asc, desc, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.exceptions import PersistenceError
from app.models.order import Order, OrderItem, OrderStatus, PaymentStatus, utcnow
from app.schemas.order import NormalizedOrder
from app.schemas.payment import PaymentLink

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "date": Order.created_at,
    "amount": Order.total_amount,
    "status": Order.order_status,
}

LIKE_ESCAPE = "\\"


def contains_pattern(term: str) -> str:
    """LIKE pattern matching term literally anywhere in a column"""
    for special in (LIKE_ESCAPE, "%", "_"):
        term = term.replace(special, LIKE_ESCAPE + special)
    return f"%{term}%"


class OrderRepository:
    """Repository for Order persistence

    Writes that guard a business rule (payment settlement, status transitions,
    payment link attachment, feedback) are conditional UPDATEs so the check
    and the write happen atomically in the database.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, order_id: str) -> Optional[Order]:
        """Get order by ID"""
        return self.db.query(Order).filter(Order.id == order_id).first()

    def get_by_payos_order_code(self, order_code: int) -> Optional[Order]:
        """Get order by PayOS order code"""
        return self.db.query(Order).filter(Order.payos_order_code == order_code).first()

    def get_by_user(self, user_id: str) -> List[Order]:
        """Get orders placed by a user, newest first"""
        return self.db.query(Order).filter(
            Order.user_id == user_id
        ).order_by(desc(Order.created_at)).all()

    def list_orders(
        self,
        order_status: Optional[str] = None,
        payment_status: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        search: Optional[str] = None,
        sort_by: str = "date",
        sort_order: str = "desc",
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Order], int]:
        """Filtered, sorted page of orders plus the total match count"""
        query = self.db.query(Order)
        if order_status:
            query = query.filter(Order.order_status == order_status)
        if payment_status:
            query = query.filter(Order.payment_status == payment_status)
        if start_date:
            query = query.filter(Order.created_at >= datetime.combine(start_date, time.min, tzinfo=timezone.utc))
        if end_date:
            query = query.filter(Order.created_at < datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=timezone.utc))
        if search and search.strip():
            pattern = contains_pattern(search.strip())
            query = query.filter(or_(
                Order.id.ilike(pattern, escape=LIKE_ESCAPE),
                Order.customer_name.ilike(pattern, escape=LIKE_ESCAPE),
                Order.customer_email.ilike(pattern, escape=LIKE_ESCAPE),
                Order.customer_phone.ilike(pattern, escape=LIKE_ESCAPE),
            ))

        total = query.count()
        column = SORT_COLUMNS.get(sort_by, Order.created_at)
        direction = asc if sort_order == "asc" else desc
        orders = query.order_by(direction(column), desc(Order.created_at)).offset(skip).limit(limit).all()
        return orders, total

    def count(self) -> int:
        """Get total count of orders"""
        return self.db.query(Order).count()

    def count_by_order_status(self, status: str) -> int:
        """Get count of orders by fulfillment status"""
        return self.db.query(Order).filter(Order.order_status == status).count()

    def stats(self, now: datetime) -> Dict:
        """Dashboard counters; revenue only counts paid orders"""
        day_start = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
        month_start = day_start.replace(day=1)

        def revenue_since(start: datetime) -> float:
            total = self.db.query(func.coalesce(func.sum(Order.total_amount), 0)).filter(
                Order.payment_status == PaymentStatus.PAID.value,
                Order.created_at >= start,
            ).scalar()
            return float(total or 0)

        return {
            "today_orders": self.db.query(Order).filter(Order.created_at >= day_start).count(),
            "pending_confirmation": self.count_by_order_status(OrderStatus.PENDING.value),
            "processing": self.count_by_order_status(OrderStatus.PROCESSING.value),
            "today_revenue": revenue_since(day_start),
            "month_revenue": revenue_since(month_start),
        }

    def create(self, payload: NormalizedOrder, user_id: Optional[str] = None) -> Order:
        """
        Create new order with its line items

        Args:
            payload: Validated order payload
            user_id: Owner of the order, if known

        Returns:
            Created order

        Raises:
            PersistenceError: If the order could not be written
        """
        order = Order(
            user_id=user_id,
            customer_name=payload.customer.name,
            customer_email=payload.customer.email,
            customer_phone=payload.customer.phone,
            total_amount=payload.total_amount,
            currency=payload.currency,
            order_status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            note=payload.note,
        )
        order.items = [
            OrderItem(
                position=position,
                product_id=item.product_id,
                name=item.name,
                price=item.price,
                currency=item.currency,
                quantity=item.quantity,
                required_fields_data=[entry.model_dump() for entry in item.required_fields_data] or None,
            )
            for position, item in enumerate(payload.items)
        ]
        try:
            self.db.add(order)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"✗ Could not create order: {e}")
            raise PersistenceError("Order could not be saved, please try again")
        self.db.refresh(order)
        return order

    def _conditional_update(self, criteria: list, values: Dict) -> bool:
        values = dict(values, updated_at=utcnow())
        try:
            updated = self.db.query(Order).filter(*criteria).update(values, synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"✗ Order update failed: {e}")
            raise PersistenceError("Order could not be updated")
        return updated == 1

    def attach_payment_link(self, order_id: str, order_code: int, link: PaymentLink) -> bool:
        """Store payment correlation fields unless the order already has them"""
        return self._conditional_update(
            [Order.id == order_id, Order.payos_order_code.is_(None)],
            {
                "payos_order_code": order_code,
                "payment_link_id": link.payment_link_id,
                "checkout_url": link.checkout_url,
                "qr_code": link.qr_code,
            },
        )

    def settle_payment(self, order_id: str, new_status: PaymentStatus) -> bool:
        """Move payment_status out of pending; never overwrites paid/failed"""
        return self._conditional_update(
            [Order.id == order_id, Order.payment_status == PaymentStatus.PENDING.value],
            {"payment_status": new_status.value},
        )

    def transition_status(
        self, order_id: str, from_status: OrderStatus, to_status: OrderStatus, changes: Dict
    ) -> bool:
        """Apply a status transition only if the order is still in from_status"""
        return self._conditional_update(
            [Order.id == order_id, Order.order_status == from_status.value],
            dict(changes, order_status=to_status.value),
        )

    def update_admin_notes(self, order_id: str, admin_notes: str) -> bool:
        """Replace internal admin notes"""
        return self._conditional_update([Order.id == order_id], {"admin_notes": admin_notes})

    def set_item_feedback(self, item_id: int, rating: int, comment: Optional[str]) -> bool:
        """Store feedback on a line item unless it already has some"""
        try:
            updated = self.db.query(OrderItem).filter(
                OrderItem.id == item_id,
                OrderItem.feedback_rating.is_(None),
            ).update(
                {
                    "feedback_rating": rating,
                    "feedback_comment": comment,
                    "feedback_created_at": utcnow(),
                },
                synchronize_session=False,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"✗ Feedback update failed: {e}")
            raise PersistenceError("Feedback could not be saved")
        return updated == 1
