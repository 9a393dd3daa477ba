"""
SQLAlchemy Order models
"""
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from app.database import Base


class OrderStatus(str, enum.Enum):
    """Fulfillment workflow status"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    """Payment status, independent from the fulfillment workflow"""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_order_id() -> str:
    return uuid.uuid4().hex


class Order(Base):
    """Order database model"""

    __tablename__ = "orders"

    id = Column(String(32), primary_key=True, default=new_order_id)
    user_id = Column(String(64), nullable=True, index=True)

    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=False, index=True)
    customer_phone = Column(String(50), nullable=False)

    total_amount = Column(Float, nullable=False)
    currency = Column(String(10), nullable=False)
    order_status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value, index=True)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True)

    note = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)

    # Lifecycle timestamps, each written once by its transition
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_by = Column(String(64), nullable=True)
    processing_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # PayOS correlation, immutable once set
    payos_order_code = Column(BigInteger, nullable=True, unique=True, index=True)
    payment_link_id = Column(String(64), nullable=True)
    checkout_url = Column(Text, nullable=True)
    qr_code = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    items = relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint('total_amount >= 0', name='check_total_non_negative'),
        CheckConstraint(
            "order_status IN ('pending', 'confirmed', 'processing', 'completed', 'cancelled')",
            name='check_order_status_valid'
        ),
        CheckConstraint(
            "payment_status IN ('pending', 'paid', 'failed')",
            name='check_payment_status_valid'
        ),
    )

    def __repr__(self):
        return (
            f"<Order(id={self.id}, order_status='{self.order_status}', "
            f"payment_status='{self.payment_status}', total_amount={self.total_amount})>"
        )


class OrderItem(Base):
    """Order line item, denormalized from the catalog at checkout time"""

    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(String(32), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    product_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    price = Column(Float, nullable=False)
    currency = Column(String(10), nullable=False)
    quantity = Column(Integer, nullable=False)
    required_fields_data = Column(JSON, nullable=True)

    feedback_rating = Column(Integer, nullable=True)
    feedback_comment = Column(Text, nullable=True)
    feedback_created_at = Column(DateTime(timezone=True), nullable=True)

    order = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint('quantity > 0', name='check_quantity_positive'),
        CheckConstraint('price >= 0', name='check_price_non_negative'),
        CheckConstraint(
            'feedback_rating IS NULL OR (feedback_rating >= 1 AND feedback_rating <= 5)',
            name='check_feedback_rating_range'
        ),
    )

    def __repr__(self):
        return f"<OrderItem(order_id={self.order_id}, product_id={self.product_id}, quantity={self.quantity})>"
