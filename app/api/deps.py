"""
Shared API dependencies: identity context and service wiring
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.exceptions import OrderNotFoundError
from app.models.order import Order
from app.publishers.event_publisher import EventPublisher
from app.schemas.order import CustomerInfo
from app.services.order_detail import OrderDetailController
from app.services.order_service import OrderService
from app.services.order_state_machine import OrderStateMachine
from app.services.payment_poller import PaymentPoller
from app.services.payment_reconciliation import PaymentReconciliationService
from app.services.payos_client import PayOSClient
from app.services.product_client import ProductServiceClient


@dataclass
class Identity:
    """Caller identity as forwarded by the API gateway"""
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    is_admin: bool = False

    def profile(self) -> CustomerInfo:
        """Stored contact details used to auto-fill checkout"""
        return CustomerInfo(name=self.name or "", email=self.email or "", phone=self.phone or "")


def get_identity(
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
    x_user_phone: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Optional[Identity]:
    """Identity of the caller, None for anonymous requests"""
    if not x_user_id:
        return None
    return Identity(
        user_id=x_user_id,
        email=x_user_email,
        name=x_user_name,
        phone=x_user_phone,
        is_admin=(x_user_role or "").lower() == "admin",
    )


def require_user(identity: Optional[Identity] = Depends(get_identity)) -> Identity:
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return identity


def require_admin(identity: Identity = Depends(require_user)) -> Identity:
    if not identity.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return identity


def ensure_order_access(order: Order, identity: Identity) -> Order:
    """Owner or admin only; anyone else gets the same answer as for a missing order"""
    if not identity.is_admin and order.user_id != identity.user_id:
        raise OrderNotFoundError(order.id)
    return order


def get_product_client() -> ProductServiceClient:
    return ProductServiceClient()


def get_payos_client() -> PayOSClient:
    return PayOSClient()


def get_event_publisher() -> EventPublisher:
    return EventPublisher()


def get_order_service(
    db: Session = Depends(get_db),
    product_client: ProductServiceClient = Depends(get_product_client),
    payos_client: PayOSClient = Depends(get_payos_client),
    event_publisher: EventPublisher = Depends(get_event_publisher),
) -> OrderService:
    """Dependency to get OrderService instance"""
    return OrderService(db, product_client, payos_client, event_publisher)


def get_reconciliation_service(
    db: Session = Depends(get_db),
    payos_client: PayOSClient = Depends(get_payos_client),
    event_publisher: EventPublisher = Depends(get_event_publisher),
) -> PaymentReconciliationService:
    return PaymentReconciliationService(db, payos_client, event_publisher)


def get_state_machine(
    db: Session = Depends(get_db),
    event_publisher: EventPublisher = Depends(get_event_publisher),
) -> OrderStateMachine:
    return OrderStateMachine(db, event_publisher)


def get_detail_controller(
    db: Session = Depends(get_db),
    reconciliation_service: PaymentReconciliationService = Depends(get_reconciliation_service),
) -> OrderDetailController:
    return OrderDetailController(db, reconciliation_service)


def get_payment_poller(request: Request) -> PaymentPoller:
    return request.app.state.payment_poller
