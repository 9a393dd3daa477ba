"""
Services package
"""
from app.services.order_service import OrderService
from app.services.order_state_machine import OrderAction, OrderStateMachine
from app.services.order_detail import OrderDetailController, PaymentMarker
from app.services.payment_poller import PaymentPoller
from app.services.payment_reconciliation import PaymentReconciliationService, ReconciliationOutcome
from app.services.payos_client import PayOSClient
from app.services.product_client import ProductServiceClient

__all__ = [
    "OrderService",
    "OrderAction",
    "OrderStateMachine",
    "OrderDetailController",
    "PaymentMarker",
    "PaymentPoller",
    "PaymentReconciliationService",
    "ReconciliationOutcome",
    "PayOSClient",
    "ProductServiceClient",
]
