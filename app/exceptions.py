"""
Domain errors raised by the order services

Every error carries a stable ``code`` and a structured ``to_detail()`` so the
API layer can render field- or status-specific guidance.
"""
from typing import Dict, Iterable, Optional


class OrderError(Exception):
    """Base exception for order domain errors"""

    code = "order_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> Dict:
        return {"error": self.code, "message": self.message}


class OrderNotFoundError(OrderError):
    """Order does not exist"""

    code = "order_not_found"

    def __init__(self, order_id: str):
        super().__init__(f"Order with id={order_id} not found")
        self.order_id = order_id


class OrderValidationError(OrderError):
    """Checkout input rejected before anything was persisted"""

    code = "validation_error"

    def __init__(self, message: str, field: str, label: Optional[str] = None):
        super().__init__(message)
        self.field = field
        self.label = label

    def to_detail(self) -> Dict:
        detail = super().to_detail()
        detail["field"] = self.field
        if self.label is not None:
            detail["label"] = self.label
        return detail


class PersistenceError(OrderError):
    """Order could not be written at all"""

    code = "persistence_error"


class PaymentLinkError(OrderError):
    """Order exists but a payment link could not be obtained"""

    code = "payment_link_error"

    def __init__(self, message: str, order_id: str, retryable: bool = True):
        super().__init__(message)
        self.order_id = order_id
        self.retryable = retryable

    def to_detail(self) -> Dict:
        detail = super().to_detail()
        detail["order_id"] = self.order_id
        detail["retryable"] = self.retryable
        return detail


class ReconciliationLookupError(OrderError):
    """Payment provider could not be queried; local state untouched"""

    code = "reconciliation_lookup_error"

    def __init__(self, message: str, order_id: str):
        super().__init__(message)
        self.order_id = order_id

    def to_detail(self) -> Dict:
        detail = super().to_detail()
        detail["order_id"] = self.order_id
        return detail


class StateTransitionError(OrderError):
    """Illegal order status transition"""

    code = "invalid_status_transition"

    def __init__(self, action: str, current: str, expected: Iterable[str], message: Optional[str] = None):
        self.action = action
        self.current = current
        self.expected = sorted(expected)
        super().__init__(
            message
            or f"Cannot {action} order in status '{current}', expected one of: {', '.join(self.expected)}"
        )

    def to_detail(self) -> Dict:
        detail = super().to_detail()
        detail.update(action=self.action, current_status=self.current, expected_status=self.expected)
        return detail


class ProviderCodeNotFoundError(OrderError):
    """Provider order code does not resolve to an order"""

    code = "provider_code_not_found"

    def __init__(self, order_code, orders_url: str):
        super().__init__(f"No order found for payment code {order_code}")
        self.order_code = order_code
        self.orders_url = orders_url

    def to_detail(self) -> Dict:
        detail = super().to_detail()
        detail.update(order_code=self.order_code, orders_url=self.orders_url)
        return detail


class FeedbackError(OrderError):
    """Feedback rejected for an order line"""

    code = "feedback_error"
