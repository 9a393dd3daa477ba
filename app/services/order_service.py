"""
Order Service - Business Logic Layer
"""
import logging
import math
import secrets
import time
from datetime import date, datetime, timezone
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import OrderNotFoundError, PaymentLinkError, PersistenceError
from app.models.order import Order, OrderStatus, PaymentStatus
from app.publishers.event_publisher import EventPublisher
from app.repositories.order_repository import OrderRepository
from app.schemas.order import (
    CheckoutRequest,
    CheckoutResponse,
    CustomerInfo,
    Invoice,
    InvoiceResponse,
    OrderItemResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatsResponse,
)
from app.schemas.product import ProductDefinition
from app.services.order_validation import autofill_customer, ensure_contact_and_cart, validate_checkout
from app.services.payos_client import PayOSClient, PaymentProviderError
from app.services.product_client import ProductNotFoundError, ProductServiceClient, ProductServiceError

logger = logging.getLogger(__name__)

LINK_CREATED = "created"
LINK_FAILED = "failed"
LINK_SKIPPED = "skipped"

# PayOS order codes must stay below 2**53
MAX_ORDER_CODE = 9007199254740991


def generate_order_code() -> int:
    """Numeric provider order code: millisecond clock followed by three random digits"""
    return (int(time.time() * 1000) % 10**12) * 1000 + secrets.randbelow(1000)


def order_event_data(order: Order) -> Dict:
    return {
        'order_id': order.id,
        'user_id': order.user_id,
        'customer_email': order.customer_email,
        'total_amount': order.total_amount,
        'currency': order.currency,
        'order_status': order.order_status,
        'payment_status': order.payment_status,
        'items': [
            {'product_id': item.product_id, 'name': item.name, 'quantity': item.quantity}
            for item in order.items
        ],
    }


class OrderService:
    """Service layer for checkout and order queries"""

    def __init__(
        self,
        db: Session,
        product_client: Optional[ProductServiceClient] = None,
        payment_client: Optional[PayOSClient] = None,
        event_publisher: Optional[EventPublisher] = None,
        order_code_factory: Callable[[], int] = generate_order_code,
    ):
        self.repository = OrderRepository(db)
        self.product_client = product_client or ProductServiceClient()
        self.payment_client = payment_client or PayOSClient()
        self.event_publisher = event_publisher or EventPublisher()
        self.order_code_factory = order_code_factory

    def get_order(self, order_id: str) -> Order:
        """Get order by ID or raise OrderNotFoundError"""
        order = self.repository.get_by_id(order_id)
        if not order:
            raise OrderNotFoundError(order_id)
        return order

    def get_orders_for_user(self, user_id: str) -> List[OrderResponse]:
        """Get all orders placed by a user"""
        return [OrderResponse.model_validate(o) for o in self.repository.get_by_user(user_id)]

    def list_orders(
        self,
        order_status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        search: Optional[str] = None,
        sort_by: str = "date",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 20,
    ) -> OrderListResponse:
        """Admin order list with filters and pagination"""
        orders, total = self.repository.list_orders(
            order_status=order_status.value if order_status else None,
            payment_status=payment_status.value if payment_status else None,
            start_date=start_date,
            end_date=end_date,
            search=search,
            sort_by=sort_by,
            sort_order=sort_order,
            skip=(page - 1) * limit,
            limit=limit,
        )
        return OrderListResponse(
            orders=[OrderResponse.model_validate(o) for o in orders],
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit) if total else 0,
        )

    def get_stats(self, now: Optional[datetime] = None) -> OrderStatsResponse:
        """Dashboard statistics"""
        return OrderStatsResponse(**self.repository.stats(now or datetime.now(timezone.utc)))

    def build_invoice(self, order_id: str) -> InvoiceResponse:
        """Printable invoice data for an order"""
        order = self.get_order(order_id)
        return InvoiceResponse(invoice=Invoice(
            order_id=order.id,
            order_number=order.id[-8:].upper(),
            created_at=order.created_at,
            customer=CustomerInfo(
                name=order.customer_name,
                email=order.customer_email,
                phone=order.customer_phone,
            ),
            items=[OrderItemResponse.model_validate(item) for item in order.items],
            total_amount=order.total_amount,
            currency=order.currency,
            order_status=order.order_status,
            payment_status=order.payment_status,
            note=order.note,
            admin_notes=order.admin_notes,
            confirmed_at=order.confirmed_at,
            confirmed_by=order.confirmed_by,
            processing_at=order.processing_at,
            completed_at=order.completed_at,
        ))

    async def _load_products(self, request: CheckoutRequest) -> Dict[str, ProductDefinition]:
        """Fetch catalog definitions for every product in the cart"""
        products = {}
        for line in request.items:
            if line.product_id in products:
                continue
            try:
                products[line.product_id] = await self.product_client.get_product(line.product_id)
            except ProductNotFoundError:
                # validate_checkout reports the missing product against its cart line
                continue
            except ProductServiceError as e:
                raise RuntimeError(f"Product Service unavailable: {e}")
        return products

    async def create_order(
        self,
        request: CheckoutRequest,
        user_id: Optional[str] = None,
        profile: Optional[CustomerInfo] = None,
    ) -> CheckoutResponse:
        """
        Create new order from a checkout submission

        Steps:
        1. Fill blank contact fields from the customer's profile
        2. Validate contact details and cart
        3. Get product definitions from the catalog and validate required fields
        4. Save order with the server-computed total
        5. Publish OrderCreated event
        6. Request a payment link and attach it to the order

        Args:
            request: Checkout submission
            user_id: ID of the customer placing the order
            profile: Customer's stored contact details

        Returns:
            Created order, with the checkout URL when a payment link was created

        Raises:
            OrderValidationError: If the checkout is invalid (nothing is saved)
            PersistenceError: If the order could not be saved
            RuntimeError: If the catalog is unavailable
        """
        request = request.model_copy(update={"customer": autofill_customer(request.customer, profile)})
        ensure_contact_and_cart(request)

        products = await self._load_products(request)
        payload = validate_checkout(request, products)

        if request.total_amount is not None and abs(request.total_amount - payload.total_amount) >= 0.01:
            logger.warning(
                f"Client total {request.total_amount} differs from computed total {payload.total_amount}, "
                f"using computed total"
            )

        order = self.repository.create(payload, user_id=user_id)
        logger.info(f"✓ Order {order.id} created (total: {order.total_amount} {order.currency})")

        # Try to publish event (non-blocking)
        self.event_publisher.publish_order_created(order_event_data(order))

        if not self._is_payable(order):
            return CheckoutResponse(
                order=OrderResponse.model_validate(order),
                payment_link=LINK_SKIPPED,
                message=f"Order {order.id} created. Payment will be arranged separately.",
            )

        try:
            order = await self._attach_payment_link(order)
        except (PaymentProviderError, PersistenceError) as e:
            logger.error(f"✗ Payment link for order {order.id} failed: {e}")
            return CheckoutResponse(
                order=OrderResponse.model_validate(self.get_order(order.id)),
                payment_link=LINK_FAILED,
                message=(
                    f"Order {order.id} was created but the payment link could not be set up. "
                    f"You can retry payment from the order page or contact support."
                ),
            )

        return CheckoutResponse(
            order=OrderResponse.model_validate(order),
            payment_link=LINK_CREATED,
            checkout_url=order.checkout_url,
            qr_code=order.qr_code,
            message=f"Order {order.id} created. Redirecting to payment...",
        )

    def _is_payable(self, order: Order) -> bool:
        return order.currency == settings.PAYMENT_CURRENCY and order.total_amount > 0

    async def _attach_payment_link(self, order: Order) -> Order:
        """Request a payment link for a persisted order and store it"""
        order_code = self.order_code_factory()
        if not 0 < order_code <= MAX_ORDER_CODE:
            raise ValueError(f"Order code {order_code} out of range")

        link = await self.payment_client.create_payment_link(
            order.id, int(round(order.total_amount)), order_code
        )
        if not self.repository.attach_payment_link(order.id, order_code, link):
            logger.warning(f"Order {order.id} already has a payment link, keeping the stored one")
        return self.get_order(order.id)

    async def create_payment_link(self, order_id: str) -> Order:
        """
        Get or create the payment link of an order (retry path after a failed checkout link)

        Raises:
            OrderNotFoundError: If the order does not exist
            PaymentLinkError: If the order is not payable or the provider failed
        """
        order = self.get_order(order_id)
        if order.checkout_url:
            return order

        if order.payment_status != PaymentStatus.PENDING.value or order.order_status in (
            OrderStatus.CANCELLED.value,
            OrderStatus.COMPLETED.value,
        ):
            raise PaymentLinkError(
                f"Order is not awaiting payment (order: {order.order_status}, payment: {order.payment_status})",
                order_id=order.id,
                retryable=False,
            )
        if not self._is_payable(order):
            raise PaymentLinkError(
                f"Online payment is only available for {settings.PAYMENT_CURRENCY} orders",
                order_id=order.id,
                retryable=False,
            )

        try:
            return await self._attach_payment_link(order)
        except (PaymentProviderError, PersistenceError) as e:
            logger.error(f"✗ Payment link retry for order {order.id} failed: {e}")
            raise PaymentLinkError(f"Payment link could not be created: {e}", order_id=order.id)
