"""
Order API endpoints: checkout and order detail
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from app.api.deps import (
    Identity,
    ensure_order_access,
    get_detail_controller,
    get_order_service,
    get_payment_poller,
    require_user,
)
from app.api.errors import http_error
from app.exceptions import OrderError
from app.models.order import PaymentStatus
from app.schemas.order import CheckoutRequest, CheckoutResponse, OrderDetailResponse, OrderResponse
from app.services.order_detail import OrderDetailController, PaymentMarker
from app.services.order_service import OrderService
from app.services.payment_poller import PaymentPoller

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED, summary="Checkout")
async def create_order(
    checkout: CheckoutRequest,
    identity: Identity = Depends(require_user),
    service: OrderService = Depends(get_order_service)
):
    """
    Create a new order from the cart

    Process:
    1. Validate contact details, cart and per-product required fields
    2. Calculate total price from catalog prices
    3. Save order to database
    4. Publish OrderCreated event to RabbitMQ
    5. Request a PayOS payment link

    A failed payment link still returns 201 with `payment_link = "failed"`:
    the order exists and payment can be retried.
    """
    try:
        return await service.create_order(checkout, user_id=identity.user_id, profile=identity.profile())
    except OrderError as e:
        raise http_error(e)
    except RuntimeError as e:
        # Product Service unavailable
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e)
        )


@router.get("/{order_id}", response_model=OrderDetailResponse, summary="Order detail")
async def get_order_detail(
    order_id: str,
    request: Request,
    payment: Optional[PaymentMarker] = Query(None, description="Marker set when returning from PayOS"),
    identity: Identity = Depends(require_user),
    service: OrderService = Depends(get_order_service),
    controller: OrderDetailController = Depends(get_detail_controller)
):
    """
    Order detail view, for the owner or an admin

    - **payment=success**: refresh payment status from PayOS
    - **payment=cancelled**: customer abandoned payment, nothing is refreshed

    `canonical_url` is the URL without the marker; clients should replace
    the visible URL with it.
    """
    try:
        ensure_order_access(service.get_order(order_id), identity)
        view = await controller.enter(order_id, str(request.url), payment)
    except OrderError as e:
        raise http_error(e)
    return OrderDetailResponse(
        order=OrderResponse.model_validate(view.order),
        canonical_url=view.canonical_url,
        reconciliation=view.reconciliation.value if view.reconciliation else None,
        notice=view.notice,
    )


@router.post("/{order_id}/payment-watch", status_code=status.HTTP_202_ACCEPTED, summary="Watch payment")
async def start_payment_watch(
    order_id: str,
    identity: Identity = Depends(require_user),
    service: OrderService = Depends(get_order_service),
    poller: PaymentPoller = Depends(get_payment_poller)
):
    """
    Poll PayOS in the background while the order detail view is open

    Only orders with a pending payment and an existing PayOS link are watched.
    """
    try:
        order = ensure_order_access(service.get_order(order_id), identity)
    except OrderError as e:
        raise http_error(e)
    if order.payment_status == PaymentStatus.PENDING.value and order.payos_order_code is not None:
        poller.start(order.id)
    return {"order_id": order.id, "payment_status": order.payment_status, "watching": poller.is_watching(order.id)}


@router.delete("/{order_id}/payment-watch", summary="Stop watching payment")
async def stop_payment_watch(
    order_id: str,
    identity: Identity = Depends(require_user),
    service: OrderService = Depends(get_order_service),
    poller: PaymentPoller = Depends(get_payment_poller)
):
    """Stop background polling, e.g. when the order detail view is closed"""
    try:
        ensure_order_access(service.get_order(order_id), identity)
    except OrderError as e:
        raise http_error(e)
    stopped = await poller.stop(order_id)
    return {"order_id": order_id, "watching": False, "stopped": stopped}
