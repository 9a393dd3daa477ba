"""
Customer order history and feedback endpoints
"""
from typing import List

from fastapi import APIRouter, Depends

from app.api.deps import Identity, get_order_service, get_state_machine, require_user
from app.api.errors import http_error
from app.exceptions import OrderError, OrderNotFoundError
from app.models.order import Order
from app.schemas.order import FeedbackCreate, OrderResponse
from app.services.order_service import OrderService
from app.services.order_state_machine import OrderStateMachine

router = APIRouter(prefix="/user/orders", tags=["user-orders"])


def _owned_order(service: OrderService, order_id: str, identity: Identity) -> Order:
    order = service.get_order(order_id)
    if order.user_id != identity.user_id:
        # history is strictly per customer, admins included
        raise OrderNotFoundError(order_id)
    return order


@router.get("", response_model=List[OrderResponse], summary="My orders")
def get_my_orders(
    identity: Identity = Depends(require_user),
    service: OrderService = Depends(get_order_service)
):
    """All orders placed by the current customer, newest first"""
    return service.get_orders_for_user(identity.user_id)


@router.get("/{order_id}", response_model=OrderResponse, summary="My order")
def get_my_order(
    order_id: str,
    identity: Identity = Depends(require_user),
    service: OrderService = Depends(get_order_service)
):
    try:
        return OrderResponse.model_validate(_owned_order(service, order_id, identity))
    except OrderError as e:
        raise http_error(e)


@router.post("/{order_id}/feedback", response_model=OrderResponse, summary="Rate an order item")
def submit_feedback(
    order_id: str,
    feedback: FeedbackCreate,
    identity: Identity = Depends(require_user),
    service: OrderService = Depends(get_order_service),
    state_machine: OrderStateMachine = Depends(get_state_machine)
):
    """
    Leave a rating (1-5) and optional comment on one product of a completed order

    Each order line accepts feedback once.
    """
    try:
        _owned_order(service, order_id, identity)
        order = state_machine.submit_feedback(order_id, feedback.product_id, feedback.rating, feedback.comment)
    except OrderError as e:
        raise http_error(e)
    return OrderResponse.model_validate(order)
