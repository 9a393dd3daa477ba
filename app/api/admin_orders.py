"""
Admin order management endpoints
"""
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from app.api.deps import Identity, get_order_service, get_state_machine, require_admin
from app.api.errors import http_error
from app.exceptions import OrderError
from app.models.order import OrderStatus, PaymentStatus
from app.schemas.order import (
    AdminNotesUpdate,
    InvoiceResponse,
    OrderActionResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatsResponse,
)
from app.services.order_service import OrderService
from app.services.order_state_machine import ACTION_MESSAGES, OrderAction, OrderStateMachine

router = APIRouter(prefix="/admin/orders", tags=["admin-orders"], dependencies=[Depends(require_admin)])


@router.get("", response_model=OrderListResponse, summary="List orders")
def list_orders(
    order_status: Optional[OrderStatus] = Query(None, description="Filter by order status"),
    payment_status: Optional[PaymentStatus] = Query(None, description="Filter by payment status"),
    start_date: Optional[date] = Query(None, description="Created on or after this day"),
    end_date: Optional[date] = Query(None, description="Created on or before this day"),
    search: Optional[str] = Query(None, description="Order ID, customer name, email or phone"),
    sort_by: Literal["date", "amount", "status"] = Query("date"),
    sort_order: Literal["asc", "desc"] = Query("desc"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: OrderService = Depends(get_order_service)
):
    """
    Retrieve orders with filters and pagination

    - **page**: Page number (default: 1)
    - **limit**: Orders per page (default: 20, max: 100)
    """
    return service.list_orders(
        order_status=order_status,
        payment_status=payment_status,
        start_date=start_date,
        end_date=end_date,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )


@router.get("/stats", response_model=OrderStatsResponse, summary="Order statistics")
def get_order_stats(service: OrderService = Depends(get_order_service)):
    """Today's orders, orders awaiting confirmation or in processing, paid revenue"""
    return service.get_stats()


@router.get("/{order_id}", response_model=OrderResponse, summary="Get order by ID")
def get_order(
    order_id: str,
    service: OrderService = Depends(get_order_service)
):
    try:
        return OrderResponse.model_validate(service.get_order(order_id))
    except OrderError as e:
        raise http_error(e)


@router.get("/{order_id}/invoice", response_model=InvoiceResponse, summary="Invoice data")
def get_invoice(
    order_id: str,
    service: OrderService = Depends(get_order_service)
):
    try:
        return service.build_invoice(order_id)
    except OrderError as e:
        raise http_error(e)


def _apply(state_machine: OrderStateMachine, order_id: str, action: OrderAction, admin: Identity):
    try:
        order = state_machine.apply(order_id, action, admin.user_id)
    except OrderError as e:
        raise http_error(e)
    return OrderActionResponse(message=ACTION_MESSAGES[action], order=OrderResponse.model_validate(order))


@router.post("/{order_id}/confirm", response_model=OrderActionResponse, summary="Confirm order")
def confirm_order(
    order_id: str,
    admin: Identity = Depends(require_admin),
    state_machine: OrderStateMachine = Depends(get_state_machine)
):
    """pending → confirmed; records who confirmed and when"""
    return _apply(state_machine, order_id, OrderAction.CONFIRM, admin)


@router.post("/{order_id}/processing", response_model=OrderActionResponse, summary="Start processing")
def start_processing_order(
    order_id: str,
    admin: Identity = Depends(require_admin),
    state_machine: OrderStateMachine = Depends(get_state_machine)
):
    """confirmed → processing"""
    return _apply(state_machine, order_id, OrderAction.START_PROCESSING, admin)


@router.post("/{order_id}/complete", response_model=OrderActionResponse, summary="Complete order")
def complete_order(
    order_id: str,
    admin: Identity = Depends(require_admin),
    state_machine: OrderStateMachine = Depends(get_state_machine)
):
    """processing → completed"""
    return _apply(state_machine, order_id, OrderAction.COMPLETE, admin)


@router.post("/{order_id}/cancel", response_model=OrderActionResponse, summary="Cancel order")
def cancel_order(
    order_id: str,
    admin: Identity = Depends(require_admin),
    state_machine: OrderStateMachine = Depends(get_state_machine)
):
    """pending, confirmed or processing → cancelled"""
    return _apply(state_machine, order_id, OrderAction.CANCEL, admin)


@router.patch("/{order_id}", response_model=OrderActionResponse, summary="Update admin notes")
def update_order(
    order_id: str,
    update: AdminNotesUpdate,
    state_machine: OrderStateMachine = Depends(get_state_machine)
):
    try:
        order = state_machine.update_admin_notes(order_id, update.admin_notes)
    except OrderError as e:
        raise http_error(e)
    return OrderActionResponse(message="Admin notes saved", order=OrderResponse.model_validate(order))
