"""
PayOS payment endpoints: payment links, reconciliation, return flow and webhook
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse

from app.api.deps import (
    Identity,
    ensure_order_access,
    get_detail_controller,
    get_order_service,
    get_payos_client,
    get_reconciliation_service,
    require_user,
)
from app.api.errors import http_error
from app.exceptions import OrderError, OrderNotFoundError, ProviderCodeNotFoundError
from app.schemas.order import (
    OrderByCodeResponse,
    OrderResponse,
    PaymentInfoResponse,
    PaymentLinkRequest,
    PaymentLinkResponse,
)
from app.services.order_detail import OrderDetailController
from app.services.order_service import OrderService
from app.services.payment_reconciliation import PaymentReconciliationService
from app.services.payos_client import PayOSClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payos", tags=["payos"])


@router.post("/create-payment", response_model=PaymentLinkResponse, summary="Create payment link")
async def create_payment(
    link_request: PaymentLinkRequest,
    identity: Identity = Depends(require_user),
    service: OrderService = Depends(get_order_service)
):
    """
    Get or create the PayOS payment link of an order

    Used to retry payment after checkout reported `payment_link = "failed"`.
    """
    try:
        ensure_order_access(service.get_order(link_request.order_id), identity)
        order = await service.create_payment_link(link_request.order_id)
    except OrderError as e:
        raise http_error(e)
    return PaymentLinkResponse(
        order_id=order.id,
        checkout_url=order.checkout_url,
        qr_code=order.qr_code,
        payment_link_id=order.payment_link_id,
    )


@router.get("/payment-info/{order_id}", response_model=PaymentInfoResponse, summary="Reconcile payment")
async def get_payment_info(
    order_id: str,
    identity: Identity = Depends(require_user),
    service: OrderService = Depends(get_order_service),
    reconciliation: PaymentReconciliationService = Depends(get_reconciliation_service)
):
    """Refresh the order's payment status from PayOS and return both"""
    try:
        ensure_order_access(service.get_order(order_id), identity)
        result = await reconciliation.reconcile(order_id)
    except OrderError as e:
        raise http_error(e)
    return PaymentInfoResponse(
        order=OrderResponse.model_validate(result.order),
        reconciliation=result.outcome.value,
        payment_info=result.payment_info,
    )


@router.get("/order-by-code/{order_code}", response_model=OrderByCodeResponse, summary="Find order by PayOS code")
def get_order_by_code(
    order_code: str,
    identity: Identity = Depends(require_user),
    controller: OrderDetailController = Depends(get_detail_controller),
    service: OrderService = Depends(get_order_service)
):
    try:
        order_id = controller.resolve_provider_code(order_code)
        order = ensure_order_access(service.get_order(order_id), identity)
    except OrderNotFoundError:
        # the order id of someone else's code stays hidden
        raise http_error(ProviderCodeNotFoundError(order_code, controller.orders_url))
    except OrderError as e:
        raise http_error(e)
    return OrderByCodeResponse(order=OrderResponse.model_validate(order))


@router.get("/return", summary="Return from PayOS checkout")
def payment_return(
    order_code: Optional[str] = Query(None, alias="orderCode"),
    cancel: Optional[str] = Query(None),
    payment_status: Optional[str] = Query(None, alias="status"),
    controller: OrderDetailController = Depends(get_detail_controller)
):
    """
    Landing URL configured as PayOS returnUrl/cancelUrl

    Resolves the PayOS order code and redirects to the order detail view with
    a one-shot `payment` marker.
    """
    cancelled = (cancel or "").lower() == "true" or (payment_status or "").upper() == "CANCELLED"
    try:
        if not order_code:
            raise ProviderCodeNotFoundError(order_code, controller.orders_url)
        path = controller.return_path(order_code, cancelled)
    except OrderError as e:
        raise http_error(e)
    return RedirectResponse(path, status_code=status.HTTP_303_SEE_OTHER)


@router.post("/webhook", summary="PayOS webhook")
async def payment_webhook(
    payload: Dict[str, Any] = Body(...),
    payos_client: PayOSClient = Depends(get_payos_client),
    reconciliation: PaymentReconciliationService = Depends(get_reconciliation_service)
):
    """
    Payment notification from PayOS

    The payload only identifies the order; the status applied is always read
    back from PayOS.
    """
    data = payload.get("data")
    if not isinstance(data, dict) or not payos_client.verify_webhook_data(data, payload.get("signature", "")):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook signature")

    try:
        order_code = int(data.get("orderCode"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing orderCode")

    try:
        result = await reconciliation.reconcile_by_code(order_code)
    except OrderError as e:
        raise http_error(e)

    if result is None:
        # PayOS sends a test notification when the webhook URL is registered
        logger.info(f"Webhook for unknown PayOS code {order_code} ignored")
        return {"success": True, "order_id": None, "reconciliation": None}
    return {"success": True, "order_id": result.order.id, "reconciliation": result.outcome.value}
