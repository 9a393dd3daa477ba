"""
Schemas package
"""
from app.schemas.order import (
    CheckoutItem,
    CheckoutRequest,
    CheckoutResponse,
    CustomerInfo,
    NormalizedOrder,
    NormalizedOrderItem,
    OrderDetailResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatsResponse,
    RequiredFieldValue,
)
from app.schemas.payment import PaymentInfo, PaymentLink
from app.schemas.product import ProductDefinition, RequiredFieldDefinition

__all__ = [
    "CheckoutItem",
    "CheckoutRequest",
    "CheckoutResponse",
    "CustomerInfo",
    "NormalizedOrder",
    "NormalizedOrderItem",
    "OrderDetailResponse",
    "OrderListResponse",
    "OrderResponse",
    "OrderStatsResponse",
    "RequiredFieldValue",
    "PaymentInfo",
    "PaymentLink",
    "ProductDefinition",
    "RequiredFieldDefinition",
]
