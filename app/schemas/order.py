"""
Pydantic schemas for request/response validation
"""
from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, Literal
from datetime import datetime

from app.models.order import OrderStatus, PaymentStatus
from app.schemas.payment import PaymentInfo


class RequiredFieldValue(BaseModel):
    """Value collected at checkout for a product's required field"""
    label: str
    value: str = ""


class CustomerInfo(BaseModel):
    """Customer contact details; blank values are rejected by checkout validation"""
    name: str = ""
    email: str = ""
    phone: str = ""


class CheckoutItem(BaseModel):
    """Cart line as submitted by the storefront"""
    product_id: str = Field(..., min_length=1, description="Product ID")
    name: str = Field("", description="Product name shown in the cart")
    price: float = Field(0, ge=0, description="Unit price shown in the cart (advisory)")
    currency: str = Field("VND", description="Currency shown in the cart")
    quantity: int = Field(..., gt=0, description="Quantity to order")
    required_fields_data: list[RequiredFieldValue] = Field(default_factory=list)

    model_config = ConfigDict(coerce_numbers_to_str=True)


class CheckoutRequest(BaseModel):
    """Schema for submitting a checkout"""
    customer: CustomerInfo = Field(default_factory=CustomerInfo)
    items: list[CheckoutItem] = Field(default_factory=list)
    total_amount: Optional[float] = Field(None, description="Client-side total, advisory only")
    note: Optional[str] = Field(None, max_length=2000)


class NormalizedOrderItem(BaseModel):
    """Line item ready to be persisted, priced from the catalog"""
    product_id: str
    name: str
    price: float
    currency: str
    quantity: int
    required_fields_data: list[RequiredFieldValue] = Field(default_factory=list)


class NormalizedOrder(BaseModel):
    """Validated order-creation payload"""
    customer: CustomerInfo
    items: list[NormalizedOrderItem]
    total_amount: float
    currency: str
    note: Optional[str] = None


class ItemFeedback(BaseModel):
    rating: int
    comment: Optional[str] = None
    created_at: Optional[datetime] = None


class OrderItemResponse(BaseModel):
    """Schema for order line item response"""
    product_id: str
    name: str
    price: float
    currency: str
    quantity: int
    required_fields_data: list[RequiredFieldValue] = Field(default_factory=list)
    feedback: Optional[ItemFeedback] = None

    @model_validator(mode="before")
    @classmethod
    def from_orm_item(cls, data):
        if isinstance(data, dict):
            return data
        feedback = None
        if data.feedback_rating is not None:
            feedback = {
                "rating": data.feedback_rating,
                "comment": data.feedback_comment,
                "created_at": data.feedback_created_at,
            }
        return {
            "product_id": data.product_id,
            "name": data.name,
            "price": data.price,
            "currency": data.currency,
            "quantity": data.quantity,
            "required_fields_data": data.required_fields_data or [],
            "feedback": feedback,
        }


class OrderResponse(BaseModel):
    """Schema for order response"""
    id: str
    user_id: Optional[str] = None
    customer: CustomerInfo
    items: list[OrderItemResponse]
    total_amount: float
    currency: str
    order_status: OrderStatus
    payment_status: PaymentStatus
    note: Optional[str] = None
    admin_notes: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    confirmed_by: Optional[str] = None
    processing_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    payos_order_code: Optional[int] = None
    payment_link_id: Optional[str] = None
    checkout_url: Optional[str] = None
    qr_code: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="before")
    @classmethod
    def from_orm_order(cls, data):
        if isinstance(data, dict):
            return data
        fields = {
            name: getattr(data, name)
            for name in cls.model_fields
            if name not in ("customer", "items")
        }
        fields["customer"] = {
            "name": data.customer_name,
            "email": data.customer_email,
            "phone": data.customer_phone,
        }
        fields["items"] = [OrderItemResponse.model_validate(item) for item in data.items]
        return fields


class CheckoutResponse(BaseModel):
    """Schema for checkout result; a failed payment link is a partial success"""
    order: OrderResponse
    payment_link: Literal["created", "failed", "skipped"]
    checkout_url: Optional[str] = None
    qr_code: Optional[str] = None
    message: str


class OrderDetailResponse(BaseModel):
    """Schema for the order detail view"""
    order: OrderResponse
    canonical_url: str
    reconciliation: Optional[str] = None
    notice: Optional[str] = None


class OrderListResponse(BaseModel):
    """Schema for paginated list of orders response"""
    orders: list[OrderResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class OrderStatsResponse(BaseModel):
    """Schema for admin dashboard order statistics"""
    today_orders: int
    pending_confirmation: int
    processing: int
    today_revenue: float
    month_revenue: float


class AdminNotesUpdate(BaseModel):
    """Schema for updating internal admin notes"""
    admin_notes: str = Field(..., max_length=5000)


class OrderActionResponse(BaseModel):
    """Schema for admin action result"""
    message: str
    order: OrderResponse


class FeedbackCreate(BaseModel):
    """Schema for per-item feedback on a completed order"""
    product_id: str = Field(..., min_length=1)
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=1000)

    model_config = ConfigDict(coerce_numbers_to_str=True)


class Invoice(BaseModel):
    order_id: str
    order_number: str
    created_at: datetime
    customer: CustomerInfo
    items: list[OrderItemResponse]
    total_amount: float
    currency: str
    order_status: OrderStatus
    payment_status: PaymentStatus
    note: Optional[str] = None
    admin_notes: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    confirmed_by: Optional[str] = None
    processing_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class InvoiceResponse(BaseModel):
    """Schema for printable invoice data"""
    invoice: Invoice


class PaymentLinkRequest(BaseModel):
    """Schema for (re)creating a payment link"""
    order_id: str = Field(..., min_length=1)


class PaymentLinkResponse(BaseModel):
    success: bool = True
    order_id: str
    checkout_url: str
    qr_code: Optional[str] = None
    payment_link_id: Optional[str] = None


class PaymentInfoResponse(BaseModel):
    """Schema for reconciled payment info of an order"""
    success: bool = True
    order: OrderResponse
    reconciliation: str
    payment_info: Optional[PaymentInfo] = None


class OrderByCodeResponse(BaseModel):
    success: bool = True
    order: OrderResponse
