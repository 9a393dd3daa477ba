"""
PayOS payment link and payment info payloads
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class PaymentLink(BaseModel):
    """Hosted checkout created by the provider"""
    checkout_url: str
    qr_code: Optional[str] = None
    payment_link_id: str


class PaymentTransaction(BaseModel):
    amount: float
    description: Optional[str] = None
    account_number: Optional[str] = None
    reference: Optional[str] = None
    transaction_date_time: Optional[str] = None


class PaymentInfo(BaseModel):
    """Live status of a payment link as reported by the provider"""
    id: Optional[str] = None
    order_code: int
    amount: float
    amount_paid: float = 0
    amount_remaining: float = 0
    status: str
    created_at: Optional[str] = None
    transactions: list[PaymentTransaction] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")
