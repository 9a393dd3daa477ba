"""
Checkout validation

Pure functions turning a CheckoutRequest plus the catalog's product
definitions into a NormalizedOrder. Validation stops at the first problem so
the storefront always reports the same field first.
"""
from typing import Mapping, Optional

from email_validator import EmailNotValidError, validate_email

from app.exceptions import OrderValidationError
from app.schemas.order import (
    CheckoutRequest,
    CustomerInfo,
    NormalizedOrder,
    NormalizedOrderItem,
    RequiredFieldValue,
)
from app.schemas.product import ProductDefinition

CONTACT_FIELDS = (
    ("name", "Full name"),
    ("email", "Email"),
    ("phone", "Phone number"),
)


def autofill_customer(customer: CustomerInfo, profile: Optional[CustomerInfo]) -> CustomerInfo:
    """Fill blank contact fields from the customer's stored profile"""
    if profile is None:
        return customer
    values = {}
    for field, _ in CONTACT_FIELDS:
        current = getattr(customer, field)
        values[field] = current if current.strip() else getattr(profile, field)
    return CustomerInfo(**values)


def ensure_contact_and_cart(request: CheckoutRequest) -> None:
    """Checks that need no catalog data: contact details and a non-empty cart"""
    for field, label in CONTACT_FIELDS:
        if not getattr(request.customer, field).strip():
            raise OrderValidationError(
                f"Please fill in your contact details: {label} is required",
                field=f"customer.{field}",
                label=label,
            )

    try:
        validate_email(request.customer.email.strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise OrderValidationError(
            f"Email address is not valid: {e}",
            field="customer.email",
            label="Email",
        )

    if not request.items:
        raise OrderValidationError("Your cart is empty", field="items")


def collect_required_values(values: list[RequiredFieldValue]) -> dict[str, str]:
    """Map label -> trimmed value; the first entry for a label wins"""
    collected = {}
    for entry in values:
        collected.setdefault(entry.label.strip(), entry.value.strip())
    return collected


def validate_checkout(
    request: CheckoutRequest,
    products: Mapping[str, ProductDefinition],
) -> NormalizedOrder:
    """
    Validate a checkout and build the normalized order payload

    Args:
        request: Checkout submission
        products: Catalog definitions keyed by product id

    Returns:
        Normalized order with the server-computed total

    Raises:
        OrderValidationError: On the first invalid field
    """
    ensure_contact_and_cart(request)

    items = []
    currency = None
    for index, line in enumerate(request.items):
        product = products.get(line.product_id)
        if product is None:
            raise OrderValidationError(
                f"Product {line.product_id} is no longer available",
                field=f"items[{index}].product_id",
            )

        values = collect_required_values(line.required_fields_data)
        for definition in product.required_fields:
            if not definition.required:
                continue
            if not values.get(definition.label.strip()):
                raise OrderValidationError(
                    f"Please fill in '{definition.label}' for {product.name}",
                    field=f"items[{index}].required_fields_data",
                    label=definition.label,
                )

        if currency is None:
            currency = product.currency
        elif product.currency != currency:
            raise OrderValidationError(
                f"{product.name} is priced in {product.currency}, the cart is in {currency}",
                field=f"items[{index}].currency",
            )

        items.append(
            NormalizedOrderItem(
                product_id=product.id,
                name=product.name,
                price=product.price,
                currency=product.currency,
                quantity=line.quantity,
                required_fields_data=[
                    RequiredFieldValue(label=label, value=value)
                    for label, value in values.items()
                    if value
                ],
            )
        )

    customer = request.customer
    note = request.note.strip() if request.note else None
    return NormalizedOrder(
        customer=CustomerInfo(
            name=customer.name.strip(),
            email=customer.email.strip(),
            phone=customer.phone.strip(),
        ),
        items=items,
        total_amount=compute_total(items),
        currency=currency,
        note=note or None,
    )


def compute_total(items: list[NormalizedOrderItem]) -> float:
    """Authoritative order total: sum of price x quantity"""
    return round(sum(item.price * item.quantity for item in items), 2)
