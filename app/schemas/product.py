"""
Catalog product definitions consumed at checkout
"""
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from typing import Optional


class RequiredFieldDefinition(BaseModel):
    """Checkout-time data requirement declared on a product"""
    label: str = Field(..., min_length=1)
    type: str = "text"
    placeholder: Optional[str] = None
    required: bool = False


class ProductDefinition(BaseModel):
    """Product as returned by the catalog service"""
    id: str = Field(..., validation_alias=AliasChoices("id", "_id"))
    name: str
    price: float = Field(..., ge=0)
    currency: str = "VND"
    required_fields: list[RequiredFieldDefinition] = Field(
        default_factory=list,
        validation_alias=AliasChoices("required_fields", "requiredFields"),
    )

    model_config = ConfigDict(coerce_numbers_to_str=True)
