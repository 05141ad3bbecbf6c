"""
API Request Models

Quantities are accepted as raw JSON values and validated by the services, so
a bad quantity answers with ``invalid_quantity`` rather than a schema error.
"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# ==================== CART MODELS ====================

class AddToCartRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: Optional[str] = Field(None, alias="productId")
    quantity: Any = None
    unit: Optional[str] = "kg"


class MergeCartRequest(BaseModel):
    items: list[Any]


# ==================== ORDER MODELS ====================

class CreateOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: list[Any] = Field(default_factory=list)
    payment_method: Optional[str] = Field(None, alias="paymentMethod")
    transaction_id: Optional[str] = Field(None, alias="transactionId")
    address: Optional[str] = None
    phone: Optional[str] = None
