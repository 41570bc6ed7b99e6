from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from decimal import Decimal


class LineItemCreate(BaseModel):
    """One requested line of an order."""
    product_id: int = Field(..., description="ID of the product to purchase")
    quantity: int = Field(default=1, ge=1, description="Quantity to purchase")


class OrderCreate(BaseModel):
    """Schema for placing a new order."""
    customer_id: int = Field(..., description="Purchasing customer")
    items: list[LineItemCreate] = Field(..., min_length=1, description="Ordered line items")


class OrderItemResponse(BaseModel):
    id: int
    product_id: int
    quantity: int
    price: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    """Schema for order response."""
    id: int
    customer_id: int
    order_date: datetime
    total_amount: Decimal
    items: list[OrderItemResponse]

    model_config = ConfigDict(from_attributes=True)


class SalesHistoryResponse(BaseModel):
    id: int
    order_ref_id: int
    order_item_id: int
    customer_name: str
    product_name: str
    quantity: int
    price_charged: Decimal
    total_line_cost: Decimal
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
