from pydantic import BaseModel, ConfigDict
from datetime import date
from decimal import Decimal


class DailyRevenueResponse(BaseModel):
    day: date
    order_count: int
    total_revenue: Decimal

    model_config = ConfigDict(from_attributes=True)


class TopProductResponse(BaseModel):
    product_id: int
    name: str
    quantity_sold: int
    revenue: Decimal

    model_config = ConfigDict(from_attributes=True)


class HighValueCustomerResponse(BaseModel):
    customer_id: int
    name: str
    total_spent: Decimal
    order_count: int

    model_config = ConfigDict(from_attributes=True)
