from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from decimal import Decimal
from typing import Optional


class AuthorCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Author name")


class AuthorResponse(AuthorCreate):
    id: int

    model_config = ConfigDict(from_attributes=True)


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Unique category name")


class CategoryResponse(CategoryCreate):
    id: int

    model_config = ConfigDict(from_attributes=True)


class ProductBase(BaseModel):
    """Base schema for Product with common attributes."""
    name: str = Field(..., min_length=1, max_length=255, description="Product name")
    description: str = Field(default="", description="Free-text description")
    price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2, description="Unit price (must be positive)")
    category_id: int = Field(..., description="Category of the product")
    author_id: Optional[int] = Field(None, description="Optional author of the product")


class ProductCreate(ProductBase):
    """Schema for creating a new product."""
    stock_quantity: int = Field(..., ge=0, description="Initial stock (must be non-negative)")


class ProductUpdate(BaseModel):
    """Schema for updating product details. Stock is managed by the inventory ledger."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    category_id: Optional[int] = None
    author_id: Optional[int] = None


class ProductResponse(ProductBase):
    """Schema for product response including all fields."""
    id: int
    stock_quantity: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
