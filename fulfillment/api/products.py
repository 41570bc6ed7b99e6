from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from fulfillment.api.errors import to_http_exception
from fulfillment.database import get_db
from fulfillment.schemas.catalog import (
    AuthorCreate,
    AuthorResponse,
    CategoryCreate,
    CategoryResponse,
    ProductCreate,
    ProductUpdate,
    ProductResponse,
)
from fulfillment.services.catalog_service import CatalogService
from fulfillment.services.exceptions import FulfillmentError

router = APIRouter(prefix="/products", tags=["Catalog"])


@router.post(
    "/authors",
    response_model=AuthorResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an author",
)
def create_author(data: AuthorCreate, db: Session = Depends(get_db)):
    return CatalogService(db).create_author(data)


@router.post(
    "/categories",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a category",
)
def create_category(data: CategoryCreate, db: Session = Depends(get_db)):
    try:
        return CatalogService(db).create_category(data)
    except FulfillmentError as e:
        raise to_http_exception(e)


@router.post(
    "/",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new product",
    description="Create a new product with category, optional author, price and initial stock."
)
def create_product(
    product_data: ProductCreate,
    db: Session = Depends(get_db)
):
    """
    Create a new product.

    - **price**: must be positive
    - **stock_quantity**: initial stock, must be non-negative
    """
    try:
        return CatalogService(db).create_product(product_data)
    except FulfillmentError as e:
        raise to_http_exception(e)


@router.get(
    "/{product_id}",
    summary="Get product by ID",
    description="Get product details. Results are cached in Redis."
)
def get_product(
    product_id: int,
    db: Session = Depends(get_db)
):
    """
    Get a product by ID.

    Returns cached data if available, otherwise fetches from database
    and caches the result. Cached entries are dropped whenever an order
    or replenishment changes the product's stock.
    """
    product_data = CatalogService(db).get_product_cached(product_id)

    if not product_data:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Product with ID {product_id} not found"
        )

    return product_data


@router.patch(
    "/{product_id}",
    response_model=ProductResponse,
    summary="Update a product",
    description="Update product details. Only provided fields will be updated; stock is not editable here."
)
def update_product(
    product_id: int,
    product_data: ProductUpdate,
    db: Session = Depends(get_db)
):
    try:
        product = CatalogService(db).update_product(product_id, product_data)
    except FulfillmentError as e:
        raise to_http_exception(e)

    if not product:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Product with ID {product_id} not found"
        )

    return product
