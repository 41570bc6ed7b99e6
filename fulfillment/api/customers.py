from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from fulfillment.api.errors import to_http_exception
from fulfillment.database import get_db
from fulfillment.schemas.customer import (
    CustomerCreate,
    CustomerUpdate,
    CustomerResponse,
    RecommendationResponse,
)
from fulfillment.services.customer_service import CustomerService
from fulfillment.services.exceptions import FulfillmentError
from fulfillment.services.recommendation_service import RecommendationService

router = APIRouter(prefix="/customers", tags=["Customers"])


@router.post(
    "/",
    response_model=CustomerResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a customer",
)
def create_customer(data: CustomerCreate, db: Session = Depends(get_db)):
    try:
        return CustomerService(db).create(data)
    except FulfillmentError as e:
        raise to_http_exception(e)


@router.patch(
    "/{customer_id}",
    response_model=CustomerResponse,
    summary="Update a customer",
    description="Renames apply to future orders only; sales history keeps the name used at purchase time."
)
def update_customer(customer_id: int, data: CustomerUpdate, db: Session = Depends(get_db)):
    try:
        customer = CustomerService(db).update(customer_id, data)
    except FulfillmentError as e:
        raise to_http_exception(e)

    if not customer:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Customer with ID {customer_id} not found"
        )
    return customer


@router.get(
    "/{customer_id}/recommendations",
    response_model=RecommendationResponse,
    summary="Product recommendations",
    description="Products sharing a category and an author with past purchases, excluding those already bought."
)
def get_recommendations(customer_id: int, db: Session = Depends(get_db)):
    if not CustomerService(db).get(customer_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Customer with ID {customer_id} not found"
        )

    product_ids = RecommendationService(db).recommend(customer_id)
    return RecommendationResponse(customer_id=customer_id, product_ids=product_ids)
