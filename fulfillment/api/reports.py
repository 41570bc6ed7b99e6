from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from fulfillment.api.errors import to_http_exception
from fulfillment.database import get_db
from fulfillment.schemas.catalog import ProductResponse
from fulfillment.schemas.report import (
    DailyRevenueResponse,
    TopProductResponse,
    HighValueCustomerResponse,
)
from fulfillment.services.exceptions import FulfillmentError
from fulfillment.services.report_service import ReportService

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get(
    "/daily-revenue",
    response_model=DailyRevenueResponse,
    summary="Revenue for one day",
)
def daily_revenue(
    day: date = Query(..., description="Calendar day (UTC), YYYY-MM-DD"),
    db: Session = Depends(get_db)
):
    return ReportService(db).daily_revenue(day)


@router.get(
    "/top-products",
    response_model=list[TopProductResponse],
    summary="Best-selling products of a month",
)
def top_products(
    year: int = Query(..., ge=1970),
    month: int = Query(..., ge=1, le=12),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db)
):
    try:
        return ReportService(db).top_selling_products(year, month, limit)
    except FulfillmentError as e:
        raise to_http_exception(e)


@router.get(
    "/high-value-customers",
    response_model=list[HighValueCustomerResponse],
    summary="Biggest spenders over a trailing window",
)
def high_value_customers(
    window_days: int = Query(30, ge=1),
    min_spend: Decimal = Query(Decimal("0"), ge=0),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db)
):
    try:
        return ReportService(db).high_value_customers(window_days, min_spend, limit)
    except FulfillmentError as e:
        raise to_http_exception(e)


@router.get(
    "/search",
    response_model=list[ProductResponse],
    summary="Search products by name or description",
)
def search_products(
    q: str = Query(..., min_length=1, description="Text to look for"),
    db: Session = Depends(get_db)
):
    try:
        return ReportService(db).search_products(q)
    except FulfillmentError as e:
        raise to_http_exception(e)
