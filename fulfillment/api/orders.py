from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from fulfillment.api.errors import to_http_exception
from fulfillment.database import get_db
from fulfillment.schemas.order import OrderCreate, OrderResponse, SalesHistoryResponse
from fulfillment.services.exceptions import FulfillmentError
from fulfillment.services.order_service import OrderPlacementService

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post(
    "/",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place an order",
    description="""
    Place an order for one or more products.

    Stock for every product is reserved under a row lock, and the order,
    its items and the sales history snapshot are committed together.
    Lock contention is retried with backoff before an error is returned.
    """
)
def place_order(
    order_data: OrderCreate,
    db: Session = Depends(get_db)
):
    """
    Place an order.

    - **customer_id**: Purchasing customer (required)
    - **items**: List of `{product_id, quantity}` (at least one)
    """
    service = OrderPlacementService(db)

    try:
        return service.place_order_with_retry(order_data.customer_id, order_data.items)
    except FulfillmentError as e:
        raise to_http_exception(e)


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order by ID",
)
def get_order(
    order_id: int,
    db: Session = Depends(get_db)
):
    """Get an order and its items."""
    order = OrderPlacementService(db).get_order(order_id)

    if not order:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Order with ID {order_id} not found"
        )

    return order


@router.get(
    "/{order_id}/history",
    response_model=list[SalesHistoryResponse],
    summary="Get sales history for an order",
)
def get_order_history(
    order_id: int,
    db: Session = Depends(get_db)
):
    """Sales history snapshots recorded when the order was placed."""
    service = OrderPlacementService(db)

    if not service.get_order(order_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Order with ID {order_id} not found"
        )

    return service.get_history(order_id)
