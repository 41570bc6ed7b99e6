import logging

from sqlalchemy.orm import Session

from fulfillment.models.catalog import Product
from fulfillment.models.customer import Customer
from fulfillment.models.order import Order, OrderItem
from fulfillment.models.sales_history import SalesHistory
from fulfillment.services.exceptions import HistorySyncError

logger = logging.getLogger(__name__)


class HistorySynchronizer:
    """
    Appends the Sales_History snapshot for an order item.

    Runs inside the order placement unit of work and never commits or
    retries on its own: if it fails, the order fails with it, so every
    committed order item has exactly one history row.
    """

    def __init__(self, db: Session):
        self.db = db

    def record(self, order: Order, order_item: OrderItem) -> int:
        """
        Snapshot customer and product names for order_item.

        Args:
            order: Order the item belongs to (already flushed)
            order_item: Freshly created order item (already flushed)

        Returns:
            ID of the new sales history row

        Raises:
            HistorySyncError: If called outside a transaction or with an
                item that does not belong to order
        """
        if not self.db.in_transaction():
            raise HistorySyncError("Sales history must be recorded inside the order transaction")
        if order_item not in self.db or order_item.id is None:
            raise HistorySyncError("Order item must be created in the current unit of work")
        if order_item.order_id != order.id:
            raise HistorySyncError(
                f"Order item #{order_item.id} does not belong to order #{order.id}"
            )

        customer = self.db.get(Customer, order.customer_id)
        product = self.db.get(Product, order_item.product_id)
        if customer is None or product is None:
            raise HistorySyncError(f"Cannot snapshot names for order item #{order_item.id}")

        entry = SalesHistory(
            order_ref_id=order.id,
            order_item_id=order_item.id,
            customer_name=customer.name,
            product_name=product.name,
            quantity=order_item.quantity,
            price_charged=order_item.price,
            total_line_cost=order_item.quantity * order_item.price,
        )
        self.db.add(entry)
        self.db.flush()

        logger.debug(f"Sales history #{entry.id} recorded for order item #{order_item.id}")
        return entry.id
