from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey
from sqlalchemy.sql import func

from fulfillment.database import Base
from fulfillment.models.append_only import append_only


@append_only
class SalesHistory(Base):
    """
    Denormalized, append-only snapshot of a sold order item.

    customer_name and product_name are copied at purchase time and are never
    refreshed, so later renames do not rewrite history.
    """
    __tablename__ = "sales_history"

    id = Column(Integer, primary_key=True, index=True)
    order_ref_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    order_item_id = Column(Integer, ForeignKey("order_items.id"), nullable=False, unique=True)
    customer_name = Column(String(255), nullable=False)
    product_name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    price_charged = Column(Numeric(10, 2), nullable=False)
    total_line_cost = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<SalesHistory(id={self.id}, order_ref_id={self.order_ref_id}, product_name='{self.product_name}')>"
