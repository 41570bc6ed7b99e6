from sqlalchemy import Column, Integer, Numeric, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from fulfillment.database import Base
from fulfillment.models.append_only import append_only


@append_only
class Order(Base):
    """
    Order header written once by the order placement service.

    Attributes:
        id: Unique identifier for the order
        customer_id: Customer who placed the order
        order_date: Placement timestamp, immutable
        total_amount: Sum of quantity * price over the order's items
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    order_date = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    total_amount = Column(Numeric(12, 2), nullable=False)

    customer = relationship("Customer")
    items = relationship("OrderItem", back_populates="order", order_by="OrderItem.id")

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="check_total_non_negative"),
    )

    def __repr__(self):
        return f"<Order(id={self.id}, customer_id={self.customer_id}, total_amount={self.total_amount})>"


@append_only
class OrderItem(Base):
    """
    One line of an order. price is the product price captured at purchase.
    """
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_item_quantity_positive"),
        CheckConstraint("price >= 0", name="check_item_price_non_negative"),
    )

    @property
    def line_total(self):
        return self.quantity * self.price

    def __repr__(self):
        return f"<OrderItem(id={self.id}, order_id={self.order_id}, product_id={self.product_id})>"
