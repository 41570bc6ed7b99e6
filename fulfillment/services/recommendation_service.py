from typing import List

from sqlalchemy.orm import Session

from fulfillment.models.catalog import Product
from fulfillment.models.order import Order, OrderItem


class RecommendationService:
    """
    Read-only product suggestions from a customer's purchase history.

    A product is recommended when it shares a category AND an author with
    something the customer bought, and the customer has not bought it yet.
    Products without an author therefore never match.
    """

    def __init__(self, db: Session):
        self.db = db

    def recommend(self, customer_id: int) -> List[int]:
        """
        Recommended product ids for customer_id, ascending.

        Returns an empty list when the customer has no purchases.
        """
        purchased = self.purchased_product_ids(customer_id)
        if not purchased:
            return []

        classified = (
            self.db.query(Product.category_id, Product.author_id)
            .filter(Product.id.in_(purchased))
            .distinct()
            .all()
        )
        categories = {row.category_id for row in classified}
        authors = {row.author_id for row in classified if row.author_id is not None}
        if not authors:
            return []

        rows = (
            self.db.query(Product.id)
            .filter(
                Product.category_id.in_(categories),
                Product.author_id.in_(authors),
                ~Product.id.in_(purchased),
            )
            .order_by(Product.id)
            .all()
        )
        return [row.id for row in rows]

    def purchased_product_ids(self, customer_id: int) -> set:
        rows = (
            self.db.query(OrderItem.product_id)
            .join(Order, Order.id == OrderItem.order_id)
            .filter(Order.customer_id == customer_id)
            .distinct()
            .all()
        )
        return {row.product_id for row in rows}
