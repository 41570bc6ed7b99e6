from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import List

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from fulfillment.models.catalog import Product
from fulfillment.models.customer import Customer
from fulfillment.models.order import Order, OrderItem
from fulfillment.services.exceptions import InvalidRequestError


@dataclass
class DailyRevenue:
    day: date
    order_count: int
    total_revenue: Decimal


@dataclass
class TopProduct:
    product_id: int
    name: str
    quantity_sold: int
    revenue: Decimal


@dataclass
class HighValueCustomer:
    customer_id: int
    name: str
    total_spent: Decimal
    order_count: int


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(Decimal("0.01"))


class ReportService:
    """
    BI queries over committed orders.

    Plain SELECTs only: no row locks are taken, so reporting never blocks
    order placement. Date boundaries are UTC.
    """

    def __init__(self, db: Session):
        self.db = db

    def daily_revenue(self, day: date) -> DailyRevenue:
        """Number of orders and their summed total for one calendar day."""
        start = _day_start(day)
        order_count, total = (
            self.db.query(func.count(Order.id), func.sum(Order.total_amount))
            .filter(Order.order_date >= start, Order.order_date < start + timedelta(days=1))
            .one()
        )
        return DailyRevenue(day=day, order_count=order_count or 0, total_revenue=_money(total))

    def top_selling_products(self, year: int, month: int, limit: int = 10) -> List[TopProduct]:
        """
        Best sellers of a month, by units sold.

        Args:
            year: Calendar year
            month: Calendar month, 1-12
            limit: Max rows to return

        Returns:
            Products ordered by quantity sold (descending), ties by product id
        """
        if not 1 <= month <= 12:
            raise InvalidRequestError(f"Month must be between 1 and 12, got {month}")
        self._require_positive("limit", limit)

        start = _day_start(date(year, month, 1))
        end = _day_start(date(year + month // 12, month % 12 + 1, 1))

        quantity_sold = func.sum(OrderItem.quantity).label("quantity_sold")
        revenue = func.sum(OrderItem.quantity * OrderItem.price).label("revenue")
        rows = (
            self.db.query(Product.id, Product.name, quantity_sold, revenue)
            .join(OrderItem, OrderItem.product_id == Product.id)
            .join(Order, Order.id == OrderItem.order_id)
            .filter(Order.order_date >= start, Order.order_date < end)
            .group_by(Product.id, Product.name)
            .order_by(quantity_sold.desc(), Product.id)
            .limit(limit)
            .all()
        )
        return [
            TopProduct(
                product_id=row.id,
                name=row.name,
                quantity_sold=int(row.quantity_sold),
                revenue=_money(row.revenue),
            )
            for row in rows
        ]

    def high_value_customers(
        self, window_days: int, min_spend, limit: int = 10
    ) -> List[HighValueCustomer]:
        """
        Customers whose orders in the last window_days add up to at least
        min_spend, biggest spenders first.
        """
        self._require_positive("window_days", window_days)
        self._require_positive("limit", limit)
        min_spend = Decimal(str(min_spend))
        if min_spend < 0:
            raise InvalidRequestError("min_spend must not be negative")

        cutoff = datetime.now(timezone.utc) - timedelta(days=window_days)
        total_spent = func.sum(Order.total_amount).label("total_spent")
        order_count = func.count(Order.id).label("order_count")
        rows = (
            self.db.query(Customer.id, Customer.name, total_spent, order_count)
            .join(Order, Order.customer_id == Customer.id)
            .filter(Order.order_date >= cutoff)
            .group_by(Customer.id, Customer.name)
            .having(func.sum(Order.total_amount) >= min_spend)
            .order_by(total_spent.desc(), Customer.id)
            .limit(limit)
            .all()
        )
        return [
            HighValueCustomer(
                customer_id=row.id,
                name=row.name,
                total_spent=_money(row.total_spent),
                order_count=row.order_count,
            )
            for row in rows
        ]

    def search_products(self, text: str) -> List[Product]:
        """Case-insensitive substring match over product name and description."""
        if not text or not text.strip():
            raise InvalidRequestError("Search text must not be empty")

        # User text is literal; only the surrounding % are wildcards
        literal = text.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{literal}%"
        return (
            self.db.query(Product)
            .filter(
                or_(
                    Product.name.ilike(pattern, escape="\\"),
                    Product.description.ilike(pattern, escape="\\"),
                )
            )
            .order_by(Product.id)
            .all()
        )

    @staticmethod
    def _require_positive(name: str, value: int) -> None:
        if value < 1:
            raise InvalidRequestError(f"{name} must be at least 1")
