import enum
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, List, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from fulfillment.config import get_settings
from fulfillment.models.customer import Customer
from fulfillment.models.order import Order, OrderItem
from fulfillment.models.sales_history import SalesHistory
from fulfillment.services.exceptions import (
    FulfillmentError,
    InvalidRequestError,
    OutOfStockError,
    LockConflictError,
    LockTimeoutError,
    ConstraintViolationError,
    StorageFailureError,
)
from fulfillment.services.history_service import HistorySynchronizer
from fulfillment.services.inventory_ledger import (
    InventoryLedger,
    Reservation,
    ReservationStatus,
)
from fulfillment.utils.cache import cache_service
from fulfillment.utils.row_locks import LockPolicy

logger = logging.getLogger(__name__)
settings = get_settings()


class PlacementState(str, enum.Enum):
    STARTED = "started"
    INVENTORY_RESERVED = "inventory_reserved"
    RECORDED = "recorded"
    HISTORY_SYNCED = "history_synced"
    COMMITTED = "committed"
    FAILED = "failed"


_NEXT_STATE = {
    PlacementState.STARTED: PlacementState.INVENTORY_RESERVED,
    PlacementState.INVENTORY_RESERVED: PlacementState.RECORDED,
    PlacementState.RECORDED: PlacementState.HISTORY_SYNCED,
    PlacementState.HISTORY_SYNCED: PlacementState.COMMITTED,
}


@dataclass
class PlacementAttempt:
    """Progress of one place_order() call through the placement states."""
    customer_id: int
    state: PlacementState = PlacementState.STARTED
    failure: Optional[Exception] = None
    order_id: Optional[int] = None
    trail: List[PlacementState] = field(default_factory=lambda: [PlacementState.STARTED])

    @property
    def terminal(self) -> bool:
        return self.state in (PlacementState.COMMITTED, PlacementState.FAILED)

    def advance(self, to: PlacementState) -> None:
        if _NEXT_STATE.get(self.state) is not to:
            raise RuntimeError(f"Illegal placement transition {self.state.value} -> {to.value}")
        self.state = to
        self.trail.append(to)

    def fail(self, reason: Exception) -> None:
        if self.terminal:
            raise RuntimeError(f"Placement already {self.state.value}")
        self.state = PlacementState.FAILED
        self.failure = reason
        self.order_id = None
        self.trail.append(PlacementState.FAILED)


@dataclass(frozen=True)
class LineItem:
    product_id: int
    quantity: int


def normalize_line_items(line_items) -> List[LineItem]:
    """
    Validate and convert caller line items.

    Accepts (product_id, quantity) pairs or objects exposing product_id and
    quantity attributes (e.g. the API schema).

    Raises:
        InvalidRequestError: If the list is empty or any entry is malformed
    """
    if not line_items:
        raise InvalidRequestError("An order needs at least one line item")

    normalized = []
    for position, raw in enumerate(line_items):
        if hasattr(raw, "product_id") and hasattr(raw, "quantity"):
            product_id, quantity = raw.product_id, raw.quantity
        else:
            try:
                product_id, quantity = raw
            except (TypeError, ValueError):
                raise InvalidRequestError(f"Line item {position} must be a (product_id, quantity) pair")

        for value in (product_id, quantity):
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidRequestError(f"Line item {position} must use integer ids and quantities")
        if quantity <= 0:
            raise InvalidRequestError(f"Line item {position} has non-positive quantity {quantity}")

        normalized.append(LineItem(product_id, quantity))
    return normalized


class OrderPlacementService:
    """
    Places orders as one atomic unit of work.

    Flow (states in brackets):
    1. Validate the request                              [STARTED]
    2. Reserve stock per product, ascending product id   [INVENTORY_RESERVED]
    3. Insert the order and one order item per line      [RECORDED]
    4. Append one sales history row per order item       [HISTORY_SYNCED]
    5. Commit                                            [COMMITTED]

    Any failure rolls the whole unit of work back (stock, order, items and
    history) and re-raises the originating error      [FAILED].

    Products are always locked in ascending id order, so two orders that
    share products can never wait on each other in a cycle.
    """

    def __init__(self, db: Session):
        self.db = db
        self.ledger = InventoryLedger(db)
        self.history = HistorySynchronizer(db)
        self.last_attempt: Optional[PlacementAttempt] = None

    def place_order(self, customer_id: int, line_items: Sequence) -> Order:
        """
        Create an order with atomic stock reservation.

        Args:
            customer_id: Purchasing customer
            line_items: Ordered (product_id, quantity) pairs

        Returns:
            The committed order

        Raises:
            InvalidRequestError: Unknown customer or malformed line items
            OutOfStockError: A product lacks the requested stock
            LockConflictError / LockTimeoutError: Lock contention
            ConstraintViolationError: Stale product identifiers
            StorageFailureError: The database failed
            HistorySyncError: Sales history could not be appended
        """
        attempt = PlacementAttempt(customer_id=customer_id)
        self.last_attempt = attempt

        try:
            items = normalize_line_items(line_items)
            self._require_customer(customer_id)

            reservations = self._reserve_all(items)
            attempt.advance(PlacementState.INVENTORY_RESERVED)

            order = self._create_order(customer_id, items, reservations)
            attempt.order_id = order.id
            order_items = self._create_items(order, items, reservations)
            attempt.advance(PlacementState.RECORDED)

            for order_item in order_items:
                self.history.record(order, order_item)
            attempt.advance(PlacementState.HISTORY_SYNCED)

            self.db.commit()
            attempt.advance(PlacementState.COMMITTED)

        except FulfillmentError as e:
            self.db.rollback()
            attempt.fail(e)
            logger.warning(f"Order placement for customer #{customer_id} rejected: {e}")
            raise
        except IntegrityError as e:
            self.db.rollback()
            error = ConstraintViolationError(f"Constraint violated while placing order: {e.orig}")
            attempt.fail(error)
            logger.warning(f"Integrity error placing order for customer #{customer_id}: {e}")
            raise error from e
        except SQLAlchemyError as e:
            self.db.rollback()
            error = StorageFailureError(f"Storage failure while placing order: {e}")
            attempt.fail(error)
            logger.error(f"Storage failure placing order for customer #{customer_id}: {e}")
            raise error from e
        except Exception as e:
            self.db.rollback()
            attempt.fail(e)
            logger.error(f"Error placing order for customer #{customer_id}: {e}")
            raise

        # Stock changed for these products
        cache_service.delete_many("product", reservations.keys())

        order = self.get_order(attempt.order_id)
        logger.info(f"Order #{order.id} placed for customer #{customer_id} ({len(order_items)} item(s))")
        return order

    def place_order_with_retry(
        self,
        customer_id: int,
        line_items: Sequence,
        max_attempts: int = None,
        retry_delay: float = None,
    ) -> Order:
        """
        place_order() with exponential backoff on transient failures.

        Lock contention and storage failures leave nothing committed, so
        the whole placement can safely be repeated. Business rejections
        (invalid request, out of stock, constraint violations) are raised
        on the first attempt.
        """
        max_attempts = max_attempts or settings.PLACEMENT_MAX_ATTEMPTS
        retry_delay = settings.PLACEMENT_RETRY_DELAY if retry_delay is None else retry_delay

        for attempt in range(1, max_attempts + 1):
            try:
                return self.place_order(customer_id, line_items)
            except FulfillmentError as e:
                if not e.retryable or attempt == max_attempts:
                    raise
                delay = retry_delay * (2 ** (attempt - 1))
                logger.info(
                    f"Placement attempt {attempt}/{max_attempts} failed ({e}); retrying in {delay:.2f} seconds..."
                )
                time.sleep(delay)

    def get_order(self, order_id: int) -> Optional[Order]:
        """Get an order by ID."""
        return (
            self.db.query(Order)
            .options(selectinload(Order.items))
            .filter(Order.id == order_id)
            .first()
        )

    def get_history(self, order_id: int) -> List[SalesHistory]:
        """Sales history rows recorded for an order."""
        return (
            self.db.query(SalesHistory)
            .filter(SalesHistory.order_ref_id == order_id)
            .order_by(SalesHistory.id)
            .all()
        )

    def _require_customer(self, customer_id: int) -> Customer:
        customer = None
        if isinstance(customer_id, int) and not isinstance(customer_id, bool):
            customer = self.db.get(Customer, customer_id)
        if customer is None:
            raise InvalidRequestError(f"Customer with ID {customer_id} not found")
        return customer

    def _reserve_all(self, items: List[LineItem]) -> "OrderedDict[int, Reservation]":
        """Reserve the summed quantity of each distinct product, lowest id first."""
        wanted = {}
        for item in items:
            wanted[item.product_id] = wanted.get(item.product_id, 0) + item.quantity

        reservations = OrderedDict()
        for product_id in sorted(wanted):
            reservation = self.ledger.reserve(product_id, wanted[product_id], policy=LockPolicy.BLOCKING)
            self._raise_for(reservation)
            reservations[product_id] = reservation
        return reservations

    @staticmethod
    def _raise_for(reservation: Reservation) -> None:
        status = reservation.status
        if status is ReservationStatus.RESERVED:
            return
        if status is ReservationStatus.OUT_OF_STOCK:
            raise OutOfStockError(reservation.product_id, reservation.quantity, reservation.available)
        if status is ReservationStatus.TIMEOUT:
            raise LockTimeoutError(reservation.product_id, reservation.timeout)
        raise LockConflictError(reservation.product_id)

    def _create_order(self, customer_id: int, items: List[LineItem], reservations) -> Order:
        total = sum(
            (item.quantity * reservations[item.product_id].unit_price for item in items),
            Decimal("0"),
        )
        order = Order(customer_id=customer_id, total_amount=total)
        self.db.add(order)
        self.db.flush()  # assign id
        return order

    def _create_items(self, order: Order, items: List[LineItem], reservations) -> List[OrderItem]:
        order_items = [
            OrderItem(
                order_id=order.id,
                product_id=item.product_id,
                quantity=item.quantity,
                price=reservations[item.product_id].unit_price,
            )
            for item in items
        ]
        self.db.add_all(order_items)
        self.db.flush()
        return order_items
