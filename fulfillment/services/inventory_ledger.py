import enum
import time
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, List

from psycopg2 import errorcodes
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from fulfillment.config import get_settings
from fulfillment.models.catalog import Product
from fulfillment.services.exceptions import (
    ConstraintViolationError,
    InvalidRequestError,
    StorageFailureError,
)
from fulfillment.utils.row_locks import LockPolicy, LockOutcome, row_lock_manager

logger = logging.getLogger(__name__)
settings = get_settings()

# Sentinel: "use the configured lock timeout"
DEFAULT_TIMEOUT = object()


class ReservationStatus(str, enum.Enum):
    RESERVED = "reserved"
    OUT_OF_STOCK = "out_of_stock"
    CONFLICT = "conflict"
    TIMEOUT = "timeout"
    SKIPPED = "skipped"


@dataclass
class Reservation:
    """Outcome of a reserve() call. Price and name are read under the lock."""
    status: ReservationStatus
    product_id: int
    quantity: int
    unit_price: Optional[Decimal] = None
    product_name: Optional[str] = None
    available: Optional[int] = None
    timeout: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.status is ReservationStatus.RESERVED


@dataclass
class ReplenishReport:
    restocked: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)


class InventoryLedger:
    """
    Owns Product.stock_quantity. Every change goes through a row lock.

    LOCKING STRATEGY:
    =================
    Each reservation first takes the in-process row lock for the product
    (see RowLockManager) and then reads the row with SELECT ... FOR UPDATE,
    adding NOWAIT or SKIP LOCKED according to the policy. On PostgreSQL the
    database lock serialises reservations across processes; the in-process
    lock gives identical behaviour on engines without row locks.

    Locks are held until the caller's unit of work commits or rolls back,
    so a decrement is only ever visible together with the order that
    caused it.
    """

    LOCK_NAMESPACE = "products"

    def __init__(self, db: Session):
        self.db = db

    def reserve(
        self,
        product_id: int,
        quantity: int,
        policy: LockPolicy = LockPolicy.BLOCKING,
        timeout=DEFAULT_TIMEOUT,
    ) -> Reservation:
        """
        Lock a product row and decrement its stock if enough is available.

        Nothing is committed here; the caller owns the transaction.

        Args:
            product_id: Product to reserve
            quantity: Units to take (must be positive)
            policy: Lock acquisition policy
            timeout: Max seconds to wait under BLOCKING; None waits forever

        Returns:
            Reservation with status RESERVED, OUT_OF_STOCK, CONFLICT,
            TIMEOUT or SKIPPED (SKIP policy only)

        Raises:
            InvalidRequestError: If quantity is not a positive integer
            ConstraintViolationError: If the product does not exist
            StorageFailureError: If the database fails while locking
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidRequestError(f"Reservation quantity must be a positive integer, got {quantity!r}")
        if timeout is DEFAULT_TIMEOUT:
            timeout = settings.LOCK_TIMEOUT_SECONDS

        started = time.monotonic()
        outcome = self._lock(product_id, policy, timeout)
        if outcome is not LockOutcome.ACQUIRED:
            return Reservation(self._status_for(outcome, policy), product_id, quantity, timeout=timeout)

        remaining = None if timeout is None else timeout - (time.monotonic() - started)
        product = self._select_for_update(product_id, policy, remaining)
        if isinstance(product, ReservationStatus):
            return Reservation(product, product_id, quantity, timeout=timeout)

        if product.stock_quantity - quantity < 0:
            logger.info(
                f"Product #{product_id} out of stock: available {product.stock_quantity}, requested {quantity}"
            )
            return Reservation(
                ReservationStatus.OUT_OF_STOCK,
                product_id,
                quantity,
                unit_price=product.price,
                product_name=product.name,
                available=product.stock_quantity,
            )

        product.stock_quantity -= quantity
        self.db.flush()

        return Reservation(
            ReservationStatus.RESERVED,
            product_id,
            quantity,
            unit_price=product.price,
            product_name=product.name,
            available=product.stock_quantity,
        )

    def replenish(self, threshold: int, amount: int) -> ReplenishReport:
        """
        Top up every product at or below threshold by amount.

        Background scan: rows locked by in-flight orders are skipped rather
        than waited for, and picked up by the next run. Commits its own
        unit of work.
        """
        report = ReplenishReport()

        try:
            candidates = [
                row.id
                for row in self.db.query(Product.id)
                .filter(Product.stock_quantity <= threshold)
                .order_by(Product.id)
                .all()
            ]

            for product_id in candidates:
                if self._lock(product_id, LockPolicy.SKIP, None) is not LockOutcome.ACQUIRED:
                    report.skipped.append(product_id)
                    continue

                product = self._select_for_update(product_id, LockPolicy.SKIP, None)
                if isinstance(product, ReservationStatus):
                    report.skipped.append(product_id)
                    continue

                # Re-check under the lock; an order may have raced the scan
                if product.stock_quantity > threshold:
                    continue

                product.stock_quantity += amount
                report.restocked.append(product_id)

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Replenished {len(report.restocked)} product(s), skipped {len(report.skipped)} locked"
        )
        return report

    def _lock(self, product_id: int, policy: LockPolicy, timeout: Optional[float]) -> LockOutcome:
        # Make sure the lock is tied to a transaction that will end
        if not self.db.in_transaction():
            self.db.begin()
        return row_lock_manager.acquire(
            self.db, (self.LOCK_NAMESPACE, product_id), policy, timeout
        )

    def _select_for_update(self, product_id: int, policy: LockPolicy, timeout: Optional[float]):
        """Read the product row under a database lock, or return a failure status."""
        query = self.db.query(Product).filter(Product.id == product_id)

        if policy is LockPolicy.FAIL_FAST:
            query = query.with_for_update(nowait=True)
        elif policy is LockPolicy.SKIP:
            query = query.with_for_update(skip_locked=True)
        else:
            query = query.with_for_update()
            if timeout is not None and self.db.get_bind().dialect.name == "postgresql":
                self.db.execute(text(f"SET LOCAL lock_timeout = '{lock_timeout_ms(timeout)}ms'"))

        try:
            # populate_existing: never trust a stale identity-map copy
            product = query.populate_existing().first()
        except OperationalError as e:
            if getattr(e.orig, "pgcode", None) == errorcodes.LOCK_NOT_AVAILABLE:
                if policy is LockPolicy.BLOCKING:
                    return ReservationStatus.TIMEOUT
                return ReservationStatus.CONFLICT
            logger.error(f"Storage failure locking product #{product_id}: {e}")
            raise StorageFailureError(f"Could not lock product {product_id}") from e

        if product is None:
            if policy is LockPolicy.SKIP and self._exists(product_id):
                return ReservationStatus.SKIPPED
            raise ConstraintViolationError(f"Product with ID {product_id} not found")

        return product

    def _exists(self, product_id: int) -> bool:
        return self.db.query(Product.id).filter(Product.id == product_id).first() is not None

    @staticmethod
    def _status_for(outcome: LockOutcome, policy: LockPolicy) -> ReservationStatus:
        if outcome is LockOutcome.TIMED_OUT:
            return ReservationStatus.TIMEOUT
        if policy is LockPolicy.SKIP:
            return ReservationStatus.SKIPPED
        return ReservationStatus.CONFLICT


def lock_timeout_ms(remaining: float) -> int:
    """PostgreSQL lock_timeout for the wait budget left; 0 would disable it."""
    return max(1, int(remaining * 1000))
