"""Tests for the inventory ledger and its lock policies."""
import threading
import time

import pytest
from psycopg2 import errorcodes
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Query

from conftest import add_category, add_product
from fulfillment.models.catalog import Product
from fulfillment.services.exceptions import (
    ConstraintViolationError,
    InvalidRequestError,
    StorageFailureError,
)
from fulfillment.services.inventory_ledger import InventoryLedger, ReservationStatus, lock_timeout_ms
from fulfillment.utils.row_locks import LockPolicy, row_lock_manager


def _stock(session_factory, product_id):
    with session_factory() as db:
        return db.get(Product, product_id).stock_quantity


@pytest.fixture
def product_id(session_factory):
    with session_factory() as db:
        books = add_category(db)
        return add_product(db, books, "Mort", "12.50", stock=3).id


def test_reserve_decrements_stock(db_session):
    """Test a reservation takes stock and reports the locked price."""
    product = add_product(db_session, add_category(db_session), "Mort", "12.50", stock=3)

    reservation = InventoryLedger(db_session).reserve(product.id, 2)
    db_session.commit()

    assert reservation.status is ReservationStatus.RESERVED
    assert str(reservation.unit_price) == "12.50"
    assert reservation.product_name == "Mort"
    assert db_session.get(Product, product.id).stock_quantity == 1


def test_reserve_out_of_stock_leaves_stock_unchanged(db_session):
    """Test a reservation that would go negative changes nothing."""
    product = add_product(db_session, add_category(db_session), stock=2)

    reservation = InventoryLedger(db_session).reserve(product.id, 3)
    db_session.commit()

    assert reservation.status is ReservationStatus.OUT_OF_STOCK
    assert reservation.available == 2
    assert db_session.get(Product, product.id).stock_quantity == 2


def test_reserve_exact_stock_reaches_zero(db_session):
    product = add_product(db_session, add_category(db_session), stock=2)

    reservation = InventoryLedger(db_session).reserve(product.id, 2)
    db_session.commit()

    assert reservation.ok
    assert db_session.get(Product, product.id).stock_quantity == 0


def test_reserve_unknown_product(db_session):
    """Test reserving a product that does not exist is a stale identifier."""
    with pytest.raises(ConstraintViolationError):
        InventoryLedger(db_session).reserve(9999, 1)


def test_rollback_restores_stock_and_releases_lock(db_session):
    product = add_product(db_session, add_category(db_session), stock=5)
    product_id = product.id

    InventoryLedger(db_session).reserve(product_id, 4)
    assert row_lock_manager.is_locked(("products", product_id))

    db_session.rollback()

    assert not row_lock_manager.is_locked(("products", product_id))
    assert db_session.get(Product, product_id).stock_quantity == 5


def test_fail_fast_on_locked_row_returns_conflict_immediately(session_factory, product_id):
    """Test NOWAIT semantics: a held row fails without waiting."""
    holder = session_factory()
    contender = session_factory()
    try:
        assert InventoryLedger(holder).reserve(product_id, 1).ok

        started = time.monotonic()
        reservation = InventoryLedger(contender).reserve(product_id, 1, policy=LockPolicy.FAIL_FAST)
        elapsed = time.monotonic() - started

        assert reservation.status is ReservationStatus.CONFLICT
        assert elapsed < 0.5
    finally:
        holder.rollback()
        contender.rollback()
        holder.close()
        contender.close()

    assert _stock(session_factory, product_id) == 3


def test_blocking_with_bound_times_out(session_factory, product_id):
    holder = session_factory()
    contender = session_factory()
    try:
        assert InventoryLedger(holder).reserve(product_id, 1).ok

        started = time.monotonic()
        reservation = InventoryLedger(contender).reserve(product_id, 1, timeout=0.2)
        elapsed = time.monotonic() - started

        assert reservation.status is ReservationStatus.TIMEOUT
        assert reservation.timeout == 0.2
        assert 0.15 <= elapsed < 2
    finally:
        holder.rollback()
        contender.rollback()
        holder.close()
        contender.close()


def test_skip_policy_skips_locked_row(session_factory, product_id):
    holder = session_factory()
    scanner = session_factory()
    try:
        assert InventoryLedger(holder).reserve(product_id, 1).ok

        reservation = InventoryLedger(scanner).reserve(product_id, 1, policy=LockPolicy.SKIP)

        assert reservation.status is ReservationStatus.SKIPPED
    finally:
        holder.rollback()
        scanner.rollback()
        holder.close()
        scanner.close()


def test_lock_is_released_on_commit(session_factory, product_id):
    """Test a waiting reservation sees the stock committed by the holder."""
    holder = session_factory()
    contender = session_factory()
    try:
        assert InventoryLedger(holder).reserve(product_id, 3).ok
        holder.commit()

        reservation = InventoryLedger(contender).reserve(product_id, 1, policy=LockPolicy.FAIL_FAST)

        assert reservation.status is ReservationStatus.OUT_OF_STOCK
        assert reservation.available == 0
    finally:
        contender.rollback()
        holder.close()
        contender.close()


def test_replenish_skips_rows_held_by_open_orders(session_factory):
    with session_factory() as db:
        books = add_category(db)
        low = add_product(db, books, "Low", stock=1).id
        busy = add_product(db, books, "Busy", stock=0).id
        plenty = add_product(db, books, "Plenty", stock=50).id

    holder = session_factory()
    scanner = session_factory()
    try:
        # An in-flight order holds the row lock on "Busy"
        holder.begin()
        row_lock_manager.acquire(holder, ("products", busy), LockPolicy.BLOCKING)

        report = InventoryLedger(scanner).replenish(threshold=5, amount=20)
    finally:
        holder.rollback()
        holder.close()
        scanner.close()

    assert report.restocked == [low]
    assert report.skipped == [busy]
    assert _stock(session_factory, low) == 21
    assert _stock(session_factory, busy) == 0
    assert _stock(session_factory, plenty) == 50


@pytest.mark.parametrize("quantity", [0, -5, True, 1.5, "2"])
def test_reserve_rejects_non_positive_or_non_integer_quantity(db_session, quantity):
    """Test the ledger never raises stock through a bad quantity."""
    product = add_product(db_session, add_category(db_session), stock=3)
    product_id = product.id

    with pytest.raises(InvalidRequestError):
        InventoryLedger(db_session).reserve(product_id, quantity)
    db_session.rollback()

    assert not row_lock_manager.is_locked(("products", product_id))
    assert db_session.get(Product, product_id).stock_quantity == 3


class LockNotAvailable(Exception):
    """Driver error carrying PostgreSQL SQLSTATE 55P03."""
    pgcode = errorcodes.LOCK_NOT_AVAILABLE


def _fail_locked_query(monkeypatch, orig):
    def first(self):
        raise OperationalError("SELECT products FOR UPDATE", {}, orig)

    monkeypatch.setattr(Query, "first", first)


@pytest.mark.parametrize(
    "policy, status",
    [
        (LockPolicy.FAIL_FAST, ReservationStatus.CONFLICT),
        (LockPolicy.BLOCKING, ReservationStatus.TIMEOUT),
    ],
)
def test_lock_not_available_maps_to_policy_status(db_session, monkeypatch, policy, status):
    """Test SQLSTATE 55P03 means NOWAIT conflict or lock_timeout expiry."""
    product = add_product(db_session, add_category(db_session), stock=3)
    product_id = product.id
    _fail_locked_query(monkeypatch, LockNotAvailable("could not obtain lock on row"))

    reservation = InventoryLedger(db_session).reserve(product_id, 1, policy=policy, timeout=0.5)
    monkeypatch.undo()
    db_session.rollback()

    assert reservation.status is status
    assert reservation.timeout == 0.5
    assert not row_lock_manager.is_locked(("products", product_id))
    assert db_session.get(Product, product_id).stock_quantity == 3


def test_other_operational_error_is_storage_failure(db_session, monkeypatch):
    product = add_product(db_session, add_category(db_session), stock=3)
    product_id = product.id
    _fail_locked_query(monkeypatch, Exception("server closed the connection unexpectedly"))

    with pytest.raises(StorageFailureError) as excinfo:
        InventoryLedger(db_session).reserve(product_id, 1)
    monkeypatch.undo()
    db_session.rollback()

    assert isinstance(excinfo.value.__cause__, OperationalError)
    assert not row_lock_manager.is_locked(("products", product_id))
    assert db_session.get(Product, product_id).stock_quantity == 3


def test_database_wait_gets_only_the_remaining_timeout(session_factory, product_id, monkeypatch):
    """Test the in-process wait and the database wait share one timeout."""
    seen = []
    select_for_update = InventoryLedger._select_for_update

    def spy(self, product_id, policy, timeout):
        seen.append(timeout)
        return select_for_update(self, product_id, policy, timeout)

    monkeypatch.setattr(InventoryLedger, "_select_for_update", spy)

    holder = session_factory()
    contender = session_factory()
    try:
        holder.begin()
        row_lock_manager.acquire(holder, ("products", product_id), LockPolicy.BLOCKING)
        release = threading.Timer(0.3, holder.rollback)
        release.start()

        reservation = InventoryLedger(contender).reserve(product_id, 1, timeout=2.0)
        release.join()

        assert reservation.ok
        assert len(seen) == 1
        assert 0 < seen[0] <= 1.75
    finally:
        contender.rollback()
        holder.close()
        contender.close()


def test_lock_timeout_ms_never_disables_the_timeout():
    assert lock_timeout_ms(0.25) == 250
    assert lock_timeout_ms(0) == 1
    assert lock_timeout_ms(-0.1) == 1
