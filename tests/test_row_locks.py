"""Tests for the in-process row lock manager."""
import gc
import threading

from fulfillment.utils.row_locks import LockOutcome, LockPolicy, RowLockManager


class FakeSession:
    def __init__(self):
        self.info = {}


def test_lock_is_reentrant_for_its_owner():
    manager = RowLockManager()
    session = FakeSession()

    assert manager.acquire(session, "row") is LockOutcome.ACQUIRED
    assert manager.acquire(session, "row", LockPolicy.FAIL_FAST) is LockOutcome.ACQUIRED


def test_busy_lock_by_policy():
    manager = RowLockManager()
    owner, other = FakeSession(), FakeSession()
    manager.acquire(owner, "row")

    assert manager.acquire(other, "row", LockPolicy.FAIL_FAST) is LockOutcome.BUSY
    assert manager.acquire(other, "row", LockPolicy.SKIP) is LockOutcome.BUSY
    assert manager.acquire(other, "row", LockPolicy.BLOCKING, timeout=0.05) is LockOutcome.TIMED_OUT
    assert manager.acquire(other, "other-row", LockPolicy.FAIL_FAST) is LockOutcome.ACQUIRED


def test_release_wakes_blocked_waiter():
    manager = RowLockManager()
    owner, waiter = FakeSession(), FakeSession()
    manager.acquire(owner, "row")
    outcome = []

    thread = threading.Thread(
        target=lambda: outcome.append(manager.acquire(waiter, "row", LockPolicy.BLOCKING, timeout=5))
    )
    thread.start()
    manager.release_all(owner)
    thread.join(timeout=5)

    assert outcome == [LockOutcome.ACQUIRED]
    assert manager.is_locked("row")
    manager.release_all(waiter)
    assert not manager.is_locked("row")


def test_lock_left_by_a_collected_session_is_not_inherited():
    """Test a new session never re-enters a lock it does not own."""
    manager = RowLockManager()
    manager.acquire(FakeSession(), "row")  # dropped without releasing
    gc.collect()

    # Short-lived objects commonly reuse the freed address
    for _ in range(20):
        assert manager.acquire(FakeSession(), "row", LockPolicy.FAIL_FAST) is LockOutcome.BUSY


def test_owner_token_survives_release():
    manager = RowLockManager()
    session = FakeSession()
    manager.acquire(session, "row")
    token = session.info[RowLockManager.OWNER_KEY]

    manager.release_all(session)
    manager.acquire(session, "row")

    assert session.info[RowLockManager.OWNER_KEY] is token
    assert manager.is_locked("row")
