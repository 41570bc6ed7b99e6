import enum
import threading
import logging
from typing import Hashable, Optional

from sqlalchemy import event
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class LockPolicy(str, enum.Enum):
    """How a unit of work behaves when the row it wants is already locked."""
    BLOCKING = "blocking"    # wait (optionally bounded) - SELECT ... FOR UPDATE
    FAIL_FAST = "fail_fast"  # give up immediately - FOR UPDATE NOWAIT
    SKIP = "skip"            # ignore the row - FOR UPDATE SKIP LOCKED


class LockOutcome(str, enum.Enum):
    ACQUIRED = "acquired"
    BUSY = "busy"
    TIMED_OUT = "timed_out"


class RowLockManager:
    """
    In-process exclusive row locks owned by SQLAlchemy sessions.

    The database's FOR UPDATE clauses are the real guard on PostgreSQL, but
    some engines (SQLite) silently drop them. This table gives the same
    per-row semantics within one process on any engine:

    - a lock is owned by a Session (a token in session.info) and is
      re-entrant for that Session
    - every lock a Session holds is released when its root transaction
      ends (commit, rollback or close), exactly like a database row lock
    - waiters are woken as soon as any lock is released
    """

    INFO_KEY = "row_locks"
    OWNER_KEY = "row_lock_owner"

    def __init__(self):
        self._cond = threading.Condition()
        self._owners: dict = {}

    def acquire(
        self,
        session: Session,
        key: Hashable,
        policy: LockPolicy = LockPolicy.BLOCKING,
        timeout: Optional[float] = None,
    ) -> LockOutcome:
        """
        Take the lock on key for session.

        Args:
            session: Owning unit of work
            key: Row identity, e.g. ("products", 3)
            policy: Behaviour when another session holds the lock
            timeout: Max seconds to wait under BLOCKING (None waits forever)

        Returns:
            ACQUIRED, BUSY (FAIL_FAST/SKIP saw a held lock) or TIMED_OUT
        """
        owner = self._owner(session)
        with self._cond:
            if not self._free_for(key, owner):
                if policy is not LockPolicy.BLOCKING:
                    return LockOutcome.BUSY
                if not self._cond.wait_for(lambda: self._free_for(key, owner), timeout):
                    return LockOutcome.TIMED_OUT

            self._owners[key] = owner
            session.info.setdefault(self.INFO_KEY, set()).add(key)
            return LockOutcome.ACQUIRED

    def release_all(self, session: Session) -> None:
        """Release every lock held by session."""
        keys = session.info.pop(self.INFO_KEY, None)
        if not keys:
            return

        owner = session.info.get(self.OWNER_KEY)
        with self._cond:
            for key in keys:
                if self._owners.get(key) is owner:
                    del self._owners[key]
            self._cond.notify_all()
        logger.debug(f"Released {len(keys)} row lock(s)")

    def is_locked(self, key: Hashable) -> bool:
        with self._cond:
            return key in self._owners

    def _owner(self, session: Session) -> object:
        # A token unique to the session; id() can be reused after collection
        token = session.info.get(self.OWNER_KEY)
        if token is None:
            token = session.info[self.OWNER_KEY] = object()
        return token

    def _free_for(self, key: Hashable, owner: object) -> bool:
        holder = self._owners.get(key)
        return holder is None or holder is owner


# Singleton lock manager instance
row_lock_manager = RowLockManager()


@event.listens_for(Session, "after_transaction_end")
def _release_row_locks(session, transaction):
    # Savepoints keep their locks; only the outermost transaction frees them
    if transaction.parent is None:
        row_lock_manager.release_all(session)
