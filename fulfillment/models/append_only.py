from sqlalchemy import event
from sqlalchemy.orm import object_session


class AppendOnlyViolation(Exception):
    """Raised when code tries to edit or delete an append-only ledger row."""
    pass


def append_only(model):
    """
    Class decorator that forbids ORM updates and deletes of persisted rows.

    Orders, order items and sales history are written exactly once by the
    order placement flow; corrections are new rows, never edits.
    """

    @event.listens_for(model, "before_update")
    def _reject_update(mapper, connection, target):
        # Collection-only changes (e.g. order.items) never touch the row itself
        session = object_session(target)
        if session is not None and not session.is_modified(target, include_collections=False):
            return
        raise AppendOnlyViolation(
            f"{model.__name__} #{target.id} is append-only and cannot be updated"
        )

    @event.listens_for(model, "before_delete")
    def _reject_delete(mapper, connection, target):
        raise AppendOnlyViolation(
            f"{model.__name__} #{target.id} is append-only and cannot be deleted"
        )

    return model
