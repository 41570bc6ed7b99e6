class FulfillmentError(Exception):
    """
    Base class for errors raised by the fulfillment services.

    retryable tells callers whether repeating the whole placement may succeed.
    Nothing is committed when one of these is raised from a unit of work.
    """
    retryable = False


class InvalidRequestError(FulfillmentError):
    """Malformed input or unknown customer. Returned to the caller as-is."""
    pass


class OutOfStockError(FulfillmentError):
    """Exception raised when there's not enough stock to fulfill an order."""

    def __init__(self, product_id: int, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}. "
            f"Available: {available}, Requested: {requested}"
        )


class LockConflictError(FulfillmentError):
    """The product row is locked by another unit of work (fail-fast policy)."""
    retryable = True

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product {product_id} is locked by a concurrent order")


class LockTimeoutError(FulfillmentError):
    """Waiting for a product row lock exceeded the configured bound."""
    retryable = True

    def __init__(self, product_id: int, timeout: float = None):
        self.product_id = product_id
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout}s waiting for lock on product {product_id}")


class ConstraintViolationError(FulfillmentError):
    """A foreign key or uniqueness rule failed; identifiers are stale."""
    pass


class StorageFailureError(FulfillmentError):
    """The transactional store is unavailable or failed mid-transaction."""
    retryable = True


class HistorySyncError(FulfillmentError):
    """Sales history could not be appended; the enclosing order must abort."""
    pass
