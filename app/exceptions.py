"""
Typed errors raised by the inventory services.

Every error carries a ``code`` class attribute so API clients can branch on
it without parsing messages. The HTTP mapping lives in ``app.main``.
"""


class InventoryError(Exception):
    """Base class for inventory service errors."""

    code: str = "INVENTORY_ERROR"


class ProductNotFound(InventoryError):
    """The referenced product (by id or SKU) does not exist."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_ref: str):
        self.product_ref = product_ref
        super().__init__(f"Product not found: {product_ref}")


class InvalidMovement(InventoryError):
    """A movement request was rejected before anything was written."""

    code: str = "INVALID_MOVEMENT"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid movement: {reason}")


class PersistenceFailure(InventoryError):
    """The ledger append failed. The product projection was not touched."""

    code: str = "PERSISTENCE_FAILURE"

    def __init__(self, product_id: str, reason: str):
        self.product_id = product_id
        self.reason = reason
        super().__init__(f"Could not record ledger entry for product {product_id}: {reason}")


class ProjectionUpdateFailure(InventoryError):
    """
    The ledger entry was written but the product quantity was not updated.

    The entry is kept (the ledger is append-only); run
    ``reconcile_product_quantity`` for ``entry.sku`` to repair the product.
    """

    code: str = "PROJECTION_UPDATE_FAILURE"

    def __init__(self, entry, reason: str):
        self.entry = entry
        self.reason = reason
        super().__init__(
            f"Ledger entry {entry.id} recorded for {entry.sku} (balance {entry.balance_after}) "
            f"but product quantity may be stale: {reason}"
        )


class InsufficientStock(InventoryError):
    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, sku: str, available: float, requested: float):
        self.sku = sku
        self.available = available
        self.requested = requested
        super().__init__(f"Insufficient stock for {sku}. Available: {available:g}, requested: {requested:g}")


class InvalidStateTransition(InventoryError):
    code: str = "INVALID_STATE"


class LedgerImmutable(InventoryError):
    """Ledger entries cannot be changed or removed once written."""

    code: str = "LEDGER_IMMUTABLE"

    def __init__(self, entry_id: str, action: str):
        self.entry_id = entry_id
        self.action = action
        super().__init__(f"Ledger entry {entry_id} is immutable; {action} is not allowed")
