"""
POS Node — Domain errors

Raised by the store operations; the API layer maps them to HTTP status codes.
Nothing is persisted when one of these escapes a write unit of work.
"""


class PosError(Exception):
    """Base class for every error raised by the POS core."""


class OrderValidationError(PosError, ValueError):
    """Missing or invalid order fields (empty item list, bad quantity, bad payment)."""


class ProductNotFound(PosError, LookupError):
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class OrderNotFound(PosError, LookupError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class OrderStateError(PosError):
    """The order's current status does not allow the requested mutation."""


class ComboCycleError(PosError, ValueError):
    """A combo composition would reference itself, directly or transitively."""


class ProductInUseError(PosError):
    """A product still referenced by orders or combos cannot be deleted."""


class BusinessNotLinked(PosError):
    """No cloud business account is linked to this device."""


class RecoveryError(PosError):
    """The cloud snapshot could not be fetched."""
