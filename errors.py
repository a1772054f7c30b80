"""Custom exceptions for the storefront backend."""

from typing import Dict, Optional


class StoreError(Exception):
    """Base exception for all storefront errors."""

    pass


class ValidationFailedError(StoreError):
    """Raised when customer-supplied fields do not validate.

    Carries every field error at once so they can be shown together.
    """

    def __init__(self, errors: Dict[str, str], message: str = "Please fill in all required fields correctly"):
        self.errors = errors
        super().__init__(message)


class SpamRejectedError(StoreError):
    """Raised when a submission trips the honeypot or dwell-time gate."""

    def __init__(self, message: str = "Invalid submission detected. Please try again."):
        super().__init__(message)


class ShippingUnavailableError(StoreError):
    """Raised when no shipping price is known for the chosen wilaya and mode."""

    def __init__(self, wilaya_id: Optional[int], shipping_type: str):
        self.wilaya_id = wilaya_id
        self.shipping_type = shipping_type
        super().__init__(f"No shipping price available for wilaya {wilaya_id} ({shipping_type})")


class EmptyCartError(StoreError):
    def __init__(self):
        super().__init__("Your cart is empty")


class ProductNotFoundError(StoreError):
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class ProductUnavailableError(StoreError):
    """Raised when a product cannot be added to the cart in its current state."""

    def __init__(self, product_id: str, reason: str):
        self.product_id = product_id
        super().__init__(reason)


class OrderNotFoundError(StoreError):
    def __init__(self, order_number: str):
        self.order_number = order_number
        super().__init__("Order not found. Please check your order number and try again.")


class OutOfStockError(StoreError):
    """Raised when a variant does not have enough units left."""

    def __init__(self, product_id: str, size: str, color: str, requested: int):
        self.product_id = product_id
        self.size = size
        self.color = color
        self.requested = requested
        super().__init__(f"Not enough stock for {product_id} ({size} / {color}): requested {requested}")


class InvalidImageError(StoreError):
    def __init__(self, reason: str):
        super().__init__(reason)


class DatabaseNotConfiguredError(StoreError):
    def __init__(self):
        super().__init__("Database is not configured. Set DATABASE_URL and DATABASE_NAME.")
