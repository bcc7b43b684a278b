"""Business exceptions for the store service.

Each error carries the HTTP status code routers translate it to.
"""
from typing import Optional

from fastapi import HTTPException


class StoreError(Exception):
    """Base exception for all store service errors."""

    status_code = 400


class ValidationError(StoreError):
    """Raised when a required field is missing or malformed."""


class ProductNotFoundError(StoreError):
    """Raised when an ordered product does not exist."""

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product with ID {product_id} not found")


class ProductInactiveError(StoreError):
    """Raised when an ordered product has been deactivated."""

    def __init__(self, product_id: int, name: str):
        self.product_id = product_id
        self.name = name
        super().__init__(f"Product {name} is not available")


class InsufficientStockError(StoreError):
    """Raised when the requested quantity exceeds available stock."""

    def __init__(self, product_id: int, name: str, available: Optional[int] = None):
        self.product_id = product_id
        self.name = name
        self.available = available
        msg = f"Insufficient stock for {name}"
        if available is not None:
            msg = f"{msg}. Available: {available}"
        super().__init__(msg)


class OrderNumberConflictError(StoreError):
    """Raised when a generated order number collides with an existing one.

    The request can be retried as-is.
    """

    status_code = 409
    retryable = True

    def __init__(self, order_number: str):
        self.order_number = order_number
        super().__init__("Order number conflict, please retry")


class OrderNotFoundError(StoreError):
    """Raised when an order does not exist or is not visible to the caller."""

    status_code = 404

    def __init__(self):
        super().__init__("Order not found")


class OrderNotCancellableError(StoreError):
    """Raised when cancelling an order past the confirmed stage."""

    def __init__(self, order_number: str, status: str):
        self.order_number = order_number
        self.status = status
        super().__init__("Order cannot be cancelled at this stage")


class OrderAccessDeniedError(StoreError):
    """Raised when guest credentials do not match the order."""

    status_code = 403

    def __init__(self):
        super().__init__("Access denied")


class ProductMissingError(StoreError):
    """Raised when a catalog lookup by ID finds nothing."""

    status_code = 404

    def __init__(self, message: str = "Product not found"):
        super().__init__(message)


class DuplicateSkuError(StoreError):
    """Raised when creating a product with an SKU already in use."""

    status_code = 409

    def __init__(self, sku: str):
        self.sku = sku
        super().__init__(f"Product with SKU {sku} already exists")


class EmailAlreadyRegisteredError(StoreError):
    """Raised when registering an email that already has an account."""

    status_code = 409

    def __init__(self, email: str):
        self.email = email
        super().__init__("Email already exists")


class InvalidCredentialsError(StoreError):
    """Raised when login credentials do not match an active account."""

    status_code = 401

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message)


class SocialAuthError(StoreError):
    """Raised when a Google or Facebook token cannot be verified."""

    status_code = 401

    def __init__(self, provider: str, message: Optional[str] = None):
        self.provider = provider
        super().__init__(message or f"Invalid {provider.title()} token")


class SocialLoginNotConfiguredError(StoreError):
    """Raised when a social provider has no client credentials configured."""

    status_code = 503

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"{provider.title()} sign-in is not available")


class SocialAccountLinkedError(StoreError):
    """Raised when a provider account already belongs to another user."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"{provider.title()} account is already linked to another user")


class NotificationError(StoreError):
    """Raised when an email could not be delivered.

    Never propagates out of the email service.
    """

    status_code = 502


def http_error(error: StoreError) -> HTTPException:
    """Translate a business error into the HTTP response routers raise."""
    headers = None
    if getattr(error, "retryable", False):
        headers = {"Retry-After": "1"}
    return HTTPException(status_code=error.status_code, detail=str(error), headers=headers)
