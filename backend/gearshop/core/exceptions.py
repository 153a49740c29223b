"""
Domain errors raised by services and repositories.

Routers translate them into HTTPException with the status_code carried here.
"""


class ShopError(Exception):
    """Base class for expected, user-facing failures"""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ShopError):
    status_code = 404


class PermissionDeniedError(ShopError):
    status_code = 403


class InvalidRequestError(ShopError):
    status_code = 400


class InsufficientStockError(ShopError):
    """Requested quantity exceeds available stock"""
    status_code = 400

    def __init__(self, product_name: str, available: int, requested: int):
        super().__init__(
            f"Only {available} items of '{product_name}' available in stock (requested {requested})"
        )
        self.product_name = product_name
        self.available = available
        self.requested = requested


class PaymentGatewayError(ShopError):
    """VNPay merchant API returned an error or could not be reached"""
    status_code = 502


class AuthenticationError(ShopError):
    status_code = 401


class ShippingProviderError(ShopError):
    """GHN API returned an error or could not be reached"""
    status_code = 502
