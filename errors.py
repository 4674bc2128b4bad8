"""
Error types raised by the order, payment, review and catalog components.

Each carries the HTTP status the API answers with; main.py turns them into
``{"detail": ...}`` responses.
"""


class ShopError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ShopError):
    status_code = 400


class DuplicateError(ValidationError):
    pass


class NotFoundError(ShopError):
    status_code = 404


class UnauthorizedError(ShopError):
    status_code = 401


class PaymentProviderError(ShopError):
    status_code = 502

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code
