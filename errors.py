"""
Error taxonomy shared by the store, the services and the HTTP layer.

Each error carries the HTTP status it is rendered with; handlers in main.py
turn them into ``{"error": message}`` bodies.
"""


class ShopError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(ShopError):
    status_code = 404


class Unauthorized(ShopError):
    status_code = 401


class Forbidden(ShopError):
    status_code = 403


class ValidationFailure(ShopError):
    status_code = 400


class InvalidTransition(ShopError):
    status_code = 409


class StoreUnavailable(ShopError):
    status_code = 503
