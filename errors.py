"""
Domain errors

Every error carries the HTTP status it maps to; the handlers installed in
main.create_app turn them into the {success: false, message, error?} envelope.
"""

from typing import Any, Optional


class AppError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None, detail: Any = None):
        self.message = message or self.message
        self.detail = detail
        super().__init__(self.message)


class ConfigError(AppError):
    status_code = 500
    message = "Payment gateway not configured"


class GatewayError(AppError):
    status_code = 502
    message = "Paystack initialization failed"


class VerificationFailed(AppError):
    status_code = 400
    message = "Payment not verified"


class Unauthenticated(AppError):
    status_code = 401
    message = "Unauthenticated"


class InvalidCredential(AppError):
    status_code = 401
    message = "Invalid"


class Expired(AppError):
    status_code = 401
    message = "Expired"


class InvalidTransition(AppError):
    status_code = 400

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot change order status from {current} to {target}")


class OrderConflict(AppError):
    status_code = 409
    message = "Order status changed meanwhile, reload and try again"


class StorageError(AppError):
    status_code = 500
    message = "Failed to upload image"
