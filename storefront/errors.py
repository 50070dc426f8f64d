"""Exceptions raised at the collaborator boundary (auth, orders, payments)."""
from __future__ import annotations


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    def __init__(self, message: str, *args: object) -> None:
        super().__init__(message, *args)
        self.message = message


class ValidationError(StorefrontError):
    """Input validation errors."""

    pass


class AuthError(StorefrontError):
    """Sign-in / sign-up failures."""

    pass


class NotAuthenticated(AuthError):
    def __init__(self, message: str = "User not authenticated") -> None:
        super().__init__(message)


class OrderNotFound(StorefrontError):
    def __init__(self, reference: str | int | None = None) -> None:
        super().__init__("Order not found")
        self.reference = reference


class PaymentError(StorefrontError):
    """Gateway rejections, signature mismatches and HTTP failures."""

    pass
