# -*- coding: utf-8 -*-
"""Billing error hierarchy shared by services and routes."""


class BillingError(Exception):
    """Base class for errors surfaced to HTTP clients."""

    status_code = 500
    error_code = "billing_error"

    def __init__(self, message: str, status_code: int = None, error_code: str = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code

    def to_dict(self):
        return {"error": self.error_code, "message": self.message}


class InvalidRequestParams(BillingError):
    status_code = 400
    error_code = "invalid_request"


class OriginNotAllowed(BillingError):
    status_code = 403
    error_code = "origin_not_allowed"


class PackageNotFound(BillingError):
    status_code = 404
    error_code = "package_not_found"


class CheckoutTokenRejected(BillingError):
    """Verification token expired, unknown, mismatched or already used."""

    status_code = 400
    error_code = "token_rejected"

    def __init__(self, reason: str):
        super().__init__(f"Checkout token rejected: {reason}")
        self.reason = reason


class ReconciliationError(BillingError):
    """A reconciliation step failed after earlier steps were committed."""

    error_code = "reconciliation_failed"

    def __init__(self, step: str, message: str):
        super().__init__(f"{step}: {message}")
        self.step = step


class PaymentDeclined(BillingError):
    """A retried invoice payment was declined by the card issuer."""

    status_code = 400

    def __init__(self, category: str, message: str, package_status: str):
        super().__init__(message, error_code=category)
        self.category = category
        self.package_status = package_status

    def to_dict(self):
        return {
            "success": False,
            "error": self.error_code,
            "message": self.message,
            "packageStatus": self.package_status,
        }
