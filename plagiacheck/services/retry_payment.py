# -*- coding: utf-8 -*-
"""Manual retry of a past-due subscription invoice."""
from typing import Optional, Tuple

import stripe

from plagiacheck.errors import InvalidRequestParams, PackageNotFound, PaymentDeclined
from plagiacheck.infra import db, get_logger, get_stripe_gateway
from plagiacheck.models import Package, PackageStatus
from plagiacheck.services.operation_log import log_operation
from plagiacheck.services.stripe_gateway import field, object_id

logger = get_logger('plagiacheck.subscriptions')

GENERIC_DECLINE = "generic"
GENERIC_DECLINE_MESSAGE = "Payment failed. Please try again or contact support."

DECLINE_MESSAGES = {
    "card_declined": "Your card was declined. Please try a different payment method.",
    "insufficient_funds": "Insufficient funds. Please use a different card.",
    "expired_card": "Your card has expired. Please update your payment method.",
    "authentication_required": "Additional authentication is required. Please contact your bank.",
}


def classify_decline(error: stripe.StripeError) -> Tuple[str, str]:
    """
    Map a Stripe error to (category, user-facing message).

    The more specific ``decline_code`` wins over ``code`` when both are known.
    """
    decline_code = getattr(getattr(error, "error", None), "decline_code", None)
    for candidate in (decline_code, getattr(error, "code", None)):
        if candidate in DECLINE_MESSAGES:
            return candidate, DECLINE_MESSAGES[candidate]
    return GENERIC_DECLINE, GENERIC_DECLINE_MESSAGE


def _load_package(user_id: str, package_id) -> Optional[Package]:
    try:
        pk = int(package_id)
    except (TypeError, ValueError):
        return None
    return Package.query.filter_by(id=pk, user_id=user_id).first()


def retry_subscription_payment(user_id: str, package_id, subscription_id: str) -> dict:
    """
    Pay the latest open invoice of a PAST_DUE package's subscription.

    Returns the response body on success. Raises InvalidRequestParams,
    PackageNotFound or PaymentDeclined otherwise. Any Stripe error while
    paying counts as a failed attempt.
    """
    if not user_id or not package_id or not subscription_id:
        raise InvalidRequestParams("Missing required parameters")

    package = _load_package(user_id, package_id)
    if package is None:
        raise PackageNotFound("Package not found")
    if package.status != PackageStatus.PAST_DUE:
        raise InvalidRequestParams("Package is not past due")
    if package.stripe_subscription_id != subscription_id:
        raise InvalidRequestParams("Subscription ID mismatch")

    gateway = get_stripe_gateway()
    subscription = gateway.retrieve_subscription(subscription_id)
    invoice_id = object_id(field(subscription, "latest_invoice"))
    if not invoice_id:
        raise InvalidRequestParams("No invoice found for subscription")

    invoice = gateway.retrieve_invoice(invoice_id)
    if field(invoice, "status") == "paid":
        _reactivate(package, invoice_id, "already_paid")
        return {"success": True, "status": package.status, "message": "Invoice was already paid"}

    try:
        gateway.pay_invoice(invoice_id)
    except stripe.StripeError as e:
        _record_decline(package, invoice_id, e)

    _reactivate(package, invoice_id, "paid")
    return {"success": True, "status": package.status, "message": "Payment successful"}


def _reactivate(package: Package, invoice_id: str, how: str) -> None:
    package.transition_to(PackageStatus.ACTIVE)
    db.session.commit()
    logger.log_billing_event("retry_payment_succeeded", package_id=package.id, invoice_id=invoice_id)
    log_operation("retry_payment_succeeded", {
        "package_id": package.id,
        "invoice_id": invoice_id,
        "result": how,
    })


def _record_decline(package: Package, invoice_id: str, error: stripe.StripeError):
    category, message = classify_decline(error)
    package.payment_failure_count = (package.payment_failure_count or 0) + 1
    db.session.commit()
    logger.log_billing_event("retry_payment_declined", success=False,
                             package_id=package.id, invoice_id=invoice_id,
                             category=category, stripe_code=getattr(error, "code", None))
    log_operation("retry_payment_failed", {
        "package_id": package.id,
        "invoice_id": invoice_id,
        "category": category,
        "failures": package.payment_failure_count,
    })
    raise PaymentDeclined(category, message, package.status)
