# -*- coding: utf-8 -*-
"""
Stripe webhook event handlers.

Each handler receives a parsed event model and returns an outcome label
("applied", "duplicate", "ignored" or "canceled_upstream") used for logging
and metrics. Exceptions propagate to the route so Stripe redelivers.
"""
from typing import List, Optional

import stripe
from flask import current_app
from sqlalchemy.exc import IntegrityError

from plagiacheck.infra import db, get_logger, get_stripe_gateway
from plagiacheck.models import Package, PackageStatus, Payment, PaymentType, PurchasedToken
from plagiacheck.schemas.events import (
    InvoicePaidEvent, InvoicePaymentFailedEvent, SubscriptionDeletedEvent, StripeEvent,
)
from plagiacheck.services.billing_dates import add_one_month
from plagiacheck.services.operation_log import log_operation
from plagiacheck.services.reconciliation import cents_to_amount, plan_allocation
from plagiacheck.services.stripe_gateway import field

logger = get_logger('plagiacheck.webhooks')

APPLIED = "applied"
DUPLICATE = "duplicate"
IGNORED = "ignored"
CANCELED_UPSTREAM = "canceled_upstream"

UNPAID_INVOICE_STATUSES = ("open", "uncollectible")
SKIPPED_INVOICE_STATUSES = ("draft", "void")

STRIPE_STATUS_MAP = {
    "past_due": PackageStatus.PAST_DUE,
    "active": PackageStatus.ACTIVE,
    "trialing": PackageStatus.ACTIVE,
    "canceled": PackageStatus.CANCELED,
    "unpaid": PackageStatus.CANCELED,
    "incomplete_expired": PackageStatus.CANCELED,
}


def map_subscription_status(stripe_status: Optional[str]) -> str:
    """Map a Stripe subscription status onto a package status (unknown -> PAST_DUE)."""
    return STRIPE_STATUS_MAP.get(stripe_status or "", PackageStatus.PAST_DUE)


def count_consecutive_unpaid(invoices: List) -> int:
    """
    Count unpaid invoices from the newest until the first paid one.

    Draft and void invoices were never collected and are skipped.
    """
    ordered = sorted(invoices, key=lambda inv: field(inv, "created", 0), reverse=True)
    count = 0
    for invoice in ordered:
        status = field(invoice, "status")
        if status in SKIPPED_INVOICE_STATUSES:
            continue
        if status not in UNPAID_INVOICE_STATUSES:
            break
        count += 1
    return count


def handle_event(event: StripeEvent) -> str:
    if isinstance(event, InvoicePaidEvent):
        return handle_invoice_paid(event)
    if isinstance(event, InvoicePaymentFailedEvent):
        return handle_invoice_payment_failed(event)
    if isinstance(event, SubscriptionDeletedEvent):
        return handle_subscription_deleted(event)
    logger.info(f"Unhandled event type: {event.type}", event_id=event.id)
    return IGNORED


def handle_invoice_paid(event: InvoicePaidEvent) -> str:
    """
    Apply a renewal invoice to its package.

    Only ``subscription_cycle`` invoices renew; the first invoice of a
    subscription is reconciled by the success redirect.
    """
    invoice = event.invoice
    if invoice.billing_reason != "subscription_cycle" or not invoice.subscription:
        logger.info("Invoice acknowledged without renewal",
                    invoice_id=invoice.id, billing_reason=invoice.billing_reason)
        return IGNORED

    package = Package.query.filter_by(stripe_subscription_id=invoice.subscription).first()
    if package is None:
        logger.warning("No package for renewed subscription", subscription_id=invoice.subscription)
        return IGNORED

    if package.is_canceled:
        _cancel_upstream(invoice.subscription)
        log_operation("canceled_package_renewal_blocked", {
            "package_id": package.id,
            "subscription_id": invoice.subscription,
            "invoice_id": invoice.id,
        })
        return CANCELED_UPSTREAM

    if db.session.get(Payment, invoice.id) is not None:
        return DUPLICATE

    db.session.add(Payment(
        id=invoice.id,
        user_id=package.user_id,
        amount=cents_to_amount(invoice.amount_paid),
        currency=invoice.currency,
        status="succeeded",
        type=PaymentType.SUBSCRIPTION,
        processed=True,
    ))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return DUPLICATE

    tokens = plan_allocation(package.package_name)
    PurchasedToken.credit(package.user_id, image_tokens=tokens)

    package.expiry_date = add_one_month(package.expiry_date)
    package.transition_to(PackageStatus.ACTIVE)
    db.session.commit()

    log_operation("package_renewed", {
        "package_id": package.id,
        "user_id": package.user_id,
        "invoice_id": invoice.id,
        "image_tokens": tokens,
        "expiry_date": package.expiry_date.isoformat(),
    })
    return APPLIED


def handle_invoice_payment_failed(event: InvoicePaymentFailedEvent) -> str:
    invoice = event.invoice
    if not invoice.subscription:
        return IGNORED

    package = Package.query.filter_by(stripe_subscription_id=invoice.subscription).first()
    if package is None:
        logger.warning("No package for failed invoice", subscription_id=invoice.subscription)
        return IGNORED
    if package.is_canceled:
        return IGNORED

    gateway = get_stripe_gateway()
    unpaid = count_consecutive_unpaid(gateway.list_invoices(invoice.subscription))
    threshold = current_app.config.get("CONSECUTIVE_FAILURES_TO_CANCEL", 2)

    if unpaid >= threshold:
        package.transition_to(PackageStatus.CANCELED)
        package.payment_failure_count = unpaid
        db.session.commit()
        _cancel_upstream(invoice.subscription)
        log_operation("subscription_canceled", {
            "package_id": package.id,
            "subscription_id": invoice.subscription,
            "reason": "consecutive_payment_failures",
            "failures": unpaid,
        })
        return APPLIED

    subscription = gateway.retrieve_subscription(invoice.subscription)
    status = map_subscription_status(field(subscription, "status"))
    failures = (package.payment_failure_count or 0) + 1
    package.transition_to(status)
    # The failed invoice counts even when Stripe still reports the subscription active.
    package.payment_failure_count = failures
    db.session.commit()

    log_operation("payment_failed", {
        "package_id": package.id,
        "subscription_id": invoice.subscription,
        "invoice_id": invoice.id,
        "status": package.status,
        "failures": package.payment_failure_count,
    })
    return APPLIED


def handle_subscription_deleted(event: SubscriptionDeletedEvent) -> str:
    subscription = event.subscription
    user_id = subscription.metadata.get("userId")

    query = Package.query.filter_by(stripe_subscription_id=subscription.id)
    if user_id:
        query = query.filter_by(user_id=user_id)
    packages = query.all()
    if not packages:
        logger.warning("No package for deleted subscription",
                       subscription_id=subscription.id, user_id=user_id)
        return IGNORED

    for package in packages:
        package.transition_to(PackageStatus.CANCELED)
    db.session.commit()

    log_operation("subscription_deleted", {
        "subscription_id": subscription.id,
        "user_id": user_id,
        "package_ids": [p.id for p in packages],
    })
    return APPLIED


def _cancel_upstream(subscription_id: str) -> None:
    try:
        get_stripe_gateway().cancel_subscription(subscription_id)
        logger.log_billing_event("subscription_canceled_upstream", subscription_id=subscription_id)
    except stripe.InvalidRequestError as e:
        # Already canceled on Stripe's side.
        logger.warning(f"Upstream cancel skipped: {e}", subscription_id=subscription_id)
