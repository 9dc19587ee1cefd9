# -*- coding: utf-8 -*-
"""
Checkout reconciliation.

Applies a completed Stripe Checkout session to local state: the Payment row,
the user's Package (subscriptions) or token balance (one-time purchases),
optional voucher consumption and affiliate commission. The same code path
serves both purchase kinds.

The Payment primary key (Stripe invoice or payment-intent id) makes the whole
operation idempotent: a replayed redirect finds the row and stops.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from plagiacheck.errors import ReconciliationError
from plagiacheck.infra import db, get_logger, get_stripe_gateway
from plagiacheck.models import (
    Affiliate, Package, PackageStatus, Payment, PaymentType, PurchasedToken, User, Voucher,
)
from plagiacheck.services.billing_dates import add_one_month
from plagiacheck.services.metrics import record_metric
from plagiacheck.services.notifications import notify_payment_success
from plagiacheck.services.operation_log import log_operation
from plagiacheck.services.stripe_gateway import field, object_id

logger = get_logger('plagiacheck.reconciliation')

CENT = Decimal("0.01")
PAID_STATUSES = ("paid", "no_payment_required")


class PurchaseKind:
    PACKAGE = "package"
    PROMPT = "prompt"


@dataclass
class CheckoutOutcome:
    payment_id: str
    amount: Decimal
    token_type: str
    token_amount: int
    already_applied: bool = False
    package: Optional[Package] = None


def cents_to_amount(cents) -> Decimal:
    return (Decimal(int(cents or 0)) / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)


def plan_allocation(plan_name: Optional[str]) -> int:
    """Image tokens granted per billing period for a plan."""
    allocations = current_app.config.get("PLAN_TOKEN_ALLOCATIONS", {})
    return allocations.get(plan_name, current_app.config.get("DEFAULT_PLAN_ALLOCATION", 1000))


def apply_successful_checkout(kind: str, user_id: str, session_id: str,
                              plan_name: Optional[str] = None,
                              token_amount: int = 0,
                              token_type: str = "text",
                              voucher: Optional[str] = None,
                              ref_code: Optional[str] = None) -> CheckoutOutcome:
    """
    Reconcile a paid Checkout session for ``user_id``.

    Raises ReconciliationError when the session cannot be read, belongs to
    another user or is unpaid, or when a required step fails after the
    Payment row was written. Voucher and affiliate bookkeeping failures are
    logged and do not fail the reconciliation.
    """
    gateway = get_stripe_gateway()
    try:
        session = gateway.retrieve_checkout_session(
            session_id, expand=["subscription", "payment_intent"]
        )
    except Exception as e:
        _fail(kind, "retrieve_session", e, user_id=user_id, session_id=session_id)

    amount = cents_to_amount(field(session, "amount_total", 0))
    subscription = field(session, "subscription")
    subscription_id = object_id(subscription)
    # Session metadata is set server-side at checkout and wins over query args.
    metadata = field(session, "metadata", {})

    if field(metadata, "userId") != user_id:
        _fail(kind, "session_mismatch", ValueError("session belongs to another user"),
              user_id=user_id, session_id=session_id)
    if field(session, "payment_status") not in PAID_STATUSES:
        _fail(kind, "session_mismatch",
              ValueError(f"session payment_status is {field(session, 'payment_status')}"),
              user_id=user_id, session_id=session_id)

    if kind == PurchaseKind.PACKAGE:
        payment_id = object_id(field(session, "invoice")) or object_id(field(subscription, "latest_invoice"))
        payment_type = PaymentType.SUBSCRIPTION
        plan_name = field(metadata, "planName", plan_name)
        token_type, token_amount = "image", plan_allocation(plan_name)
    else:
        payment_id = object_id(field(session, "payment_intent"))
        payment_type = PaymentType.ONE_TIME
        try:
            token_amount = int(field(metadata, "tokenAmount", token_amount))
        except (TypeError, ValueError) as e:
            _fail(kind, "retrieve_session", e, user_id=user_id, session_id=session_id)
        token_type = field(metadata, "tokenType", token_type)

    if not payment_id:
        _fail(kind, "retrieve_session", ValueError("session has no invoice or payment intent"),
              user_id=user_id, session_id=session_id)

    if db.session.get(Payment, payment_id) is not None:
        return _already_applied(kind, user_id, CheckoutOutcome(payment_id, amount, token_type, token_amount))

    payment = Payment(
        id=payment_id,
        user_id=user_id,
        amount=amount,
        currency=field(session, "currency", "usd"),
        status="succeeded",
        type=payment_type,
        processed=True,
        checkout_session_id=session_id,
    )
    db.session.add(payment)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return _already_applied(kind, user_id, CheckoutOutcome(payment_id, amount, token_type, token_amount))

    package = None
    try:
        if kind == PurchaseKind.PACKAGE:
            package = _activate_package(user_id, plan_name, subscription_id)
        _credit_tokens(user_id, token_amount, token_type)
    except Exception as e:
        db.session.rollback()
        _fail(kind, "apply_purchase", e, user_id=user_id, payment_id=payment_id)

    if voucher:
        _consume_voucher(voucher)
    if ref_code:
        _accrue_affiliate_commission(ref_code, payment, amount)

    log_operation("payment_reconciled", {
        "kind": kind,
        "user_id": user_id,
        "payment_id": payment_id,
        "amount": str(amount),
        "subscription_id": subscription_id,
        "plan_name": plan_name,
    })
    record_metric("record_payment_reconciled", kind, "applied")
    logger.log_billing_event("payment_reconciled", kind=kind, user_id=user_id,
                             payment_id=payment_id, amount=str(amount))
    notify_payment_success(user_id, payment_id, kind)

    return CheckoutOutcome(payment_id, amount, token_type, token_amount, package=package)


def _activate_package(user_id: str, plan_name: Optional[str], subscription_id: Optional[str]) -> Package:
    today = date.today()
    package = None
    if subscription_id:
        package = Package.query.filter_by(
            user_id=user_id, stripe_subscription_id=subscription_id
        ).first()

    if package is None:
        package = Package(
            user_id=user_id,
            package_name=plan_name or "",
            status=PackageStatus.ACTIVE,
            start_date=today,
            expiry_date=add_one_month(today),
            stripe_subscription_id=subscription_id,
            payment_failure_count=0,
        )
        db.session.add(package)
    elif package.transition_to(PackageStatus.ACTIVE):
        package.package_name = plan_name or package.package_name
        package.start_date = today
        package.expiry_date = add_one_month(today)

    db.session.commit()
    return package


def _credit_tokens(user_id: str, token_amount: int, token_type: str) -> None:
    if token_type == "image":
        PurchasedToken.credit(user_id, image_tokens=token_amount)
    else:
        PurchasedToken.credit(user_id, text_tokens=token_amount)


def _consume_voucher(code: str) -> None:
    """Disable an auto-generated voucher and mark its owner's first-time offer used."""
    try:
        voucher = Voucher.query.filter_by(code=code, is_active=True).first()
        if voucher is None or not voucher.auto:
            return
        voucher.is_active = False
        if voucher.created_for_user_id:
            user = db.session.get(User, voucher.created_for_user_id)
            if user is None:
                user = User(id=voucher.created_for_user_id)
                db.session.add(user)
            user.first_time_offer_used = True
        db.session.commit()
        logger.info("Auto voucher consumed", voucher=code, user_id=voucher.created_for_user_id)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to process voucher {code}: {e}")


def _accrue_affiliate_commission(ref_code: str, payment: Payment, amount: Decimal) -> None:
    try:
        affiliate = Affiliate.query.filter_by(ref_code=ref_code).first()
        if affiliate is None:
            logger.warning("Unknown affiliate ref_code", ref_code=ref_code)
            return

        rate = affiliate.commission
        if rate is None:
            rate = current_app.config.get("AFFILIATE_DEFAULT_COMMISSION", 20)
        commission = (amount * Decimal(rate) / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)

        payment.referrer_id = affiliate.id
        affiliate.total_sales = (affiliate.total_sales or 0) + 1
        affiliate.total_sales_amount = (affiliate.total_sales_amount or Decimal("0")) + amount
        affiliate.total_earned = (affiliate.total_earned or Decimal("0")) + commission
        db.session.commit()
        logger.info(f"Affiliate {affiliate.id} credited {commission}",
                    ref_code=ref_code, payment_id=payment.id)
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to update affiliate {ref_code}: {e}")


def _already_applied(kind: str, user_id: str, outcome: CheckoutOutcome) -> CheckoutOutcome:
    record_metric("record_payment_reconciled", kind, "duplicate")
    logger.info("Payment already reconciled", payment_id=outcome.payment_id, user_id=user_id)
    outcome.already_applied = True
    return outcome


def _fail(kind: str, step: str, error: Exception, **context):
    record_metric("record_payment_reconciled", kind, "failed")
    logger.error(f"Reconciliation failed at {step}: {error}", step=step, **context)
    log_operation("reconciliation_failed", {
        "kind": kind,
        "step": step,
        "error": str(error),
        **{k: v for k, v in context.items() if v is not None},
    })
    raise ReconciliationError(step, str(error))
