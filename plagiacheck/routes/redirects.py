# -*- coding: utf-8 -*-
"""
Browser redirects coming back from Stripe Checkout.

Success handlers verify and consume the checkout token, reconcile the session
and forward to the localized success page. Cancel handlers only consume the
token. Every rejected or failed attempt lands on the fallback page.
"""
import re
from urllib.parse import urlencode

from flask import Blueprint, redirect, request, current_app

from plagiacheck.errors import CheckoutTokenRejected, InvalidRequestParams, ReconciliationError
from plagiacheck.infra import get_logger
from plagiacheck.services.checkout_token import parse_timestamp, verify_and_consume
from plagiacheck.services.reconciliation import PurchaseKind, apply_successful_checkout

redirects_bp = Blueprint("redirects", __name__)
logger = get_logger('plagiacheck.reconciliation')

LOCALE_RE = re.compile(r"^[A-Za-z]{2,3}(-[A-Za-z0-9]{2,8})?$")

SUCCESS_PAGES = {
    PurchaseKind.PACKAGE: "success-packages",
    PurchaseKind.PROMPT: "success-tokens",
}

CANCEL_WINDOWS = {
    PurchaseKind.PACKAGE: "CANCEL_PACKAGE_TOKEN_WINDOW_SECONDS",
    PurchaseKind.PROMPT: "CANCEL_PROMPT_TOKEN_WINDOW_SECONDS",
}


def _locale() -> str:
    locale = request.args.get("locale") or "en"
    return locale if LOCALE_RE.match(locale) else "en"


def _fallback():
    return redirect(current_app.config["FALLBACK_URL"], code=302)


def _handle_success(kind: str):
    args = request.args
    user_id = args.get("userId")
    token = args.get("token")
    session_id = args.get("session_id")
    timestamp = parse_timestamp(args.get("timestamp"))
    if not user_id or not token or not session_id or timestamp is None:
        raise InvalidRequestParams("Missing verification parameters")

    try:
        verify_and_consume(user_id, token, timestamp,
                           current_app.config["SUCCESS_TOKEN_WINDOW_SECONDS"])
        outcome = apply_successful_checkout(
            kind,
            user_id,
            session_id,
            plan_name=args.get("planName"),
            token_amount=args.get("token_amount", 0, type=int),
            token_type=args.get("token_type", "text"),
            voucher=args.get("voucher"),
            ref_code=args.get("ref_code"),
        )
    except (CheckoutTokenRejected, ReconciliationError):
        return _fallback()
    except Exception:
        logger.exception(f"Error in success_{kind} redirect", user_id=user_id)
        return _fallback()

    query = urlencode({
        "amount": f"{outcome.amount:.2f}",
        "token_type": outcome.token_type,
        "token_amount": outcome.token_amount,
        "userId": user_id,
    })
    target = f"{current_app.config['APP_BASE_URL']}/{_locale()}/Redirects/{SUCCESS_PAGES[kind]}?{query}"
    return redirect(target, code=302)


def _handle_cancel(kind: str):
    args = request.args
    user_id = args.get("userId")
    token = args.get("token")
    timestamp = parse_timestamp(args.get("timestamp"))
    if not user_id or not token or timestamp is None:
        return _fallback()

    try:
        verify_and_consume(user_id, token, timestamp,
                           current_app.config[CANCEL_WINDOWS[kind]])
    except CheckoutTokenRejected:
        return _fallback()

    logger.log_billing_event("checkout_canceled", kind=kind, user_id=user_id)
    return redirect(f"{current_app.config['PRICING_BASE_URL']}/{_locale()}/Pricing", code=302)


@redirects_bp.route("/api/Redirect/success_package", methods=["GET"])
def success_package():
    return _handle_success(PurchaseKind.PACKAGE)


@redirects_bp.route("/api/Redirect/success_prompt", methods=["GET"])
def success_prompt():
    return _handle_success(PurchaseKind.PROMPT)


@redirects_bp.route("/api/Redirect/canceled_package", methods=["GET"])
def canceled_package():
    return _handle_cancel(PurchaseKind.PACKAGE)


@redirects_bp.route("/api/Redirect/canceled_prompt", methods=["GET"])
def canceled_prompt():
    return _handle_cancel(PurchaseKind.PROMPT)
