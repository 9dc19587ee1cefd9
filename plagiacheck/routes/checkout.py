"""
Stripe Checkout routes for package subscriptions and one-time token purchases.

Both endpoints mint a one-time verification token, embed it in the success
and cancel URLs and redirect the browser to the hosted checkout page.
"""
from urllib.parse import urlencode, urlparse

import stripe
from flask import Blueprint, jsonify, redirect, request, current_app

from plagiacheck.errors import InvalidRequestParams, OriginNotAllowed
from plagiacheck.infra import get_stripe_gateway
from plagiacheck.services.checkout_token import issue_checkout_token
from plagiacheck.services.metrics import record_metric
from plagiacheck.services.reconciliation import PurchaseKind

checkout_bp = Blueprint("checkout", __name__)

TOKEN_TYPES = ("text", "image")


def _check_origin():
    """403 when the caller's Origin (or Referer) is present and not allowlisted."""
    origin = request.headers.get("Origin")
    if not origin:
        referer = request.headers.get("Referer")
        if referer:
            parsed = urlparse(referer)
            origin = f"{parsed.scheme}://{parsed.netloc}"
    if origin and origin.rstrip("/") not in current_app.config.get("ALLOWED_ORIGINS", []):
        raise OriginNotAllowed(f"Origin not allowed: {origin}")


def _require(*names):
    missing = [name for name in names if not request.args.get(name, "").strip()]
    if missing:
        raise InvalidRequestParams(f"Missing required parameters: {', '.join(missing)}")


def _positive_int(name: str) -> int:
    try:
        value = int(request.args.get(name, ""))
    except ValueError:
        raise InvalidRequestParams(f"{name} must be an integer")
    if value <= 0:
        raise InvalidRequestParams(f"{name} must be positive")
    return value


def _redirect_url(endpoint: str, params: dict) -> str:
    base = current_app.config["PUBLIC_API_URL"]
    query = urlencode({k: v for k, v in params.items() if v not in (None, "")})
    return f"{base}/api/Redirect/{endpoint}?{query}"


def _start_checkout(kind: str, user_id: str, build_params):
    """Mint the token, create the session via ``build_params(token, timestamp)`` and redirect."""
    try:
        token, timestamp = issue_checkout_token(user_id)
        session = get_stripe_gateway().create_checkout_session(**build_params(token, timestamp))
    except stripe.StripeError as e:
        msg = getattr(e, "user_message", None) or str(e)
        current_app.logger.error(f"Stripe error: {msg}")
        return jsonify({"error": f"Stripe error: {msg}"}), 502
    except Exception:
        current_app.logger.exception("Unexpected error creating checkout session")
        return jsonify({"error": "Error creating checkout session"}), 500

    record_metric("record_checkout_session", kind)
    current_app.logger.info(f"[checkout] Created {kind} checkout session: {session.id}")
    return redirect(session.url, code=303)


@checkout_bp.route("/api/paymentstuff/create-packages-payment", methods=["GET"])
def create_packages_payment():
    """Start a subscription checkout for a package plan."""
    _check_origin()
    _require("priceId", "planName", "userId")

    args = request.args
    user_id = args["userId"]
    plan_name = args["planName"]
    locale = args.get("locale") or "en"

    def build_params(token, timestamp):
        verification = {"userId": user_id, "token": token, "timestamp": timestamp, "locale": locale}
        success_url = _redirect_url("success_package", {
            **verification,
            "planName": plan_name,
            "voucher": args.get("voucher"),
            "ref_code": args.get("ref_code"),
        }) + "&session_id={CHECKOUT_SESSION_ID}"
        params = {
            "mode": "subscription",
            "line_items": [{"price": args["priceId"], "quantity": 1}],
            "success_url": success_url,
            "cancel_url": _redirect_url("canceled_package", verification),
            "allow_promotion_codes": True,
            "metadata": {"userId": user_id, "planName": plan_name},
            "subscription_data": {"metadata": {"userId": user_id, "planName": plan_name}},
        }
        if args.get("email"):
            params["customer_email"] = args["email"]
        return params

    return _start_checkout(PurchaseKind.PACKAGE, user_id, build_params)


@checkout_bp.route("/api/paymentstuff/create-prompt-payment", methods=["GET"])
def create_prompt_payment():
    """Start a one-time checkout for a bundle of text or image tokens."""
    _check_origin()
    _require("price", "tokenAmount", "tokenType", "userId")

    args = request.args
    user_id = args["userId"]
    price = _positive_int("price")
    token_amount = _positive_int("tokenAmount")
    token_type = args["tokenType"]
    if token_type not in TOKEN_TYPES:
        raise InvalidRequestParams("tokenType must be 'text' or 'image'")
    locale = args.get("locale") or "en"

    def build_params(token, timestamp):
        verification = {"userId": user_id, "token": token, "timestamp": timestamp, "locale": locale}
        success_url = _redirect_url("success_prompt", {
            **verification,
            "token_amount": token_amount,
            "token_type": token_type,
            "voucher": args.get("voucher"),
            "ref_code": args.get("ref_code"),
        }) + "&session_id={CHECKOUT_SESSION_ID}"
        params = {
            "mode": "payment",
            "line_items": [{
                "price_data": {
                    "currency": "usd",
                    "product_data": {"name": f"{token_amount} {token_type} tokens"},
                    "unit_amount": price * 100,
                },
                "quantity": 1,
            }],
            "success_url": success_url,
            "cancel_url": _redirect_url("canceled_prompt", verification),
            "allow_promotion_codes": True,
            "metadata": {
                "userId": user_id,
                "tokenAmount": str(token_amount),
                "tokenType": token_type,
            },
        }
        if args.get("email"):
            params["customer_email"] = args["email"]
        return params

    return _start_checkout(PurchaseKind.PROMPT, user_id, build_params)
