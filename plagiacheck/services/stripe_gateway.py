# -*- coding: utf-8 -*-
"""
Stripe gateway.

A thin, explicitly constructed handle around the Stripe SDK. The app factory
builds one per application and stores it in ``app.extensions``; every call
passes the configured API key so no module-level Stripe state is shared.
"""
from typing import Any, List, Optional

import stripe
from flask import current_app


class StripeNotConfigured(RuntimeError):
    """Raised when a Stripe call is attempted without STRIPE_SECRET_KEY."""


class StripeGateway:
    """Stripe operations used by the billing flows."""

    def __init__(self, api_key: str, webhook_secret: str = ""):
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _key(self) -> str:
        if not self.api_key:
            raise StripeNotConfigured("STRIPE_SECRET_KEY missing")
        return self.api_key

    # --- checkout ---
    def create_checkout_session(self, **params):
        return stripe.checkout.Session.create(api_key=self._key(), **params)

    def retrieve_checkout_session(self, session_id: str, expand: Optional[List[str]] = None):
        return stripe.checkout.Session.retrieve(
            session_id, expand=expand or [], api_key=self._key()
        )

    # --- subscriptions ---
    def retrieve_subscription(self, subscription_id: str):
        return stripe.Subscription.retrieve(subscription_id, api_key=self._key())

    def cancel_subscription(self, subscription_id: str):
        return stripe.Subscription.cancel(subscription_id, api_key=self._key())

    def cancel_subscription_at_period_end(self, subscription_id: str):
        return stripe.Subscription.modify(
            subscription_id, cancel_at_period_end=True, api_key=self._key()
        )

    # --- invoices ---
    def list_invoices(self, subscription_id: str, limit: int = 10) -> List[Any]:
        result = stripe.Invoice.list(
            subscription=subscription_id, limit=limit, api_key=self._key()
        )
        return list(result.data)

    def retrieve_invoice(self, invoice_id: str):
        return stripe.Invoice.retrieve(invoice_id, api_key=self._key())

    def pay_invoice(self, invoice_id: str):
        return stripe.Invoice.pay(invoice_id, api_key=self._key())

    # --- discounts ---
    def create_coupon(self, percent_off: float, duration: str = "once"):
        return stripe.Coupon.create(
            percent_off=percent_off, duration=duration, api_key=self._key()
        )

    def create_promotion_code(self, coupon_id: str, code: str, expires_at: int,
                              max_redemptions: int = 1):
        return stripe.PromotionCode.create(
            coupon=coupon_id,
            code=code,
            max_redemptions=max_redemptions,
            expires_at=expires_at,
            api_key=self._key(),
        )

    # --- webhooks ---
    def verify_webhook_signature(self, payload: bytes, sig_header: str) -> None:
        """
        Verify a Stripe-Signature header against the raw payload.

        Raises stripe.SignatureVerificationError on mismatch.
        """
        if isinstance(payload, bytes):
            try:
                body = payload.decode("utf-8")
            except UnicodeDecodeError as e:
                raise stripe.SignatureVerificationError(
                    f"Payload is not valid UTF-8: {e}", sig_header
                ) from e
        else:
            body = payload
        stripe.WebhookSignature.verify_header(
            body,
            sig_header or "",
            self.webhook_secret,
            stripe.Webhook.DEFAULT_TOLERANCE,
        )


def init_stripe_gateway(app) -> StripeGateway:
    gateway = StripeGateway(
        api_key=app.config.get("STRIPE_SECRET_KEY", ""),
        webhook_secret=app.config.get("STRIPE_WEBHOOK_SECRET", ""),
    )
    app.extensions["stripe_gateway"] = gateway
    return gateway


def get_stripe_gateway() -> StripeGateway:
    return current_app.extensions["stripe_gateway"]


def object_id(value) -> Optional[str]:
    """Return the id of an expandable Stripe field (string id or expanded object)."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return value.get("id")


def field(obj, name: str, default=None):
    """Read a field from a Stripe object or a plain dict."""
    if obj is None:
        return default
    value = obj.get(name) if hasattr(obj, "get") else getattr(obj, name, default)
    return default if value is None else value
