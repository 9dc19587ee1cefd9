# -*- coding: utf-8 -*-
"""
Checkout verification tokens.

A token is ``HMAC-SHA256(API_SECRET_KEY, f"{user_id}{timestamp_ms}")`` as hex.
It is stored as an unused OneTimeToken when a checkout link is issued and
consumed exactly once when the matching redirect comes back.
"""
import hashlib
import hmac
import secrets
import time
from datetime import datetime
from typing import Optional, Tuple

from flask import current_app

from plagiacheck.errors import CheckoutTokenRejected
from plagiacheck.infra import db, get_logger
from plagiacheck.models import OneTimeToken
from plagiacheck.services.metrics import record_metric

logger = get_logger('plagiacheck.checkout')


def now_ms() -> int:
    return int(time.time() * 1000)


def generate_checkout_token(user_id: str, timestamp: int, secret: Optional[str] = None) -> str:
    """Derive the verification token for (user_id, timestamp)."""
    if secret is None:
        secret = current_app.config.get("API_SECRET_KEY", "")
    if not secret:
        raise RuntimeError("API_SECRET_KEY is not configured")
    message = f"{user_id}{timestamp}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def issue_checkout_token(user_id: str) -> Tuple[str, int]:
    """
    Mint a token for ``user_id`` and persist it as an unused OneTimeToken.

    Returns (token, timestamp_ms).
    """
    timestamp = now_ms()
    token = generate_checkout_token(user_id, timestamp)
    db.session.add(OneTimeToken(token=token, user_id=user_id, used=False))
    db.session.commit()
    logger.info("Issued checkout token", user_id=user_id, timestamp=timestamp)
    return token, timestamp


def parse_timestamp(raw: Optional[str]) -> Optional[int]:
    """Epoch-millisecond timestamp from a query string value, or None."""
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def check_token_age(timestamp: int, window_seconds: int) -> None:
    """Reject timestamps older than the window or too far in the future."""
    age_ms = now_ms() - timestamp
    skew_ms = current_app.config.get("TOKEN_CLOCK_SKEW_SECONDS", 60) * 1000
    if age_ms > window_seconds * 1000:
        _reject("expired")
    if age_ms < -skew_ms:
        _reject("future_timestamp")


def verify_and_consume(user_id: str, token: str, timestamp: int, window_seconds: int) -> OneTimeToken:
    """
    Validate a redirect's (user_id, token, timestamp) and mark the token used.

    Raises CheckoutTokenRejected when the timestamp is outside the window, the
    token does not match the recomputed HMAC, no unused OneTimeToken exists for
    the user, or a concurrent request consumed it first.
    """
    check_token_age(timestamp, window_seconds)

    expected = generate_checkout_token(user_id, timestamp)
    if not secrets.compare_digest(expected, token):
        _reject("mismatch", user_id=user_id)

    record = OneTimeToken.query.filter_by(token=token, user_id=user_id, used=False).first()
    if record is None:
        _reject("unknown_or_used", user_id=user_id)

    updated = OneTimeToken.query.filter_by(id=record.id, used=False).update(
        {"used": True, "used_at": datetime.utcnow()},
        synchronize_session=False,
    )
    db.session.commit()
    if updated != 1:
        _reject("concurrent_use", user_id=user_id)

    db.session.refresh(record)
    logger.log_billing_event("token_consumed", user_id=user_id)
    return record


def _reject(reason: str, **context):
    record_metric("record_token_rejected", reason)
    logger.log_billing_event("token_rejected", success=False, reason=reason, **context)
    raise CheckoutTokenRejected(reason)
