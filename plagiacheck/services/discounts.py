# -*- coding: utf-8 -*-
"""Stripe coupons and single-use promotion codes."""
import secrets
import string
import time
from datetime import datetime, timedelta
from typing import Optional

from plagiacheck.infra import db, get_logger, get_stripe_gateway
from plagiacheck.models import Voucher
from plagiacheck.services.stripe_gateway import field

logger = get_logger('plagiacheck.discounts')

CODE_ALPHABET = string.ascii_uppercase + string.digits

PROMO_CODE_LENGTH = 6
PROMO_CODE_TTL = timedelta(days=3)
FIRST_TIME_CODE_LENGTH = 8
FIRST_TIME_CODE_TTL = timedelta(days=1)


def generate_code(length: int) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def _issue_promotion_code(percent_off: float, length: int, ttl: timedelta):
    gateway = get_stripe_gateway()
    coupon = gateway.create_coupon(percent_off=percent_off, duration="once")
    expires_at = int(time.time() + ttl.total_seconds())
    promo = gateway.create_promotion_code(
        coupon_id=field(coupon, "id"),
        code=generate_code(length),
        expires_at=expires_at,
        max_redemptions=1,
    )
    return coupon, promo, expires_at


def create_coupon(percent_off: float) -> dict:
    """One-use coupon with a 6-character promotion code valid for 3 days."""
    coupon, promo, _ = _issue_promotion_code(percent_off, PROMO_CODE_LENGTH, PROMO_CODE_TTL)
    logger.log_billing_event("coupon_created", coupon_id=field(coupon, "id"), percent_off=percent_off)
    return {
        "success": True,
        "promotionCode": field(promo, "code"),
        "couponId": field(coupon, "id"),
    }


def find_active_first_time_voucher(user_id: str) -> Optional[Voucher]:
    return (Voucher.query
            .filter_by(created_for_user_id=user_id, auto=True, is_active=True)
            .filter(Voucher.expires_at > datetime.utcnow())
            .order_by(Voucher.expires_at.desc())
            .first())


def create_first_time_coupon(user_id: str, percent_off: float) -> dict:
    """
    Return the user's live first-time voucher, or issue a new one.

    New vouchers are 8-character, single-use promotion codes valid for one
    day and are mirrored as auto Voucher rows so the success redirect can
    retire them.
    """
    existing = find_active_first_time_voucher(user_id)
    if existing is not None:
        logger.info("Returning existing first-time voucher", user_id=user_id)
        return {"success": True, "code": existing.code, "existing": True}

    _, promo, expires_at = _issue_promotion_code(
        percent_off, FIRST_TIME_CODE_LENGTH, FIRST_TIME_CODE_TTL
    )
    voucher = Voucher(
        code=field(promo, "code"),
        created_for_user_id=user_id,
        is_active=True,
        auto=True,
        description=f"First-time offer - {percent_off:g}% off",
        expires_at=datetime.utcfromtimestamp(expires_at),
        percent_off=int(percent_off),
        amount_off=None,
        type="tokenDiscount",
    )
    db.session.add(voucher)
    db.session.commit()

    logger.log_billing_event("first_time_voucher_created", user_id=user_id, voucher=voucher.code)
    return {"success": True, "code": voucher.code, "existing": False}
