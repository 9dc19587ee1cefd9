# -*- coding: utf-8 -*-
"""Outbound notification of completed payments."""
import requests
from flask import current_app

from plagiacheck.infra import get_logger

logger = get_logger('plagiacheck.reconciliation')


def notify_payment_success(user_id: str, payment_id: str, kind: str) -> bool:
    """
    POST a payment.success event to PAYMENT_NOTIFY_URL if one is configured.

    Delivery is best effort: errors are logged and False is returned.
    """
    url = current_app.config.get("PAYMENT_NOTIFY_URL")
    if not url:
        return False

    try:
        response = requests.post(
            url,
            json={"user_id": user_id, "payment_id": payment_id, "kind": kind, "event": "payment.success"},
            headers={"x-api-key": current_app.config.get("PAYMENT_NOTIFY_API_KEY", "")},
            timeout=current_app.config.get("PAYMENT_NOTIFY_TIMEOUT", 5),
        )
        response.raise_for_status()
        return True
    except requests.RequestException as e:
        logger.warning(f"Payment notification failed: {e}", user_id=user_id, payment_id=payment_id)
        return False
