# -*- coding: utf-8 -*-
"""
Stripe Webhook Handler.

Handles Stripe webhook events for package renewals, payment failures and
subscription deletion.
"""
import json

import stripe
from flask import Blueprint, request, jsonify, current_app
from pydantic import ValidationError

from plagiacheck.infra import get_logger, get_stripe_gateway
from plagiacheck.schemas.events import parse_event
from plagiacheck.services.metrics import record_metric
from plagiacheck.services.webhook_events import handle_event

stripe_webhooks_bp = Blueprint('stripe_webhooks', __name__)
logger = get_logger('plagiacheck.webhooks')


@stripe_webhooks_bp.route('/api/webhook/stripe', methods=['POST'])
def stripe_webhook():
    """
    Handle Stripe webhook events.

    Events handled:
    - invoice.paid / invoice.payment_succeeded: Renew package, allocate tokens
    - invoice.payment_failed: Mirror status or cancel after repeated failures
    - customer.subscription.deleted: Cancel the package

    Anything else is acknowledged and logged.
    """
    payload = request.get_data()
    sig_header = request.headers.get('Stripe-Signature')

    if not current_app.config.get('STRIPE_WEBHOOK_SECRET'):
        current_app.logger.error("STRIPE_WEBHOOK_SECRET not configured")
        return jsonify({'error': 'Webhook not configured'}), 500

    try:
        get_stripe_gateway().verify_webhook_signature(payload, sig_header)
    except stripe.SignatureVerificationError:
        logger.log_webhook_event("unknown", "invalid_signature")
        record_metric("record_webhook_event", "unknown", "invalid_signature")
        return jsonify({'error': 'Invalid signature'}), 400

    try:
        event = parse_event(json.loads(payload))
    except (ValueError, ValidationError) as e:
        logger.log_webhook_event("unknown", "invalid_payload", error=str(e))
        record_metric("record_webhook_event", "unknown", "invalid_payload")
        return jsonify({'error': 'Invalid payload'}), 400

    try:
        outcome = handle_event(event)
    except Exception as e:
        logger.exception(f"Error handling webhook {event.type}", event_id=event.id)
        record_metric("record_webhook_event", event.type, "error")
        return jsonify({'error': str(e)}), 500

    logger.log_webhook_event(event.type, outcome, event_id=event.id)
    record_metric("record_webhook_event", event.type, outcome)
    return jsonify({'received': True, 'outcome': outcome}), 200
