# -*- coding: utf-8 -*-
"""
Subscription self-service routes: retry a past-due payment, cancel a package.
"""
import stripe
from flask import Blueprint, request, jsonify
from pydantic import ValidationError

from plagiacheck.infra import get_logger, get_stripe_gateway
from plagiacheck.middleware.errors import create_validation_error_response
from plagiacheck.schemas.requests import CancelPackageRequest, RetryPaymentRequest
from plagiacheck.services.operation_log import log_operation
from plagiacheck.services.retry_payment import retry_subscription_payment

subscriptions_bp = Blueprint('subscriptions', __name__, url_prefix='/api/paymentstuff')
logger = get_logger('plagiacheck.subscriptions')


def _first_field(e: ValidationError):
    errors = e.errors()
    if errors and errors[0].get('loc'):
        return str(errors[0]['loc'][0])
    return None


@subscriptions_bp.route('/retry-subscription-payment', methods=['POST'])
def retry_subscription_payment_route():
    """
    Retry the latest invoice of a PAST_DUE package.

    Declines come back as 400 with one of the categories card_declined,
    insufficient_funds, expired_card, authentication_required or generic.
    """
    try:
        data = RetryPaymentRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
        return create_validation_error_response("Missing required parameters", _first_field(e))

    try:
        body = retry_subscription_payment(data.user_id, data.package_id, data.stripe_subscription_id)
    except stripe.StripeError as e:
        logger.error(f"Stripe error during payment retry: {e}", package_id=data.package_id)
        return jsonify({'error': 'Internal server error', 'message': str(e)}), 500
    return jsonify(body), 200


@subscriptions_bp.route('/cancel-package', methods=['POST'])
def cancel_package():
    """Schedule cancellation of a subscription at the end of its billing period."""
    try:
        data = CancelPackageRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
        return create_validation_error_response("Subscription ID is required", _first_field(e))

    try:
        subscription = get_stripe_gateway().cancel_subscription_at_period_end(data.stripe_subscription_id)
    except stripe.StripeError as e:
        status = getattr(e, 'http_status', None) or 500
        logger.error(f"Failed to cancel subscription: {e}", subscription_id=data.stripe_subscription_id)
        return jsonify({'error': getattr(e, 'user_message', None) or str(e)}), status

    log_operation("package_cancel_scheduled", {"subscription_id": data.stripe_subscription_id})
    logger.log_billing_event("cancel_at_period_end", subscription_id=data.stripe_subscription_id)
    return jsonify({
        'message': 'Subscription will be canceled at the end of the billing period',
        'subscription': {
            'id': subscription['id'],
            'status': subscription['status'],
            'cancel_at_period_end': subscription['cancel_at_period_end'],
        }
    }), 200
