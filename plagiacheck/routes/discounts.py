# -*- coding: utf-8 -*-
"""Discount code issuance routes."""
import stripe
from flask import Blueprint, request, jsonify
from pydantic import ValidationError

from plagiacheck.infra import get_logger
from plagiacheck.middleware.errors import create_validation_error_response
from plagiacheck.schemas.requests import CouponRequest, FirstTimeCouponRequest
from plagiacheck.services.discounts import create_coupon, create_first_time_coupon

discounts_bp = Blueprint('discounts', __name__, url_prefix='/api/discounts')
logger = get_logger('plagiacheck.discounts')


@discounts_bp.route('/create-coupon', methods=['POST'])
def create_coupon_route():
    try:
        data = CouponRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError:
        return create_validation_error_response("Missing or invalid percentOff.", "percentOff")

    try:
        return jsonify(create_coupon(data.percent_off)), 200
    except stripe.StripeError as e:
        logger.error(f"Error creating coupon: {e}")
        return jsonify({'error': str(e)}), 500
    except Exception:
        logger.exception("Unexpected error creating coupon")
        return jsonify({'error': 'Unexpected server error'}), 500


@discounts_bp.route('/create-first-time-coupon', methods=['POST'])
def create_first_time_coupon_route():
    try:
        data = FirstTimeCouponRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError:
        return create_validation_error_response("Missing or invalid parameters.")

    try:
        return jsonify(create_first_time_coupon(data.user_id, data.percent_off)), 200
    except stripe.StripeError as e:
        logger.error(f"Error creating first-time coupon: {e}", user_id=data.user_id)
        return jsonify({'error': str(e)}), 500
    except Exception:
        logger.exception("Unexpected error creating first-time coupon", user_id=data.user_id)
        return jsonify({'error': 'Unexpected server error'}), 500
