"""
Error handling middleware.

Provides consistent JSON error responses for billing and database errors.
"""
from flask import jsonify
from sqlalchemy.exc import OperationalError, IntegrityError
from plagiacheck.errors import BillingError
from plagiacheck.infra import db, get_logger

logger = get_logger(__name__)


def register_error_handlers(app):
    """Register error handlers for billing and database errors."""

    @app.errorhandler(BillingError)
    def handle_billing_error(e):
        if e.status_code >= 500:
            logger.error(f"Billing error: {e.message}", error_code=e.error_code)
        else:
            logger.warning(f"Billing request rejected: {e.message}", error_code=e.error_code)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(OperationalError)
    def handle_operational_error(e):
        """Handle database operational errors (connection, table not found, etc.)"""
        error_msg = str(e.orig) if hasattr(e, 'orig') else str(e)
        logger.error(f"Database operational error: {error_msg}")
        db.session.rollback()
        return jsonify({
            'error': 'database_error',
            'message': 'Database operation failed. Please try again later.'
        }), 503

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(e):
        """Handle database integrity errors (unique constraint etc.)"""
        error_msg = str(e.orig) if hasattr(e, 'orig') else str(e)
        logger.error(f"Database integrity error: {error_msg}")
        db.session.rollback()

        if 'unique' in error_msg.lower() or 'duplicate' in error_msg.lower():
            return jsonify({
                'error': 'duplicate_entry',
                'message': 'This entry already exists'
            }), 409

        return jsonify({
            'error': 'integrity_error',
            'message': 'Data integrity constraint violated'
        }), 400


def create_validation_error_response(message: str, field: str = None):
    """Create a consistent validation error response"""
    response = {
        'error': 'validation_error',
        'message': message
    }
    if field:
        response['field'] = field

    return jsonify(response), 400
