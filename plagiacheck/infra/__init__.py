"""
Shared handles used across billing code: the SQLAlchemy instance, the
structured logger factory and the app-bound Stripe gateway.
"""

from plagiacheck.database import db
from plagiacheck.services.stripe_gateway import get_stripe_gateway
from plagiacheck.services.structured_logging import get_logger

__all__ = ["db", "get_logger", "get_stripe_gateway"]
