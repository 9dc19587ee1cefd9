# -*- coding: utf-8 -*-

from flask import Blueprint, jsonify
import time
from sqlalchemy import text

from plagiacheck.infra import db, get_logger

health_bp = Blueprint('health', __name__)
logger = get_logger(__name__)


@health_bp.route('/healthz', methods=['GET', 'HEAD'])
def healthz():
    """Liveness check; never touches dependencies."""
    return jsonify({
        'status': 'healthy',
        'service': 'plagiacheck-billing',
        'timestamp': time.time()
    }), 200


@health_bp.route('/readyz', methods=['GET', 'HEAD'])
def readyz():
    """Readiness check endpoint (database ping)."""
    try:
        db.session.execute(text("SELECT 1"))
        database_ok = True
    except Exception as e:
        logger.error(f"Readiness database check failed: {e}")
        database_ok = False

    return jsonify({
        'status': 'ready' if database_ok else 'not_ready',
        'service': 'plagiacheck-billing',
        'timestamp': time.time(),
        'checks': {
            'database': database_ok
        }
    }), 200 if database_ok else 503
