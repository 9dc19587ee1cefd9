# -*- coding: utf-8 -*-
import os
from typing import Optional

from flask import Flask
from flask_cors import CORS

from plagiacheck.config import Config
from plagiacheck.database import db
# Observability imports
from plagiacheck.services.metrics import init_metrics
from plagiacheck.services.request_context import init_request_context
from plagiacheck.services.structured_logging import init_logging
from plagiacheck.services.stripe_gateway import init_stripe_gateway


def _ensure_sqlite_dir(db_url: str):
    if db_url.startswith("sqlite:///") and db_url != "sqlite:///:memory:":
        directory = os.path.dirname(db_url[len("sqlite:///"):])
        if directory:
            os.makedirs(directory, exist_ok=True)


def create_app(overrides: Optional[dict] = None) -> Flask:
    app = Flask(__name__)
    app.url_map.strict_slashes = False

    # --- Core config ---
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    # --- DB config ---
    _ensure_sqlite_dir(app.config["SQLALCHEMY_DATABASE_URI"])
    db.init_app(app)

    # --- CORS ---
    CORS(app, resources={
        r"/api/*": {
            "origins": app.config["ALLOWED_ORIGINS"],
            "methods": ["GET", "POST", "OPTIONS"],
            "allow_headers": ["Content-Type", "Stripe-Signature"],
            "supports_credentials": False,
            "max_age": 600,
        }}
    )

    # --- Initialize observability ---
    init_logging(app)
    init_request_context(app)
    init_metrics(app)

    # --- Payment processor ---
    gateway = init_stripe_gateway(app)
    if not gateway.configured:
        app.logger.warning("STRIPE_SECRET_KEY not set; Stripe calls will fail")

    # --- Error handlers ---
    from plagiacheck.middleware.errors import register_error_handlers
    register_error_handlers(app)

    # --- Blueprints ---
    from plagiacheck.routes.health import health_bp
    from plagiacheck.routes.checkout import checkout_bp
    from plagiacheck.routes.redirects import redirects_bp
    from plagiacheck.routes.stripe_webhooks import stripe_webhooks_bp
    from plagiacheck.routes.subscriptions import subscriptions_bp
    from plagiacheck.routes.discounts import discounts_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(redirects_bp)
    app.register_blueprint(stripe_webhooks_bp)
    app.register_blueprint(subscriptions_bp)
    app.register_blueprint(discounts_bp)

    # --- Schema ---
    with app.app_context():
        import plagiacheck.models  # noqa: F401  (register tables)
        db.create_all()

    return app
