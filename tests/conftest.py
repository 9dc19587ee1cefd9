import hashlib
import hmac
import os
import tempfile
import time
from unittest.mock import MagicMock

import pytest

API_SECRET = "test-api-secret"
WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture
def app():
    """Create and configure a new app instance for each test."""
    db_fd, db_path = tempfile.mkstemp()
    from plagiacheck.factory import create_app
    from plagiacheck.database import db
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        "API_SECRET_KEY": API_SECRET,
        "STRIPE_SECRET_KEY": "sk_test_dummy_key_for_testing",
        "STRIPE_WEBHOOK_SECRET": WEBHOOK_SECRET,
        "PAYMENT_NOTIFY_URL": "",
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()
    os.close(db_fd)
    os.unlink(db_path)


@pytest.fixture
def client(app):
    """A test client for the app."""
    return app.test_client()


@pytest.fixture
def gateway(app):
    """Replace the app's Stripe gateway with a mock."""
    mock = MagicMock()
    app.extensions["stripe_gateway"] = mock
    return mock


@pytest.fixture
def mint_token(app):
    """Persist an unused checkout token whose timestamp is ``age_seconds`` old."""
    from plagiacheck.database import db
    from plagiacheck.models import OneTimeToken
    from plagiacheck.services.checkout_token import generate_checkout_token

    def _mint(user_id="user_1", age_seconds=5):
        timestamp = int(time.time() * 1000) - age_seconds * 1000
        token = generate_checkout_token(user_id, timestamp)
        db.session.add(OneTimeToken(token=token, user_id=user_id, used=False))
        db.session.commit()
        return token, timestamp

    return _mint


def stripe_signature(payload, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a Stripe-Signature header the way Stripe signs webhook bodies."""
    timestamp = timestamp or int(time.time())
    body = payload if isinstance(payload, bytes) else payload.encode("utf-8")
    signed = f"{timestamp}.".encode("utf-8") + body
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"
