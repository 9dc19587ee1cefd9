# plagiacheck/models/one_time_token.py
from datetime import datetime
from plagiacheck.database import db


class OneTimeToken(db.Model):
    """Single-use checkout verification token."""
    __tablename__ = "one_time_tokens"

    id = db.Column(db.Integer, primary_key=True)
    token = db.Column(db.String(128), unique=True, nullable=False, index=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    used = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    used_at = db.Column(db.DateTime, nullable=True)

    def __repr__(self):
        return f"<OneTimeToken user={self.user_id} used={self.used}>"
