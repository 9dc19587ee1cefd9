# plagiacheck/models/user.py
from datetime import datetime
from plagiacheck.database import db


class User(db.Model):
    """Local mirror of an auth-provider identity."""
    __tablename__ = "users"

    id = db.Column(db.String(64), primary_key=True)
    email = db.Column(db.String(255), nullable=True, index=True)
    first_time_offer_used = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "first_time_offer_used": self.first_time_offer_used,
        }
