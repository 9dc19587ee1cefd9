# plagiacheck/models/voucher.py
from datetime import datetime
from plagiacheck.database import db


class Voucher(db.Model):
    """Promotion code issued through Stripe and mirrored locally."""
    __tablename__ = "vouchers"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), unique=True, nullable=False, index=True)
    created_for_user_id = db.Column(db.String(64), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    auto = db.Column(db.Boolean, nullable=False, default=False)
    description = db.Column(db.String(255), nullable=True)
    expires_at = db.Column(db.DateTime, nullable=True)
    percent_off = db.Column(db.Integer, nullable=True)
    amount_off = db.Column(db.Integer, nullable=True)
    type = db.Column(db.String(32), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
