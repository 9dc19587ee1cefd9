# plagiacheck/models/affiliate.py
from decimal import Decimal
from plagiacheck.database import db


class Affiliate(db.Model):
    """Referral partner and running commission totals."""
    __tablename__ = "affiliates"

    id = db.Column(db.Integer, primary_key=True)
    ref_code = db.Column(db.String(64), unique=True, nullable=False, index=True)
    commission = db.Column(db.Integer, nullable=True)  # percent
    total_sales = db.Column(db.Integer, nullable=False, default=0)
    total_sales_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0"))
    total_earned = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0"))
