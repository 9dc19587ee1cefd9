# plagiacheck/models/payment.py
import datetime as dt
from plagiacheck.database import db


class PaymentType:
    SUBSCRIPTION = "subscription"
    ONE_TIME = "one_time"


class Payment(db.Model):
    """
    A settled charge, keyed by the Stripe invoice or payment-intent id.

    The primary key is the idempotency guard: one external id, one row.
    """
    __tablename__ = "payments"

    id                  = db.Column(db.String(255), primary_key=True)
    user_id             = db.Column(db.String(64), nullable=False, index=True)
    amount              = db.Column(db.Numeric(10, 2), nullable=False)
    currency            = db.Column(db.String(8), nullable=False, default="usd")
    status              = db.Column(db.String(32), nullable=False, default="succeeded")
    type                = db.Column(db.String(32), nullable=False)
    processed           = db.Column(db.Boolean, nullable=False, default=False)
    referrer_id         = db.Column(db.Integer, nullable=True)
    checkout_session_id = db.Column(db.String(255), nullable=True, index=True)
    created_at          = db.Column(db.DateTime, nullable=False, default=dt.datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount": str(self.amount),
            "currency": self.currency,
            "status": self.status,
            "type": self.type,
            "processed": self.processed,
            "referrer_id": self.referrer_id,
        }

    def __repr__(self):
        return f"<Payment {self.id} user={self.user_id} amount={self.amount}>"
