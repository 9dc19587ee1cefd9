# plagiacheck/models/purchased_token.py
from datetime import datetime
from plagiacheck.database import db


class PurchasedToken(db.Model):
    """Per-user balance of purchased usage units."""
    __tablename__ = "purchased_tokens"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    text_tokens = db.Column(db.Integer, nullable=False, default=0)
    image_tokens = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @classmethod
    def credit(cls, user_id: str, text_tokens: int = 0, image_tokens: int = 0) -> "PurchasedToken":
        """Add tokens to the user's balance, creating the row on first purchase."""
        balance = cls.query.filter_by(user_id=user_id).first()
        if balance is None:
            balance = cls(user_id=user_id, text_tokens=0, image_tokens=0)
            db.session.add(balance)
        balance.text_tokens += text_tokens
        balance.image_tokens += image_tokens
        db.session.commit()
        return balance

    def __repr__(self):
        return f"<PurchasedToken user={self.user_id} text={self.text_tokens} image={self.image_tokens}>"
