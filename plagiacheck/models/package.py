# -*- coding: utf-8 -*-
"""
Package (subscription instance) model.

Status lifecycle:
    ACTIVE -> PAST_DUE (single failed invoice)
    PAST_DUE -> ACTIVE (successful retry or renewal)
    ACTIVE/PAST_DUE -> CANCELED (consecutive failures or subscription deletion)

CANCELED is terminal.
"""
import logging
from datetime import datetime

from plagiacheck.database import db

logger = logging.getLogger(__name__)


class PackageStatus:
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"

    ALL = (ACTIVE, PAST_DUE, CANCELED)


class Package(db.Model):
    __tablename__ = "packages"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    package_name = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=PackageStatus.ACTIVE)
    start_date = db.Column(db.Date, nullable=False)
    expiry_date = db.Column(db.Date, nullable=False)
    stripe_subscription_id = db.Column(db.String(255), nullable=True, index=True)
    payment_failure_count = db.Column(db.Integer, nullable=False, default=0)
    past_due_since = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def is_canceled(self) -> bool:
        return self.status == PackageStatus.CANCELED

    def transition_to(self, status: str) -> bool:
        """
        Move the package to ``status``.

        Returns False (and leaves the row untouched) when the package is
        already CANCELED and a different status is requested.
        """
        if status not in PackageStatus.ALL:
            raise ValueError(f"Unknown package status: {status}")
        if self.is_canceled and status != PackageStatus.CANCELED:
            logger.warning(
                f"Ignoring transition of canceled package {self.id} to {status}"
            )
            return False

        if status == PackageStatus.PAST_DUE and self.status != PackageStatus.PAST_DUE:
            self.past_due_since = datetime.utcnow()
        elif status != PackageStatus.PAST_DUE:
            self.past_due_since = None
        if status == PackageStatus.ACTIVE:
            self.payment_failure_count = 0

        self.status = status
        return True

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "package_name": self.package_name,
            "status": self.status,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "stripe_subscription_id": self.stripe_subscription_id,
            "payment_failure_count": self.payment_failure_count,
        }

    def __repr__(self):
        return f"<Package {self.id} user={self.user_id} status={self.status}>"
