# plagiacheck/models/operation_log.py
from datetime import datetime
from sqlalchemy import JSON
from plagiacheck.database import db


class OperationLog(db.Model):
    """Append-only record of billing mutations."""
    __tablename__ = "operation_logs"

    id = db.Column(db.Integer, primary_key=True)
    operation = db.Column(db.String(64), nullable=False, index=True)
    details = db.Column(JSON, nullable=False, default=dict)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<OperationLog {self.operation} at {self.timestamp}>"
