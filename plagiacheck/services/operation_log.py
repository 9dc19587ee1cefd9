# plagiacheck/services/operation_log.py
from typing import Any, Dict, Optional

from plagiacheck.infra import db, get_logger
from plagiacheck.models import OperationLog

logger = get_logger('plagiacheck.reconciliation')


def log_operation(operation: str, details: Optional[Dict[str, Any]] = None) -> Optional[OperationLog]:
    """
    Append an entry to the operation log.

    Failures to write the log are reported but never interrupt the billing
    flow that produced the entry.
    """
    try:
        entry = OperationLog(operation=operation, details=details or {})
        db.session.add(entry)
        db.session.commit()
        logger.info(f"Operation logged: {operation}", operation=operation, details=details)
        return entry
    except Exception as e:
        logger.error(f"Failed to write operation log: {e}", operation=operation)
        db.session.rollback()
        return None
