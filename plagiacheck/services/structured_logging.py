"""
Structured JSON logging for the Plagiacheck billing service.

Provides structured logging with:
- JSON format output when enabled
- Request context integration (request_id, method, path)
- Billing event helpers (checkout, reconciliation, webhook, token rejection)

Logs include: timestamp, level, message, request_id, method, path, status,
duration_ms, and any keyword context passed by the caller.
"""

import os
import json
import logging
from datetime import datetime, timezone
from flask import Flask, has_request_context, request
from plagiacheck.services.request_context import elapsed_ms, get_request_context, get_request_id

QUIET_PATHS = ('/healthz', '/readyz', '/metrics')


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured JSON logging."""

    def __init__(self, json_enabled: bool = True):
        super().__init__('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        self.json_enabled = json_enabled

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON or plain text."""
        if not self.json_enabled:
            return super().format(record)

        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if has_request_context():
            log_entry.update(get_request_context())

        if hasattr(record, 'extra_fields'):
            log_entry.update(record.extra_fields)

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class StructuredLogger:
    """Structured logger with request context integration."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def _log_with_context(self, level: int, message: str, exc_info=False, **kwargs):
        extra_fields = kwargs.copy()

        if 'request_id' not in extra_fields and has_request_context():
            extra_fields['request_id'] = get_request_id()

        self.logger.log(level, message, exc_info=exc_info, extra={'extra_fields': extra_fields})

    def debug(self, message: str, **kwargs):
        self._log_with_context(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log_with_context(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log_with_context(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log_with_context(logging.ERROR, message, **kwargs)

    def exception(self, message: str, **kwargs):
        """Log an error with the active exception's traceback."""
        self._log_with_context(logging.ERROR, message, exc_info=True, **kwargs)

    def log_request(self, method: str, path: str, status_code: int, duration_ms, **kwargs):
        level = logging.WARNING if status_code >= 500 else logging.INFO
        self._log_with_context(
            level,
            f"{method} {path} -> {status_code} ({duration_ms}ms)",
            event_type='request',
            status_code=status_code,
            duration_ms=duration_ms,
            **kwargs
        )

    def log_billing_event(self, event: str, success: bool = True, **kwargs):
        """Log a billing state change or rejected billing action."""
        level = logging.INFO if success else logging.WARNING
        self._log_with_context(
            level,
            f"Billing {event}: {'ok' if success else 'rejected'}",
            event_type='billing',
            billing_event=event,
            success=success,
            **kwargs
        )

    def log_webhook_event(self, stripe_event_type: str, outcome: str, **kwargs):
        level = logging.ERROR if outcome == 'error' else logging.INFO
        self._log_with_context(
            level,
            f"Stripe webhook {stripe_event_type}: {outcome}",
            event_type='webhook',
            stripe_event_type=stripe_event_type,
            outcome=outcome,
            **kwargs
        )


def get_logger(name: str) -> StructuredLogger:
    """Get structured logger instance."""
    return StructuredLogger(name)


def _json_enabled() -> bool:
    return os.environ.get('PLAGIACHECK_LOG_JSON', 'true').lower() == 'true'


def configure_logging(app: Flask):
    """Configure structured logging for Flask application."""
    json_enabled = _json_enabled()
    log_level = os.environ.get('LOG_LEVEL', 'INFO').upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(StructuredFormatter(json_enabled=json_enabled))
    root_logger.addHandler(console_handler)

    app.logger.setLevel(getattr(logging, log_level, logging.INFO))

    loggers_to_configure = [
        'plagiacheck.checkout',
        'plagiacheck.reconciliation',
        'plagiacheck.webhooks',
        'plagiacheck.subscriptions',
        'plagiacheck.discounts',
    ]
    for logger_name in loggers_to_configure:
        logging.getLogger(logger_name).setLevel(getattr(logging, log_level, logging.INFO))

    get_logger('plagiacheck.config').info(
        "Logging configured",
        json_enabled=json_enabled,
        log_level=log_level,
    )


def _log_finished_request(response):
    if request.path in QUIET_PATHS:
        return response
    get_logger('plagiacheck.requests').log_request(
        request.method,
        request.path,
        response.status_code,
        elapsed_ms(),
        user_agent=request.headers.get('User-Agent', ''),
    )
    return response


def init_logging(app: Flask):
    """Initialize structured logging for Flask application."""
    configure_logging(app)
    app.after_request(_log_finished_request)

    get_logger('plagiacheck.startup').info(
        "Application starting",
        debug=app.debug,
        testing=app.testing
    )
