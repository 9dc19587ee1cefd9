# -*- coding: utf-8 -*-
"""
Per-request context for billing logs.

Every request gets an ``X-Request-ID`` (propagated when the caller sends a
valid UUID) and, when the query string names one, the billing ``userId`` it
acts on. Both end up on every structured log line emitted while the request
is being served.
"""

import time
import uuid
from typing import Optional

from flask import Flask, Response, g, request

REQUEST_ID_HEADER = 'X-Request-ID'


def _incoming_request_id() -> Optional[str]:
    candidate = request.headers.get(REQUEST_ID_HEADER)
    if not candidate:
        return None
    try:
        return str(uuid.UUID(candidate))
    except ValueError:
        return None


def _begin_request():
    g.request_id = _incoming_request_id() or str(uuid.uuid4())
    g.request_started = time.monotonic()
    g.billing_user_id = request.args.get('userId') or None


def _finish_request(response: Response) -> Response:
    request_id = getattr(g, 'request_id', None)
    if request_id:
        response.headers[REQUEST_ID_HEADER] = request_id
    elapsed = elapsed_ms()
    if elapsed is not None:
        response.headers['X-Response-Time'] = f"{elapsed}ms"
    return response


def elapsed_ms() -> Optional[float]:
    started = getattr(g, 'request_started', None)
    if started is None:
        return None
    return round((time.monotonic() - started) * 1000, 2)


def get_request_id() -> Optional[str]:
    """Request id of the request being served, if any."""
    return getattr(g, 'request_id', None)


def get_request_context() -> dict:
    """Fields merged into each log entry emitted inside a request."""
    context = {
        'request_id': get_request_id(),
        'method': request.method,
        'path': request.path,
        'remote_addr': request.remote_addr,
    }
    user_id = getattr(g, 'billing_user_id', None)
    if user_id:
        context['user_id'] = user_id
    elapsed = elapsed_ms()
    if elapsed is not None:
        context['duration_ms'] = elapsed
    return context


def init_request_context(app: Flask):
    """Register the request id hooks on ``app``."""
    app.before_request(_begin_request)
    app.after_request(_finish_request)
