# -*- coding: utf-8 -*-
"""
Service for managing Prometheus metrics.

Records HTTP request metrics per URL rule and exposes billing counters
(checkout sessions, webhook events, reconciled payments, rejected tokens).
"""

import os
from typing import Optional
from flask import Flask, request, current_app, has_app_context
from prometheus_client import CollectorRegistry, Counter, Histogram
from prometheus_client.exposition import generate_latest

from plagiacheck.services.request_context import elapsed_ms


def init_metrics(app: Flask) -> None:
    """Initialize metrics service and the /metrics endpoint."""
    service = MetricsService()
    app.extensions['metrics'] = service

    if service.enabled:
        @app.after_request
        def after_request(response):
            elapsed = elapsed_ms() or 0.0
            rule = request.url_rule.rule if request.url_rule else "unmatched"
            service.record_http_request(
                route=rule,
                method=request.method,
                status_code=response.status_code,
                duration_seconds=elapsed / 1000.0
            )
            return response

        @app.route("/metrics")
        def metrics():
            return generate_latest(service.registry), 200, {
                'Content-Type': 'text/plain; version=0.0.4; charset=utf-8'}


def get_metrics_service() -> Optional['MetricsService']:
    """Get the metrics service instance from the current app context."""
    if has_app_context():
        return current_app.extensions.get('metrics')
    return None


class MetricsService:
    """Service for managing Prometheus metrics."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.enabled = os.environ.get(
            "PLAGIACHECK_METRICS_ENABLED",
            "true").lower() == "true"
        # One registry per app so repeated create_app() calls do not collide.
        self.registry = registry if registry is not None else CollectorRegistry()

        if self.enabled:
            self.http_requests_total = Counter(
                "plagiacheck_http_requests_total",
                "Total number of HTTP requests.",
                ["route", "method", "status"],
                registry=self.registry
            )
            self.http_request_duration_seconds = Histogram(
                "plagiacheck_http_request_duration_seconds",
                "Duration of HTTP requests in seconds.",
                ["route", "method"],
                registry=self.registry
            )
            self.checkout_sessions_total = Counter(
                "plagiacheck_checkout_sessions_total",
                "Total number of Stripe checkout sessions created.",
                ["kind"],
                registry=self.registry
            )
            self.checkout_tokens_rejected_total = Counter(
                "plagiacheck_checkout_tokens_rejected_total",
                "Total number of rejected checkout verification tokens.",
                ["reason"],
                registry=self.registry
            )
            self.payments_reconciled_total = Counter(
                "plagiacheck_payments_reconciled_total",
                "Total number of payments reconciled.",
                ["kind", "outcome"],
                registry=self.registry
            )
            self.webhook_events_total = Counter(
                "plagiacheck_webhook_events_total",
                "Total number of Stripe webhook events received.",
                ["event_type", "outcome"],
                registry=self.registry
            )

    def record_http_request(
            self,
            route: str,
            method: str,
            status_code: int,
            duration_seconds: float):
        if self.enabled:
            self.http_requests_total.labels(
                route=route,
                method=method,
                status=status_code).inc()
            self.http_request_duration_seconds.labels(
                route=route, method=method).observe(duration_seconds)

    def record_checkout_session(self, kind: str):
        if self.enabled:
            self.checkout_sessions_total.labels(kind=kind).inc()

    def record_token_rejected(self, reason: str):
        if self.enabled:
            self.checkout_tokens_rejected_total.labels(reason=reason).inc()

    def record_payment_reconciled(self, kind: str, outcome: str):
        if self.enabled:
            self.payments_reconciled_total.labels(kind=kind, outcome=outcome).inc()

    def record_webhook_event(self, event_type: str, outcome: str):
        if self.enabled:
            self.webhook_events_total.labels(event_type=event_type, outcome=outcome).inc()

    def get_metrics(self) -> str:
        if self.enabled:
            return generate_latest(self.registry).decode('utf-8')
        return ""

def record_metric(method_name: str, *args, **kwargs):
    """Call a MetricsService recorder if metrics are initialised for this app."""
    service = get_metrics_service()
    if service is not None:
        getattr(service, method_name)(*args, **kwargs)
