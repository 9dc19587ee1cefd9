# -*- coding: utf-8 -*-
"""
Tests for the Stripe webhook endpoint and event handlers.

Requests are signed with real Stripe-Signature headers; only outbound
Stripe API calls are mocked.
"""
import json
from datetime import date, datetime
from decimal import Decimal
from unittest.mock import patch

import pytest

from plagiacheck.database import db
from plagiacheck.models import OperationLog, Package, PackageStatus, Payment, PurchasedToken
from plagiacheck.services.stripe_gateway import StripeGateway
from plagiacheck.services.webhook_events import count_consecutive_unpaid

from conftest import WEBHOOK_SECRET, stripe_signature

WEBHOOK_URL = "/api/webhook/stripe"


@pytest.fixture
def webhook_gateway(gateway):
    """Mock gateway that still verifies signatures for real."""
    real = StripeGateway("sk_test_dummy_key_for_testing", WEBHOOK_SECRET)
    gateway.verify_webhook_signature.side_effect = real.verify_webhook_signature
    return gateway


def post_event(client, event, secret=WEBHOOK_SECRET):
    payload = json.dumps(event)
    return client.post(
        WEBHOOK_URL,
        data=payload,
        content_type="application/json",
        headers={"Stripe-Signature": stripe_signature(payload, secret)},
    )


def invoice_event(event_type, invoice_id="in_renew_1", subscription="sub_123",
                  billing_reason="subscription_cycle", amount_paid=1200):
    return {
        "id": f"evt_{invoice_id}",
        "type": event_type,
        "data": {"object": {
            "id": invoice_id,
            "object": "invoice",
            "subscription": subscription,
            "billing_reason": billing_reason,
            "amount_paid": amount_paid,
            "currency": "usd",
        }},
    }


def deleted_event(subscription_id="sub_123", metadata=None):
    return {
        "id": "evt_deleted",
        "type": "customer.subscription.deleted",
        "data": {"object": {
            "id": subscription_id,
            "object": "subscription",
            "status": "canceled",
            "metadata": metadata or {},
        }},
    }


def make_package(user_id="user_1", status=PackageStatus.ACTIVE, subscription_id="sub_123",
                 plan="200Image", expiry=date(2025, 1, 31), failures=0):
    package = Package(
        user_id=user_id, package_name=plan, status=status,
        start_date=date(2024, 12, 31), expiry_date=expiry,
        stripe_subscription_id=subscription_id, payment_failure_count=failures,
    )
    db.session.add(package)
    db.session.commit()
    return package


class TestSignatureAndParsing:

    def test_invalid_signature(self, client, webhook_gateway):
        response = post_event(client, deleted_event(), secret="whsec_wrong")

        assert response.status_code == 400
        assert response.get_json()["error"] == "Invalid signature"

    def test_missing_signature_header(self, client, webhook_gateway):
        response = client.post(WEBHOOK_URL, data=json.dumps(deleted_event()),
                               content_type="application/json")

        assert response.status_code == 400

    def test_webhook_secret_not_configured(self, app, client, webhook_gateway):
        app.config["STRIPE_WEBHOOK_SECRET"] = ""

        response = post_event(client, deleted_event())

        assert response.status_code == 500

    def test_unparsable_body(self, client, webhook_gateway):
        payload = "not json"
        response = client.post(WEBHOOK_URL, data=payload, content_type="application/json",
                               headers={"Stripe-Signature": stripe_signature(payload)})

        assert response.status_code == 400
        assert response.get_json()["error"] == "Invalid payload"

    def test_body_that_is_not_utf8(self, client, webhook_gateway):
        payload = b'{"id":"evt_1","type":"x","note":"\xff"}'
        response = client.post(WEBHOOK_URL, data=payload, content_type="application/json",
                               headers={"Stripe-Signature": stripe_signature(payload)})

        assert response.status_code == 400
        assert response.get_json()["error"] == "Invalid signature"

    def test_handled_event_with_bad_shape(self, client, webhook_gateway):
        response = post_event(client, {"id": "evt_1", "type": "invoice.paid", "data": {}})

        assert response.status_code == 400

    def test_unhandled_event_is_acknowledged(self, client, webhook_gateway):
        response = post_event(client, {"id": "evt_1", "type": "charge.refunded", "data": {"object": {}}})

        assert response.status_code == 200
        assert response.get_json() == {"received": True, "outcome": "ignored"}

    def test_events_are_counted(self, app, client, webhook_gateway):
        post_event(client, {"id": "evt_1", "type": "charge.refunded", "data": {"object": {}}})

        metrics = app.extensions["metrics"].get_metrics()
        assert 'plagiacheck_webhook_events_total{event_type="charge.refunded",outcome="ignored"} 1.0' in metrics


class TestInvoicePaid:

    @pytest.mark.parametrize("event_type", ["invoice.paid", "invoice.payment_succeeded"])
    def test_renewal_extends_package(self, client, webhook_gateway, event_type):
        package = make_package(failures=1)

        response = post_event(client, invoice_event(event_type))

        assert response.status_code == 200
        assert response.get_json()["outcome"] == "applied"
        assert package.expiry_date == date(2025, 2, 28)
        assert package.status == PackageStatus.ACTIVE
        assert package.payment_failure_count == 0
        assert db.session.get(Payment, "in_renew_1").type == "subscription"
        assert PurchasedToken.query.filter_by(user_id="user_1").one().image_tokens == 200
        assert OperationLog.query.filter_by(operation="package_renewed").count() == 1

    def test_redelivered_renewal_is_not_applied_twice(self, client, webhook_gateway):
        package = make_package(plan="1000Image")

        post_event(client, invoice_event("invoice.paid"))
        response = post_event(client, invoice_event("invoice.paid"))

        assert response.get_json()["outcome"] == "duplicate"
        assert Payment.query.count() == 1
        assert package.expiry_date == date(2025, 2, 28)
        assert PurchasedToken.query.filter_by(user_id="user_1").one().image_tokens == 1000

    def test_first_invoice_is_not_a_renewal(self, client, webhook_gateway):
        make_package()

        response = post_event(client, invoice_event("invoice.paid", billing_reason="subscription_create"))

        assert response.get_json()["outcome"] == "ignored"
        assert Payment.query.count() == 0

    def test_canceled_package_cancels_upstream(self, client, webhook_gateway):
        make_package(status=PackageStatus.CANCELED)

        response = post_event(client, invoice_event("invoice.paid"))

        assert response.get_json()["outcome"] == "canceled_upstream"
        webhook_gateway.cancel_subscription.assert_called_once_with("sub_123")
        assert Payment.query.count() == 0
        assert PurchasedToken.query.count() == 0

    def test_nested_subscription_reference(self, client, webhook_gateway):
        package = make_package()
        event = invoice_event("invoice.paid", subscription=None)
        event["data"]["object"]["parent"] = {"subscription_details": {"subscription": "sub_123"}}

        post_event(client, event)

        assert package.expiry_date == date(2025, 2, 28)

    def test_concurrent_renewal_insert_is_duplicate(self, client, webhook_gateway):
        package = make_package()
        db.session.add(Payment(
            id="in_renew_1", user_id="user_1", amount=Decimal("12.00"), currency="usd",
            status="succeeded", type="subscription", processed=True,
        ))
        db.session.commit()
        db.session.expunge(db.session.get(Payment, "in_renew_1"))

        with patch.object(db.session, "get", return_value=None):
            response = post_event(client, invoice_event("invoice.paid"))

        assert response.get_json()["outcome"] == "duplicate"
        assert Payment.query.count() == 1
        assert PurchasedToken.query.count() == 0
        assert package.expiry_date == date(2025, 1, 31)

    def test_unknown_subscription(self, client, webhook_gateway):
        response = post_event(client, invoice_event("invoice.paid", subscription="sub_unknown"))

        assert response.status_code == 200
        assert response.get_json()["outcome"] == "ignored"


class TestInvoicePaymentFailed:

    def test_two_consecutive_failures_cancel(self, client, webhook_gateway):
        package = make_package()
        webhook_gateway.list_invoices.return_value = [
            {"id": "in_3", "status": "open", "created": 300},
            {"id": "in_2", "status": "open", "created": 200},
            {"id": "in_1", "status": "paid", "created": 100},
        ]

        response = post_event(client, invoice_event("invoice.payment_failed", invoice_id="in_3"))

        assert response.status_code == 200
        assert package.status == PackageStatus.CANCELED
        webhook_gateway.cancel_subscription.assert_called_once_with("sub_123")
        webhook_gateway.retrieve_subscription.assert_not_called()

    def test_single_failure_mirrors_stripe_status(self, client, webhook_gateway):
        package = make_package()
        webhook_gateway.list_invoices.return_value = [
            {"id": "in_2", "status": "open", "created": 200},
            {"id": "in_1", "status": "paid", "created": 100},
        ]
        webhook_gateway.retrieve_subscription.return_value = {"id": "sub_123", "status": "past_due"}

        post_event(client, invoice_event("invoice.payment_failed", invoice_id="in_2"))

        assert package.status == PackageStatus.PAST_DUE
        assert package.payment_failure_count == 1
        assert isinstance(package.past_due_since, datetime)
        webhook_gateway.cancel_subscription.assert_not_called()

    @pytest.mark.parametrize("stripe_status, expected", [
        ("active", PackageStatus.ACTIVE),
        ("trialing", PackageStatus.ACTIVE),
        ("unpaid", PackageStatus.CANCELED),
        ("incomplete_expired", PackageStatus.CANCELED),
        ("incomplete", PackageStatus.PAST_DUE),
    ])
    def test_status_mapping(self, client, webhook_gateway, stripe_status, expected):
        package = make_package()
        webhook_gateway.list_invoices.return_value = [{"id": "in_2", "status": "open", "created": 200}]
        webhook_gateway.retrieve_subscription.return_value = {"id": "sub_123", "status": stripe_status}

        post_event(client, invoice_event("invoice.payment_failed", invoice_id="in_2"))

        assert package.status == expected

    def test_active_mirror_keeps_failure_count(self, client, webhook_gateway):
        package = make_package(failures=1)
        webhook_gateway.list_invoices.return_value = [
            {"id": "in_2", "status": "open", "created": 200},
            {"id": "in_1", "status": "paid", "created": 100},
        ]
        webhook_gateway.retrieve_subscription.return_value = {"id": "sub_123", "status": "active"}

        post_event(client, invoice_event("invoice.payment_failed", invoice_id="in_2"))

        assert package.status == PackageStatus.ACTIVE
        assert package.payment_failure_count == 2
        assert package.past_due_since is None

    def test_draft_and_void_invoices_do_not_break_the_count(self, client, webhook_gateway):
        package = make_package()
        webhook_gateway.list_invoices.return_value = [
            {"id": "in_5", "status": "draft", "created": 500},
            {"id": "in_4", "status": "open", "created": 400},
            {"id": "in_3", "status": "void", "created": 300},
            {"id": "in_2", "status": "uncollectible", "created": 200},
            {"id": "in_1", "status": "paid", "created": 100},
        ]

        post_event(client, invoice_event("invoice.payment_failed", invoice_id="in_4"))

        assert package.status == PackageStatus.CANCELED
        webhook_gateway.cancel_subscription.assert_called_once_with("sub_123")

    def test_handler_error_returns_500(self, client, webhook_gateway):
        make_package()
        webhook_gateway.list_invoices.side_effect = RuntimeError("stripe down")

        response = post_event(client, invoice_event("invoice.payment_failed"))

        assert response.status_code == 500


class TestSubscriptionDeleted:

    def test_matches_user_and_subscription_with_metadata(self, client, webhook_gateway):
        mine = make_package(user_id="user_1")
        other = make_package(user_id="user_2")

        post_event(client, deleted_event(metadata={"userId": "user_1"}))

        assert mine.status == PackageStatus.CANCELED
        assert other.status == PackageStatus.ACTIVE

    def test_matches_subscription_without_metadata(self, client, webhook_gateway):
        package = make_package(user_id="user_1")

        response = post_event(client, deleted_event())

        assert response.get_json()["outcome"] == "applied"
        assert package.status == PackageStatus.CANCELED
        assert OperationLog.query.filter_by(operation="subscription_deleted").count() == 1

    def test_no_matching_package(self, client, webhook_gateway):
        response = post_event(client, deleted_event(subscription_id="sub_missing"))

        assert response.status_code == 200
        assert response.get_json()["outcome"] == "ignored"


class TestConsecutiveUnpaid:

    def test_counts_until_first_paid(self):
        invoices = [
            {"status": "paid", "created": 100},
            {"status": "open", "created": 300},
            {"status": "uncollectible", "created": 200},
        ]
        assert count_consecutive_unpaid(invoices) == 2

    def test_skips_draft_and_void(self):
        invoices = [
            {"status": "draft", "created": 400},
            {"status": "void", "created": 300},
            {"status": "open", "created": 200},
            {"status": "paid", "created": 100},
        ]
        assert count_consecutive_unpaid(invoices) == 1

    def test_empty_list(self):
        assert count_consecutive_unpaid([]) == 0
