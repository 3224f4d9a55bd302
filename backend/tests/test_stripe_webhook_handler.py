"""Tests for webhook verification, routing and replay safety."""

from __future__ import annotations

import base64
import dataclasses
import time
from unittest import mock

import pytest
import stripe

from conftest import body_of, sign_payload, stripe_event, webhook_request
from handlers.checkout_session_handler import CheckoutSessionHandler
from handlers.stripe_webhook_handler import StripeWebhookHandler
from reconciliation import BillingReconciler


@pytest.fixture
def reconciler(logger, gateway, settings) -> BillingReconciler:
    return BillingReconciler(logger=logger, gateway=gateway, settings=settings)


@pytest.fixture
def handler(logger, reconciler, settings) -> StripeWebhookHandler:
    return StripeWebhookHandler(logger=logger, reconciler=reconciler, settings=settings)


def _session_completed(event_id="evt_1", customer="cus_1", invoice=None):
    return stripe_event(
        "checkout.session.completed",
        {
            "id": "cs_1",
            "object": "checkout.session",
            "customer": customer,
            "invoice": invoice,
            "custom_fields": [
                {"key": "company_name", "type": "text", "text": {"value": "Acme GmbH"}},
                {"key": "company_tax_number", "type": "text", "text": {"value": "DE123456789"}},
            ],
        },
        event_id=event_id,
    )


# Signature verification -------------------------------------------------


def test_invalid_signature_is_rejected_before_processing(handler, reconciler) -> None:
    payload = _session_completed()
    with mock.patch.object(reconciler, "handle_session_completed") as spy:
        response = handler.handle(webhook_request(payload, signature="t=1,v1=deadbeef"))

    assert response["statusCode"] == 400
    spy.assert_not_called()


def test_tampered_body_is_rejected(handler, reconciler, gateway) -> None:
    gateway.add_customer("cus_1")
    signature = sign_payload(_session_completed())
    tampered = _session_completed(customer="cus_attacker")

    with mock.patch.object(reconciler, "upsert_customer_supplement") as spy:
        response = handler.handle(webhook_request(tampered, signature=signature))

    assert response["statusCode"] == 400
    spy.assert_not_called()
    assert gateway.calls == []


def test_missing_signature_header_is_rejected(handler, gateway) -> None:
    event = webhook_request(_session_completed())
    del event["headers"]["Stripe-Signature"]

    response = handler.handle(event)

    assert response["statusCode"] == 400
    assert gateway.calls == []


def test_stale_signature_is_rejected(handler, gateway) -> None:
    payload = _session_completed()
    signature = sign_payload(payload, timestamp=int(time.time()) - 3600)

    assert handler.handle(webhook_request(payload, signature=signature))["statusCode"] == 400


def test_signature_with_wrong_secret_is_rejected(handler) -> None:
    payload = _session_completed()

    response = handler.handle(webhook_request(payload, signature=sign_payload(payload, secret="whsec_other")))

    assert response["statusCode"] == 400


def test_base64_encoded_body_is_verified_on_raw_bytes(handler, gateway) -> None:
    gateway.add_customer("cus_1")
    payload = _session_completed()
    event = webhook_request(payload)
    event["body"] = base64.b64encode(payload.encode("utf-8")).decode("ascii")
    event["isBase64Encoded"] = True

    assert handler.handle(event)["statusCode"] == 200
    assert gateway.customers["cus_1"]["invoice_settings"]["custom_fields"]


def test_missing_webhook_secret_fails_closed(logger, reconciler, settings, gateway) -> None:
    handler = StripeWebhookHandler(logger, reconciler, dataclasses.replace(settings, stripe_webhook_secret=None))

    response = handler.handle(webhook_request(_session_completed()))

    assert response["statusCode"] == 500
    assert gateway.calls == []


def test_verified_but_undecodable_envelope_is_acknowledged(handler, reconciler, gateway) -> None:
    payload = '{"type": "checkout.session.completed"}'

    with mock.patch.object(reconciler, "handle_session_completed") as spy:
        response = handler.handle(webhook_request(payload))

    assert response["statusCode"] == 200
    assert body_of(response) == {"received": True}
    spy.assert_not_called()
    assert gateway.calls == []


# Routing and error policy ----------------------------------------------


def test_unhandled_event_is_acknowledged(handler, gateway) -> None:
    payload = stripe_event("customer.subscription.updated", {"id": "sub_1"})

    response = handler.handle(webhook_request(payload))

    assert response["statusCode"] == 200
    assert body_of(response) == {"received": True}
    assert gateway.calls == []


def test_non_retryable_failure_is_logged_and_acknowledged(handler, gateway) -> None:
    gateway.add_customer("cus_1")
    gateway.failures["update_customer"] = stripe.InvalidRequestError("No such customer: 'cus_1'", "customer")

    response = handler.handle(webhook_request(_session_completed()))

    assert response["statusCode"] == 200


@pytest.mark.parametrize(
    "error",
    [
        stripe.APIConnectionError("connection reset"),
        stripe.RateLimitError("too many requests"),
        stripe.APIError("internal error"),
    ],
)
def test_transient_failure_asks_for_redelivery(handler, gateway, error) -> None:
    gateway.add_customer("cus_1")
    gateway.failures["retrieve_customer"] = error

    response = handler.handle(webhook_request(_session_completed()))

    assert response["statusCode"] == 500
    assert body_of(response) == {"error": "webhook_handler_error"}


# Replay safety -----------------------------------------------------------


def test_replayed_event_does_not_duplicate_fields_or_refinalize(handler, gateway) -> None:
    gateway.add_customer("cus_1")
    gateway.add_invoice("in_1", "cus_1")
    payload = _session_completed(invoice="in_1")

    first = handler.handle(webhook_request(payload))
    second = handler.handle(webhook_request(payload))

    assert first["statusCode"] == second["statusCode"] == 200
    assert gateway.customers["cus_1"]["invoice_settings"]["custom_fields"] == [
        {"name": "Company", "value": "Acme GmbH"},
        {"name": "Tax ID", "value": "DE123456789"},
    ]
    assert gateway.invoices["in_1"]["custom_fields"] == [
        {"name": "Company", "value": "Acme GmbH"},
        {"name": "Tax ID", "value": "DE123456789"},
    ]
    assert len(gateway.mutations("update_customer")) == 1
    assert len(gateway.mutations("update_invoice")) == 1
    assert len(gateway.mutations("finalize_invoice")) == 1


def test_invoice_created_before_session_completed(handler, gateway) -> None:
    gateway.add_customer("cus_1")
    gateway.add_invoice("in_1", "cus_1")
    invoice_created = stripe_event("invoice.created", dict(gateway.invoices["in_1"]), event_id="evt_invoice")

    # No supplement on the customer yet: the invoice is left as a draft.
    assert handler.handle(webhook_request(invoice_created))["statusCode"] == 200
    assert gateway.invoices["in_1"]["status"] == "draft"

    assert handler.handle(webhook_request(_session_completed(invoice="in_1")))["statusCode"] == 200
    assert gateway.invoices["in_1"]["custom_fields"][0] == {"name": "Company", "value": "Acme GmbH"}
    assert gateway.invoices["in_1"]["status"] == "open"

    # A late redelivery of invoice.created finds the invoice finalized and leaves it alone.
    assert handler.handle(webhook_request(invoice_created))["statusCode"] == 200
    assert len(gateway.mutations("finalize_invoice")) == 1


def test_split_plan_end_to_end(logger, gateway, settings, handler) -> None:
    checkout = CheckoutSessionHandler(logger=logger, gateway=gateway, settings=settings)
    response = checkout.handle({
        "path": "/api/checkout-session",
        "httpMethod": "POST",
        "headers": {"Content-Type": "application/json"},
        "body": '{"plan": "split_3", "contactEmail": "buyer@acme.example"}',
    })
    assert response["statusCode"] == 200
    params = gateway.mutations("create_checkout_session")[0][1]
    assert params["mode"] == "subscription"
    customer_id = params["customer"]

    payload = _session_completed(event_id="evt_e2e", customer=customer_id)
    expected = [
        {"name": "Company", "value": "Acme GmbH"},
        {"name": "Tax ID", "value": "DE123456789"},
    ]

    assert handler.handle(webhook_request(payload))["statusCode"] == 200
    assert gateway.customers[customer_id]["invoice_settings"]["custom_fields"] == expected

    assert handler.handle(webhook_request(payload))["statusCode"] == 200
    assert gateway.customers[customer_id]["invoice_settings"]["custom_fields"] == expected
