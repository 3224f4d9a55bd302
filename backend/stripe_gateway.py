"""Thin wrapper around the Stripe SDK client used by every handler.

The gateway is constructed once per process and passed to the handlers. It
returns the dataclasses from :mod:`models` rather than SDK objects so the
handlers can be exercised against an in-memory fake.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Optional, Union

import stripe

from models import CheckoutSession, Customer, Invoice


SIGNATURE_TOLERANCE_SECONDS = 300

RETRYABLE_ERRORS = (
    stripe.APIConnectionError,
    stripe.RateLimitError,
    stripe.APIError,
)


def is_retryable(exc: BaseException) -> bool:
    """Return True for provider failures that a later redelivery may fix."""
    return isinstance(exc, RETRYABLE_ERRORS)


def verify_signature(payload: Union[bytes, str], sig_header: Optional[str], secret: str) -> None:
    """Check a webhook payload against its ``Stripe-Signature`` header.

    Raises ``stripe.SignatureVerificationError`` when the header is missing,
    malformed, stale or does not match the payload.
    """
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    stripe.WebhookSignature.verify_header(
        payload, sig_header or "", secret, SIGNATURE_TOLERANCE_SECONDS
    )


def _plain(obj: Any) -> Dict[str, Any]:
    if isinstance(obj, dict) and not isinstance(obj, stripe.StripeObject):
        return obj
    # StripeObject renders itself as JSON, including nested objects.
    return json.loads(str(obj))


def _options(idempotency_key: Optional[str]) -> Dict[str, str]:
    return {"idempotency_key": idempotency_key} if idempotency_key else {}


class StripeGateway:
    def __init__(self, api_key: str, api_version: Optional[str] = None, client=None) -> None:
        self._client = client or stripe.StripeClient(api_key, stripe_version=api_version)

    # Checkout sessions ----------------------------------------------------

    def create_checkout_session(self, params: Dict[str, Any]) -> CheckoutSession:
        session = self._client.checkout.sessions.create(params=params)
        return CheckoutSession.from_dict(_plain(session))

    def retrieve_checkout_session(self, session_id: str, expand: Iterable[str] = ()) -> CheckoutSession:
        params = {"expand": list(expand)} if expand else {}
        session = self._client.checkout.sessions.retrieve(session_id, params=params)
        return CheckoutSession.from_dict(_plain(session))

    # Customers ------------------------------------------------------------

    def find_customer_by_email(self, email: str) -> Optional[Customer]:
        result = _plain(self._client.customers.list(params={"email": email, "limit": 1}))
        data = result.get("data") or []
        return Customer.from_dict(data[0]) if data else None

    def create_customer(self, params: Dict[str, Any]) -> Customer:
        return Customer.from_dict(_plain(self._client.customers.create(params=params)))

    def retrieve_customer(self, customer_id: str) -> Customer:
        return Customer.from_dict(_plain(self._client.customers.retrieve(customer_id)))

    def update_customer(self, customer_id: str, params: Dict[str, Any], idempotency_key: Optional[str] = None) -> Customer:
        customer = self._client.customers.update(customer_id, params=params, options=_options(idempotency_key))
        return Customer.from_dict(_plain(customer))

    # Invoices -------------------------------------------------------------

    def retrieve_invoice(self, invoice_id: str) -> Invoice:
        return Invoice.from_dict(_plain(self._client.invoices.retrieve(invoice_id)))

    def update_invoice(self, invoice_id: str, params: Dict[str, Any], idempotency_key: Optional[str] = None) -> Invoice:
        invoice = self._client.invoices.update(invoice_id, params=params, options=_options(idempotency_key))
        return Invoice.from_dict(_plain(invoice))

    def finalize_invoice(self, invoice_id: str, idempotency_key: Optional[str] = None) -> Invoice:
        invoice = self._client.invoices.finalize_invoice(
            invoice_id, params={"auto_advance": True}, options=_options(idempotency_key)
        )
        return Invoice.from_dict(_plain(invoice))

    def pay_invoice(self, invoice_id: str, idempotency_key: Optional[str] = None) -> Invoice:
        invoice = self._client.invoices.pay(invoice_id, options=_options(idempotency_key))
        return Invoice.from_dict(_plain(invoice))
