"""Shared fixtures: an in-memory Stripe stand-in and webhook signing helpers."""

from __future__ import annotations

import copy
import hashlib
import hmac
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
import stripe


PROJECT_ROOT = Path(__file__).resolve().parents[2]
BACKEND_PATH = PROJECT_ROOT / "backend"
if str(BACKEND_PATH) not in sys.path:
    sys.path.insert(0, str(BACKEND_PATH))

from models import CheckoutSession, Customer, Invoice  # noqa: E402  pylint: disable=wrong-import-position
from settings import Settings  # noqa: E402  pylint: disable=wrong-import-position


WEBHOOK_SECRET = "whsec_test_secret"


class FakeStripeGateway:
    """Stores Stripe-shaped dicts and mimics idempotent replays by key."""

    def __init__(self) -> None:
        self.customers: Dict[str, Dict[str, Any]] = {}
        self.invoices: Dict[str, Dict[str, Any]] = {}
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.failures: Dict[str, Exception] = {}
        self._replies: Dict[str, Any] = {}
        self._counter = 0

    # Test helpers -------------------------------------------------------

    def add_customer(self, customer_id: str, email: Optional[str] = None, name: Optional[str] = None,
                     custom_fields: Optional[list] = None, metadata: Optional[dict] = None) -> None:
        self.customers[customer_id] = {
            "id": customer_id,
            "email": email,
            "name": name,
            "metadata": dict(metadata or {}),
            "invoice_settings": {"custom_fields": list(custom_fields) if custom_fields else None},
        }

    def add_invoice(self, invoice_id: str, customer_id: str, status: str = "draft", **extra: Any) -> None:
        self.invoices[invoice_id] = {
            "id": invoice_id,
            "customer": customer_id,
            "status": status,
            "custom_fields": None,
            "collection_method": "charge_automatically",
            "amount_due": 49900,
            **extra,
        }

    def mutations(self, name: Optional[str] = None) -> List[tuple]:
        reads = {"retrieve_customer", "retrieve_invoice", "retrieve_checkout_session", "find_customer_by_email"}
        return [c for c in self.calls if c[0] not in reads and (name is None or c[0] == name)]

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if name in self.failures:
            raise self.failures[name]

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}_{self._counter}"

    def _idempotent(self, key: Optional[str], apply):
        if key and key in self._replies:
            return copy.deepcopy(self._replies[key])
        result = apply()
        if key:
            self._replies[key] = copy.deepcopy(result)
        return result

    # Gateway interface --------------------------------------------------

    def create_checkout_session(self, params: Dict[str, Any]) -> CheckoutSession:
        self._record("create_checkout_session", params)
        session_id = self._next_id("cs_test")
        self.sessions[session_id] = {
            "id": session_id,
            "mode": params.get("mode"),
            "status": "open",
            "payment_status": "unpaid",
            "customer": params.get("customer"),
            "client_secret": f"{session_id}_secret_abc",
        }
        return CheckoutSession.from_dict(self.sessions[session_id])

    def retrieve_checkout_session(self, session_id: str, expand=()) -> CheckoutSession:
        self._record("retrieve_checkout_session", session_id, list(expand))
        if session_id not in self.sessions:
            raise stripe.InvalidRequestError(f"No such checkout.session: '{session_id}'", "id")
        return CheckoutSession.from_dict(copy.deepcopy(self.sessions[session_id]))

    def find_customer_by_email(self, email: str) -> Optional[Customer]:
        self._record("find_customer_by_email", email)
        for data in self.customers.values():
            if data.get("email") == email:
                return Customer.from_dict(copy.deepcopy(data))
        return None

    def create_customer(self, params: Dict[str, Any]) -> Customer:
        self._record("create_customer", params)
        customer_id = self._next_id("cus")
        self.add_customer(customer_id, email=params.get("email"), name=params.get("name"))
        return Customer.from_dict(copy.deepcopy(self.customers[customer_id]))

    def retrieve_customer(self, customer_id: str) -> Customer:
        self._record("retrieve_customer", customer_id)
        return Customer.from_dict(copy.deepcopy(self.customers[customer_id]))

    def update_customer(self, customer_id: str, params: Dict[str, Any], idempotency_key: Optional[str] = None) -> Customer:
        self._record("update_customer", customer_id, params, idempotency_key)

        def apply():
            data = self.customers[customer_id]
            if "name" in params:
                data["name"] = params["name"]
            if "metadata" in params:
                data["metadata"].update(params["metadata"])
            if "invoice_settings" in params:
                data["invoice_settings"] = copy.deepcopy(params["invoice_settings"])
            return copy.deepcopy(data)

        return Customer.from_dict(self._idempotent(idempotency_key, apply))

    def retrieve_invoice(self, invoice_id: str) -> Invoice:
        self._record("retrieve_invoice", invoice_id)
        return Invoice.from_dict(copy.deepcopy(self.invoices[invoice_id]))

    def update_invoice(self, invoice_id: str, params: Dict[str, Any], idempotency_key: Optional[str] = None) -> Invoice:
        self._record("update_invoice", invoice_id, params, idempotency_key)

        def apply():
            data = self.invoices[invoice_id]
            if data["status"] != "draft":
                raise stripe.InvalidRequestError("Finalized invoices can't be updated in this way", "custom_fields")
            data["custom_fields"] = copy.deepcopy(params["custom_fields"])
            return copy.deepcopy(data)

        return Invoice.from_dict(self._idempotent(idempotency_key, apply))

    def finalize_invoice(self, invoice_id: str, idempotency_key: Optional[str] = None) -> Invoice:
        self._record("finalize_invoice", invoice_id, idempotency_key)

        def apply():
            data = self.invoices[invoice_id]
            if data["status"] != "draft":
                raise stripe.InvalidRequestError("This invoice is already finalized", None)
            data["status"] = "open"
            return copy.deepcopy(data)

        return Invoice.from_dict(self._idempotent(idempotency_key, apply))

    def pay_invoice(self, invoice_id: str, idempotency_key: Optional[str] = None) -> Invoice:
        self._record("pay_invoice", invoice_id, idempotency_key)

        def apply():
            data = self.invoices[invoice_id]
            data["status"] = "paid"
            data["amount_due"] = 0
            return copy.deepcopy(data)

        return Invoice.from_dict(self._idempotent(idempotency_key, apply))


class RecordingRelay:
    def __init__(self, status: int = 200, error: Optional[Exception] = None) -> None:
        self.sent: List[tuple] = []
        self.status = status
        self.error = error

    def send(self, payload: Dict[str, Any], idempotency_key: Optional[str] = None) -> int:
        self.sent.append((payload, idempotency_key))
        if self.error is not None:
            raise self.error
        return self.status


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header using Stripe's documented v1 scheme."""
    ts = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode("utf-8"), f"{ts}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def stripe_event(event_type: str, obj: Dict[str, Any], event_id: str = "evt_1") -> str:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    })


def webhook_request(payload: str, signature: Optional[str] = None) -> Dict[str, Any]:
    headers = {"Content-Type": "application/json"}
    headers["Stripe-Signature"] = sign_payload(payload) if signature is None else signature
    return {"path": "/api/stripe-webhook", "httpMethod": "POST", "headers": headers, "body": payload}


def json_request(path: str, body: Any, origin: Optional[str] = None) -> Dict[str, Any]:
    headers = {"Content-Type": "application/json"}
    if origin:
        headers["Origin"] = origin
    return {
        "path": path,
        "httpMethod": "POST",
        "headers": headers,
        "body": body if isinstance(body, str) else json.dumps(body),
    }


def body_of(response: Dict[str, Any]) -> Dict[str, Any]:
    return json.loads(response["body"])


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("tests")


@pytest.fixture
def settings() -> Settings:
    return Settings(
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        price_ids={
            "PRICE_ONE_TIME": "price_one_time",
            "PRICE_SPLIT_2": "price_split_2",
            "PRICE_SPLIT_3": "price_split_3",
        },
        webhook_url="https://hooks.example.com/checkout",
        allowed_origins=("https://shop.example.com",),
    )


@pytest.fixture
def gateway() -> FakeStripeGateway:
    return FakeStripeGateway()


@pytest.fixture
def relay() -> RecordingRelay:
    return RecordingRelay()
