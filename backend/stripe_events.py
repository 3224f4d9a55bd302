"""Decoding of verified Stripe webhook envelopes into explicit event types."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Union

from models import CheckoutSession, Invoice


CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
INVOICE_CREATED = "invoice.created"


class EventDecodeError(Exception):
    """Raised when a verified payload is not a usable event envelope."""


@dataclass(frozen=True)
class CheckoutSessionCompleted:
    event_id: str
    session: CheckoutSession
    type: str = CHECKOUT_SESSION_COMPLETED


@dataclass(frozen=True)
class InvoiceCreated:
    event_id: str
    invoice: Invoice
    type: str = INVOICE_CREATED


@dataclass(frozen=True)
class UnhandledEvent:
    event_id: str
    type: str


WebhookEvent = Union[CheckoutSessionCompleted, InvoiceCreated, UnhandledEvent]


def decode_event(payload: Union[bytes, str, Dict[str, Any]]) -> WebhookEvent:
    """Build the event variant for a payload whose signature was already verified."""
    if isinstance(payload, (bytes, str)):
        try:
            payload = json.loads(payload)
        except ValueError as exc:
            raise EventDecodeError(f"Event body is not JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise EventDecodeError("Event body must be a JSON object")

    event_id = payload.get("id")
    event_type = payload.get("type")
    if not event_id or not event_type:
        raise EventDecodeError("Event is missing id or type")

    data = payload.get("data") or {}
    obj = data.get("object") if isinstance(data, dict) else None

    if event_type == CHECKOUT_SESSION_COMPLETED:
        return CheckoutSessionCompleted(event_id=event_id, session=CheckoutSession.from_dict(_require_object(obj)))
    if event_type == INVOICE_CREATED:
        return InvoiceCreated(event_id=event_id, invoice=Invoice.from_dict(_require_object(obj)))
    return UnhandledEvent(event_id=event_id, type=event_type)


def _require_object(obj: Any) -> Dict[str, Any]:
    if not isinstance(obj, dict) or not obj.get("id"):
        raise EventDecodeError("Event is missing data.object")
    return obj
