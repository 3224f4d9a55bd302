"""Handler that re-reads a checkout session and relays confirmed purchases."""

from __future__ import annotations

import json
from typing import Any, Dict

import stripe

from idempotency import derive_key
from models import CheckoutSession
from relay import RelayError
from request_parser import InvalidJSONError, RequestParser
from settings import ConfigurationError, Settings


SUCCESS_PAYMENT_STATUSES = {"paid", "no_payment_required"}
CONFIRMED_EVENT = "checkout.confirmed"


def is_confirmed(session: CheckoutSession) -> bool:
    """Success is decided only from Stripe's own status fields."""
    return session.status == "complete" and session.payment_status in SUCCESS_PAYMENT_STATUSES


class ConfirmSessionHandler:
    def __init__(self, logger, gateway, relay, settings: Settings) -> None:
        self._logger = logger
        self._gateway = gateway
        self._relay = relay
        self._settings = settings

    def handle(self, event: Dict[str, Any]) -> Dict[str, Any]:
        try:
            self._settings.require("STRIPE_SECRET_KEY", "WEBHOOK_URL")
        except ConfigurationError as exc:
            self._logger.error("Session confirmation refused: %s", exc)
            return self._error(500, str(exc))

        try:
            data = RequestParser(event).json()
        except InvalidJSONError as exc:
            return self._error(400, str(exc))

        session_id = str(data.get("sessionId") or data.get("session_id") or "").strip()
        if not session_id:
            return self._error(400, "Missing sessionId")

        try:
            session = self._gateway.retrieve_checkout_session(session_id, expand=["customer", "invoice"])
        except stripe.StripeError as exc:
            message = getattr(exc, "user_message", None) or str(exc)
            self._logger.error("Could not retrieve session %s: %s", session_id, message)
            return self._error(500, message)

        summary = self.summarize(session)
        if not summary["confirmed"]:
            self._logger.info("Session %s not confirmed yet (status=%s, payment_status=%s)",
                              session.id, session.status, session.payment_status)
            return self._json_response(summary)

        try:
            self._relay.send(
                self.relay_payload(session),
                idempotency_key=derive_key(session.id, CONFIRMED_EVENT, "relay"),
            )
        except RelayError as exc:
            self._logger.error("Relay for confirmed session %s failed: %s", session.id, exc)
            return self._error(502, str(exc))

        summary["relayed"] = True
        return self._json_response(summary)

    @staticmethod
    def summarize(session: CheckoutSession) -> Dict[str, Any]:
        invoice = session.invoice
        return {
            "id": session.id,
            "mode": session.mode,
            "status": session.status,
            "payment_status": session.payment_status,
            "currency": session.currency,
            "amount_total": session.amount_total,
            "customer_id": session.customer_id,
            "subscription_id": session.subscription_id,
            "invoice_id": session.invoice_id,
            "hosted_invoice_url": invoice.hosted_invoice_url if invoice else None,
            "invoice_pdf": invoice.invoice_pdf if invoice else None,
            "custom_fields": session.custom_field_values(),
            "confirmed": is_confirmed(session),
            "relayed": False,
        }

    @staticmethod
    def relay_payload(session: CheckoutSession) -> Dict[str, Any]:
        return {
            "event": CONFIRMED_EVENT,
            "sessionId": session.id,
            "amount": session.amount_total,
            "currency": session.currency,
            "mode": session.mode,
            "plan": session.metadata.get("plan"),
            "email": session.customer_email or session.metadata.get("form_email") or None,
            "customerId": session.customer_id,
        }

    # Response helpers ---------------------------------------------------

    @staticmethod
    def _json_response(payload: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "statusCode": 200,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps(payload),
        }

    @staticmethod
    def _error(status: int, message: str) -> Dict[str, Any]:
        return {
            "statusCode": status,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps({"error": message}),
        }


def create_confirm_session_handler(logger, gateway, relay, settings: Settings):
    handler = ConfirmSessionHandler(logger=logger, gateway=gateway, relay=relay, settings=settings)
    return handler.handle
