"""Handler for signed Stripe webhook deliveries."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, Union

import stripe

from request_parser import RequestParser
from settings import ConfigurationError, Settings
from stripe_events import (
    CheckoutSessionCompleted,
    EventDecodeError,
    InvoiceCreated,
    WebhookEvent,
    decode_event,
)
from stripe_gateway import is_retryable, verify_signature


SIGNATURE_HEADER = "stripe-signature"


class StripeWebhookHandler:
    """Verifies, decodes and routes webhook events to the reconciler.

    Verified events are acknowledged with 200 even when enrichment fails for
    a non-retryable reason; only transient provider failures return 500 so
    Stripe redelivers the event.
    """

    def __init__(
        self,
        logger,
        reconciler,
        settings: Settings,
        verify: Callable[[Union[bytes, str], str, str], None] = verify_signature,
    ) -> None:
        self._logger = logger
        self._reconciler = reconciler
        self._settings = settings
        self._verify = verify

    def handle(self, event: Dict[str, Any]) -> Dict[str, Any]:
        try:
            self._settings.require("STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET")
        except ConfigurationError as exc:
            self._logger.error("Webhook refused: %s", exc)
            return self._response(500, {"error": "missing_env"})

        parser = RequestParser(event)
        try:
            self._verify(parser.body, parser.header(SIGNATURE_HEADER) or "", self._settings.stripe_webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            self._logger.warning("Webhook signature verification failed: %s", exc)
            return self._response(400, {"error": f"Webhook Error: {exc}"})

        try:
            webhook_event = decode_event(parser.body)
        except EventDecodeError as exc:
            self._logger.error("Acknowledging undecodable webhook payload: %s", exc)
            return self._response(200, {"received": True})

        try:
            self.dispatch(webhook_event)
        except stripe.StripeError as exc:
            if is_retryable(exc):
                self._logger.error(
                    "Transient Stripe failure while handling %s %s: %s",
                    webhook_event.type,
                    webhook_event.event_id,
                    exc,
                )
                return self._response(500, {"error": "webhook_handler_error"})
            self._logger.error(
                "Enrichment for %s %s failed and will not be retried: %s",
                webhook_event.type,
                webhook_event.event_id,
                exc,
            )
        return self._response(200, {"received": True})

    def dispatch(self, webhook_event: WebhookEvent):
        if isinstance(webhook_event, CheckoutSessionCompleted):
            return self._reconciler.handle_session_completed(webhook_event)
        if isinstance(webhook_event, InvoiceCreated):
            return self._reconciler.handle_invoice_created(webhook_event)
        self._logger.debug("Ignoring event %s (%s)", webhook_event.event_id, webhook_event.type)
        return None

    @staticmethod
    def _response(status: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "statusCode": status,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps(payload),
        }


def create_stripe_webhook_handler(logger, reconciler, settings: Settings):
    handler = StripeWebhookHandler(logger=logger, reconciler=reconciler, settings=settings)
    return handler.handle
