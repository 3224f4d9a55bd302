"""Handler that creates embedded Stripe Checkout sessions for a plan."""

from __future__ import annotations

import json
import urllib.parse
from typing import Any, Dict, Optional

import stripe

from models import COMPANY_FIELD_KEY, TAX_NUMBER_FIELD_KEY, Customer
from plans import PAYMENT_MODE, ResolvedPlan, UnknownPlanError, resolve_plan
from request_parser import InvalidJSONError, RequestParser
from settings import ConfigurationError, Settings


SESSION_ID_PLACEHOLDER = "{CHECKOUT_SESSION_ID}"


class CheckoutSessionHandler:
    def __init__(self, logger, gateway, settings: Settings) -> None:
        self._logger = logger
        self._gateway = gateway
        self._settings = settings

    def handle(self, event: Dict[str, Any]) -> Dict[str, Any]:
        try:
            self._settings.require("STRIPE_SECRET_KEY")
        except ConfigurationError as exc:
            self._logger.error("Checkout session refused: %s", exc)
            return self._server_error(str(exc))

        try:
            data = RequestParser(event).json()
        except InvalidJSONError as exc:
            return self._bad_request(str(exc))

        plan_id = data.get("plan")
        if plan_id is None or plan_id == "":
            plan_id = "one_time"
        try:
            resolved = resolve_plan(plan_id, self._settings)
        except UnknownPlanError:
            return self._bad_request("Unknown plan")
        except ConfigurationError as exc:
            self._logger.error("Plan %s has no configured price: %s", plan_id, exc)
            return self._server_error(str(exc))

        email = self._text(data.get("contactEmail") or data.get("email"))
        name = self._text(data.get("contactName") or data.get("name"))
        thank_you_url = self._text(data.get("thankYouUrl") or data.get("returnUrl")) or self._settings.default_thank_you_url

        try:
            customer = self._resolve_customer(email, name)
            params = self.build_session_params(resolved, thank_you_url, customer, email, name)
            session = self._gateway.create_checkout_session(params)
        except stripe.StripeError as exc:
            message = getattr(exc, "user_message", None) or str(exc)
            self._logger.error("Stripe rejected checkout session for plan %s: %s", plan_id, message)
            return self._server_error(message)

        self._logger.info("Created %s checkout session %s for plan %s", resolved.plan.billing_mode, session.id, plan_id)
        return self._json_response({"clientSecret": session.client_secret})

    def build_session_params(
        self,
        resolved: ResolvedPlan,
        thank_you_url: str,
        customer: Optional[Customer],
        email: Optional[str],
        name: Optional[str],
    ) -> Dict[str, Any]:
        plan = resolved.plan
        metadata = {
            "plan": plan.plan_id,
            "form_email": email or "",
            "form_name": name or "",
            "installments": str(plan.installments),
        }
        params: Dict[str, Any] = {
            "ui_mode": "embedded",
            "mode": plan.billing_mode,
            "line_items": [{"price": resolved.price_id, "quantity": 1}],
            "return_url": self.build_return_url(thank_you_url, plan.plan_id, plan.total),
            "billing_address_collection": "required",
            "tax_id_collection": {"enabled": True},
            "phone_number_collection": {"enabled": False},
            "custom_fields": [
                self._text_field(COMPANY_FIELD_KEY, self._settings.company_field_label),
                self._text_field(TAX_NUMBER_FIELD_KEY, self._settings.tax_field_label),
            ],
            "metadata": metadata,
        }

        if plan.billing_mode == PAYMENT_MODE:
            params["invoice_creation"] = {"enabled": True, "invoice_data": {"metadata": metadata}}
            params["payment_intent_data"] = {"metadata": metadata}
        else:
            params["subscription_data"] = {"metadata": metadata}

        if customer is not None:
            params["customer"] = customer.id
            # Required by Stripe when collecting address and tax ids for an existing customer.
            params["customer_update"] = {"address": "auto", "name": "auto"}
        else:
            if email:
                params["customer_email"] = email
            if plan.billing_mode == PAYMENT_MODE:
                params["customer_creation"] = "always"
        return params

    @staticmethod
    def build_return_url(base_url: str, plan_id: str, total: int) -> str:
        query = urllib.parse.urlencode({"plan": plan_id, "total": total})
        separator = "&" if "?" in base_url else "?"
        return f"{base_url}{separator}{query}&session_id={SESSION_ID_PLACEHOLDER}"

    # Internal helpers ---------------------------------------------------

    def _resolve_customer(self, email: Optional[str], name: Optional[str]) -> Optional[Customer]:
        """Reuse the customer registered under ``email`` or create one."""
        if not email:
            return None
        customer = self._gateway.find_customer_by_email(email)
        if customer is None:
            params: Dict[str, Any] = {"email": email}
            if name:
                params["name"] = name
            customer = self._gateway.create_customer(params)
            self._logger.info("Created customer %s", customer.id)
        elif name and not customer.name:
            customer = self._gateway.update_customer(customer.id, {"name": name})
        return customer

    @staticmethod
    def _text_field(key: str, label: str) -> Dict[str, Any]:
        return {
            "key": key,
            "label": {"type": "custom", "custom": label},
            "type": "text",
            "optional": True,
        }

    @staticmethod
    def _text(value: Any) -> Optional[str]:
        text = str(value).strip() if value is not None else ""
        return text or None

    # Response helpers ---------------------------------------------------

    @staticmethod
    def _json_response(payload: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "statusCode": 200,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps(payload),
        }

    @staticmethod
    def _bad_request(message: str) -> Dict[str, Any]:
        return {
            "statusCode": 400,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps({"error": message}),
        }

    @staticmethod
    def _server_error(message: str) -> Dict[str, Any]:
        return {
            "statusCode": 500,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps({"error": message}),
        }


def create_checkout_session_handler(logger, gateway, settings: Settings):
    handler = CheckoutSessionHandler(logger=logger, gateway=gateway, settings=settings)
    return handler.handle
