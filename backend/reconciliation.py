"""Copy checkout billing details onto Stripe customers and draft invoices."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from idempotency import derive_key
from models import BillingSupplement, Invoice, InvoiceField, dropped_field_names, merge_invoice_fields
from settings import Settings
from stripe_events import CheckoutSessionCompleted, InvoiceCreated


@dataclass
class ReconciliationOutcome:
    customer_updated: bool = False
    invoice_updated: bool = False
    invoice_finalized: bool = False
    invoice_paid: bool = False
    skipped_reason: Optional[str] = None


class BillingReconciler:
    """Applies a Billing Supplement to the customer and any draft invoice.

    Only draft invoices are written to. Each mutating call is keyed with
    :func:`idempotency.derive_key` so a redelivered event cannot apply a
    change twice, and a call is skipped entirely when the merged state is
    already what Stripe holds.
    """

    def __init__(self, logger, gateway, settings: Settings) -> None:
        self._logger = logger
        self._gateway = gateway
        self._settings = settings

    # Event entry points -------------------------------------------------

    def handle_session_completed(self, event: CheckoutSessionCompleted) -> ReconciliationOutcome:
        session = event.session
        supplement = session.billing_supplement
        self._logger.info(
            "checkout.session.completed %s: company=%s tax_number=%s",
            session.id,
            bool(supplement.company_name),
            bool(supplement.tax_number),
        )
        if supplement.is_empty:
            return ReconciliationOutcome(skipped_reason="no billing supplement")
        if not session.customer_id:
            self._logger.warning("Session %s has no customer; billing supplement not stored", session.id)
            return ReconciliationOutcome(skipped_reason="no customer")

        outcome = ReconciliationOutcome()
        outcome.customer_updated = self.upsert_customer_supplement(session.customer_id, supplement, event.event_id)
        if session.invoice_id:
            self.apply_fields_to_invoice(session.invoice_id, supplement.invoice_fields(), event.event_id, outcome)
        return outcome

    def handle_invoice_created(self, event: InvoiceCreated) -> ReconciliationOutcome:
        invoice = event.invoice
        self._logger.info("invoice.created %s (status=%s, customer=%s)", invoice.id, invoice.status, invoice.customer_id)
        if invoice.status and not invoice.is_draft:
            return ReconciliationOutcome(skipped_reason="invoice not draft")
        if not invoice.customer_id:
            return ReconciliationOutcome(skipped_reason="no customer")

        customer = self._gateway.retrieve_customer(invoice.customer_id)
        supplement = BillingSupplement.from_invoice_fields(customer.invoice_fields)
        if supplement.is_empty:
            self._logger.info("Customer %s holds no billing supplement yet; invoice %s left as is", customer.id, invoice.id)
            return ReconciliationOutcome(skipped_reason="no billing supplement")

        outcome = ReconciliationOutcome()
        self.apply_fields_to_invoice(invoice.id, supplement.invoice_fields(), event.event_id, outcome)
        return outcome

    # Mutations ------------------------------------------------------------

    def upsert_customer_supplement(self, customer_id: str, supplement: BillingSupplement, event_id: str) -> bool:
        """Merge the supplement into the customer's invoice defaults and metadata.

        Returns True when Stripe was updated, False when it already matched.
        """
        customer = self._gateway.retrieve_customer(customer_id)
        merged = merge_invoice_fields(customer.invoice_fields, supplement.invoice_fields())
        self._warn_dropped("customer", customer_id, customer.invoice_fields, merged)
        metadata = {k: v for k, v in supplement.metadata().items() if customer.metadata.get(k) != v}

        if merged == customer.invoice_fields and not metadata:
            self._logger.info("Customer %s already holds the billing supplement", customer_id)
            return False

        params = {"invoice_settings": {"custom_fields": [f.to_param() for f in merged]}}
        if metadata:
            params["metadata"] = metadata
        self._logger.info("Updating customer %s invoice defaults: %s", customer_id, [f.name for f in merged])
        self._gateway.update_customer(
            customer_id, params, idempotency_key=derive_key(customer_id, event_id, "customer.billing_supplement")
        )
        return True

    def apply_fields_to_invoice(
        self,
        invoice_id: str,
        fields: List[InvoiceField],
        event_id: str,
        outcome: Optional[ReconciliationOutcome] = None,
    ) -> Optional[Invoice]:
        """Write ``fields`` onto a draft invoice, then finalize and optionally pay it.

        Invoices past draft are left untouched and ``None`` is returned.
        """
        outcome = outcome or ReconciliationOutcome()
        invoice = self._gateway.retrieve_invoice(invoice_id)
        if not invoice.is_draft:
            self._logger.info("Invoice %s is %s; custom fields not applied", invoice_id, invoice.status)
            outcome.skipped_reason = f"invoice {invoice.status}"
            return None

        merged = merge_invoice_fields(invoice.custom_fields, fields)
        self._warn_dropped("invoice", invoice_id, invoice.custom_fields, merged)
        if merged != invoice.custom_fields:
            self._logger.info("Updating draft invoice %s custom fields: %s", invoice_id, [f.name for f in merged])
            invoice = self._gateway.update_invoice(
                invoice_id,
                {"custom_fields": [f.to_param() for f in merged]},
                idempotency_key=derive_key(invoice_id, event_id, "invoice.custom_fields"),
            )
            outcome.invoice_updated = True

        if self._settings.finalize_draft_invoices and invoice.is_draft:
            self._logger.info("Finalizing invoice %s", invoice_id)
            invoice = self._gateway.finalize_invoice(
                invoice_id, idempotency_key=derive_key(invoice_id, event_id, "invoice.finalize")
            )
            outcome.invoice_finalized = True
            invoice = self._pay_if_due(invoice, event_id, outcome)
        return invoice

    def _pay_if_due(self, invoice: Invoice, event_id: str, outcome: ReconciliationOutcome) -> Invoice:
        if not self._settings.pay_finalized_invoices:
            return invoice
        if invoice.status != "open" or invoice.collection_method != "charge_automatically" or invoice.amount_due <= 0:
            return invoice
        self._logger.info("Paying invoice %s (%s due)", invoice.id, invoice.amount_due)
        paid = self._gateway.pay_invoice(invoice.id, idempotency_key=derive_key(invoice.id, event_id, "invoice.pay"))
        outcome.invoice_paid = paid.status == "paid"
        return paid


    def _warn_dropped(self, kind: str, resource_id: str, existing: List[InvoiceField], merged: List[InvoiceField]) -> None:
        dropped = dropped_field_names(existing, merged)
        if dropped:
            self._logger.warning(
                "%s %s is at the invoice field limit; dropping %s to fit the billing supplement",
                kind.capitalize(),
                resource_id,
                dropped,
            )
