"""Typed views of the Stripe resources this backend reads and writes.

Provider payloads are plain dictionaries (either decoded webhook JSON or
serialized SDK objects). They are decoded into these dataclasses at the
boundary so the rest of the code never reaches into nested dicts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


COMPANY_FIELD_KEY = "company_name"
TAX_NUMBER_FIELD_KEY = "company_tax_number"

COMPANY_INVOICE_FIELD = "Company"
TAX_NUMBER_INVOICE_FIELD = "Tax ID"

COMPANY_METADATA_KEY = "company_name"
TAX_NUMBER_METADATA_KEY = "vat_or_tax_id"

# Stripe accepts at most four invoice custom fields.
MAX_INVOICE_FIELDS = 4


def _id_of(value: Any) -> Optional[str]:
    """Return the id of a possibly-expanded reference."""
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class InvoiceField:
    name: str
    value: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InvoiceField":
        return cls(name=str(data.get("name") or ""), value=str(data.get("value") or ""))

    def to_param(self) -> Dict[str, str]:
        return {"name": self.name, "value": self.value}


def merge_invoice_fields(existing: List[InvoiceField], incoming: List[InvoiceField]) -> List[InvoiceField]:
    """Upsert ``incoming`` into ``existing`` by field name.

    Entries keep their original position; new names are appended. Duplicate
    names already present in ``existing`` collapse into one entry. When the
    result exceeds Stripe's limit, unrelated existing entries are dropped
    from the end so the incoming fields always survive.
    """
    replacements = {f.name: f for f in incoming}
    merged: List[InvoiceField] = []
    seen = set()
    for item in existing:
        if item.name in seen:
            continue
        seen.add(item.name)
        merged.append(replacements.get(item.name, item))
    for item in incoming:
        if item.name not in seen:
            seen.add(item.name)
            merged.append(item)

    overflow = len(merged) - MAX_INVOICE_FIELDS
    if overflow > 0:
        kept: List[InvoiceField] = []
        for item in reversed(merged):
            if overflow > 0 and item.name not in replacements:
                overflow -= 1
                continue
            kept.append(item)
        merged = list(reversed(kept))
    return merged[:MAX_INVOICE_FIELDS]


def dropped_field_names(existing: List[InvoiceField], merged: List[InvoiceField]) -> List[str]:
    names = {f.name for f in merged}
    return [f.name for f in existing if f.name not in names]


@dataclass(frozen=True)
class BillingSupplement:
    """Company name and tax number optionally entered at checkout."""

    company_name: Optional[str] = None
    tax_number: Optional[str] = None

    @classmethod
    def from_session_fields(cls, custom_fields: List[Dict[str, Any]]) -> "BillingSupplement":
        values: Dict[str, Optional[str]] = {}
        for entry in custom_fields or []:
            key = entry.get("key")
            text = entry.get("text") or {}
            values[key] = _clean(text.get("value") if isinstance(text, dict) else None)
        return cls(
            company_name=values.get(COMPANY_FIELD_KEY),
            tax_number=values.get(TAX_NUMBER_FIELD_KEY),
        )

    @classmethod
    def from_invoice_fields(cls, fields: List[InvoiceField]) -> "BillingSupplement":
        by_name = {f.name: _clean(f.value) for f in fields}
        return cls(
            company_name=by_name.get(COMPANY_INVOICE_FIELD),
            tax_number=by_name.get(TAX_NUMBER_INVOICE_FIELD),
        )

    @property
    def is_empty(self) -> bool:
        return not (self.company_name or self.tax_number)

    def invoice_fields(self) -> List[InvoiceField]:
        fields: List[InvoiceField] = []
        if self.company_name:
            fields.append(InvoiceField(COMPANY_INVOICE_FIELD, self.company_name))
        if self.tax_number:
            fields.append(InvoiceField(TAX_NUMBER_INVOICE_FIELD, self.tax_number))
        return fields

    def metadata(self) -> Dict[str, str]:
        data: Dict[str, str] = {}
        if self.company_name:
            data[COMPANY_METADATA_KEY] = self.company_name
        if self.tax_number:
            data[TAX_NUMBER_METADATA_KEY] = self.tax_number
        return data


@dataclass
class Customer:
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    invoice_fields: List[InvoiceField] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Customer":
        settings = data.get("invoice_settings") or {}
        return cls(
            id=data["id"],
            email=data.get("email"),
            name=data.get("name"),
            metadata=dict(data.get("metadata") or {}),
            invoice_fields=[InvoiceField.from_dict(f) for f in settings.get("custom_fields") or [] if f],
        )


@dataclass
class Invoice:
    id: str
    status: Optional[str] = None
    customer_id: Optional[str] = None
    custom_fields: List[InvoiceField] = field(default_factory=list)
    collection_method: Optional[str] = None
    amount_due: int = 0
    auto_advance: Optional[bool] = None
    hosted_invoice_url: Optional[str] = None
    invoice_pdf: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Invoice":
        return cls(
            id=data["id"],
            status=data.get("status"),
            customer_id=_id_of(data.get("customer")),
            custom_fields=[InvoiceField.from_dict(f) for f in data.get("custom_fields") or [] if f],
            collection_method=data.get("collection_method"),
            amount_due=int(data.get("amount_due") or 0),
            auto_advance=data.get("auto_advance"),
            hosted_invoice_url=data.get("hosted_invoice_url"),
            invoice_pdf=data.get("invoice_pdf"),
        )

    @property
    def is_draft(self) -> bool:
        return self.status == "draft"


@dataclass
class CheckoutSession:
    id: str
    status: Optional[str] = None
    payment_status: Optional[str] = None
    mode: Optional[str] = None
    currency: Optional[str] = None
    amount_total: Optional[int] = None
    customer_id: Optional[str] = None
    customer_email: Optional[str] = None
    subscription_id: Optional[str] = None
    invoice_id: Optional[str] = None
    invoice: Optional[Invoice] = None
    custom_fields: List[Dict[str, Any]] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)
    client_secret: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CheckoutSession":
        details = data.get("customer_details") or {}
        customer = data.get("customer")
        customer_email = details.get("email") or data.get("customer_email")
        if not customer_email and isinstance(customer, dict):
            customer_email = customer.get("email")

        raw_invoice = data.get("invoice")
        invoice = Invoice.from_dict(raw_invoice) if isinstance(raw_invoice, dict) else None

        return cls(
            id=data["id"],
            status=data.get("status"),
            payment_status=data.get("payment_status"),
            mode=data.get("mode"),
            currency=data.get("currency"),
            amount_total=data.get("amount_total"),
            customer_id=_id_of(customer),
            customer_email=customer_email,
            subscription_id=_id_of(data.get("subscription")),
            invoice_id=_id_of(raw_invoice),
            invoice=invoice,
            custom_fields=list(data.get("custom_fields") or []),
            metadata=dict(data.get("metadata") or {}),
            client_secret=data.get("client_secret"),
        )

    @property
    def billing_supplement(self) -> BillingSupplement:
        return BillingSupplement.from_session_fields(self.custom_fields)

    def custom_field_values(self) -> List[Dict[str, Optional[str]]]:
        values = []
        for entry in self.custom_fields:
            text = entry.get("text") or {}
            values.append({"key": entry.get("key"), "value": text.get("value") if isinstance(text, dict) else None})
        return values
