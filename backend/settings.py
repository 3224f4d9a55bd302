"""Environment-driven configuration for the checkout backend."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple


DEFAULT_ALLOWED_ORIGINS = (
    "https://ai-business-engine.com",
    "https://www.ai-business-engine.com",
)
DEFAULT_THANK_YOU_URL = "https://ai-business-engine.com/thank-you"


class ConfigurationError(Exception):
    """Raised when a required environment value is missing."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Missing {name}")
        self.name = name


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _origins(value: Optional[str]) -> Tuple[str, ...]:
    if value is None:
        return DEFAULT_ALLOWED_ORIGINS
    return tuple(o.strip().rstrip("/") for o in value.split(",") if o.strip())


@dataclass(frozen=True)
class Settings:
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_api_version: Optional[str] = None
    price_ids: Dict[str, Optional[str]] = field(default_factory=dict)
    webhook_url: Optional[str] = None
    allowed_origins: Tuple[str, ...] = DEFAULT_ALLOWED_ORIGINS
    default_thank_you_url: str = DEFAULT_THANK_YOU_URL
    company_field_label: str = "Company name"
    tax_field_label: str = "Tax number"
    finalize_draft_invoices: bool = True
    pay_finalized_invoices: bool = False
    relay_timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        def get(name: str) -> Optional[str]:
            value = env.get(name)
            return value.strip() if value and value.strip() else None

        try:
            timeout = float(get("RELAY_TIMEOUT_SECONDS") or 10)
        except ValueError:
            timeout = 10.0

        return cls(
            stripe_secret_key=get("STRIPE_SECRET_KEY"),
            stripe_webhook_secret=get("STRIPE_WEBHOOK_SECRET"),
            stripe_api_version=get("STRIPE_API_VERSION"),
            price_ids={
                "PRICE_ONE_TIME": get("PRICE_ONE_TIME"),
                "PRICE_SPLIT_2": get("PRICE_SPLIT_2"),
                "PRICE_SPLIT_3": get("PRICE_SPLIT_3"),
            },
            webhook_url=get("WEBHOOK_URL"),
            allowed_origins=_origins(env.get("ALLOWED_ORIGINS")),
            default_thank_you_url=get("DEFAULT_THANK_YOU_URL") or DEFAULT_THANK_YOU_URL,
            company_field_label=get("COMPANY_FIELD_LABEL") or "Company name",
            tax_field_label=get("TAX_FIELD_LABEL") or "Tax number",
            finalize_draft_invoices=_flag(env.get("FINALIZE_DRAFT_INVOICES"), True),
            pay_finalized_invoices=_flag(env.get("PAY_FINALIZED_INVOICES"), False),
            relay_timeout_seconds=timeout,
        )

    def require(self, *names: str) -> None:
        """Raise ConfigurationError for the first missing value among ``names``.

        Names are environment variable names, e.g. ``STRIPE_SECRET_KEY``.
        """
        for name in names:
            if not self.value_of(name):
                raise ConfigurationError(name)

    def value_of(self, name: str) -> Optional[str]:
        if name in self.price_ids:
            return self.price_ids[name]
        attribute = {
            "STRIPE_SECRET_KEY": "stripe_secret_key",
            "STRIPE_WEBHOOK_SECRET": "stripe_webhook_secret",
            "WEBHOOK_URL": "webhook_url",
        }.get(name)
        if attribute is None:
            raise KeyError(name)
        return getattr(self, attribute)
