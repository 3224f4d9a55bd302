"""Factories for Lambda request handlers."""

from .checkout_session_handler import create_checkout_session_handler
from .confirm_session_handler import create_confirm_session_handler
from .stripe_webhook_handler import create_stripe_webhook_handler
from .track_handler import create_track_handler

__all__ = [
    "create_checkout_session_handler",
    "create_confirm_session_handler",
    "create_stripe_webhook_handler",
    "create_track_handler",
]
