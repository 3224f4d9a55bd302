import json
import logging
from typing import Any, Dict, Optional

from handlers import (
    create_checkout_session_handler,
    create_confirm_session_handler,
    create_stripe_webhook_handler,
    create_track_handler,
)
from logging_utils import configure_logging
from reconciliation import BillingReconciler
from relay import AutomationRelay
from router import LambdaRouter
from settings import Settings
from stripe_gateway import StripeGateway


configure_logging()
logger = logging.getLogger(__name__)

# Built once per container and shared by every invocation.
settings = Settings.from_env()
gateway: Optional[StripeGateway] = (
    StripeGateway(settings.stripe_secret_key, settings.stripe_api_version)
    if settings.stripe_secret_key
    else None
)
reconciler = BillingReconciler(logger=logger, gateway=gateway, settings=settings)
relay = AutomationRelay(logger=logger, url=settings.webhook_url, timeout=settings.relay_timeout_seconds)

# =====================
# Request handlers
# =====================

handle_checkout_session = create_checkout_session_handler(logger=logger, gateway=gateway, settings=settings)
handle_stripe_webhook = create_stripe_webhook_handler(logger=logger, reconciler=reconciler, settings=settings)
handle_confirm_session = create_confirm_session_handler(logger=logger, gateway=gateway, relay=relay, settings=settings)
handle_track = create_track_handler(logger=logger, relay=relay, settings=settings)


def handle_health(event: Dict[str, Any]) -> Dict[str, Any]:
    """Handle health check."""
    return {
        'statusCode': 200,
        'headers': {'Content-Type': 'application/json'},
        'body': json.dumps({'status': 'healthy', 'service': 'checkout-backend'})
    }


router = LambdaRouter(settings.allowed_origins)
HANDLERS = {
    ("POST", "/api/checkout-session"): handle_checkout_session,
    ("POST", "/api/stripe-webhook"): handle_stripe_webhook,
    ("POST", "/api/confirm-session"): handle_confirm_session,
    ("POST", "/api/track"): handle_track,
    ("GET", "/api/health"): handle_health,
}


def lambda_handler(event, context):
    """Main Lambda entry point."""
    try:
        return router.handle(event, HANDLERS)
    finally:
        logger.info("Lambda handler completed")
