"""Deterministic idempotency keys for mutating Stripe calls.

Every mutation performed while handling a webhook event is keyed by the
resource it touches, the event that triggered it and the operation name, so a
redelivered event replays the original request instead of applying it twice.
"""

from __future__ import annotations

import hashlib

MAX_KEY_LENGTH = 255


def derive_key(resource_id: str, event_id: str, operation: str = "update") -> str:
    if not resource_id or not event_id:
        raise ValueError("resource_id and event_id are required for an idempotency key")
    key = f"{operation}:{resource_id}:{event_id}"
    if len(key) <= MAX_KEY_LENGTH:
        return key
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
    return f"{operation[:100]}:{digest}"
