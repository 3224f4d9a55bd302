"""Forward JSON events to the downstream automation webhook (Make/Zapier)."""
from __future__ import annotations

import json
import time
import urllib.error
import urllib.request
from typing import Any, Dict, Optional, Protocol


PROJECT_NAME = "aibe-checkout"


class LoggerLike(Protocol):
    def info(self, msg: str, *args, **kwargs) -> None: ...
    def warning(self, msg: str, *args, **kwargs) -> None: ...
    def error(self, msg: str, *args, **kwargs) -> None: ...


class RelayError(Exception):
    """Raised when the downstream endpoint cannot be reached or rejects the event."""


class AutomationRelay:
    def __init__(self, logger: LoggerLike, url: Optional[str], timeout: float = 10.0) -> None:
        self._logger = logger
        self._url = url
        self._timeout = timeout

    def send(self, payload: Dict[str, Any], idempotency_key: Optional[str] = None) -> int:
        """POST ``payload`` wrapped with project and timestamp; return the HTTP status."""
        if not self._url:
            raise RelayError("Missing WEBHOOK_URL")

        envelope = {"project": PROJECT_NAME, "receivedAt": int(time.time() * 1000), **payload}
        headers = {"Content-Type": "application/json"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        request = urllib.request.Request(
            self._url,
            data=json.dumps(envelope).encode("utf-8"),
            headers=headers,
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as resp:
                status = resp.status
        except urllib.error.HTTPError as exc:
            self._logger.error("Relay rejected with HTTP %s", exc.code)
            raise RelayError(f"Relay responded with HTTP {exc.code}") from exc
        except (urllib.error.URLError, OSError) as exc:
            self._logger.error("Relay unreachable: %s", exc)
            raise RelayError(f"Relay failed: {exc}") from exc

        self._logger.info("Relayed %s event (HTTP %s)", payload.get("event", "tracking"), status)
        return status
