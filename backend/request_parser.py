import base64
import json
from typing import Any, Dict, Optional


class InvalidJSONError(ValueError):
    """Raised when a request body is present but is not a JSON object."""


class RequestParser:
    """Utility for working with API Gateway events."""

    def __init__(self, event: Dict[str, Any]):
        self.event = event or {}
        self.headers = self._lower_headers(self.event.get("headers", {}))
        self.body = self._get_body_bytes(self.event)

    @staticmethod
    def _lower_headers(headers: Dict[str, Any]) -> Dict[str, str]:
        return {str(k).lower(): v for k, v in (headers or {}).items()}

    @staticmethod
    def _get_body_bytes(event: Dict[str, Any]) -> bytes:
        body = event.get("body", b"")
        if event.get("isBase64Encoded"):
            if isinstance(body, str):
                return base64.b64decode(body)
            return base64.b64decode(body or b"")
        if isinstance(body, str):
            return body.encode("utf-8")
        return body or b""

    @property
    def origin(self) -> str:
        return (self.headers.get("origin") or "").rstrip("/")

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())

    def json(self) -> Dict[str, Any]:
        """Return the parsed JSON object body; an empty body yields ``{}``."""
        raw = (self.body or b"").decode("utf-8", "replace").strip()
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise InvalidJSONError(f"Invalid JSON body: {exc}") from exc
        if not isinstance(data, dict):
            raise InvalidJSONError("JSON body must be an object")
        return data
