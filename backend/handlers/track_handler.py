"""Handler relaying storefront tracking events to the automation webhook."""

from __future__ import annotations

import json
from typing import Any, Dict

from relay import RelayError
from request_parser import InvalidJSONError, RequestParser
from settings import ConfigurationError, Settings


class TrackHandler:
    def __init__(self, logger, relay, settings: Settings) -> None:
        self._logger = logger
        self._relay = relay
        self._settings = settings

    def handle(self, event: Dict[str, Any]) -> Dict[str, Any]:
        try:
            self._settings.require("WEBHOOK_URL")
        except ConfigurationError as exc:
            return self._response(500, {"error": str(exc)})

        try:
            data = RequestParser(event).json()
        except InvalidJSONError as exc:
            return self._response(400, {"ok": False, "error": str(exc)})

        try:
            status = self._relay.send(data)
        except RelayError as exc:
            self._logger.error("Track relay error: %s", exc)
            return self._response(500, {"ok": False, "error": str(exc)})
        return self._response(200, {"ok": True, "status": status})

    @staticmethod
    def _response(status: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "statusCode": status,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps(payload),
        }


def create_track_handler(logger, relay, settings: Settings):
    handler = TrackHandler(logger=logger, relay=relay, settings=settings)
    return handler.handle
