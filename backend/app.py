"""Local development server for the checkout backend.

Serves the same handlers as the Lambda deployment behind Flask so the
storefront and the Stripe CLI can talk to a laptop:

```
pip install -e .
python backend/app.py
# In another terminal:
stripe listen --forward-to localhost:4242/api/stripe-webhook
```

Configuration comes from the same environment variables as Lambda
(``STRIPE_SECRET_KEY``, ``STRIPE_WEBHOOK_SECRET``, ``PRICE_*``, ``WEBHOOK_URL``).
"""

from __future__ import annotations

import base64
import os
from typing import Any, Dict

from flask import Flask, Response, request
from flask_cors import CORS

from lambda_function import HANDLERS, settings


def create_app() -> Flask:
    app = Flask(__name__)
    # Only the storefront origins may call the API from a browser.
    CORS(
        app,
        resources={r"/api/*": {"origins": list(settings.allowed_origins)}},
        supports_credentials=False,
        allow_headers=["Content-Type"],
        methods=["GET", "POST", "OPTIONS"],
    )

    def dispatch(path: str) -> Response:
        handler = HANDLERS.get((request.method, path))
        if handler is None:
            return Response('{"error": "Method Not Allowed"}', status=405, mimetype="application/json")
        result = handler(to_proxy_event(path))
        return to_flask_response(result)

    for method, path in HANDLERS:
        endpoint = path.strip("/").replace("/", "_").replace("-", "_")
        if endpoint in app.view_functions:
            continue
        app.add_url_rule(path, endpoint, lambda path=path: dispatch(path), methods=["GET", "POST"])

    return app


def to_proxy_event(path: str) -> Dict[str, Any]:
    """Translate the current Flask request into an API Gateway proxy event."""
    # Raw bytes are required for Stripe signature verification.
    raw = request.get_data(cache=False, as_text=False)
    return {
        "path": path,
        "httpMethod": request.method,
        "headers": dict(request.headers),
        "queryStringParameters": request.args.to_dict() or None,
        "body": base64.b64encode(raw).decode("ascii"),
        "isBase64Encoded": True,
    }


def to_flask_response(result: Dict[str, Any]) -> Response:
    body = result.get("body", "")
    if result.get("isBase64Encoded"):
        body = base64.b64decode(body)
    return Response(body, status=result.get("statusCode", 200), headers=result.get("headers") or {})


app = create_app()


if __name__ == "__main__":
    # Default port matches Stripe's quickstart examples
    app.run(port=int(os.environ.get("PORT", "4242")))
