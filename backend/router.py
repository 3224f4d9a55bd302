import json
import logging
from typing import Callable, Dict, Any, Iterable, Tuple

from request_parser import RequestParser


Handler = Callable[[Dict[str, Any]], Dict[str, Any]]


class LambdaRouter:
    """Simple router for API Gateway events.

    CORS headers are only attached when the caller's Origin is in
    ``allowed_origins``; other origins get no CORS headers at all.
    """

    def __init__(self, allowed_origins: Iterable[str]):
        self.allowed_origins = {o.rstrip('/') for o in allowed_origins}
        self.logger = logging.getLogger(__name__)

    def cors_headers(self, origin: str) -> Dict[str, str]:
        if not origin or origin not in self.allowed_origins:
            return {}
        return {
            'Access-Control-Allow-Origin': origin,
            'Access-Control-Allow-Headers': 'Content-Type',
            'Access-Control-Allow-Methods': 'OPTIONS, POST, GET',
            'Vary': 'Origin',
        }

    def handle(self, event: Dict[str, Any], handlers: Dict[Tuple[str, str], Handler]) -> Dict[str, Any]:
        origin = RequestParser(event).origin
        cors_headers = self.cors_headers(origin)
        try:
            path = (event.get('path', '') or '').rstrip('/') or '/'
            method = (event.get('httpMethod', '') or '').upper()
            known_paths = {p for (_, p) in handlers}

            if method == 'OPTIONS':
                return {'statusCode': 200, 'headers': dict(cors_headers), 'body': ''}

            self.logger.info(f"Processing request: {method} {path}")

            func = handlers.get((method, path))
            if func:
                response = func(event)
            elif path in known_paths:
                response = self._json(405, {'error': 'Method Not Allowed'})
            else:
                response = self._json(404, {'error': 'Not found'})

            if 'headers' not in response:
                response['headers'] = {}
            response['headers'].update(cors_headers)
            return response

        except Exception as e:
            self.logger.exception(f"Lambda handler error: {str(e)}")
            return {
                'statusCode': 500,
                'headers': {'Content-Type': 'application/json', **cors_headers},
                'body': json.dumps({'error': f'Internal server error: {str(e)}'})
            }

    @staticmethod
    def _json(status: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'statusCode': status,
            'headers': {'Content-Type': 'application/json'},
            'body': json.dumps(payload),
        }
