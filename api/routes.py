# api/routes.py
"""Path-based dispatch shared by the HTTP app and the Lambda handler"""
import json
from typing import Any, Dict, Optional, Union

import structlog

from api.errors import APIError, invalid_body_error, invalid_route_error
from execution.models import Envelope

logger = structlog.get_logger()

PRODUCER_PATH = "/producer"
CONSUMER_PATH = "/consumer"
REPLAY_PATH = "/replay"
UNKNOWN_ROUTE = "unknown"

ROUTES = (PRODUCER_PATH, CONSUMER_PATH, REPLAY_PATH)


def route_label(path: Optional[str]) -> str:
    """Bounded metrics label: the matched route, or "unknown" """
    for route in ROUTES:
        if route in (path or ""):
            return route
    return UNKNOWN_ROUTE


def parse_body(raw: Optional[Union[str, bytes, Dict[str, Any]]]) -> Dict[str, Any]:
    """
    Decode a request body into a dict.

    Raises:
        APIError: body is not valid JSON or not a JSON object
    """
    if raw is None or raw == "" or raw == b"":
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        body = json.loads(raw)
    except ValueError as e:
        raise invalid_body_error(str(e))
    if not isinstance(body, dict):
        raise invalid_body_error("expected a JSON object")
    return body


async def route_request(pipeline: Any, path: str, body: Dict[str, Any]) -> Envelope:
    """Route a request to the producer, consumer or replay flow"""
    path = path or ""

    try:
        if PRODUCER_PATH in path:
            return await pipeline.producer.handle_producer(body)

        if CONSUMER_PATH in path:
            return await pipeline.consumer.handle_consumer(body)

        if REPLAY_PATH in path:
            return await pipeline.replayer.handle_replay(body)

        raise invalid_route_error(path)

    except APIError as e:
        logger.info("Request rejected", path=path, error_code=e.error_code.value)
        return e.to_envelope()
