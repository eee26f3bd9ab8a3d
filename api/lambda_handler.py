# api/lambda_handler.py
"""
AWS Lambda entry point for both SQS deliveries and API Gateway requests.

The pipeline and its event loop are created once per process and reused
across invocations.
"""
import asyncio
import json
from typing import Any, Dict, Optional

import structlog

from api.errors import APIError, classify, internal_error, status_code_for
from api.routes import parse_body, route_label, route_request
from execution.layer import Pipeline, create_pipeline
from execution.settings import load_settings
from observability.log_config import configure_logging
from observability.metrics import api_requests

logger = structlog.get_logger()

SQS_SOURCE = "sqs"
API_GATEWAY_SOURCE = "apigateway"
UNKNOWN_SOURCE = "unknown"

CORS_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def create_response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": dict(CORS_HEADERS),
        "body": json.dumps(body, default=str)
    }


def detect_event_source(event: Dict[str, Any]) -> str:
    records = event.get("Records") or []
    if records and records[0].get("eventSource") == "aws:sqs":
        return SQS_SOURCE
    if any(event.get(k) for k in ("requestContext", "httpMethod", "path", "rawPath")):
        return API_GATEWAY_SOURCE
    return UNKNOWN_SOURCE


async def handle_sqs_event(pipeline: Pipeline, event: Dict[str, Any]) -> Dict[str, Any]:
    return await pipeline.consumer.handle_queue_batch(event.get("Records") or [])


async def handle_api_gateway_event(pipeline: Pipeline, event: Dict[str, Any]) -> Dict[str, Any]:
    path = event.get("path") or event.get("rawPath") or ""
    try:
        body = parse_body(event.get("body"))
        envelope = await route_request(pipeline, path, body)
        status_code = status_code_for(envelope)
        payload = envelope.to_dict()
    except APIError as e:
        status_code, payload = e.status_code, e.to_dict()
    except Exception as e:
        logger.exception("API Gateway error", path=path, error_code=classify(e).value)
        status_code, payload = 500, internal_error(str(e)).to_dict()

    api_requests.labels(route=route_label(path), status=str(status_code)).inc()
    return create_response(status_code, payload)


async def handle_event(pipeline: Pipeline, event: Dict[str, Any]) -> Dict[str, Any]:
    source = detect_event_source(event)
    logger.info("Event received", source=source)

    if source == SQS_SOURCE:
        return await handle_sqs_event(pipeline, event)
    if source == API_GATEWAY_SOURCE:
        return await handle_api_gateway_event(pipeline, event)

    return create_response(400, {"status": False, "error": "Unknown event source", "result": None})


_loop: Optional[asyncio.AbstractEventLoop] = None
_pipeline: Optional[Pipeline] = None


def _runtime():
    global _loop, _pipeline
    if _pipeline is None:
        settings = load_settings()
        configure_logging(settings.log_level, settings.log_format)
        _loop = asyncio.new_event_loop()
        _pipeline = _loop.run_until_complete(create_pipeline(settings))
    return _loop, _pipeline


def handler(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
    """Lambda handler"""
    loop, pipeline = _runtime()
    return loop.run_until_complete(handle_event(pipeline, event))
