# api/gateway.py - HTTP surface for the execution pipeline

import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from api.errors import APIError, classify, internal_error, status_code_for
from api.routes import (
    CONSUMER_PATH, PRODUCER_PATH, REPLAY_PATH, parse_body, route_label, route_request
)
from execution.layer import Pipeline, create_pipeline
from execution.settings import PipelineSettings, load_settings
from observability.log_config import configure_logging
from observability.metrics import api_requests

logger = structlog.get_logger()

VERSION = "1.0.0"


class EnvelopeResponse(BaseModel):
    """Uniform response envelope"""
    status: bool
    result: Optional[Any] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    version: str
    backend: str
    uptime_seconds: float


def create_app(pipeline: Optional[Pipeline] = None,
               settings: Optional[PipelineSettings] = None) -> FastAPI:
    """
    Build the API app.

    Args:
        pipeline: pre-built pipeline (tests, embedding); when omitted one is
            created from settings during startup and closed on shutdown
        settings: settings for the created pipeline (defaults to load_settings())
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = None
        if app.state.pipeline is None:
            resolved = settings or load_settings()
            configure_logging(resolved.log_level, resolved.log_format)
            owned = await create_pipeline(resolved)
            app.state.pipeline = owned
        try:
            yield
        finally:
            if owned is not None:
                await owned.close()
                app.state.pipeline = None

    app = FastAPI(
        title="Action Execution Pipeline",
        description="Submit, process and replay queued actions",
        version=VERSION,
        lifespan=lifespan
    )
    app.state.pipeline = pipeline
    app.state.started_at = time.time()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["POST", "GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.exception_handler(APIError)
    async def handle_api_error(request: Request, error: APIError):
        api_requests.labels(route=route_label(request.url.path), status=str(error.status_code)).inc()
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, error: Exception):
        logger.exception("Unhandled API error", path=request.url.path,
                         error_code=classify(error).value)
        api_requests.labels(route=route_label(request.url.path), status="500").inc()
        return JSONResponse(status_code=500, content=internal_error(str(error)).to_dict())

    async def dispatch(request: Request, path: str) -> JSONResponse:
        body = parse_body(await request.body())
        envelope = await route_request(request.app.state.pipeline, path, body)
        status_code = status_code_for(envelope)
        api_requests.labels(route=route_label(path), status=str(status_code)).inc()
        return JSONResponse(status_code=status_code, content=envelope.to_dict())

    @app.post(PRODUCER_PATH, response_model=EnvelopeResponse)
    async def producer(request: Request):
        """Submit an action or query an execution's status"""
        return await dispatch(request, PRODUCER_PATH)

    @app.post(CONSUMER_PATH, response_model=EnvelopeResponse)
    async def consumer(request: Request):
        """Process an execution by id, outside queue delivery"""
        return await dispatch(request, CONSUMER_PATH)

    @app.post(REPLAY_PATH, response_model=EnvelopeResponse)
    async def replay(request: Request):
        """Replay listed execution ids, or drain one DLQ batch"""
        return await dispatch(request, REPLAY_PATH)

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request) -> Dict[str, Any]:
        pipeline = request.app.state.pipeline
        return {
            "status": "healthy" if pipeline is not None else "starting",
            "version": VERSION,
            "backend": pipeline.settings.backend if pipeline is not None else "unknown",
            "uptime_seconds": time.time() - request.app.state.started_at
        }

    @app.get("/metrics")
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


app = create_app()
