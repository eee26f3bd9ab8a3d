"""
Producer flow: validate an action request, persist the execution record and
enqueue it.

Record creation and enqueue run concurrently and are not transactional. A
partial failure is surfaced to the caller as PartialSubmitError; the replay
path is how a record without a message gets reconciled.
"""
import asyncio
from typing import Dict, Any

import structlog
from opentelemetry import trace

from execution.actions import Action, DispatchMode, validate_request
from execution.errors import PipelineError, PartialSubmitError, NotFoundError, ValidationError
from execution.models import Envelope, new_execution_id
from observability.metrics import executions_submitted

logger = structlog.get_logger()
tracer = trace.get_tracer(__name__)


class Producer:

    def __init__(self, store: Any, queue: Any, executor: Any, audit: Any):
        self.store = store
        self.queue = queue
        self.executor = executor
        self.audit = audit

    async def submit(self, body: Dict[str, Any]) -> str:
        """
        Create and enqueue a new execution.

        Returns:
            The new execution id

        Raises:
            ValidationError: invalid action, missing fields, or an action
                that is not queueable
            PartialSubmitError: record create and/or enqueue failed
        """
        action = validate_request(body)
        if action.mode != DispatchMode.QUEUED:
            raise ValidationError(f"Action {action.action_name} is not queueable")
        return await self._create_and_enqueue(action, body)

    async def _create_and_enqueue(self, action: Action, body: Dict[str, Any]) -> str:
        execution_id = new_execution_id()

        with tracer.start_as_current_span("execution.submit") as span:
            span.set_attribute("execution.id", execution_id)
            span.set_attribute("execution.action", action.action_name)

            record_result, queue_result = await asyncio.gather(
                self.store.create(execution_id, body),
                self.queue.send(execution_id, body),
                return_exceptions=True
            )

        record_error = record_result if isinstance(record_result, BaseException) else None
        queue_error = queue_result if isinstance(queue_result, BaseException) else None
        if record_error or queue_error:
            logger.error("Execution submission incomplete",
                         execution_id=execution_id,
                         record_created=record_error is None,
                         enqueued=queue_error is None)
            raise PartialSubmitError(execution_id, record_error, queue_error)

        executions_submitted.labels(action=action.action_name).inc()
        await self.audit.info(execution_id, "Execution queued", action=action.action_name)
        return execution_id

    async def get_status(self, execution_id: str) -> Dict[str, Any]:
        execution = await self.store.get(execution_id)
        if execution is None:
            raise NotFoundError(execution_id=execution_id)
        return execution.status_view()

    async def handle_producer(self, body: Dict[str, Any]) -> Envelope:
        """Entry point: validate, then query, run directly, or queue"""
        try:
            action = validate_request(body)

            if action.mode == DispatchMode.QUERY:
                return Envelope.ok(await self.get_status(body['execution_id']))

            if action.mode == DispatchMode.DIRECT:
                result = await self.executor.execute(action, body)
                return Envelope.ok(result)

            execution_id = await self._create_and_enqueue(action, body)
            return Envelope.ok({
                "execution_id": execution_id,
                "message": "Request queued successfully"
            })

        except PipelineError as e:
            logger.warning("Producer request failed", error=e.message,
                           error_type=type(e).__name__)
            return Envelope.fail(e.message)
        except Exception as e:
            logger.exception("Producer error")
            return Envelope.fail(str(e))
