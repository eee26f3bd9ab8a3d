"""
Consumer flow: execute a queued action and apply the state machine's
success/failure outcome.

process() writes the failure state first and then re-raises, so that the
queue transport redelivers the message. The transport's own receive count
moves it to the DLQ; keep its max receive count equal to max_retry_attempts.
"""
import time
from typing import Optional, Dict, Any, List

import structlog
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from execution.errors import PipelineError
from execution.models import Envelope, ExecutionStatus, QueueMessage
from observability.metrics import execution_retries, execution_processing_time

logger = structlog.get_logger()
tracer = trace.get_tracer(__name__)


class Consumer:

    def __init__(self, state_machine: Any, executor: Any, audit: Any):
        self.state = state_machine
        self.executor = executor
        self.audit = audit

    async def process(self, execution_id: str, action: str,
                      fields: Optional[Dict[str, Any]] = None) -> Envelope:
        """
        Run one attempt of an execution.

        Args:
            execution_id: execution to run
            action: action name from the message
            fields: action fields; the stored payload is used when omitted

        Returns:
            Envelope with the executor's result

        Raises:
            NotFoundError: unknown execution id
            Exception: the attempt's failure, after the retry/fail write
        """
        execution = await self.state.load(execution_id)

        # Duplicate delivery of a finished execution: acknowledge, do not rerun
        if execution.status == ExecutionStatus.COMPLETED:
            logger.info("Skipping completed execution", execution_id=execution_id)
            return Envelope.ok(execution.result)
        if execution.status == ExecutionStatus.FAILED:
            logger.info("Skipping failed execution", execution_id=execution_id)
            return Envelope.fail("Execution already failed")

        if fields is None:
            fields = execution.payload or {"action": action}

        with tracer.start_as_current_span("execution.process") as span:
            span.set_attribute("execution.id", execution_id)
            span.set_attribute("execution.action", action or "")
            span.set_attribute("execution.retry_count", execution.retry_count)

            execution = await self.state.begin(execution)
            await self.audit.info(execution_id, f"Processing {action}", action=action)

            started = time.perf_counter()
            try:
                result = await self.executor.execute(action, fields)
                await self.state.complete(execution, result)
            except Exception as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                await self._record_failure(execution_id, action, e)
                raise
            finally:
                execution_processing_time.labels(action=action or "unknown").observe(
                    time.perf_counter() - started)

        await self.audit.info(execution_id, "Processing completed successfully", result=result)
        return Envelope.ok(result)

    async def _record_failure(self, execution_id: str, action: str, error: Exception) -> None:
        message = getattr(error, 'message', None) or str(error) or type(error).__name__
        logger.warning("Processing error", execution_id=execution_id,
                       action=action, error=message)

        execution = await self.state.record_failure(execution_id, message)
        if execution.status == ExecutionStatus.FAILED:
            await self.audit.error(
                execution_id,
                f"Processing failed after {execution.retry_count} attempts",
                error=message
            )
        else:
            execution_retries.labels(action=action or "unknown").inc()
            await self.audit.warning(
                execution_id,
                f"Processing failed, retry {execution.retry_count}/{self.state.max_retry_attempts}",
                error=message
            )

    async def handle_consumer(self, body: Dict[str, Any]) -> Envelope:
        """Manual processing of one execution by id; never raises"""
        try:
            execution_id = (body or {}).get('execution_id')
            if not execution_id:
                return Envelope.fail("Missing required field: execution_id")

            execution = await self.state.store.get(execution_id)
            if execution is None:
                return Envelope.fail("Execution not found")

            return await self.process(execution.execution_id, execution.action, execution.payload)

        except PipelineError as e:
            return Envelope.fail(e.message)
        except Exception as e:
            logger.warning("Consumer error", error=str(e))
            return Envelope.fail(str(e))

    async def handle_message(self, body: Any) -> Envelope:
        """Process one queue envelope; raises on failure so it is redelivered"""
        message = QueueMessage.from_body(body)
        return await self.process(message.execution_id, message.action, message.fields)

    async def handle_queue_batch(self, records: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Process an SQS event batch sequentially.

        Returns:
            Partial batch response listing the records that failed
        """
        failures = []
        for record in records:
            message_id = record.get('messageId')
            try:
                await self.handle_message(record.get('body'))
            except Exception as e:
                logger.warning("Queue record failed", message_id=message_id, error=str(e))
                failures.append({"itemIdentifier": message_id})

        return {"batchItemFailures": failures}
