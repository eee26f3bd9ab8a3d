"""
Replay flow: re-enqueue failed or dead-lettered executions with a fresh
retry budget, and drain the dead-letter queue one bounded batch at a time.
"""
from typing import Optional, Dict, Any, List

import structlog
from opentelemetry import trace

from execution.errors import PipelineError
from execution.models import Envelope, ExecutionStatus, ReplayOutcome, ReplaySummary
from execution.queue import MAX_BATCH
from observability.metrics import replay_outcomes, dlq_messages_deleted

logger = structlog.get_logger()
tracer = trace.get_tracer(__name__)


class Replayer:

    def __init__(self, state_machine: Any, queue: Any, audit: Any, batch_size: int = MAX_BATCH):
        self.state = state_machine
        self.queue = queue
        self.audit = audit
        self.batch_size = batch_size

    async def replay_one(self, execution_id: str) -> ReplayOutcome:
        """
        Resend one execution to the main queue and reset it to queued/0.

        Never raises: any failure is reported in the outcome so batch
        callers can continue with the remaining ids.
        """
        try:
            execution = await self.state.store.get(execution_id)
            if execution is None:
                return self._outcome(execution_id, False, "Execution not found")

            if execution.status == ExecutionStatus.COMPLETED:
                return self._outcome(execution_id, False, "Execution already completed")

            payload = execution.payload or {"action": execution.action}

            with tracer.start_as_current_span("execution.replay") as span:
                span.set_attribute("execution.id", execution_id)
                await self.queue.send(execution_id, payload)
                await self.state.reset_for_replay(execution)

            await self.audit.info(execution_id, "Execution replayed from DLQ", payload=payload)
            return self._outcome(execution_id, True)

        except PipelineError as e:
            logger.error("Replay error", execution_id=execution_id, error=e.message)
            return self._outcome(execution_id, False, e.message)
        except Exception as e:
            logger.error("Replay error", execution_id=execution_id, error=str(e))
            return self._outcome(execution_id, False, str(e) or type(e).__name__)

    @staticmethod
    def _outcome(execution_id: str, success: bool, error: Optional[str] = None) -> ReplayOutcome:
        replay_outcomes.labels(outcome="replayed" if success else "failed").inc()
        return ReplayOutcome(execution_id=execution_id, success=success, error=error)

    async def replay_many(self, execution_ids: List[str]) -> ReplaySummary:
        """Replay an explicit id list, bypassing the DLQ"""
        details = [await self.replay_one(execution_id) for execution_id in execution_ids]
        return ReplaySummary(total=len(execution_ids), details=details)

    async def replay_all_from_dlq(self, batch_size: Optional[int] = None) -> ReplaySummary:
        """
        Drain at most one batch from the dead-letter queue.

        A dead-letter message is deleted only after its replay succeeded;
        otherwise it stays and reappears after its visibility timeout.
        """
        size = max(1, min(batch_size or self.batch_size, MAX_BATCH))
        messages = await self.queue.receive_dead_letter(size)

        if not messages:
            return ReplaySummary(total=0, message="No messages in DLQ")

        details = []
        for message in messages:
            try:
                execution_id = message.parse().execution_id
            except ValueError as e:
                logger.warning("Unparseable DLQ message", message_id=message.message_id, error=str(e))
                details.append(self._outcome(message.message_id or "unknown", False,
                                             f"Invalid DLQ message: {e}"))
                continue

            outcome = await self.replay_one(execution_id)
            details.append(outcome)

            if outcome.success:
                try:
                    await self.queue.delete_dead_letter(message.handle)
                    dlq_messages_deleted.inc()
                except PipelineError as e:
                    # Replay already happened; a later drain may resend it
                    logger.warning("DLQ delete failed after replay",
                                   execution_id=execution_id, error=e.message)

        return ReplaySummary(total=len(messages), details=details)

    async def handle_replay(self, body: Optional[Dict[str, Any]]) -> Envelope:
        """Replay the given execution_ids, or one DLQ batch when none are given"""
        try:
            execution_ids = (body or {}).get('execution_ids')
            if isinstance(execution_ids, list):
                summary = await self.replay_many(execution_ids)
            else:
                summary = await self.replay_all_from_dlq()
            return Envelope.ok(summary.to_dict())

        except PipelineError as e:
            return Envelope.fail(e.message)
        except Exception as e:
            logger.error("Replay error", error=str(e))
            return Envelope.fail(str(e))
