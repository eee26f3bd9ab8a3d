"""
Execution lifecycle state machine.

    queued      --(process starts)-->                 processing
    processing  --(executor succeeds)-->              completed   [terminal]
    processing  --(executor fails, count < max)-->    queued      [retry_count++]
    processing  --(executor fails, count >= max)-->   failed      [terminal, retry_count++]
    failed      --(replay)-->                         queued      [retry_count = 0]

The record store is the single source of truth for status and retry state.
Each transition is one write-through update; there is no optimistic lock,
single delivery per message is left to the queue's visibility semantics.
"""
from typing import Optional, Dict, Any, Set, Tuple

import structlog

from execution.errors import InvalidTransitionError, NotFoundError
from execution.models import Execution, ExecutionStatus
from observability.metrics import execution_transitions

logger = structlog.get_logger()

DEFAULT_MAX_RETRY_ATTEMPTS = 3

Q = ExecutionStatus.QUEUED
P = ExecutionStatus.PROCESSING
C = ExecutionStatus.COMPLETED
F = ExecutionStatus.FAILED

ORGANIC_TRANSITIONS: Set[Tuple[ExecutionStatus, ExecutionStatus]] = {
    (Q, P),
    (P, P),  # redelivery after a crash or visibility timeout
    (P, C),
    (P, Q),
    (P, F),
}

# Replay may requeue anything that has not completed; queued/processing
# cover records that were created but never enqueued, or got stuck.
REPLAY_TRANSITIONS: Set[Tuple[ExecutionStatus, ExecutionStatus]] = {
    (F, Q),
    (Q, Q),
    (P, Q),
}


class ExecutionStateMachine:
    """Owns status transitions, retry accounting and the retry-vs-fail decision"""

    def __init__(self, store: Any, max_retry_attempts: int = DEFAULT_MAX_RETRY_ATTEMPTS):
        if max_retry_attempts < 1:
            raise ValueError("max_retry_attempts must be >= 1")
        self.store = store
        self.max_retry_attempts = max_retry_attempts

    @staticmethod
    def can_transition(current: ExecutionStatus, target: ExecutionStatus,
                       replay: bool = False) -> bool:
        allowed = REPLAY_TRANSITIONS if replay else ORGANIC_TRANSITIONS
        return (current, target) in allowed

    def _check(self, execution: Execution, target: ExecutionStatus, replay: bool = False) -> None:
        if not self.can_transition(execution.status, target, replay=replay):
            raise InvalidTransitionError(execution.execution_id,
                                         execution.status.value, target.value)

    async def _write(self, execution: Execution, target: ExecutionStatus,
                     result: Optional[Dict[str, Any]], retry_count: int) -> Execution:
        await self.store.update(execution.execution_id, target,
                                result=result, retry_count=retry_count)
        execution_transitions.labels(status=target.value).inc()
        logger.info("Execution transition",
                    execution_id=execution.execution_id,
                    from_status=execution.status.value,
                    to_status=target.value,
                    retry_count=retry_count)

        execution.status = target
        execution.retry_count = retry_count
        if result is not None:
            execution.result = result
        return execution

    async def load(self, execution_id: str) -> Execution:
        execution = await self.store.get(execution_id)
        if execution is None:
            raise NotFoundError(execution_id=execution_id)
        return execution

    async def begin(self, execution: Execution) -> Execution:
        """queued -> processing, carrying the current retry_count forward"""
        self._check(execution, P)
        return await self._write(execution, P, None, execution.retry_count)

    async def complete(self, execution: Execution, result: Dict[str, Any]) -> Execution:
        """processing -> completed, storing the executor's result"""
        self._check(execution, C)
        return await self._write(execution, C, result, execution.retry_count)

    async def record_failure(self, execution_id: str, error: str) -> Execution:
        """
        Account for one failed attempt.

        Re-reads the record for the last known retry_count and increments it.
        At max_retry_attempts the execution fails terminally with {error} as
        its result; below it goes back to queued with result untouched.

        Returns:
            The execution after the write
        """
        execution = await self.load(execution_id)
        retry_count = execution.retry_count + 1

        if retry_count >= self.max_retry_attempts:
            self._check(execution, F)
            return await self._write(execution, F, {"error": error}, retry_count)

        self._check(execution, Q)
        return await self._write(execution, Q, None, retry_count)

    async def reset_for_replay(self, execution: Execution) -> Execution:
        """Give a non-completed execution a fresh retry budget"""
        self._check(execution, Q, replay=True)
        return await self._write(execution, Q, None, 0)
