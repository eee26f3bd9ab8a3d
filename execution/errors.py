"""
Error taxonomy for the execution pipeline.

Flows raise these; entry points turn them into response envelopes.
"""
from typing import Optional


class PipelineError(Exception):
    """Base class for all pipeline errors"""

    def __init__(self, message: str, execution_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.execution_id = execution_id


class ValidationError(PipelineError):
    """Bad or missing action/field. Reported synchronously, never retried."""


class InvalidTransitionError(ValidationError):
    """Requested status change is not part of the lifecycle"""

    def __init__(self, execution_id: str, current: str, target: str):
        super().__init__(
            f"Invalid status transition for {execution_id}: {current} -> {target}",
            execution_id=execution_id
        )
        self.current = current
        self.target = target


class NotFoundError(PipelineError):
    """Unknown execution id"""

    def __init__(self, message: str = "Execution not found", execution_id: Optional[str] = None):
        super().__init__(message, execution_id=execution_id)


class ExecutorError(PipelineError):
    """The action itself failed. Drives the retry/fail decision."""


class InfrastructureError(PipelineError):
    """A record store or queue call failed"""


class PartialSubmitError(InfrastructureError):
    """Record creation and enqueue did not both succeed"""

    def __init__(self, execution_id: str, record_error: Optional[BaseException],
                 queue_error: Optional[BaseException]):
        failed = []
        if record_error is not None:
            failed.append(f"record create failed: {record_error}")
        if queue_error is not None:
            failed.append(f"enqueue failed: {queue_error}")
        super().__init__(
            f"Submission of {execution_id} incomplete ({'; '.join(failed)})",
            execution_id=execution_id
        )
        self.record_created = record_error is None
        self.enqueued = queue_error is None
        self.record_error = record_error
        self.queue_error = queue_error


class UpstreamUnavailableError(ExecutorError):
    """Transport failure or 5xx from an external API; counts toward opening its circuit"""
