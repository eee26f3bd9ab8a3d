"""
Shared test doubles for the execution pipeline.

In-memory adapters stand in for DynamoDB/SQS; the executor is scripted.
"""
import pytest

from execution.actions import Action
from execution.errors import ExecutorError, InfrastructureError
from execution.layer import assemble_pipeline
from execution.queue import InMemoryQueue
from execution.settings import PipelineSettings
from storage.logs import InMemoryLogStore
from storage.records import InMemoryRecordStore


class ScriptedExecutor:
    """Executor whose outcomes are queued per action; succeeds by default"""

    def __init__(self):
        self.script = {}
        self.calls = []

    def then(self, action: str, *outcomes):
        self.script.setdefault(action, []).extend(outcomes)
        return self

    def fail(self, action: str, times: int = 1, message: str = "upstream exploded"):
        return self.then(action, *[ExecutorError(message) for _ in range(times)])

    async def execute(self, action, fields):
        name = action.action_name if isinstance(action, Action) else action
        self.calls.append((name, dict(fields)))
        pending = self.script.get(name)
        if pending:
            outcome = pending.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        return {"message": f"Action {name} processed successfully"}


class SpyRecordStore(InMemoryRecordStore):
    """Records every status write in order"""

    def __init__(self):
        super().__init__()
        self.writes = []
        self.fail_creates = False

    async def create(self, execution_id, payload):
        if self.fail_creates:
            raise InfrastructureError("table missing")
        return await super().create(execution_id, payload)

    async def update(self, execution_id, status, result=None, retry_count=0):
        await super().update(execution_id, status, result=result, retry_count=retry_count)
        self.writes.append((execution_id, status.value, retry_count))

    def statuses(self, execution_id):
        return [s for (eid, s, _) in self.writes if eid == execution_id]


class RecordingQueue(InMemoryQueue):
    """In-memory queue that records sends/DLQ deletes and can be told to fail"""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.sent = []
        self.dlq_deletes = []
        self.fail_sends = False

    async def send(self, execution_id, payload):
        if self.fail_sends:
            raise InfrastructureError("queue unavailable")
        self.sent.append((execution_id, dict(payload)))
        return await super().send(execution_id, payload)

    async def delete_dead_letter(self, handle):
        self.dlq_deletes.append(handle)
        await super().delete_dead_letter(handle)


@pytest.fixture
def executor():
    return ScriptedExecutor()


@pytest.fixture
def store():
    return SpyRecordStore()


@pytest.fixture
def queue():
    return RecordingQueue(visibility_timeout=30, max_receive_count=3)


@pytest.fixture
def log_store():
    return InMemoryLogStore()


@pytest.fixture
def settings():
    return PipelineSettings(backend="memory")


@pytest.fixture
def pipeline(settings, store, log_store, queue, executor):
    return assemble_pipeline(settings, store, log_store, queue, executor)
