"""
End-to-end flow through the polling worker and the in-memory transport:
submit, fail until dead-lettered, replay from the DLQ, then succeed.
"""
import pytest

from execution.errors import PartialSubmitError
from execution.models import ExecutionStatus
from execution.worker import QueueWorker


class TestPipelineFlow:
    """Test suite for the worker-driven lifecycle"""

    @pytest.fixture
    def worker(self, pipeline):
        return pipeline.worker

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self, pipeline, worker, queue):
        execution_id = await pipeline.producer.submit({"action": "list-pokemon"})

        result = await worker.poll_once()

        assert (result.received, result.succeeded, result.failed) == (1, 1, 0)
        assert (await pipeline.store.get(execution_id)).status == ExecutionStatus.COMPLETED
        assert queue.get_stats()["queue_depth"] == 0
        assert queue.get_stats()["inflight"] == 0

    @pytest.mark.asyncio
    async def test_fail_dead_letter_and_replay(self, pipeline, worker, queue, executor, store):
        """Test three failures dead-letter the message and replay recovers it"""
        executor.fail("get-pokemon", times=3, message="PokeAPI timeout")
        execution_id = await pipeline.producer.submit(
            {"action": "get-pokemon", "pokemon_name": "snorlax"})

        for attempt in range(1, 4):
            result = await worker.poll_once()
            assert result.failed == 1
            assert (await store.get(execution_id)).retry_count == attempt

        failed = await store.get(execution_id)
        assert failed.status == ExecutionStatus.FAILED
        assert failed.result == {"error": "PokeAPI timeout"}

        # Fourth receive redrives the exhausted message to the DLQ
        assert (await worker.poll_once()).received == 0
        assert queue.get_stats()["dlq_depth"] == 1

        summary = await pipeline.replayer.replay_all_from_dlq()
        assert summary.replayed == 1
        assert queue.get_stats()["dlq_depth"] == 0

        replayed = await store.get(execution_id)
        assert replayed.status == ExecutionStatus.QUEUED
        assert replayed.retry_count == 0

        result = await worker.poll_once()
        assert result.succeeded == 1
        done = await store.get(execution_id)
        assert done.status == ExecutionStatus.COMPLETED
        assert done.retry_count == 0

    @pytest.mark.asyncio
    async def test_run_until_stopped(self, pipeline, queue):
        """Test run() drains the queue and exits after stop()"""
        for _ in range(3):
            await pipeline.producer.submit({"action": "list-pokemon"})

        worker = QueueWorker(pipeline.consumer, queue, idle_sleep_seconds=0)
        real_poll = worker.poll_once

        async def poll_then_stop():
            result = await real_poll()
            if result.received == 0:
                worker.stop()
            return result
        worker.poll_once = poll_then_stop

        await worker.run()

        assert worker.active is False
        assert queue.get_stats()["stats"]["deleted"] == 3

    @pytest.mark.asyncio
    async def test_message_without_record_is_dead_lettered(self, pipeline, worker, queue, store):
        """Test a message whose record was never created ends up on the DLQ"""
        store.fail_creates = True
        with pytest.raises(PartialSubmitError) as exc_info:
            await pipeline.producer.submit({"action": "list-pokemon"})
        execution_id = exc_info.value.execution_id

        for _ in range(3):
            result = await worker.poll_once()
            assert (result.received, result.succeeded, result.failed) == (1, 0, 1)

        assert (await worker.poll_once()).received == 0
        assert queue.get_stats()["dlq_depth"] == 1

        # Replay cannot recover it; the DLQ message stays
        summary = await pipeline.replayer.replay_all_from_dlq()
        assert summary.failed == 1
        assert summary.details[0].execution_id == execution_id
        assert summary.details[0].error == "Execution not found"
        assert queue.dlq_deletes == []
