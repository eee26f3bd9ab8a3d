"""
Tests for the Producer flow

Tests request validation, queued submission, direct actions and status queries.
"""
import pytest

from execution.errors import PartialSubmitError, ValidationError
from execution.models import ExecutionStatus


class TestProducer:
    """Test suite for Producer"""

    @pytest.fixture
    def producer(self, pipeline):
        return pipeline.producer

    # ===== Positive Test Cases =====

    @pytest.mark.asyncio
    async def test_queued_submission(self, producer, store, queue):
        """Test a queued action creates a record and one queue message"""
        envelope = await producer.handle_producer(
            {"action": "get-pokemon", "pokemon_name": "pikachu"})

        assert envelope.status is True
        assert envelope.error is None
        execution_id = envelope.result["execution_id"]
        assert execution_id.startswith("exec_")
        assert envelope.result["message"] == "Request queued successfully"

        stored = await store.get(execution_id)
        assert stored.status == ExecutionStatus.QUEUED
        assert stored.retry_count == 0
        assert stored.action == "get-pokemon"
        assert stored.payload == {"action": "get-pokemon", "pokemon_name": "pikachu"}

        assert queue.sent == [(execution_id, {"action": "get-pokemon", "pokemon_name": "pikachu"})]

    @pytest.mark.asyncio
    async def test_submissions_get_fresh_ids(self, producer):
        """Test identical requests produce distinct executions"""
        body = {"action": "list-pokemon"}
        first = await producer.submit(body)
        second = await producer.submit(body)
        assert first != second

    @pytest.mark.asyncio
    async def test_status_after_submit(self, producer):
        """Test get-status returns the public view of a new execution"""
        execution_id = await producer.submit({"action": "list-pokemon"})

        envelope = await producer.handle_producer(
            {"action": "get-status", "execution_id": execution_id})

        assert envelope.status is True
        view = envelope.result
        assert view["execution_id"] == execution_id
        assert view["status"] == "queued"
        assert view["retry_count"] == 0
        assert view["action"] == "list-pokemon"
        assert view["result"] is None
        assert set(view) == {"execution_id", "status", "action", "created_at",
                             "updated_at", "retry_count", "result"}

    @pytest.mark.asyncio
    async def test_direct_action_not_queued(self, producer, executor, store, queue):
        """Test a Slack action runs immediately and leaves no record or message"""
        envelope = await producer.handle_producer(
            {"action": "send-slack-message", "message": "hi"})

        assert envelope.status is True
        assert envelope.result == {"message": "Action send-slack-message processed successfully"}
        assert executor.calls == [("send-slack-message", {"action": "send-slack-message", "message": "hi"})]
        assert queue.sent == []
        assert store.writes == []
        assert queue.get_stats()["queue_depth"] == 0

    @pytest.mark.asyncio
    async def test_audit_entry_written(self, producer, log_store):
        """Test submission writes an audit entry"""
        execution_id = await producer.submit({"action": "list-pokemon"})

        entries = log_store.for_execution(execution_id)
        assert [e.message for e in entries] == ["Execution queued"]

    # ===== Negative Test Cases =====

    @pytest.mark.asyncio
    async def test_missing_action(self, producer, queue):
        """Test a body without action is rejected"""
        envelope = await producer.handle_producer({})

        assert envelope.status is False
        assert envelope.error == "Missing required field: action"
        assert queue.sent == []

    @pytest.mark.asyncio
    async def test_unknown_action_lists_valid_actions(self, producer, store, queue):
        """Test an unknown action names every valid action"""
        envelope = await producer.handle_producer({"action": "frobnicate"})

        assert envelope.status is False
        assert envelope.error.startswith("Invalid action. Must be one of: ")
        for name in ("get-status", "send-slack-message", "send-slack-formatted",
                     "get-pokemon", "get-pokemon-ability", "list-pokemon"):
            assert name in envelope.error
        assert store.writes == []
        assert queue.sent == []

    @pytest.mark.asyncio
    async def test_missing_action_field(self, producer):
        """Test get-status without execution_id names the field and action"""
        envelope = await producer.handle_producer({"action": "get-status"})

        assert envelope.status is False
        assert envelope.error == "Missing required field: execution_id (for get-status action)"

    @pytest.mark.asyncio
    async def test_empty_field_counts_as_missing(self, producer):
        """Test an empty required field is treated as absent"""
        envelope = await producer.handle_producer({"action": "get-pokemon", "pokemon_name": ""})

        assert envelope.status is False
        assert envelope.error == "Missing required field: pokemon_name (for get-pokemon action)"

    @pytest.mark.asyncio
    async def test_status_unknown_execution(self, producer):
        """Test get-status for an unknown id fails with not found"""
        envelope = await producer.handle_producer(
            {"action": "get-status", "execution_id": "exec_nope"})

        assert envelope.status is False
        assert envelope.error == "Execution not found"

    @pytest.mark.asyncio
    async def test_submit_rejects_direct_action(self, producer):
        """Test submit() only accepts queueable actions"""
        with pytest.raises(ValidationError) as exc_info:
            await producer.submit({"action": "send-slack-message", "message": "hi"})
        assert "not queueable" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_submit_raises_validation_error(self, producer):
        """Test submit() raises instead of returning an envelope"""
        with pytest.raises(ValidationError):
            await producer.submit({"action": "frobnicate"})

    @pytest.mark.asyncio
    async def test_direct_action_failure(self, producer, executor):
        """Test a failing direct action is reported in the envelope"""
        executor.fail("send-slack-message", message="Slack API error: 404 Not Found")

        envelope = await producer.handle_producer(
            {"action": "send-slack-message", "message": "hi"})

        assert envelope.status is False
        assert envelope.error == "Slack API error: 404 Not Found"

    # ===== Partial Failure =====

    @pytest.mark.asyncio
    async def test_enqueue_failure_reported(self, producer, store, queue):
        """Test a failed enqueue is surfaced while the record still exists"""
        queue.fail_sends = True

        with pytest.raises(PartialSubmitError) as exc_info:
            await producer.submit({"action": "list-pokemon"})

        error = exc_info.value
        assert error.record_created is True
        assert error.enqueued is False
        stored = await store.get(error.execution_id)
        assert stored.status == ExecutionStatus.QUEUED

    @pytest.mark.asyncio
    async def test_enqueue_failure_envelope(self, producer, queue):
        """Test handle_producer reports a partial submission as a failure"""
        queue.fail_sends = True

        envelope = await producer.handle_producer({"action": "list-pokemon"})

        assert envelope.status is False
        assert "enqueue failed" in envelope.error

    @pytest.mark.asyncio
    async def test_record_create_failure_reported(self, producer, store, queue):
        """Test a failed record create is surfaced while the message was still sent"""
        store.fail_creates = True

        with pytest.raises(PartialSubmitError) as exc_info:
            await producer.submit({"action": "list-pokemon"})

        error = exc_info.value
        assert error.record_created is False
        assert error.enqueued is True
        assert await store.get(error.execution_id) is None
        assert queue.sent == [(error.execution_id, {"action": "list-pokemon"})]

    @pytest.mark.asyncio
    async def test_record_create_failure_envelope(self, producer, store):
        """Test handle_producer names the failed record create"""
        store.fail_creates = True

        envelope = await producer.handle_producer({"action": "list-pokemon"})

        assert envelope.status is False
        assert envelope.result is None
        assert "record create failed: table missing" in envelope.error
        assert "enqueue failed" not in envelope.error
