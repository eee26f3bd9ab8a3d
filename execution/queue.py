"""
Queue transport for executions.

SqsQueue talks to a main queue and its dead-letter queue through an aioboto3
SQS client. InMemoryQueue reproduces the same at-least-once semantics in
process: visibility timeouts, receipt handles, and a move to the DLQ once a
message has been received max_receive_count times.
"""
import hashlib
import json
import time
import uuid
from collections import defaultdict, deque
from dataclasses import dataclass, field
from threading import Lock
from typing import Optional, Dict, Any, List

import structlog
from botocore.exceptions import ClientError

from execution.errors import InfrastructureError
from execution.models import ReceivedMessage, DeadLetterMessage, build_message_body

logger = structlog.get_logger()

MAX_BATCH = 10  # SQS receive limit


class SqsQueue:
    """Main queue + DLQ pair on Amazon SQS"""

    def __init__(self, sqs_client: Any, queue_url: str, dlq_url: str):
        self.sqs = sqs_client
        self.queue_url = queue_url
        self.dlq_url = dlq_url

    async def send(self, execution_id: str, payload: Dict[str, Any]) -> str:
        """Send {execution_id, ...payload} to the main queue; returns the message id"""
        params = {
            'QueueUrl': self.queue_url,
            'MessageBody': json.dumps(build_message_body(execution_id, payload), default=str),
            'MessageAttributes': {
                'execution_id': {
                    'DataType': 'String',
                    'StringValue': execution_id
                }
            }
        }
        try:
            response = await self.sqs.send_message(**params)
        except ClientError as e:
            raise InfrastructureError(f"Failed to enqueue {execution_id}: {e}",
                                      execution_id=execution_id) from e
        return response.get('MessageId', '')

    async def _receive(self, queue_url: str, max_count: int) -> List[Dict[str, Any]]:
        try:
            response = await self.sqs.receive_message(
                QueueUrl=queue_url,
                MaxNumberOfMessages=max(1, min(max_count, MAX_BATCH)),
                WaitTimeSeconds=0,
                MessageAttributeNames=['All']
            )
        except ClientError as e:
            raise InfrastructureError(f"Failed to receive from {queue_url}: {e}") from e
        return response.get('Messages') or []

    async def _delete(self, queue_url: str, handle: str) -> None:
        try:
            await self.sqs.delete_message(QueueUrl=queue_url, ReceiptHandle=handle)
        except ClientError as e:
            raise InfrastructureError(f"Failed to delete message from {queue_url}: {e}") from e

    async def receive(self, max_count: int = MAX_BATCH) -> List[ReceivedMessage]:
        messages = await self._receive(self.queue_url, max_count)
        return [
            ReceivedMessage(body=m['Body'], handle=m['ReceiptHandle'], message_id=m.get('MessageId'))
            for m in messages
        ]

    async def delete(self, handle: str) -> None:
        await self._delete(self.queue_url, handle)

    async def release(self, handle: str) -> None:
        """Make an in-flight message visible again immediately"""
        try:
            await self.sqs.change_message_visibility(
                QueueUrl=self.queue_url,
                ReceiptHandle=handle,
                VisibilityTimeout=0
            )
        except ClientError as e:
            raise InfrastructureError(f"Failed to release message: {e}") from e

    async def receive_dead_letter(self, max_count: int = MAX_BATCH) -> List[DeadLetterMessage]:
        messages = await self._receive(self.dlq_url, max_count)
        return [
            DeadLetterMessage(body=m['Body'], handle=m['ReceiptHandle'], message_id=m.get('MessageId'))
            for m in messages
        ]

    async def delete_dead_letter(self, handle: str) -> None:
        await self._delete(self.dlq_url, handle)


@dataclass
class StoredMessage:
    """Message held by the in-memory transport"""
    message_id: str
    body: str
    sent_at: float = field(default_factory=time.time)
    receive_count: int = 0
    visible_at: float = 0.0
    receipt_handle: Optional[str] = None


class InMemoryQueue:
    """
    In-process main queue + DLQ with SQS-like redelivery.

    Features:
    - Visibility timeout: received messages are hidden until deleted,
      released, or the timeout expires
    - Redrive: a message already received max_receive_count times is moved
      to the DLQ instead of being delivered again
    - DLQ receive/delete with their own receipt handles
    """

    def __init__(self, visibility_timeout: int = 30, max_receive_count: int = 3):
        self.visibility_timeout = visibility_timeout
        self.max_receive_count = max_receive_count

        self._queue: deque = deque()
        self._inflight: Dict[str, StoredMessage] = {}
        self._dlq: List[StoredMessage] = []
        self._dlq_inflight: Dict[str, StoredMessage] = {}

        self._lock = Lock()
        self._stats = defaultdict(int)

    @staticmethod
    def _new_handle(message: StoredMessage) -> str:
        seed = f"{message.message_id}_{time.time()}_{uuid.uuid4().hex}"
        return f"rcpt_{hashlib.md5(seed.encode()).hexdigest()[:12]}"

    async def send(self, execution_id: str, payload: Dict[str, Any]) -> str:
        message = StoredMessage(
            message_id=str(uuid.uuid4()),
            body=json.dumps(build_message_body(execution_id, payload), default=str)
        )
        with self._lock:
            self._queue.append(message)
            self._stats['sent'] += 1
        logger.debug("Message enqueued", execution_id=execution_id, message_id=message.message_id)
        return message.message_id

    async def receive(self, max_count: int = MAX_BATCH) -> List[ReceivedMessage]:
        with self._lock:
            self._expire_inflight(self._inflight, self._queue.append)
            received = []
            now = time.time()

            while self._queue and len(received) < min(max_count, MAX_BATCH):
                message = self._queue.popleft()

                if message.receive_count >= self.max_receive_count:
                    message.visible_at = 0.0
                    message.receipt_handle = None
                    self._dlq.append(message)
                    self._stats['dead_lettered'] += 1
                    logger.warning("Message moved to DLQ",
                                   message_id=message.message_id,
                                   receive_count=message.receive_count)
                    continue

                message.receive_count += 1
                message.receipt_handle = self._new_handle(message)
                message.visible_at = now + self.visibility_timeout
                self._inflight[message.receipt_handle] = message
                received.append(ReceivedMessage(
                    body=message.body,
                    handle=message.receipt_handle,
                    message_id=message.message_id
                ))
                self._stats['received'] += 1

            return received

    async def delete(self, handle: str) -> None:
        with self._lock:
            if self._inflight.pop(handle, None) is None:
                raise InfrastructureError(f"Receipt handle not found: {handle}")
            self._stats['deleted'] += 1

    async def release(self, handle: str) -> None:
        with self._lock:
            message = self._inflight.pop(handle, None)
            if message is None:
                raise InfrastructureError(f"Receipt handle not found: {handle}")
            message.visible_at = 0.0
            message.receipt_handle = None
            self._queue.appendleft(message)
            self._stats['released'] += 1

    async def receive_dead_letter(self, max_count: int = MAX_BATCH) -> List[DeadLetterMessage]:
        with self._lock:
            self._expire_inflight(self._dlq_inflight, self._dlq.append)
            received = []
            now = time.time()

            while self._dlq and len(received) < min(max_count, MAX_BATCH):
                message = self._dlq.pop(0)
                message.receipt_handle = self._new_handle(message)
                message.visible_at = now + self.visibility_timeout
                self._dlq_inflight[message.receipt_handle] = message
                received.append(DeadLetterMessage(
                    body=message.body,
                    handle=message.receipt_handle,
                    message_id=message.message_id
                ))

            return received

    async def delete_dead_letter(self, handle: str) -> None:
        with self._lock:
            if self._dlq_inflight.pop(handle, None) is None:
                raise InfrastructureError(f"DLQ receipt handle not found: {handle}")
            self._stats['dlq_deleted'] += 1

    def dead_letter(self, body: Dict[str, Any]) -> str:
        """Place a message directly on the DLQ (tooling and tests)"""
        message = StoredMessage(message_id=str(uuid.uuid4()), body=json.dumps(body, default=str))
        with self._lock:
            self._dlq.append(message)
        return message.message_id

    def _expire_inflight(self, inflight: Dict[str, StoredMessage], put_back) -> None:
        """Return messages whose visibility timeout elapsed"""
        now = time.time()
        for handle, message in list(inflight.items()):
            if message.visible_at <= now:
                inflight.pop(handle)
                message.receipt_handle = None
                put_back(message)
                self._stats['visibility_timeout'] += 1

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "queue_depth": len(self._queue),
                "inflight": len(self._inflight),
                "dlq_depth": len(self._dlq) + len(self._dlq_inflight),
                "stats": dict(self._stats)
            }
