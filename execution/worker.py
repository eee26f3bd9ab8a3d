"""
Polling worker for deployments without a push trigger.

Receives a bounded batch from the main queue and processes it sequentially.
Successful messages are deleted; failed ones are released so the transport's
receive count decides when they move to the DLQ.
"""
import asyncio
from dataclasses import dataclass
from typing import Any

import structlog

from execution.queue import MAX_BATCH

logger = structlog.get_logger()


@dataclass
class PollResult:
    received: int = 0
    succeeded: int = 0
    failed: int = 0


class QueueWorker:

    def __init__(self, consumer: Any, queue: Any, batch_size: int = MAX_BATCH,
                 idle_sleep_seconds: float = 1.0):
        self.consumer = consumer
        self.queue = queue
        self.batch_size = max(1, min(batch_size, MAX_BATCH))
        self.idle_sleep_seconds = idle_sleep_seconds
        self.active = False

    async def poll_once(self) -> PollResult:
        messages = await self.queue.receive(self.batch_size)
        result = PollResult(received=len(messages))

        for message in messages:
            try:
                await self.consumer.handle_message(message.body)
            except Exception as e:
                result.failed += 1
                logger.warning("Message processing failed, releasing",
                               message_id=message.message_id, error=str(e))
                await self.queue.release(message.handle)
                continue

            await self.queue.delete(message.handle)
            result.succeeded += 1

        return result

    async def run(self) -> None:
        """Poll until stop() is called"""
        self.active = True
        logger.info("Queue worker started", batch_size=self.batch_size)

        while self.active:
            result = await self.poll_once()
            if result.received == 0:
                await asyncio.sleep(self.idle_sleep_seconds)

        logger.info("Queue worker stopped")

    def stop(self) -> None:
        self.active = False
