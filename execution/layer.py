"""
Pipeline wiring.

Builds the record store, audit log, queue, integrations and flows from
settings and injects them explicitly. No module-level clients: everything
hangs off one Pipeline whose resources are closed together.
"""
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Any, Optional

import aioboto3
import httpx
import structlog

from execution.consumer import Consumer
from execution.executor import ActionExecutor
from execution.producer import Producer
from execution.queue import InMemoryQueue, SqsQueue
from execution.replay import Replayer
from execution.settings import PipelineSettings
from execution.state_machine import ExecutionStateMachine
from execution.worker import QueueWorker
from integrations.pokemon import PokemonClient
from integrations.slack import SlackClient
from storage.logs import DynamoLogStore, ExecutionLog, InMemoryLogStore
from storage.records import DynamoRecordStore, InMemoryRecordStore

logger = structlog.get_logger()


@dataclass
class Pipeline:
    settings: PipelineSettings
    store: Any
    queue: Any
    audit: ExecutionLog
    executor: ActionExecutor
    state_machine: ExecutionStateMachine
    producer: Producer
    consumer: Consumer
    replayer: Replayer
    worker: QueueWorker
    resources: Optional[AsyncExitStack] = None

    async def close(self) -> None:
        if self.resources is not None:
            await self.resources.aclose()
            self.resources = None


def assemble_pipeline(settings: PipelineSettings, store: Any, log_store: Any, queue: Any,
                      executor: ActionExecutor,
                      resources: Optional[AsyncExitStack] = None) -> Pipeline:
    """Wire flows around already-constructed adapters"""
    audit = ExecutionLog(log_store)
    state_machine = ExecutionStateMachine(store, max_retry_attempts=settings.max_retry_attempts)
    consumer = Consumer(state_machine, executor, audit)

    return Pipeline(
        settings=settings,
        store=store,
        queue=queue,
        audit=audit,
        executor=executor,
        state_machine=state_machine,
        producer=Producer(store, queue, executor, audit),
        consumer=consumer,
        replayer=Replayer(state_machine, queue, audit, batch_size=settings.dlq_batch_size),
        worker=QueueWorker(consumer, queue),
        resources=resources
    )


def build_executor(settings: PipelineSettings, http: httpx.AsyncClient) -> ActionExecutor:
    return ActionExecutor(
        slack=SlackClient(http, default_webhook_url=settings.slack_webhook_url),
        pokemon=PokemonClient(http, base_url=settings.pokemon_api_base)
    )


async def create_pipeline(settings: PipelineSettings) -> Pipeline:
    """Create clients for the configured backend and return the wired pipeline"""
    resources = AsyncExitStack()
    try:
        http = await resources.enter_async_context(
            httpx.AsyncClient(timeout=settings.http_timeout_seconds))
        executor = build_executor(settings, http)

        if settings.backend == "memory":
            store = InMemoryRecordStore()
            log_store = InMemoryLogStore(ttl_days=settings.log_ttl_days)
            queue = InMemoryQueue(max_receive_count=settings.max_retry_attempts)
        else:
            session = aioboto3.Session(region_name=settings.aws_region)
            dynamodb = await resources.enter_async_context(
                session.resource('dynamodb', endpoint_url=settings.endpoint_url))
            sqs = await resources.enter_async_context(
                session.client('sqs', endpoint_url=settings.endpoint_url))

            store = DynamoRecordStore(await dynamodb.Table(settings.executions_table))
            log_store = DynamoLogStore(await dynamodb.Table(settings.logs_table),
                                       ttl_days=settings.log_ttl_days)
            queue = SqsQueue(sqs, settings.queue_url, settings.dlq_url)
    except BaseException:
        await resources.aclose()
        raise

    logger.info("Pipeline initialized",
                backend=settings.backend,
                region=settings.aws_region,
                max_retry_attempts=settings.max_retry_attempts)

    return assemble_pipeline(settings, store, log_store, queue, executor, resources=resources)
