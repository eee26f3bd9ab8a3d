"""
Audit log for executions.

Entries are write-only and expire after the retention window (DynamoDB TTL).
The core never reads them back.
"""
import time
from typing import Optional, Dict, Any, List

import structlog
from botocore.exceptions import ClientError

from execution.errors import InfrastructureError
from execution.models import LogEntry, LogLevel
from storage.records import to_dynamo

logger = structlog.get_logger()

SECONDS_PER_DAY = 24 * 60 * 60


class DynamoLogStore:
    """Log entries keyed PK = LOG#<execution_id>, SK = timestamp"""

    def __init__(self, table: Any, ttl_days: int = 90):
        self.table = table
        self.ttl_days = ttl_days

    async def write(self, entry: LogEntry) -> None:
        entry.ttl = int(time.time()) + self.ttl_days * SECONDS_PER_DAY
        item = {
            "PK": f"LOG#{entry.execution_id}",
            "SK": entry.timestamp,
            **to_dynamo(entry.to_dict())
        }
        try:
            await self.table.put_item(Item=item)
        except ClientError as e:
            raise InfrastructureError(f"Failed to write log entry: {e}",
                                      execution_id=entry.execution_id) from e


class InMemoryLogStore:

    def __init__(self, ttl_days: int = 90):
        self.ttl_days = ttl_days
        self.entries: List[LogEntry] = []

    async def write(self, entry: LogEntry) -> None:
        entry.ttl = int(time.time()) + self.ttl_days * SECONDS_PER_DAY
        self.entries.append(entry)

    def for_execution(self, execution_id: str) -> List[LogEntry]:
        return [e for e in self.entries if e.execution_id == execution_id]


class ExecutionLog:
    """
    Audit trail writer used by the flows.

    Every entry is mirrored to structlog. A failed store write is logged
    and does not fail the calling flow.
    """

    def __init__(self, store: Any):
        self.store = store

    async def write(self, execution_id: str, level: LogLevel, message: str,
                    metadata: Optional[Dict[str, Any]] = None) -> None:
        entry = LogEntry(
            execution_id=execution_id,
            level=level,
            message=message,
            metadata=metadata or {}
        )
        log_method = {
            LogLevel.INFO: logger.info,
            LogLevel.WARNING: logger.warning,
            LogLevel.ERROR: logger.error,
        }[level]
        log_method(message, execution_id=execution_id, metadata=entry.metadata)

        try:
            await self.store.write(entry)
        except Exception as e:
            logger.warning("Audit log write failed",
                           execution_id=execution_id,
                           error=str(e))

    async def info(self, execution_id: str, message: str, **metadata) -> None:
        await self.write(execution_id, LogLevel.INFO, message, metadata)

    async def warning(self, execution_id: str, message: str, **metadata) -> None:
        await self.write(execution_id, LogLevel.WARNING, message, metadata)

    async def error(self, execution_id: str, message: str, **metadata) -> None:
        await self.write(execution_id, LogLevel.ERROR, message, metadata)
