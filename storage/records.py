"""
Execution record store.

DynamoDB-backed store (aioboto3 Table resource) and an in-memory store with
the same contract: create, point read, conditional update.
"""
import asyncio
import copy
import json
from decimal import Decimal
from typing import Optional, Dict, Any

import structlog
from botocore.exceptions import ClientError

from execution.errors import InfrastructureError, NotFoundError
from execution.models import Execution, ExecutionStatus, utc_now

logger = structlog.get_logger()


def to_dynamo(value: Any) -> Any:
    """DynamoDB rejects floats; round-trip through JSON into Decimals"""
    if value is None:
        return None
    return json.loads(json.dumps(value), parse_float=Decimal)


def from_dynamo(value: Any) -> Any:
    """Convert Decimals returned by DynamoDB back to int/float"""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_dynamo(v) for v in value]
    return value


def _error_code(error: ClientError) -> str:
    return error.response.get('Error', {}).get('Code', '')


class DynamoRecordStore:
    """
    Execution records in a single DynamoDB table.

    Key layout: PK = EXEC#<execution_id>, SK = META.
    Status index: GSI1PK = STATUS#<status>, GSI1SK = last write timestamp,
    kept current on every create and update.
    """

    SORT_KEY = "META"

    def __init__(self, table: Any):
        self.table = table

    @staticmethod
    def _key(execution_id: str) -> Dict[str, str]:
        return {"PK": f"EXEC#{execution_id}", "SK": DynamoRecordStore.SORT_KEY}

    @staticmethod
    def _status_key(status: ExecutionStatus) -> str:
        return f"STATUS#{status.value}"

    async def create(self, execution_id: str, payload: Dict[str, Any]) -> Execution:
        execution = Execution(
            execution_id=execution_id,
            action=payload.get('action'),
            payload=payload
        )
        item = {
            **self._key(execution_id),
            **to_dynamo(execution.to_dict()),
            "GSI1PK": self._status_key(execution.status),
            "GSI1SK": execution.created_at
        }
        try:
            await self.table.put_item(
                Item=item,
                ConditionExpression="attribute_not_exists(PK)"
            )
        except ClientError as e:
            raise InfrastructureError(
                f"Failed to create execution {execution_id}: {_error_code(e) or e}",
                execution_id=execution_id
            ) from e
        return execution

    async def get(self, execution_id: str) -> Optional[Execution]:
        try:
            response = await self.table.get_item(Key=self._key(execution_id))
        except ClientError as e:
            raise InfrastructureError(
                f"Failed to read execution {execution_id}: {_error_code(e) or e}",
                execution_id=execution_id
            ) from e

        item = response.get('Item')
        if not item:
            return None
        return Execution.from_dict(from_dynamo(item))

    async def update(self, execution_id: str, status: ExecutionStatus,
                     result: Optional[Dict[str, Any]] = None,
                     retry_count: int = 0) -> None:
        """
        Set status, retry_count, updated_at and the status index keys;
        set result only when given.

        Raises:
            NotFoundError: if no record exists for execution_id
        """
        expression = ("SET #status = :status, updated_at = :timestamp, retry_count = :retry_count, "
                      "GSI1PK = :gsi1pk, GSI1SK = :timestamp")
        names = {"#status": "status"}
        values = {
            ":status": status.value,
            ":timestamp": utc_now(),
            ":retry_count": retry_count,
            ":gsi1pk": self._status_key(status),
        }
        if result is not None:
            expression += ", #result = :result"
            names["#result"] = "result"
            values[":result"] = to_dynamo(result)

        try:
            await self.table.update_item(
                Key=self._key(execution_id),
                UpdateExpression=expression,
                ConditionExpression="attribute_exists(PK)",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values
            )
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                raise NotFoundError(execution_id=execution_id) from e
            raise InfrastructureError(
                f"Failed to update execution {execution_id}: {_error_code(e) or e}",
                execution_id=execution_id
            ) from e


class InMemoryRecordStore:
    """Process-local record store for development and tests"""

    def __init__(self):
        self._records: Dict[str, Execution] = {}
        self._lock = asyncio.Lock()

    async def create(self, execution_id: str, payload: Dict[str, Any]) -> Execution:
        async with self._lock:
            if execution_id in self._records:
                raise InfrastructureError(f"Execution {execution_id} already exists",
                                          execution_id=execution_id)
            execution = Execution(
                execution_id=execution_id,
                action=payload.get('action'),
                payload=copy.deepcopy(payload)
            )
            self._records[execution_id] = execution
            return copy.deepcopy(execution)

    async def get(self, execution_id: str) -> Optional[Execution]:
        execution = self._records.get(execution_id)
        return copy.deepcopy(execution) if execution else None

    async def update(self, execution_id: str, status: ExecutionStatus,
                     result: Optional[Dict[str, Any]] = None,
                     retry_count: int = 0) -> None:
        async with self._lock:
            execution = self._records.get(execution_id)
            if execution is None:
                raise NotFoundError(execution_id=execution_id)
            execution.status = status
            execution.retry_count = retry_count
            execution.updated_at = utc_now()
            if result is not None:
                execution.result = copy.deepcopy(result)
        logger.debug("Execution updated", execution_id=execution_id,
                     status=status.value, retry_count=retry_count)
