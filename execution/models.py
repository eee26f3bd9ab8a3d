"""
Execution pipeline data model: execution records, audit log entries,
queue envelopes and the uniform response envelope.
"""
import json
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, List


def utc_now() -> str:
    """Current UTC time as ISO-8601 string"""
    return datetime.now(timezone.utc).isoformat()


def new_execution_id() -> str:
    return f"exec_{uuid.uuid4()}"


class ExecutionStatus(Enum):
    """Lifecycle states of an execution"""
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED)


class LogLevel(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Execution:
    """One submitted unit of work, tracked through its lifecycle"""
    execution_id: str
    action: str
    payload: Optional[Dict[str, Any]] = None
    status: ExecutionStatus = ExecutionStatus.QUEUED
    retry_count: int = 0
    result: Optional[Dict[str, Any]] = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d['status'] = self.status.value
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Execution':
        return cls(
            execution_id=data['execution_id'],
            action=data['action'],
            payload=data.get('payload'),
            status=ExecutionStatus(data.get('status', ExecutionStatus.QUEUED.value)),
            retry_count=int(data.get('retry_count') or 0),
            result=data.get('result'),
            created_at=data.get('created_at') or utc_now(),
            updated_at=data.get('updated_at') or utc_now()
        )

    def status_view(self) -> Dict[str, Any]:
        """Public view returned by status queries"""
        return {
            "execution_id": self.execution_id,
            "status": self.status.value,
            "action": self.action,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "retry_count": self.retry_count,
            "result": self.result or None
        }


@dataclass
class LogEntry:
    """Append-only audit record tied to an execution"""
    execution_id: str
    level: LogLevel
    message: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_now)
    ttl: Optional[int] = None

    @property
    def log_id(self) -> str:
        return f"{self.execution_id}_{self.timestamp}"

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d['level'] = self.level.value
        d['log_id'] = self.log_id
        return d


def build_message_body(execution_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Queue envelope: execution id plus the action fields"""
    return {"execution_id": execution_id, **payload}


@dataclass
class QueueMessage:
    """Parsed queue envelope"""
    execution_id: str
    action: Optional[str]
    fields: Dict[str, Any]

    @classmethod
    def from_body(cls, body: Any) -> 'QueueMessage':
        """
        Parse a raw message body (JSON string or dict).

        Raises:
            ValueError: if the body is not a JSON object or has no execution_id
        """
        data = json.loads(body) if isinstance(body, (str, bytes)) else body
        if not isinstance(data, dict):
            raise ValueError("Message body is not a JSON object")
        execution_id = data.get('execution_id')
        if not execution_id:
            raise ValueError("Message body missing execution_id")
        fields = {k: v for k, v in data.items() if k != 'execution_id'}
        return cls(execution_id=execution_id, action=data.get('action'), fields=fields)


@dataclass
class ReceivedMessage:
    """Message handed out by a queue receive, with its acknowledgment handle"""
    body: str
    handle: str
    message_id: Optional[str] = None

    def parse(self) -> QueueMessage:
        return QueueMessage.from_body(self.body)


@dataclass
class DeadLetterMessage(ReceivedMessage):
    """Same envelope, redelivered from the dead-letter queue"""


@dataclass
class Envelope:
    """Uniform {status, result, error} response"""
    status: bool
    result: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, result: Any = None) -> 'Envelope':
        return cls(status=True, result=result, error=None)

    @classmethod
    def fail(cls, error: str) -> 'Envelope':
        return cls(status=False, result=None, error=error)

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "result": self.result, "error": self.error}


@dataclass
class ReplayOutcome:
    execution_id: str
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ReplaySummary:
    """Aggregate result of a replay batch"""
    total: int
    details: List[ReplayOutcome] = field(default_factory=list)
    message: Optional[str] = None

    @property
    def replayed(self) -> int:
        return sum(1 for d in self.details if d.success)

    @property
    def failed(self) -> int:
        return sum(1 for d in self.details if not d.success)

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "total": self.total,
            "replayed": self.replayed,
            "failed": self.failed,
        }
        if self.message:
            d["message"] = self.message
        else:
            d["details"] = [o.to_dict() for o in self.details]
        return d
