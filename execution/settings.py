"""
Pipeline settings.

Resolved once at process start: optional YAML file first, then
environment variable overrides.
"""
import os
from dataclasses import dataclass, fields, asdict
from pathlib import Path
from typing import Optional, Dict, Any, Mapping

import yaml

MAX_DLQ_BATCH = 10


class ConfigError(ValueError):
    """Invalid or incomplete configuration"""


@dataclass
class PipelineSettings:
    backend: str = "aws"  # aws | memory
    aws_region: str = "ap-southeast-1"
    endpoint_url: Optional[str] = None
    executions_table: str = "sqs-executions"
    logs_table: str = "sqs-logs"
    queue_url: Optional[str] = None
    dlq_url: Optional[str] = None
    slack_webhook_url: Optional[str] = None
    pokemon_api_base: str = "https://pokeapi.co/api/v2"
    max_retry_attempts: int = 3
    dlq_batch_size: int = 10
    log_ttl_days: int = 90
    http_timeout_seconds: float = 10.0
    log_level: str = "INFO"
    log_format: str = "json"  # json | console

    def validate(self) -> 'PipelineSettings':
        if self.backend not in ("aws", "memory"):
            raise ConfigError(f"Unknown backend: {self.backend}")
        if self.backend == "aws":
            missing = [name for name in ("queue_url", "dlq_url") if not getattr(self, name)]
            if missing:
                raise ConfigError(f"Missing required settings for aws backend: {', '.join(missing)}")
        if self.max_retry_attempts < 1:
            raise ConfigError("max_retry_attempts must be >= 1")
        if not 1 <= self.dlq_batch_size <= MAX_DLQ_BATCH:
            raise ConfigError(f"dlq_batch_size must be between 1 and {MAX_DLQ_BATCH}")
        if self.log_ttl_days < 1:
            raise ConfigError("log_ttl_days must be >= 1")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# Environment variable -> settings field
ENV_OVERRIDES = {
    "PIPELINE_BACKEND": "backend",
    "AWS_REGION": "aws_region",
    "AWS_ENDPOINT_URL": "endpoint_url",
    "EXECUTIONS_TABLE": "executions_table",
    "LOGS_TABLE": "logs_table",
    "QUEUE_URL": "queue_url",
    "DLQ_URL": "dlq_url",
    "SLACK_WEBHOOK_URL": "slack_webhook_url",
    "POKEMON_API_BASE": "pokemon_api_base",
    "MAX_RETRY_ATTEMPTS": "max_retry_attempts",
    "DLQ_BATCH_SIZE": "dlq_batch_size",
    "LOG_TTL_DAYS": "log_ttl_days",
    "HTTP_TIMEOUT_SECONDS": "http_timeout_seconds",
    "LOG_LEVEL": "log_level",
    "LOG_FORMAT": "log_format",
}


def _coerce(name: str, value: Any) -> Any:
    """Convert raw file/env values to the field's declared type"""
    if value is None:
        return None
    field_types = {f.name: f.type for f in fields(PipelineSettings)}
    declared = field_types[name]
    try:
        if declared in (int, 'int'):
            return int(value)
        if declared in (float, 'float'):
            return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid value for {name}: {value!r}")
    return str(value)


def load_settings(path: Optional[str] = None,
                  environ: Optional[Mapping[str, str]] = None) -> PipelineSettings:
    """
    Load settings from YAML (if any) and the environment.

    Args:
        path: YAML file; defaults to $PIPELINE_CONFIG when set
        environ: environment mapping (defaults to os.environ)

    Returns:
        Validated PipelineSettings
    """
    environ = os.environ if environ is None else environ
    values: Dict[str, Any] = {}

    config_path = path or environ.get("PIPELINE_CONFIG")
    if config_path:
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigError(f"Config file not found: {config_path}")
        with open(config_file, 'r') as f:
            data = yaml.safe_load(f) or {}
        known = {f.name for f in fields(PipelineSettings)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown settings in {config_path}: {', '.join(sorted(unknown))}")
        for name, value in data.items():
            values[name] = _coerce(name, value)

    for env_name, name in ENV_OVERRIDES.items():
        if environ.get(env_name):
            values[name] = _coerce(name, environ[env_name])

    return PipelineSettings(**values).validate()
