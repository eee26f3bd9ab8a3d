"""Prometheus metrics for the execution pipeline"""
from prometheus_client import Counter, Histogram

executions_submitted = Counter(
    'executions_submitted_total', 'Executions created and enqueued', ['action'])
execution_transitions = Counter(
    'execution_transitions_total', 'Execution status transitions', ['status'])
execution_retries = Counter(
    'execution_retries_total', 'Failed attempts sent back for retry', ['action'])
execution_processing_time = Histogram(
    'execution_processing_seconds', 'Time spent executing an action', ['action'])
replay_outcomes = Counter(
    'replay_outcomes_total', 'Replay attempts by outcome', ['outcome'])
dlq_messages_deleted = Counter(
    'dlq_messages_deleted_total', 'Dead-letter messages removed after successful replay')
api_requests = Counter(
    'api_requests_total', 'Total API requests', ['route', 'status'])
