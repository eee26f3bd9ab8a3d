"""Shared HTTP plumbing for external API clients"""
from typing import Any, Dict, Optional

import httpx
from circuitbreaker import CircuitBreaker, CircuitBreakerError

from execution.errors import ExecutorError, UpstreamUnavailableError


class CircuitProtectedClient:
    """
    Base for integration clients: one circuit breaker per client instance.

    Only UpstreamUnavailableError (network errors, 5xx) trips the breaker;
    4xx responses fail the call without counting against the upstream.
    """

    service_name = "upstream"

    def __init__(self, http: httpx.AsyncClient,
                 failure_threshold: int = 5,
                 recovery_timeout: int = 60):
        self.http = http
        self.breaker = CircuitBreaker(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            expected_exception=UpstreamUnavailableError,
            name=self.service_name
        )
        self._protected_request = self.breaker(self._send)

    async def _send(self, method: str, url: str,
                    json: Optional[Dict[str, Any]] = None,
                    params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            response = await self.http.request(method, url, json=json, params=params)
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError(f"{self.service_name} request failed: {e}") from e

        if response.status_code >= 500:
            raise UpstreamUnavailableError(
                f"{self.service_name} API error: {response.status_code} {response.reason_phrase}")
        if not response.is_success:
            raise ExecutorError(
                f"{self.service_name} API error: {response.status_code} {response.reason_phrase}")
        return response

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await self._protected_request(method, url, **kwargs)
        except CircuitBreakerError as e:
            raise ExecutorError(f"{self.service_name} unavailable: {e}") from e
