#!/usr/bin/env python3
"""HTTP Client for the automation host.

The automation host is the runtime that owns the connections to the three
backend systems (directory, call manager, voicemail) and exposes them as:

    - Named queries: POST /api/v1/queries/{name}/execute -> {"rows": [...]}
    - Function runs: POST /api/v1/systems/{system}/functions/{action}/run
      -> {"success": bool, "result": {...}, "error": "..."}

This client handles the common concerns of talking to it:

    - Bearer token authentication
    - Connection pooling via shared aiohttp session
    - Retry with backoff for named queries (idempotent reads)
    - Single-shot function runs (writes are never retried here)
    - Circuit breaker for resilience against host outages
    - Typed exceptions for every failure mode

Design Philosophy:
    This client knows HOW to talk to the host, but not WHAT to ask it.
    Query names, systems and payloads belong to the reassignment adapters.

Usage:
    async with HostRuntimeClient(base_url, token) as client:
        rows = await client.execute_query("GetLine", {"UUID": line_id})
        result = await client.run_function("CiscoUCM", "PhonesUpdate", {...})
"""
import asyncio
import logging
import os
from typing import Any, Optional
from urllib.parse import quote

import aiohttp
from pydantic import ValidationError as SchemaValidationError

from .exceptions import (
    ConfigurationError,
    ConnectionError,
    NetworkError,
    RemoteRejectionError,
    ServerError,
    TimeoutError,
)
from .resilience import CircuitBreaker, retry_async
from .schemas import FunctionRunRequest, FunctionRunResponse, QueryRequest, QueryResponse

logger = logging.getLogger(__name__)


class HostRuntimeClient:
    """Async HTTP client for the automation host.

    Designed to be used as an async context manager to ensure proper session
    lifecycle management:

        async with HostRuntimeClient() as client:
            rows = await client.execute_query("SomeQuery", {})

    Attributes:
        base_url: Base URL of the host (e.g., "https://automation.example.com")
    """

    QUERY_ENDPOINT = "/api/v1/queries/{name}/execute"
    FUNCTION_ENDPOINT = "/api/v1/systems/{system}/functions/{action}/run"

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        request_timeout: float = 60.0,
        query_attempts: int = 3,
        enable_circuit_breaker: bool = True,
        circuit_failure_threshold: int = 5,
        circuit_timeout: float = 60.0,
    ):
        """Initialize the client.

        Args:
            base_url: Host base URL. Falls back to LINEMOVE_HOST_URL.
            token: Bearer token. Falls back to LINEMOVE_HOST_TOKEN.
            request_timeout: Total timeout per HTTP request in seconds
            query_attempts: Attempts for named queries on transport errors
            enable_circuit_breaker: Enable circuit breaker for resilience
            circuit_failure_threshold: Failures before circuit opens
            circuit_timeout: Seconds before circuit attempts to close

        Raises:
            ConfigurationError: If no base URL or token is available.
        """
        self.base_url = (base_url or os.getenv("LINEMOVE_HOST_URL", "")).rstrip("/")
        self._token = token or os.getenv("LINEMOVE_HOST_TOKEN", "")

        missing = []
        if not self.base_url:
            missing.append("LINEMOVE_HOST_URL")
        if not self._token:
            missing.append("LINEMOVE_HOST_TOKEN")
        if missing:
            raise ConfigurationError(
                "Automation host URL and token are required.",
                missing_keys=missing,
            )

        self.request_timeout = request_timeout
        self.query_attempts = query_attempts
        self._session: Optional[aiohttp.ClientSession] = None

        self._circuit_breaker: Optional[CircuitBreaker] = None
        if enable_circuit_breaker:
            self._circuit_breaker = CircuitBreaker(
                failure_threshold=circuit_failure_threshold,
                timeout=circuit_timeout,
                name="automation_host",
            )

    # ----------------------------------------
    # Context Manager Protocol
    # ----------------------------------------

    async def __aenter__(self) -> "HostRuntimeClient":
        self._session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=10, limit_per_host=10),
            timeout=aiohttp.ClientTimeout(total=self.request_timeout, connect=10),
            headers={
                "Authorization": f"Bearer {self._token}",
                "Content-Type": "application/json",
            },
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    # ----------------------------------------
    # Low-Level Request
    # ----------------------------------------

    async def _post(self, endpoint: str, body: dict[str, Any]) -> tuple[int, Any]:
        """POST a JSON body and return (status, parsed body or text).

        Raises:
            ServerError: On 5xx responses
            ConnectionError: If the host cannot be reached
            TimeoutError: If the request times out
            RuntimeError: If called outside of async context manager
        """
        if not self._session:
            raise RuntimeError(
                "HostRuntimeClient must be used as async context manager: "
                "async with HostRuntimeClient(...) as client:"
            )

        url = f"{self.base_url}{endpoint}"

        try:
            async with self._session.post(url, json=body) as response:
                if response.status >= 500:
                    error_text = await response.text()
                    raise ServerError(
                        f"Server error ({response.status}) for POST {endpoint}",
                        status_code=response.status,
                        endpoint=endpoint,
                        details={"response_body": error_text[:500]},
                    )

                if response.status >= 400:
                    return response.status, await response.text()

                return response.status, await response.json()

        except aiohttp.ClientConnectionError as e:
            raise ConnectionError(
                f"Failed to connect to {self.base_url}",
                host=self.base_url,
                cause=e,
            )

        except asyncio.TimeoutError as e:
            raise TimeoutError(
                f"Request to {endpoint} timed out",
                timeout_seconds=self.request_timeout,
                cause=e,
            )

        except aiohttp.ClientError as e:
            raise NetworkError(
                f"Network error during POST {endpoint}: {e}",
                cause=e,
            )

    async def _guarded_post(self, endpoint: str, body: dict[str, Any]) -> tuple[int, Any]:
        if self._circuit_breaker:
            return await self._circuit_breaker.call(self._post, endpoint, body)
        return await self._post(endpoint, body)

    # ----------------------------------------
    # High-Level Methods
    # ----------------------------------------

    async def execute_query(
        self,
        query_name: str,
        params: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        """Execute a named query and return its rows.

        Transport failures are retried with backoff; queries are reads.

        Raises:
            RemoteRejectionError: If the host refuses the query (4xx)
            NetworkError: If the host stays unreachable after retries
        """
        endpoint = self.QUERY_ENDPOINT.format(name=quote(query_name, safe=""))
        body = QueryRequest(params=params or {}).model_dump()

        status, payload = await retry_async(
            self._guarded_post,
            endpoint,
            body,
            max_attempts=self.query_attempts,
        )

        if status >= 400:
            raise RemoteRejectionError(
                f"Query [{query_name}] rejected with status {status}",
                system="query",
                action=query_name,
                response_body=str(payload),
            )

        try:
            parsed = QueryResponse.model_validate(payload)
        except SchemaValidationError as e:
            raise RemoteRejectionError(
                f"Query [{query_name}] returned an unexpected body",
                system="query",
                action=query_name,
                cause=e,
            )

        logger.debug(f"Query {query_name} returned {len(parsed.rows)} rows")
        return parsed.rows

    async def run_function(
        self,
        system: str,
        action: str,
        params: dict[str, Any],
    ) -> dict[str, Any]:
        """Run a function against a target system. Never retried here.

        Raises:
            RemoteRejectionError: On 4xx or a result with success=false
            NetworkError: On transport failures
        """
        endpoint = self.FUNCTION_ENDPOINT.format(
            system=quote(system, safe=""),
            action=quote(action, safe=""),
        )
        body = FunctionRunRequest(params=params).model_dump()

        status, payload = await self._guarded_post(endpoint, body)

        if status >= 400:
            raise RemoteRejectionError(
                f"{system}.{action} rejected with status {status}",
                system=system,
                action=action,
                response_body=str(payload),
            )

        try:
            parsed = FunctionRunResponse.model_validate(payload)
        except SchemaValidationError as e:
            raise RemoteRejectionError(
                f"{system}.{action} returned an unexpected body",
                system=system,
                action=action,
                cause=e,
            )

        if not parsed.success:
            raise RemoteRejectionError(
                f"{system}.{action} failed: {parsed.error or 'unknown error'}",
                system=system,
                action=action,
            )

        return parsed.result or {}

    @property
    def circuit_status(self) -> Optional[dict[str, Any]]:
        """Get circuit breaker status for monitoring."""
        if self._circuit_breaker:
            return self._circuit_breaker.get_status()
        return None
