"""Shared infrastructure for line reassignment.

Classes:
    HostRuntimeClient: HTTP client for the automation host (queries + function runs)
    CircuitBreaker: Prevent hammering an unavailable host

Exceptions:
    LineMoveError: Base exception for all errors
    NotFoundError / AmbiguousResultError: Lookup cardinality failures
    RemoteRejectionError: A backend refused an action
    ExhaustedRetryError: A bounded retry budget was spent

Resilience:
    retry_with_budget: Bounded-attempt retry combinator
    retry_async: Backoff retry for idempotent reads
"""
from .client import HostRuntimeClient
from .database import close_pool, create_pool, database_connection, database_transaction
from .exceptions import (
    AmbiguousResultError,
    BestEffortFailure,
    CircuitOpenError,
    ConfigurationError,
    ConnectionError,
    ConnectionPoolError,
    DatabaseError,
    ExhaustedRetryError,
    IntegrityError,
    LineLockedError,
    LineMoveError,
    LookupResultError,
    NetworkError,
    NotFoundError,
    RemoteRejectionError,
    RequestValidationError,
    ServerError,
    TimeoutError,
    TransactionError,
    WorkflowTimeoutError,
)
from .resilience import (
    CircuitBreaker,
    CircuitState,
    retry_async,
    retry_with_budget,
    with_timeout,
)

__all__ = [
    # Client
    "HostRuntimeClient",
    # Database
    "create_pool",
    "close_pool",
    "database_connection",
    "database_transaction",
    # Exceptions
    "LineMoveError",
    "ConfigurationError",
    "RequestValidationError",
    "LookupResultError",
    "NotFoundError",
    "AmbiguousResultError",
    "RemoteRejectionError",
    "ExhaustedRetryError",
    "BestEffortFailure",
    "NetworkError",
    "ConnectionError",
    "TimeoutError",
    "ServerError",
    "CircuitOpenError",
    "DatabaseError",
    "ConnectionPoolError",
    "TransactionError",
    "IntegrityError",
    "LineLockedError",
    "WorkflowTimeoutError",
    # Resilience
    "CircuitBreaker",
    "CircuitState",
    "retry_async",
    "retry_with_budget",
    "with_timeout",
]
