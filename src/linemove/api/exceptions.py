#!/usr/bin/env python3
"""Exception Hierarchy for line reassignment.

This module provides a structured exception hierarchy for every failure the
reassignment workflow can surface: lookups that return the wrong number of
rows, backend rejections, exhausted retry budgets, transport problems talking
to the automation host, and database failures in the parking ledger.

Design Principles:
    - All exceptions inherit from LineMoveError base class
    - Exceptions preserve context (original error, timestamps, details)
    - Exceptions are categorized by recoverability
    - "Missing data" and "misconfigured data" are distinct classes

Exception Hierarchy:
    LineMoveError (base)
    ├── ConfigurationError (unrecoverable - fix config)
    ├── RequestValidationError (unrecoverable - fix request/row data)
    ├── LookupResultError
    │   ├── NotFoundError (required lookup returned zero rows)
    │   └── AmbiguousResultError (unique lookup returned many rows)
    ├── RemoteRejectionError (backend rejected an action)
    ├── ExhaustedRetryError (bounded retry budget spent)
    ├── BestEffortFailure (logged, never propagated past its call site)
    ├── NetworkError (transport to the automation host)
    │   ├── ConnectionError
    │   ├── TimeoutError
    │   └── ServerError
    ├── CircuitOpenError
    ├── DatabaseError
    │   ├── ConnectionPoolError
    │   ├── TransactionError
    │   └── IntegrityError
    ├── LineLockedError
    └── WorkflowTimeoutError
"""
from datetime import datetime, timezone
from typing import Any, Optional

# ============================================
# Base Exception
# ============================================

class LineMoveError(Exception):
    """Base exception for all line reassignment errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "NOT_FOUND")
        details: Additional context as a dictionary
        timestamp: When the error occurred
        cause: The original exception that caused this error
        recoverable: Whether this error might be recoverable with retry
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__.upper()
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)
        self.cause = cause
        self.recoverable = recoverable

        if cause:
            self.__cause__ = cause

    def __str__(self) -> str:
        parts = [self.message]
        if self.code:
            parts.insert(0, f"[{self.code}]")
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"({detail_str})")
        return " ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"details={self.details!r}, "
            f"recoverable={self.recoverable})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================
# Configuration / Validation Errors (Unrecoverable)
# ============================================

class ConfigurationError(LineMoveError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list[str]] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details=details,
            recoverable=False,
            **kwargs,
        )


class RequestValidationError(LineMoveError):
    """Raised when a request or a mapped row fails boundary validation."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details=details,
            recoverable=False,
            **kwargs,
        )
        self.field = field


# ============================================
# Lookup Errors
# ============================================

class LookupResultError(LineMoveError):
    """Base class for lookups that returned an unexpected number of rows.

    Attributes:
        query_name: The named query that was executed
        params: The parameters it was executed with
    """

    def __init__(
        self,
        message: str,
        query_name: str,
        params: Optional[dict[str, Any]] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["query"] = query_name
        if params:
            details["params"] = params
        kwargs.setdefault("recoverable", False)
        super().__init__(message, details=details, **kwargs)
        self.query_name = query_name
        self.params = params or {}


class NotFoundError(LookupResultError):
    """Raised when a required lookup returned zero rows."""

    def __init__(self, resource_type: str, key: Any, query_name: str, **kwargs):
        super().__init__(
            f"Cannot find {resource_type} for [{key}]",
            query_name=query_name,
            code="NOT_FOUND",
            **kwargs,
        )
        self.resource_type = resource_type
        self.key = key


class AmbiguousResultError(LookupResultError):
    """Raised when a lookup expected to be unique returned multiple rows."""

    def __init__(
        self,
        resource_type: str,
        key: Any,
        query_name: str,
        row_count: int,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["row_count"] = row_count
        super().__init__(
            f"Found multiple {resource_type} records for [{key}]",
            query_name=query_name,
            code="AMBIGUOUS_RESULT",
            details=details,
            **kwargs,
        )
        self.resource_type = resource_type
        self.key = key
        self.row_count = row_count


# ============================================
# Action Errors
# ============================================

class RemoteRejectionError(LineMoveError):
    """Raised when a backend system rejects an action.

    Attributes:
        system: Backend system identifier the action targeted
        action: Action name
    """

    def __init__(
        self,
        message: str,
        system: str,
        action: str,
        response_body: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["system"] = system
        details["action"] = action
        if response_body:
            details["response_body"] = response_body[:500]
        super().__init__(
            message,
            code="REMOTE_REJECTION",
            details=details,
            recoverable=False,
            **kwargs,
        )
        self.system = system
        self.action = action


class ExhaustedRetryError(LineMoveError):
    """Raised when a bounded retry budget is spent without success.

    Distinct from RemoteRejectionError so it reads as a capacity/range
    problem rather than a single rejected call.
    """

    def __init__(self, message: str, attempts: int, **kwargs):
        details = kwargs.pop("details", {})
        details["attempts"] = attempts
        super().__init__(
            message,
            code="RETRY_EXHAUSTED",
            details=details,
            recoverable=False,
            **kwargs,
        )
        self.attempts = attempts


class BestEffortFailure(LineMoveError):
    """A best-effort step failed. Logged as a warning, never propagated."""

    def __init__(self, step: str, cause: Exception, **kwargs):
        super().__init__(
            f"{step} failed: {cause}",
            code="BEST_EFFORT_FAILURE",
            details={"step": step},
            cause=cause,
            recoverable=True,
            **kwargs,
        )
        self.step = step


# ============================================
# Network Errors (Recoverable)
# ============================================

class NetworkError(LineMoveError):
    """Base class for transport errors talking to the automation host."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)


class ConnectionError(NetworkError):
    """Raised when connection to the automation host fails."""

    def __init__(self, message: str, host: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if host:
            details["host"] = host
        super().__init__(message, code="CONNECTION_ERROR", details=details, **kwargs)


class TimeoutError(NetworkError):
    """Raised when a request to the automation host times out."""

    def __init__(
        self,
        message: str,
        timeout_seconds: Optional[float] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if timeout_seconds:
            details["timeout_seconds"] = timeout_seconds
        super().__init__(message, code="TIMEOUT_ERROR", details=details, **kwargs)


class ServerError(NetworkError):
    """Raised when the automation host returns a 5xx error."""

    def __init__(
        self,
        message: str = "Server error",
        status_code: int = 500,
        endpoint: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["status_code"] = status_code
        if endpoint:
            details["endpoint"] = endpoint
        super().__init__(message, code=f"SERVER_ERROR_{status_code}", details=details, **kwargs)
        self.status_code = status_code
        self.endpoint = endpoint


class CircuitOpenError(LineMoveError):
    """Raised when circuit breaker is open and requests are being rejected."""

    def __init__(
        self,
        message: str = "Circuit breaker is open, requests rejected",
        reset_at: Optional[datetime] = None,
        failure_count: int = 0,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if reset_at:
            details["reset_at"] = reset_at.isoformat()
        details["failure_count"] = failure_count
        super().__init__(
            message,
            code="CIRCUIT_OPEN",
            details=details,
            recoverable=True,
            **kwargs,
        )
        self.reset_at = reset_at
        self.failure_count = failure_count


# ============================================
# Database Errors
# ============================================

class DatabaseError(LineMoveError):
    """Base class for parking ledger / line lock database errors."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("recoverable", False)
        super().__init__(message, **kwargs)


class ConnectionPoolError(DatabaseError):
    """Raised when a database connection cannot be acquired."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="CONNECTION_POOL_ERROR", recoverable=True, **kwargs)


class TransactionError(DatabaseError):
    """Raised when a database transaction fails."""

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        super().__init__(message, code="TRANSACTION_ERROR", details=details, **kwargs)


class IntegrityError(DatabaseError):
    """Raised when a database constraint is violated."""

    def __init__(self, message: str, constraint: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if constraint:
            details["constraint"] = constraint
        super().__init__(message, code="INTEGRITY_ERROR", details=details, **kwargs)


# ============================================
# Workflow Guard Errors
# ============================================

class LineLockedError(LineMoveError):
    """Raised when another run already holds the advisory lock for a line."""

    def __init__(self, line_id: str, **kwargs):
        super().__init__(
            f"Line [{line_id}] is being reassigned by another run",
            code="LINE_LOCKED",
            details={"line_id": line_id},
            recoverable=True,
            **kwargs,
        )
        self.line_id = line_id


class WorkflowTimeoutError(LineMoveError):
    """Raised when a reassignment run exceeds its deadline."""

    def __init__(self, timeout_seconds: float, **kwargs):
        super().__init__(
            f"Reassignment did not finish within {timeout_seconds}s",
            code="WORKFLOW_TIMEOUT",
            details={"timeout_seconds": timeout_seconds},
            recoverable=False,
            **kwargs,
        )
        self.timeout_seconds = timeout_seconds


__all__ = [
    # Base
    "LineMoveError",
    # Configuration / validation
    "ConfigurationError",
    "RequestValidationError",
    # Lookups
    "LookupResultError",
    "NotFoundError",
    "AmbiguousResultError",
    # Actions
    "RemoteRejectionError",
    "ExhaustedRetryError",
    "BestEffortFailure",
    # Network
    "NetworkError",
    "ConnectionError",
    "TimeoutError",
    "ServerError",
    "CircuitOpenError",
    # Database
    "DatabaseError",
    "ConnectionPoolError",
    "TransactionError",
    "IntegrityError",
    # Workflow guards
    "LineLockedError",
    "WorkflowTimeoutError",
]
