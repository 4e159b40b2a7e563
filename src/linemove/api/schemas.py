"""Pydantic schemas for automation host request and response envelopes.

The host fronts the directory, call manager and voicemail systems. It exposes
two endpoints: named query execution (returns rows) and target system
function runs (returns a single result object or an error).
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


class QueryRequest(BaseModel):
    """Body for a named query execution."""

    params: dict[str, Any] = Field(default_factory=dict)


class QueryResponse(BaseModel):
    """Rows returned by a named query. Order carries no meaning."""

    rows: list[dict[str, Any]] = Field(default_factory=list)


class FunctionRunRequest(BaseModel):
    """Body for a target system function run."""

    params: dict[str, Any] = Field(default_factory=dict)


class FunctionRunResponse(BaseModel):
    """Outcome of a target system function run."""

    success: bool = True
    result: Optional[dict[str, Any]] = None  # Deletes and updates may answer null
    error: Optional[str] = None
