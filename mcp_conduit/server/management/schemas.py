"""Pydantic request/response schemas for the Management API.

Provider status payloads reuse :class:`~mcp_conduit.runtime.models.ProviderStatus`.
"""

from typing import Any, Dict, List

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    error: str
    message: str


class HealthResponse(BaseModel):
    status: str = Field(description="healthy | degraded | unhealthy")
    version: str = ""
    configured: int = 0
    connected: int = 0


class ToolDetail(BaseModel):
    name: str
    label: str
    description: str
    provider: str
    original_name: str
    blocked: bool = False
    parameters: Dict[str, Any] = Field(default_factory=dict)


class ToolsResponse(BaseModel):
    tools: List[ToolDetail] = Field(default_factory=list)


class ReconnectResponse(BaseModel):
    name: str
    reconnected: bool
    error: str = ""


class CallToolRequest(BaseModel):
    name: str = Field(..., min_length=1)
    arguments: Dict[str, Any] = Field(default_factory=dict)
    call_id: str = ""
