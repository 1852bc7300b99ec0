"""Schemas for the MCP server key management and MCP connection endpoints."""

from typing import Any, Literal

from pydantic import Field

from app.core.config import DEFAULT_BRAND_ID
from app.schemas.common import CamelRequest


class ApiKeyCreateRequest(CamelRequest):
    name: str = Field(..., min_length=1)
    brand_id: str = DEFAULT_BRAND_ID
    created_by: str | None = None


class ConnectionCreateRequest(CamelRequest):
    """Request body for POST /api/mcp-connections."""

    name: str = Field(..., min_length=1)
    server_url: str = Field(..., min_length=1)
    description: str | None = None
    server_type: Literal["remote", "stdio"] = "remote"
    auth_type: Literal["none", "bearer", "api_key"] = "none"
    auth_config: dict[str, Any] = Field(
        default_factory=dict, description="bearer: {token}; api_key: {apiKey, apiKeyHeader?}."
    )
    is_active: bool = True


class ConnectionUpdateRequest(CamelRequest):
    name: str | None = None
    server_url: str | None = None
    description: str | None = None
    server_type: Literal["remote", "stdio"] | None = None
    auth_type: Literal["none", "bearer", "api_key"] | None = None
    auth_config: dict[str, Any] | None = None
    is_active: bool | None = None
