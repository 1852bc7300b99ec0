"""Schemas for the short link endpoints."""

from typing import Literal

from pydantic import Field

from app.core.config import DEFAULT_BRAND_ID
from app.schemas.common import CamelRequest


class LinkCreateRequest(CamelRequest):
    """Request body for POST /api/links. A missing short code is generated."""

    brand_id: str = DEFAULT_BRAND_ID
    destination_url: str | None = Field(None, description="Absolute URL the short link redirects to.")
    short_code: str | None = None
    domain: str | None = None
    title: str | None = None
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    password: str | None = Field(None, description="Stored hashed; visitors must enter it before the redirect.")
    expires_at: str | None = Field(None, description="ISO 8601 timestamp after which the link stops redirecting.")
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    utm_term: str | None = None
    utm_content: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"destinationUrl": "https://github.com/opensesh", "shortCode": "github", "tags": ["GitHub"]}
            ]
        }
    }


class LinkUpdateRequest(CamelRequest):
    """Request body for PATCH /api/links/{id}. Only fields that are sent are changed."""

    short_code: str | None = None
    destination_url: str | None = None
    title: str | None = None
    description: str | None = None
    tags: list[str] | None = None
    password: str | None = None
    remove_password: bool = False
    expires_at: str | None = None
    remove_expiration: bool = False
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    utm_term: str | None = None
    utm_content: str | None = None
    is_active: bool | None = None
    is_archived: bool | None = None


class BulkLinksRequest(CamelRequest):
    """Request body for POST /api/links/bulk."""

    action: Literal["create", "delete", "archive", "tags"]
    ids: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    links: list[LinkCreateRequest] = Field(default_factory=list)


class VerifyPasswordRequest(CamelRequest):
    """Request body for POST /api/links/verify-password."""

    short_code: str | None = None
    password: str | None = None


class TagCreateRequest(CamelRequest):
    brand_id: str = DEFAULT_BRAND_ID
    name: str | None = None
    color: str | None = None
    get_or_create: bool = False


class TagUpdateRequest(CamelRequest):
    id: str | None = None
    name: str | None = None
    color: str | None = None
