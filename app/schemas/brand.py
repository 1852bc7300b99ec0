"""Schemas for the brand asset and guideline management endpoints."""

from typing import Any

from pydantic import Field

from app.core.config import DEFAULT_BRAND_ID
from app.schemas.common import CamelRequest


class AssetCreateRequest(CamelRequest):
    """An asset record; storage_path is a path under the asset store or a full URL."""

    brand_id: str = DEFAULT_BRAND_ID
    name: str = Field(..., min_length=1)
    filename: str = Field(..., min_length=1)
    category: str = Field(..., description="logos, fonts, illustrations, images, textures or icons.")
    storage_path: str = Field(..., min_length=1)
    description: str | None = None
    variant: str | None = Field(None, description="e.g. vanilla, glass, charcoal.")
    mime_type: str | None = None
    metadata: dict[str, Any] | None = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "name": "Brandmark Vanilla",
                "filename": "brandmark-vanilla.svg",
                "category": "logos",
                "variant": "vanilla",
                "storagePath": "logos/brandmark-vanilla.svg",
                "mimeType": "image/svg+xml",
            }
        }
    }


class AssetUpdateRequest(CamelRequest):
    name: str | None = None
    filename: str | None = None
    category: str | None = None
    storage_path: str | None = None
    description: str | None = None
    variant: str | None = None
    mime_type: str | None = None
    metadata: dict[str, Any] | None = None


class GuidelineCreateRequest(CamelRequest):
    brand_id: str = DEFAULT_BRAND_ID
    title: str = Field(..., min_length=1)
    slug: str | None = Field(None, description="Defaults to one derived from the title.")
    guideline_type: str = Field("link", description="figma, pdf, pptx, ppt, link, notion or google-doc.")
    url: str | None = None
    embed_url: str | None = None
    storage_path: str | None = None
    description: str | None = None
    category: str | None = None
    thumbnail_url: str | None = None
    is_primary: bool = False
    sort_order: int | None = None


class GuidelineUpdateRequest(CamelRequest):
    title: str | None = None
    slug: str | None = None
    guideline_type: str | None = None
    url: str | None = None
    embed_url: str | None = None
    storage_path: str | None = None
    description: str | None = None
    category: str | None = None
    thumbnail_url: str | None = None
    sort_order: int | None = None
