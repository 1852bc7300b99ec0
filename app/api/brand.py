"""
Brand asset and guideline management endpoints.

Reads reuse the same service functions as the MCP brand tools; writes are
validated in brand_service and its errors mapped here.
"""

import logging

from fastapi import APIRouter, HTTPException, Query

from app.api.handlers import http_error
from app.core.config import DEFAULT_BRAND_ID
from app.core.errors import BadRequestError, ConflictError, NotFoundError
from app.schemas.brand import (
    AssetCreateRequest,
    AssetUpdateRequest,
    GuidelineCreateRequest,
    GuidelineUpdateRequest,
)
from app.services import brand_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/brand", tags=["brand"])


# --- Assets ---

@router.get("/assets", summary="A brand's assets")
def list_assets(
    brand_id: str = Query(DEFAULT_BRAND_ID, alias="brandId"),
    category: str = "all",
    variant: str | None = None,
    limit: int = 50,
) -> dict:
    return {"assets": brand_service.get_brand_assets(brand_id, category, variant, max(1, min(limit, 200)))}


@router.get("/assets/counts", summary="Asset count per category")
def asset_counts(brand_id: str = Query(DEFAULT_BRAND_ID, alias="brandId")) -> dict:
    return {"counts": brand_service.get_asset_counts(brand_id)}


@router.post("/assets", status_code=201, summary="Register a brand asset")
def create_asset(body: AssetCreateRequest) -> dict:
    try:
        return brand_service.create_asset(body.brand_id, body.model_dump(exclude={"brand_id"}))
    except BadRequestError as e:
        raise http_error(e) from e


@router.get("/assets/{asset_id}", summary="One asset")
def get_asset(asset_id: str) -> dict:
    asset = brand_service.get_asset_by_id(asset_id)
    if asset is None:
        raise HTTPException(status_code=404, detail="Asset not found")
    return asset


@router.patch("/assets/{asset_id}", summary="Update an asset")
def update_asset(asset_id: str, body: AssetUpdateRequest) -> dict:
    try:
        return brand_service.update_asset(asset_id, body.model_dump(exclude_unset=True))
    except (BadRequestError, NotFoundError) as e:
        raise http_error(e) from e


@router.delete("/assets/{asset_id}", summary="Delete an asset")
def delete_asset(asset_id: str) -> dict:
    if not brand_service.delete_asset(asset_id):
        raise HTTPException(status_code=404, detail="Asset not found")
    return {"success": True}


# --- Guidelines ---

@router.get("/guidelines", summary="A brand's active guidelines")
def list_guidelines(
    brand_id: str = Query(DEFAULT_BRAND_ID, alias="brandId"),
    slug: str | None = None,
    category: str | None = None,
) -> dict:
    return {"guidelines": brand_service.get_brand_guidelines(brand_id, slug=slug, category=category)}


@router.post("/guidelines", status_code=201, summary="Add a guideline (Figma, PDF, link, ...)")
def create_guideline(body: GuidelineCreateRequest) -> dict:
    try:
        return brand_service.create_guideline(body.brand_id, body.model_dump(exclude={"brand_id"}))
    except (BadRequestError, ConflictError) as e:
        raise http_error(e) from e


@router.get("/guidelines/{guideline_id}", summary="One guideline, archived ones included")
def get_guideline(guideline_id: str) -> dict:
    guideline = brand_service.get_guideline_by_id(guideline_id)
    if guideline is None:
        raise HTTPException(status_code=404, detail="Guideline not found")
    return guideline


@router.patch("/guidelines/{guideline_id}", summary="Update a guideline")
def update_guideline(guideline_id: str, body: GuidelineUpdateRequest) -> dict:
    try:
        return brand_service.update_guideline(guideline_id, body.model_dump(exclude_unset=True))
    except (BadRequestError, ConflictError, NotFoundError) as e:
        raise http_error(e) from e


@router.delete("/guidelines/{guideline_id}", summary="Archive a guideline")
def delete_guideline(guideline_id: str) -> dict:
    try:
        return brand_service.delete_guideline(guideline_id)
    except NotFoundError as e:
        raise http_error(e) from e


@router.post("/guidelines/{guideline_id}/restore", summary="Restore an archived guideline")
def restore_guideline(guideline_id: str) -> dict:
    try:
        return brand_service.restore_guideline(guideline_id)
    except NotFoundError as e:
        raise http_error(e) from e


@router.post("/guidelines/{guideline_id}/primary", summary="Make a guideline the brand's primary one")
def set_primary_guideline(guideline_id: str, brand_id: str = Query(DEFAULT_BRAND_ID, alias="brandId")) -> dict:
    try:
        return brand_service.set_primary_guideline(brand_id, guideline_id)
    except NotFoundError as e:
        raise http_error(e) from e
