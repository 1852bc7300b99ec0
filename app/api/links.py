"""
Short link endpoints: CRUD, bulk operations, tags, analytics and password verification.

Fixed paths (/analytics, /tags, /bulk, /stats, ...) are declared before /{link_id}
so they are not captured as ids.
"""

import logging

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, Request

from app.api.handlers import http_error
from app.core.config import DEFAULT_BRAND_ID
from app.core.errors import BadRequestError, ConflictError, NotFoundError, UnauthorizedError
from app.schemas.links import (
    BulkLinksRequest,
    LinkCreateRequest,
    LinkUpdateRequest,
    TagCreateRequest,
    TagUpdateRequest,
    VerifyPasswordRequest,
)
from app.services import link_analytics, link_tags, links_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/links", tags=["links"])

ANALYTICS_TYPES = ("full", "daily", "country", "device", "browser", "referer", "recent")


def _split_tags(tags: str | None) -> list[str] | None:
    if not tags:
        return None
    names = [t.strip() for t in tags.split(",") if t.strip()]
    return names or None


def _require_link(link_id: str) -> dict:
    link = links_service.get_link_by_id(link_id)
    if link is None:
        raise HTTPException(status_code=404, detail="Link not found")
    return link


@router.get("", summary="A brand's links, paginated")
def list_links(
    brand_id: str = Query(DEFAULT_BRAND_ID, alias="brandId"),
    page: int = 1,
    limit: int = 20,
    search: str | None = None,
    tags: str | None = None,
    sort_by: str = Query("created", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    include_archived: bool = Query(False, alias="includeArchived"),
    include_inactive: bool = Query(False, alias="includeInactive"),
    include_stats: bool = Query(False, alias="includeStats"),
) -> dict:
    """Query params: brandId, page, limit, search, tags (comma separated), sortBy, sortOrder, includeArchived, includeInactive, includeStats."""
    result = links_service.get_links_by_brand(
        brand_id,
        page=max(1, page),
        limit=max(1, min(limit, 100)),
        search=search,
        tags=_split_tags(tags),
        sort_by=sort_by,
        sort_order=sort_order,
        include_archived=include_archived,
        include_inactive=include_inactive,
    )
    if include_stats:
        result["stats"] = links_service.get_link_stats(brand_id)
    return result


@router.post("", status_code=201, summary="Create a short link")
def create_link(body: LinkCreateRequest) -> dict:
    try:
        return links_service.create_link(body.model_dump())
    except (BadRequestError, ConflictError) as e:
        raise http_error(e) from e


# --- Analytics ---

@router.get("/analytics", summary="Link or brand click analytics")
def analytics(
    link_id: str | None = Query(None, alias="linkId"),
    brand_id: str = Query(DEFAULT_BRAND_ID, alias="brandId"),
    period: str = "30d",
    analytics_type: str = Query("full", alias="type"),
) -> dict:
    """
    With linkId: the link's analytics narrowed by type (full, daily, country,
    device, browser, referer, recent). Without: brand totals and a daily trend.
    """
    if period not in link_analytics.PERIOD_DAYS:
        raise HTTPException(status_code=400, detail="Invalid period")
    if not link_id:
        return {
            "totalClicks": link_analytics.get_total_clicks_by_brand(brand_id),
            "clickTrend": link_analytics.get_click_trend(brand_id, link_analytics.period_days(period)),
        }
    if analytics_type not in ANALYTICS_TYPES:
        raise HTTPException(status_code=400, detail="Invalid analytics type")
    _require_link(link_id)
    if analytics_type == "recent":
        return {"clicks": link_analytics.get_recent_clicks(link_id)}
    data = link_analytics.get_analytics(link_id, period)
    if analytics_type == "full":
        return data
    key = {
        "daily": "clicksByDay",
        "country": "clicksByCountry",
        "device": "clicksByDevice",
        "browser": "clicksByBrowser",
        "referer": "clicksByReferer",
    }[analytics_type]
    return {key: data[key]}


# --- Tags ---

@router.get("/tags", summary="A brand's link tags")
def list_tags(brand_id: str = Query(DEFAULT_BRAND_ID, alias="brandId"), sync: bool = False) -> dict:
    if sync:
        link_tags.sync_tag_usage_counts(brand_id)
    return {"tags": link_tags.get_tags_by_brand(brand_id)}


@router.get("/tags/suggest", summary="Tags guessed from a short code like github-website")
def suggest_tags(short_code: str = Query("", alias="shortCode")) -> dict:
    return {"tags": link_tags.infer_tags_from_slug(short_code)}


def _check_color(color: str | None) -> None:
    if color is not None and color not in link_tags.TAG_COLORS:
        raise HTTPException(status_code=400, detail="Invalid color")


@router.post("/tags", status_code=201, summary="Create a tag (or fetch it with getOrCreate)")
def create_tag(body: TagCreateRequest) -> dict:
    if not body.name or not body.name.strip():
        raise HTTPException(status_code=400, detail="Tag name is required")
    _check_color(body.color)
    try:
        if body.get_or_create:
            return link_tags.get_or_create_tag(body.brand_id, body.name.strip(), body.color)
        return link_tags.create_tag(body.brand_id, body.name.strip(), body.color)
    except (BadRequestError, ConflictError) as e:
        raise http_error(e) from e


@router.patch("/tags", summary="Rename or recolour a tag")
def update_tag(body: TagUpdateRequest) -> dict:
    if not body.id:
        raise HTTPException(status_code=400, detail="Tag ID is required")
    _check_color(body.color)
    try:
        return link_tags.update_tag(body.id, name=body.name, color=body.color)
    except (BadRequestError, ConflictError, NotFoundError) as e:
        raise http_error(e) from e


@router.delete("/tags", summary="Delete a tag")
def delete_tag(id: str | None = None) -> dict:
    if not id:
        raise HTTPException(status_code=400, detail="Tag ID is required")
    if not link_tags.delete_tag(id):
        raise HTTPException(status_code=404, detail="Tag not found")
    return {"success": True}


# --- Password-protected links ---

@router.post("/verify-password", summary="Unlock a password-protected link")
def verify_password(body: VerifyPasswordRequest, request: Request, background: BackgroundTasks) -> dict:
    if not body.short_code:
        raise HTTPException(status_code=400, detail="Short code is required")
    if not body.password:
        raise HTTPException(status_code=400, detail="Password is required")
    try:
        link = links_service.verify_link_password(body.short_code, body.password)
    except (NotFoundError, UnauthorizedError) as e:
        raise http_error(e) from e
    if links_service.is_expired(link):
        raise HTTPException(status_code=410, detail="Link has expired")
    background.add_task(
        link_analytics.record_click,
        link["id"],
        link_analytics.client_ip(request.headers),
        request.headers.get("user-agent"),
        request.headers.get("referer"),
    )
    return {"destinationUrl": links_service.build_destination_url(link["destinationUrl"], links_service.link_utm(link))}


# --- Bulk ---

@router.post("/bulk", summary="Bulk create, delete, archive or retag links")
def bulk(body: BulkLinksRequest) -> dict:
    logger.info("[api:bulk] IN  action=%s ids=%d links=%d", body.action, len(body.ids), len(body.links))
    try:
        if body.action == "create":
            if not body.links:
                raise HTTPException(status_code=400, detail="Links are required")
            created = links_service.bulk_create_links([item.model_dump() for item in body.links])
            return {"success": True, "count": len(created), "links": created}
        if not body.ids:
            raise HTTPException(status_code=400, detail="Link IDs are required")
        if body.action == "delete":
            count = links_service.bulk_delete_links(body.ids)
        elif body.action == "archive":
            count = links_service.bulk_archive_links(body.ids)
        else:
            count = links_service.bulk_update_tags(body.ids, body.tags)
    except (BadRequestError, ConflictError) as e:
        raise http_error(e) from e
    return {"success": True, "count": count}


@router.get("/stats", summary="Link totals for a brand")
def stats(brand_id: str = Query(DEFAULT_BRAND_ID, alias="brandId")) -> dict:
    return links_service.get_link_stats(brand_id)


@router.get("/top", summary="Most clicked live links")
def top_links(brand_id: str = Query(DEFAULT_BRAND_ID, alias="brandId"), limit: int = 10) -> dict:
    return {"links": links_service.get_top_links(brand_id, max(1, min(limit, 100)))}


@router.get("/recent", summary="Most recently created live links")
def recent_links(brand_id: str = Query(DEFAULT_BRAND_ID, alias="brandId"), limit: int = 10) -> dict:
    return {"links": links_service.get_recent_links(brand_id, max(1, min(limit, 100)))}


# --- Single link ---

@router.get("/{link_id}", summary="One link, optionally with analytics")
def get_link(
    link_id: str,
    include_analytics: bool = Query(False, alias="includeAnalytics"),
    period: str = "30d",
) -> dict:
    link = _require_link(link_id)
    data = link_analytics.get_analytics(link_id, period) if include_analytics else None
    return {"link": link, "analytics": data}


@router.patch("/{link_id}", summary="Update a link")
def update_link(link_id: str, body: LinkUpdateRequest) -> dict:
    try:
        return links_service.update_link(link_id, body.model_dump(exclude_unset=True))
    except (BadRequestError, ConflictError, NotFoundError) as e:
        raise http_error(e) from e


@router.delete("/{link_id}", summary="Archive (default), duplicate or hard-delete a link")
def delete_link(link_id: str, action: str = "archive", hard: bool = False) -> dict:
    try:
        if hard:
            if not links_service.delete_link(link_id):
                raise HTTPException(status_code=404, detail="Link not found")
            return {"success": True, "deleted": True}
        if action == "duplicate":
            return {"success": True, "link": links_service.duplicate_link(link_id)}
        if action != "archive":
            raise HTTPException(status_code=400, detail="Invalid action")
        return {"success": True, "link": links_service.archive_link(link_id)}
    except (ConflictError, NotFoundError) as e:
        raise http_error(e) from e


@router.post("/{link_id}/restore", summary="Restore an archived link")
def restore_link(link_id: str) -> dict:
    try:
        return links_service.restore_link(link_id)
    except NotFoundError as e:
        raise http_error(e) from e


@router.post("/{link_id}/activate", summary="Activate a link")
def activate_link(link_id: str) -> dict:
    try:
        return links_service.activate_link(link_id)
    except NotFoundError as e:
        raise http_error(e) from e


@router.post("/{link_id}/deactivate", summary="Deactivate a link")
def deactivate_link(link_id: str) -> dict:
    try:
        return links_service.deactivate_link(link_id)
    except NotFoundError as e:
        raise http_error(e) from e
