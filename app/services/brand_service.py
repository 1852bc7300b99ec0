"""
Brand data: colours, assets, guidelines and the knowledge-document search used by MCP tools and chat.

Responsibility: Read and manage brand tables and shape rows into the camelCase
dicts external clients see. Search ranks rows by query-term overlap. Asset and
guideline writes raise BadRequestError / NotFoundError / ConflictError for the
API layer to map.
"""

import logging
import re
import sqlite3
import unicodedata
from typing import Any

from app.core.config import ASSET_BASE_URL, PUBLIC_BASE_URL
from app.core.db import from_json, get_conn, new_id, now_iso, to_json
from app.core.errors import BadRequestError, ConflictError, NotFoundError

logger = logging.getLogger(__name__)

_STOPWORDS = frozenset(
    "a an and are as at be by for from how in is it of on or our the this to use what when where which who why with".split()
)

ASSET_CATEGORIES = ("logos", "fonts", "illustrations", "images", "textures", "icons")
GUIDELINE_TYPES = ("figma", "pdf", "pptx", "ppt", "link", "notion", "google-doc")

_ASSET_UPDATABLE = ("name", "filename", "description", "category", "variant", "storage_path", "mime_type", "metadata")
_GUIDELINE_UPDATABLE = (
    "title",
    "slug",
    "guideline_type",
    "url",
    "embed_url",
    "storage_path",
    "description",
    "category",
    "thumbnail_url",
    "sort_order",
)


def tokenize(text: str) -> set[str]:
    """Lowercased word set without stopwords and single characters."""
    normalized = unicodedata.normalize("NFKC", text or "").lower()
    return {w for w in re.findall(r"[a-z0-9]+", normalized) if len(w) > 1 and w not in _STOPWORDS}


def overlap_score(query_terms: set[str], text: str) -> float:
    """Share of query terms present in text, 0..1."""
    if not query_terms:
        return 0.0
    return len(query_terms & tokenize(text)) / len(query_terms)


def asset_url(storage_path: str | None) -> str | None:
    """Public download URL for a stored asset. Full URLs pass through unchanged."""
    if not storage_path:
        return None
    if storage_path.startswith(("http://", "https://")):
        return storage_path
    base = ASSET_BASE_URL or f"{PUBLIC_BASE_URL}/assets"
    return f"{base}/{storage_path.lstrip('/')}"


def _asset_to_dict(row: Any) -> dict[str, Any]:
    return {
        "id": row["id"],
        "name": row["name"],
        "filename": row["filename"],
        "description": row["description"],
        "category": row["category"],
        "variant": row["variant"],
        "url": asset_url(row["storage_path"]),
        "mimeType": row["mime_type"],
        "metadata": from_json(row["metadata"], {}),
    }


def get_brand_colors(brand_id: str, group: str = "all", include_guidelines: bool = True) -> list[dict[str, Any]]:
    sql = "SELECT * FROM brand_colors WHERE brand_id = ? AND is_active = 1"
    params: list[Any] = [brand_id]
    if group and group != "all":
        sql += " AND color_group = ?"
        params.append(group)
    sql += " ORDER BY sort_order"
    conn = get_conn()
    try:
        rows = conn.execute(sql, params).fetchall()
    finally:
        conn.close()
    colors = []
    for r in rows:
        color = {
            "name": r["name"],
            "slug": r["slug"],
            "hex": r["hex_value"],
            "rgb": r["rgb_value"],
            "group": r["color_group"],
            "role": r["color_role"],
            "textColor": r["text_color"],
            "cssVariable": r["css_variable_name"],
        }
        if include_guidelines:
            color["description"] = r["description"]
            color["usage"] = r["usage_guidelines"]
        colors.append(color)
    return colors


def get_brand_assets(
    brand_id: str,
    category: str = "all",
    variant: str | None = None,
    limit: int = 20,
) -> list[dict[str, Any]]:
    sql = "SELECT * FROM brand_assets WHERE brand_id = ?"
    params: list[Any] = [brand_id]
    if category and category != "all":
        sql += " AND category = ?"
        params.append(category)
    if variant:
        sql += " AND variant = ?"
        params.append(variant)
    sql += " ORDER BY name LIMIT ?"
    params.append(limit)
    conn = get_conn()
    try:
        rows = conn.execute(sql, params).fetchall()
    finally:
        conn.close()
    return [_asset_to_dict(r) for r in rows]


def _guideline_to_dict(row: Any) -> dict[str, Any]:
    return {
        "id": row["id"],
        "title": row["title"],
        "slug": row["slug"],
        "type": row["guideline_type"],
        # stored file takes precedence over an external link
        "url": asset_url(row["storage_path"]) if row["storage_path"] else row["url"],
        "embedUrl": row["embed_url"],
        "description": row["description"],
        "category": row["category"],
        "thumbnail": row["thumbnail_url"],
        "isPrimary": bool(row["is_primary"]),
    }


def get_brand_guidelines(brand_id: str, slug: str | None = None, category: str | None = None) -> list[dict[str, Any]]:
    sql = "SELECT * FROM brand_guidelines WHERE brand_id = ? AND is_active = 1"
    params: list[Any] = [brand_id]
    if slug:
        sql += " AND slug = ?"
        params.append(slug)
    if category:
        sql += " AND category = ?"
        params.append(category)
    sql += " ORDER BY sort_order"
    conn = get_conn()
    try:
        rows = conn.execute(sql, params).fetchall()
    finally:
        conn.close()
    return [_guideline_to_dict(r) for r in rows]


def search_brand_knowledge(brand_id: str, query: str, category: str = "all", limit: int = 5) -> list[dict[str, Any]]:
    """
    Rank knowledge documents by overlap between query terms and title/section/content.
    Returns [{content, document, category, section, relevance}] best first.
    """
    logger.info("[brand_service:search_brand_knowledge] IN  query=%r category=%s limit=%d", query, category, limit)
    terms = tokenize(query)
    if not terms:
        logger.info("[brand_service:search_brand_knowledge] OUT empty query, returning []")
        return []
    sql = "SELECT * FROM brand_documents WHERE brand_id = ?"
    params: list[Any] = [brand_id]
    if category and category != "all":
        sql += " AND category = ?"
        params.append(category)
    conn = get_conn()
    try:
        rows = conn.execute(sql, params).fetchall()
    finally:
        conn.close()
    scored = []
    for r in rows:
        score = overlap_score(terms, f"{r['title']} {r['section'] or ''} {r['content']}")
        if score > 0:
            scored.append((score, r))
    scored.sort(key=lambda item: item[0], reverse=True)
    results = [
        {
            "content": r["content"],
            "document": r["title"],
            "category": r["category"],
            "section": r["section"] or "",
            "relevance": round(score, 2),
        }
        for score, r in scored[:limit]
    ]
    logger.info("[brand_service:search_brand_knowledge] OUT candidates=%d returned=%d", len(scored), len(results))
    return results


def search_brand_assets(brand_id: str, query: str, category: str | None = None, limit: int = 10) -> list[dict[str, Any]]:
    """Rank assets by overlap with name, filename, description, variant and category."""
    logger.info("[brand_service:search_brand_assets] IN  query=%r category=%s limit=%d", query, category, limit)
    terms = tokenize(query)
    if not terms:
        return []
    sql = "SELECT * FROM brand_assets WHERE brand_id = ?"
    params: list[Any] = [brand_id]
    if category:
        sql += " AND category = ?"
        params.append(category)
    conn = get_conn()
    try:
        rows = conn.execute(sql, params).fetchall()
    finally:
        conn.close()
    scored = []
    for r in rows:
        text = " ".join(
            str(r[k] or "") for k in ("name", "filename", "description", "variant", "category")
        )
        score = overlap_score(terms, text.replace("-", " ").replace("_", " "))
        if score > 0:
            scored.append((score, r))
    scored.sort(key=lambda item: item[0], reverse=True)
    results = []
    for score, r in scored[:limit]:
        asset = _asset_to_dict(r)
        del asset["metadata"]
        asset["relevance"] = round(score, 2)
        results.append(asset)
    logger.info("[brand_service:search_brand_assets] OUT returned=%d", len(results))
    return results


# --- Asset management ---

def _fetch_row(sql: str, params: tuple) -> sqlite3.Row | None:
    conn = get_conn()
    try:
        return conn.execute(sql, params).fetchone()
    finally:
        conn.close()


def _check_asset_category(category: str | None) -> None:
    if category not in ASSET_CATEGORIES:
        raise BadRequestError(f"Invalid category. Use one of: {', '.join(ASSET_CATEGORIES)}")


def get_asset_by_id(asset_id: str) -> dict[str, Any] | None:
    row = _fetch_row("SELECT * FROM brand_assets WHERE id = ?", (asset_id,))
    if row is None:
        return None
    return {
        **_asset_to_dict(row),
        "brandId": row["brand_id"],
        "storagePath": row["storage_path"],
        "createdAt": row["created_at"],
    }


def create_asset(brand_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Register an asset whose file already sits at storage_path (or a full URL)."""
    for required in ("name", "filename", "storage_path"):
        if not (data.get(required) or "").strip():
            raise BadRequestError(f"{required} is required")
    _check_asset_category(data.get("category"))
    asset_id = new_id()
    conn = get_conn()
    try:
        conn.execute(
            """
            INSERT INTO brand_assets
                (id, brand_id, name, filename, description, category, variant, storage_path, mime_type, metadata, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                asset_id,
                brand_id,
                data["name"].strip(),
                data["filename"].strip(),
                data.get("description"),
                data["category"],
                data.get("variant"),
                data["storage_path"].strip(),
                data.get("mime_type"),
                to_json(data.get("metadata") or {}),
                now_iso(),
            ),
        )
        conn.commit()
    finally:
        conn.close()
    logger.info("[brand_service:create_asset] id=%s brand=%s category=%s", asset_id, brand_id, data["category"])
    return get_asset_by_id(asset_id)


def update_asset(asset_id: str, fields: dict[str, Any]) -> dict[str, Any]:
    if get_asset_by_id(asset_id) is None:
        raise NotFoundError("Asset not found")
    updates = {k: fields[k] for k in _ASSET_UPDATABLE if k in fields}
    if "category" in updates:
        _check_asset_category(updates["category"])
    for required in ("name", "filename", "storage_path"):
        if required in updates and not (updates[required] or "").strip():
            raise BadRequestError(f"{required} cannot be empty")
    if "metadata" in updates:
        updates["metadata"] = to_json(updates["metadata"] or {})
    if updates:
        assignments = ", ".join(f"{k} = ?" for k in updates)
        conn = get_conn()
        try:
            conn.execute(f"UPDATE brand_assets SET {assignments} WHERE id = ?", (*updates.values(), asset_id))
            conn.commit()
        finally:
            conn.close()
        logger.info("[brand_service:update_asset] id=%s fields=%s", asset_id, sorted(updates))
    return get_asset_by_id(asset_id)


def delete_asset(asset_id: str) -> bool:
    """Remove the asset row. The stored file is left to the storage layer."""
    conn = get_conn()
    try:
        cur = conn.execute("DELETE FROM brand_assets WHERE id = ?", (asset_id,))
        conn.commit()
    finally:
        conn.close()
    if cur.rowcount:
        logger.info("[brand_service:delete_asset] id=%s", asset_id)
    return cur.rowcount > 0


def get_asset_counts(brand_id: str) -> dict[str, int]:
    """Asset count per category; every category is present, zero when empty."""
    conn = get_conn()
    try:
        rows = conn.execute(
            "SELECT category, COUNT(*) AS n FROM brand_assets WHERE brand_id = ? GROUP BY category", (brand_id,)
        ).fetchall()
    finally:
        conn.close()
    counts = dict.fromkeys(ASSET_CATEGORIES, 0)
    for r in rows:
        if r["category"] in counts:
            counts[r["category"]] = r["n"]
    return counts


# --- Guideline management ---

def generate_guideline_slug(title: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", (title or "").lower()).strip("-")


def _check_guideline_type(guideline_type: str | None) -> None:
    if guideline_type not in GUIDELINE_TYPES:
        raise BadRequestError(f"Invalid guideline type. Use one of: {', '.join(GUIDELINE_TYPES)}")


def _slug_taken(brand_id: str, slug: str, exclude_id: str | None = None) -> bool:
    row = _fetch_row(
        "SELECT id FROM brand_guidelines WHERE brand_id = ? AND slug = ? AND id != ?",
        (brand_id, slug, exclude_id or ""),
    )
    return row is not None


def get_guideline_by_id(guideline_id: str) -> dict[str, Any] | None:
    """One guideline, archived ones included."""
    row = _fetch_row("SELECT * FROM brand_guidelines WHERE id = ?", (guideline_id,))
    if row is None:
        return None
    return {
        **_guideline_to_dict(row),
        "brandId": row["brand_id"],
        "sortOrder": row["sort_order"],
        "isActive": bool(row["is_active"]),
    }


def create_guideline(brand_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """
    Add a guideline. The slug defaults to one derived from the title and must
    be unique within the brand. A guideline needs a url or a storage_path.
    """
    title = (data.get("title") or "").strip()
    if not title:
        raise BadRequestError("Title is required")
    guideline_type = data.get("guideline_type") or "link"
    _check_guideline_type(guideline_type)
    if not (data.get("url") or data.get("storage_path")):
        raise BadRequestError("A url or storage_path is required")
    slug = generate_guideline_slug(data.get("slug") or title)
    if not slug:
        raise BadRequestError("Slug must contain letters or numbers")
    if _slug_taken(brand_id, slug):
        raise ConflictError("Guideline slug already exists")

    guideline_id = new_id()
    conn = get_conn()
    try:
        if data.get("sort_order") is None:
            row = conn.execute(
                "SELECT COALESCE(MAX(sort_order), -1) + 1 AS next FROM brand_guidelines WHERE brand_id = ?", (brand_id,)
            ).fetchone()
            sort_order = row["next"]
        else:
            sort_order = data["sort_order"]
        conn.execute(
            """
            INSERT INTO brand_guidelines
                (id, brand_id, title, slug, guideline_type, url, embed_url, storage_path,
                 description, category, thumbnail_url, is_primary, sort_order, is_active)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, 1)
            """,
            (
                guideline_id,
                brand_id,
                title,
                slug,
                guideline_type,
                data.get("url"),
                data.get("embed_url"),
                data.get("storage_path"),
                data.get("description"),
                data.get("category"),
                data.get("thumbnail_url"),
                sort_order,
            ),
        )
        conn.commit()
    finally:
        conn.close()
    logger.info("[brand_service:create_guideline] id=%s brand=%s slug=%s", guideline_id, brand_id, slug)
    if data.get("is_primary"):
        return set_primary_guideline(brand_id, guideline_id)
    return get_guideline_by_id(guideline_id)


def update_guideline(guideline_id: str, fields: dict[str, Any]) -> dict[str, Any]:
    existing = get_guideline_by_id(guideline_id)
    if existing is None:
        raise NotFoundError("Guideline not found")
    updates = {k: fields[k] for k in _GUIDELINE_UPDATABLE if k in fields}
    if "title" in updates and not (updates["title"] or "").strip():
        raise BadRequestError("Title cannot be empty")
    if "guideline_type" in updates:
        _check_guideline_type(updates["guideline_type"])
    if "slug" in updates:
        slug = generate_guideline_slug(updates["slug"] or "")
        if not slug:
            raise BadRequestError("Slug must contain letters or numbers")
        if _slug_taken(existing["brandId"], slug, exclude_id=guideline_id):
            raise ConflictError("Guideline slug already exists")
        updates["slug"] = slug
    if updates:
        assignments = ", ".join(f"{k} = ?" for k in updates)
        conn = get_conn()
        try:
            conn.execute(f"UPDATE brand_guidelines SET {assignments} WHERE id = ?", (*updates.values(), guideline_id))
            conn.commit()
        finally:
            conn.close()
        logger.info("[brand_service:update_guideline] id=%s fields=%s", guideline_id, sorted(updates))
    return get_guideline_by_id(guideline_id)


def _set_guideline_active(guideline_id: str, active: bool) -> dict[str, Any]:
    if get_guideline_by_id(guideline_id) is None:
        raise NotFoundError("Guideline not found")
    conn = get_conn()
    try:
        conn.execute("UPDATE brand_guidelines SET is_active = ? WHERE id = ?", (1 if active else 0, guideline_id))
        conn.commit()
    finally:
        conn.close()
    return get_guideline_by_id(guideline_id)


def delete_guideline(guideline_id: str) -> dict[str, Any]:
    """Soft delete: the guideline disappears from listings and can be restored."""
    logger.info("[brand_service:delete_guideline] id=%s", guideline_id)
    return _set_guideline_active(guideline_id, False)


def restore_guideline(guideline_id: str) -> dict[str, Any]:
    logger.info("[brand_service:restore_guideline] id=%s", guideline_id)
    return _set_guideline_active(guideline_id, True)


def set_primary_guideline(brand_id: str, guideline_id: str) -> dict[str, Any]:
    """Make one guideline the brand's primary; every other one loses the flag."""
    existing = get_guideline_by_id(guideline_id)
    if existing is None or existing["brandId"] != brand_id:
        raise NotFoundError("Guideline not found")
    conn = get_conn()
    try:
        conn.execute("UPDATE brand_guidelines SET is_primary = 0 WHERE brand_id = ?", (brand_id,))
        conn.execute("UPDATE brand_guidelines SET is_primary = 1 WHERE id = ?", (guideline_id,))
        conn.commit()
    finally:
        conn.close()
    logger.info("[brand_service:set_primary_guideline] brand=%s id=%s", brand_id, guideline_id)
    return get_guideline_by_id(guideline_id)
