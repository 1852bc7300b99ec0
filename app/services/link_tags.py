"""
Short link tags: coloured labels per brand, usage counts and tag inference from codes.
"""

import logging
import re
import sqlite3
from typing import Any

from app.core.db import from_json, get_conn, new_id, now_iso
from app.core.errors import BadRequestError, ConflictError, NotFoundError

logger = logging.getLogger(__name__)

TAG_COLORS = (
    "gray",
    "red",
    "orange",
    "amber",
    "green",
    "teal",
    "blue",
    "sky",
    "indigo",
    "violet",
    "purple",
    "pink",
)

DEFAULT_TAGS = (
    ("Website", "blue"),
    ("Social", "purple"),
    ("Business", "amber"),
    ("YouTube", "red"),
    ("LinkedIn", "sky"),
    ("Instagram", "pink"),
    ("GitHub", "gray"),
    ("Figma", "violet"),
    ("Substack", "orange"),
    ("Medium", "green"),
)

_CHANNEL_SUFFIXES = ("website", "social", "profile", "nav", "footer")
_PLATFORMS = ("youtube", "linkedin", "instagram", "github", "figma", "medium", "substack", "twitter", "x")


def generate_tag_slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", (name or "").lower()).strip("-")


def infer_tags_from_slug(short_code: str) -> list[str]:
    """
    Guess tags from name-channel codes: "github-website" -> ["website", "github"].
    Single-part codes yield nothing.
    """
    parts = [p.lower() for p in (short_code or "").split("-")]
    if len(parts) < 2:
        return []
    first, last = parts[0], parts[-1]
    tags: list[str] = []
    if last in _CHANNEL_SUFFIXES or last in _PLATFORMS:
        tags.append(last)
    if first in _PLATFORMS and first not in tags:
        tags.append(first)
    return tags


def _row_to_tag(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "id": row["id"],
        "brandId": row["brand_id"],
        "name": row["name"],
        "slug": row["slug"],
        "color": row["color"],
        "usageCount": row["usage_count"],
        "createdAt": row["created_at"],
        "updatedAt": row["updated_at"],
    }


def get_tags_by_brand(brand_id: str) -> list[dict[str, Any]]:
    conn = get_conn()
    try:
        rows = conn.execute("SELECT * FROM short_link_tags WHERE brand_id = ? ORDER BY name", (brand_id,)).fetchall()
    finally:
        conn.close()
    return [_row_to_tag(r) for r in rows]


def get_tag_by_id(tag_id: str) -> dict[str, Any] | None:
    conn = get_conn()
    try:
        row = conn.execute("SELECT * FROM short_link_tags WHERE id = ?", (tag_id,)).fetchone()
    finally:
        conn.close()
    return _row_to_tag(row) if row else None


def get_tag_by_name(brand_id: str, name: str) -> dict[str, Any] | None:
    """Case-insensitive match on name, falling back to the slug."""
    conn = get_conn()
    try:
        row = conn.execute(
            "SELECT * FROM short_link_tags WHERE brand_id = ? AND (name = ? COLLATE NOCASE OR slug = ?)",
            (brand_id, name, generate_tag_slug(name)),
        ).fetchone()
    finally:
        conn.close()
    return _row_to_tag(row) if row else None


def create_tag(brand_id: str, name: str, color: str | None = None) -> dict[str, Any]:
    slug = generate_tag_slug(name)
    if not slug:
        raise BadRequestError("Tag name must contain letters or numbers")
    tag_id = new_id()
    now = now_iso()
    conn = get_conn()
    try:
        conn.execute(
            """
            INSERT INTO short_link_tags (id, brand_id, name, slug, color, usage_count, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, 0, ?, ?)
            """,
            (tag_id, brand_id, name, slug, color or "gray", now, now),
        )
        conn.commit()
    except sqlite3.IntegrityError as e:
        raise ConflictError("Tag already exists") from e
    finally:
        conn.close()
    logger.info("[link_tags:create_tag] brand=%s name=%r color=%s", brand_id, name, color or "gray")
    return get_tag_by_id(tag_id)


def next_color(brand_id: str) -> str:
    """First colour no tag of the brand uses yet; cycles once all are taken."""
    tags = get_tags_by_brand(brand_id)
    used = {t["color"] for t in tags}
    for color in TAG_COLORS:
        if color not in used:
            return color
    return TAG_COLORS[len(tags) % len(TAG_COLORS)]


def get_or_create_tag(brand_id: str, name: str, color: str | None = None) -> dict[str, Any]:
    existing = get_tag_by_name(brand_id, name)
    if existing:
        return existing
    return create_tag(brand_id, name, color or next_color(brand_id))


def ensure_tags_exist(brand_id: str, names: list[str]) -> list[dict[str, Any]]:
    return [get_or_create_tag(brand_id, n) for n in names if generate_tag_slug(n)]


def ensure_default_tags(brand_id: str) -> list[dict[str, Any]]:
    """Create the default tag set for a brand that has no tags yet."""
    if get_tags_by_brand(brand_id):
        return []
    return [create_tag(brand_id, name, color) for name, color in DEFAULT_TAGS]


def update_tag(tag_id: str, name: str | None = None, color: str | None = None) -> dict[str, Any]:
    """Rename (the slug follows the name) and/or recolour a tag."""
    if get_tag_by_id(tag_id) is None:
        raise NotFoundError("Tag not found")
    updates: dict[str, Any] = {}
    if name:
        updates["name"] = name
        updates["slug"] = generate_tag_slug(name)
    if color:
        updates["color"] = color
    if updates:
        assignments = ", ".join(f"{k} = ?" for k in updates)
        conn = get_conn()
        try:
            conn.execute(
                f"UPDATE short_link_tags SET {assignments}, updated_at = ? WHERE id = ?",
                (*updates.values(), now_iso(), tag_id),
            )
            conn.commit()
        except sqlite3.IntegrityError as e:
            raise ConflictError("Tag already exists") from e
        finally:
            conn.close()
    return get_tag_by_id(tag_id)


def delete_tag(tag_id: str) -> bool:
    conn = get_conn()
    try:
        cur = conn.execute("DELETE FROM short_link_tags WHERE id = ?", (tag_id,))
        conn.commit()
    finally:
        conn.close()
    return cur.rowcount > 0


def sync_tag_usage_counts(brand_id: str) -> None:
    """Recount how many active links carry each tag (matched by slug or lowercased name)."""
    conn = get_conn()
    try:
        rows = conn.execute(
            "SELECT tags FROM short_links WHERE brand_id = ? AND is_active = 1", (brand_id,)
        ).fetchall()
        counts: dict[str, int] = {}
        for r in rows:
            for tag in from_json(r["tags"], []):
                key = str(tag).lower()
                counts[key] = counts.get(key, 0) + 1
        tags = conn.execute(
            "SELECT id, name, slug, usage_count FROM short_link_tags WHERE brand_id = ?", (brand_id,)
        ).fetchall()
        now = now_iso()
        for t in tags:
            count = counts.get(t["slug"]) or counts.get(t["name"].lower()) or 0
            if count != t["usage_count"]:
                conn.execute(
                    "UPDATE short_link_tags SET usage_count = ?, updated_at = ? WHERE id = ?", (count, now, t["id"])
                )
        conn.commit()
    finally:
        conn.close()
    logger.info("[link_tags:sync_tag_usage_counts] brand=%s links=%d", brand_id, len(rows))
