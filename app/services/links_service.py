"""
Short links: codes, CRUD, listing, bulk operations, stats and redirect resolution.

Responsibility: Own the short_links table. Rows leave this module as camelCase
dicts; the password hash never does (only hasPassword). Raises NotFoundError,
ConflictError and BadRequestError for the API layer to map.
"""

import logging
import re
import secrets
import sqlite3
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlencode, urlparse

import bcrypt

from app.core.config import DEFAULT_LINK_DOMAIN
from app.core.db import from_json, get_conn, new_id, now_iso, to_json
from app.core.errors import BadRequestError, ConflictError, NotFoundError, UnauthorizedError
from app.services import link_tags

logger = logging.getLogger(__name__)

# No look-alikes: o O 0 i I l 1 j
SHORT_CODE_ALPHABET = "abcdefghkmnpqrstuvwxyzABCDEFGHJKLMNPQRSTUVWXYZ23456789"
SHORT_CODE_LENGTH = 6
MAX_CODE_ATTEMPTS = 10

_SHORT_CODE_RE = re.compile(r"^[a-zA-Z0-9_-]{1,50}$")
# Paths under /l/ served by the redirect router
RESERVED_CODES = frozenset({"password"})

SORT_COLUMNS = {
    "created": "created_at",
    "clicks": "clicks",
    "alphabetical": "short_code",
    "updated": "updated_at",
}

UTM_FIELDS = ("utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content")

# Columns update_link may set directly from the request
_UPDATABLE = (
    "short_code",
    "destination_url",
    "title",
    "description",
    "tags",
    "is_active",
    "is_archived",
    "expires_at",
    *UTM_FIELDS,
)


# --- Short code helpers ---

def generate_short_code(length: int = SHORT_CODE_LENGTH) -> str:
    return "".join(secrets.choice(SHORT_CODE_ALPHABET) for _ in range(length))


def generate_slug(text: str) -> str:
    """URL-safe slug: lowercase, runs of other characters become single hyphens."""
    return re.sub(r"[^a-z0-9]+", "-", (text or "").lower()).strip("-")


def is_valid_short_code(code: str) -> bool:
    return bool(_SHORT_CODE_RE.match(code or "")) and code.lower() not in RESERVED_CODES


def is_valid_url(url: str) -> bool:
    parsed = urlparse(url or "")
    return bool(parsed.scheme and parsed.netloc)


def extract_domain(url: str) -> str:
    return urlparse(url or "").hostname or ""


def build_destination_url(base_url: str, utm: dict[str, str | None] | None = None) -> str:
    """Append the non-empty utm_* values to base_url, using & when it already has a query."""
    if not utm:
        return base_url
    params = [(k, utm[k]) for k in UTM_FIELDS if utm.get(k)]
    if not params:
        return base_url
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode(params)}"


# --- Passwords ---

def hash_password(password: str) -> str:
    """bcrypt hash of the password, truncated to bcrypt's 72 byte limit."""
    return bcrypt.hashpw(password.encode("utf-8")[:72], bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, stored: str | None) -> bool:
    if not stored:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8")[:72], stored.encode("utf-8"))
    except ValueError:
        logger.warning("[links:verify_password] malformed password hash")
        return False


# --- Row mapping ---

def _row_to_link(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "id": row["id"],
        "brandId": row["brand_id"],
        "shortCode": row["short_code"],
        "domain": row["domain"],
        "destinationUrl": row["destination_url"],
        "title": row["title"],
        "description": row["description"],
        "tags": from_json(row["tags"], []),
        "hasPassword": bool(row["password_hash"]),
        "expiresAt": row["expires_at"],
        "utmSource": row["utm_source"],
        "utmMedium": row["utm_medium"],
        "utmCampaign": row["utm_campaign"],
        "utmTerm": row["utm_term"],
        "utmContent": row["utm_content"],
        "clicks": row["clicks"],
        "uniqueClicks": row["unique_clicks"],
        "lastClickedAt": row["last_clicked_at"],
        "ownerId": row["owner_id"],
        "sessionId": row["session_id"],
        "isActive": bool(row["is_active"]),
        "isArchived": bool(row["is_archived"]),
        "createdAt": row["created_at"],
        "updatedAt": row["updated_at"],
    }


def link_utm(link: dict[str, Any]) -> dict[str, str | None]:
    """utm_* values of a link dict, keyed by column name."""
    return {
        "utm_source": link.get("utmSource"),
        "utm_medium": link.get("utmMedium"),
        "utm_campaign": link.get("utmCampaign"),
        "utm_term": link.get("utmTerm"),
        "utm_content": link.get("utmContent"),
    }


# --- Queries ---

def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def get_links_by_brand(
    brand_id: str,
    page: int = 1,
    limit: int = 20,
    search: str | None = None,
    tags: list[str] | None = None,
    sort_by: str = "created",
    sort_order: str = "desc",
    include_archived: bool = False,
    include_inactive: bool = False,
) -> dict[str, Any]:
    """
    One page of a brand's links.

    search matches short code, destination URL or title (case-insensitive);
    tags keeps links sharing at least one tag. Returns
    {links, total, page, limit, hasMore}.
    """
    page = max(1, page)
    limit = max(1, limit)
    where = ["brand_id = ?"]
    params: list[Any] = [brand_id]
    if not include_archived:
        where.append("is_archived = 0")
    if not include_inactive:
        where.append("is_active = 1")
    if search:
        pattern = f"%{_escape_like(search)}%"
        where.append(
            "(short_code LIKE ? ESCAPE '\\' OR destination_url LIKE ? ESCAPE '\\' OR title LIKE ? ESCAPE '\\')"
        )
        params += [pattern, pattern, pattern]
    if tags:
        placeholders = ",".join("?" * len(tags))
        where.append(f"EXISTS (SELECT 1 FROM json_each(short_links.tags) WHERE value IN ({placeholders}))")
        params += tags
    column = SORT_COLUMNS.get(sort_by, "created_at")
    direction = "ASC" if sort_order == "asc" else "DESC"
    clause = " AND ".join(where)
    offset = (page - 1) * limit

    conn = get_conn()
    try:
        total = conn.execute(f"SELECT COUNT(*) FROM short_links WHERE {clause}", params).fetchone()[0]
        rows = conn.execute(
            f"SELECT * FROM short_links WHERE {clause} ORDER BY {column} {direction}, rowid {direction} LIMIT ? OFFSET ?",
            (*params, limit, offset),
        ).fetchall()
    finally:
        conn.close()
    return {
        "links": [_row_to_link(r) for r in rows],
        "total": total,
        "page": page,
        "limit": limit,
        "hasMore": offset + len(rows) < total,
    }


def _fetch_one(sql: str, params: tuple) -> sqlite3.Row | None:
    conn = get_conn()
    try:
        return conn.execute(sql, params).fetchone()
    finally:
        conn.close()


def get_link_by_id(link_id: str) -> dict[str, Any] | None:
    row = _fetch_one("SELECT * FROM short_links WHERE id = ?", (link_id,))
    return _row_to_link(row) if row else None


def get_link_by_short_code(brand_id: str, short_code: str, domain: str = DEFAULT_LINK_DOMAIN) -> dict[str, Any] | None:
    row = _fetch_one(
        "SELECT * FROM short_links WHERE brand_id = ? AND short_code = ? AND domain = ?",
        (brand_id, short_code, domain),
    )
    return _row_to_link(row) if row else None


def get_link_by_short_code_only(short_code: str, domain: str | None = None) -> dict[str, Any] | None:
    """Active link for a code across brands (the redirect lookup)."""
    sql = "SELECT * FROM short_links WHERE short_code = ? AND is_active = 1"
    params: tuple = (short_code,)
    if domain:
        sql += " AND domain = ?"
        params += (domain,)
    row = _fetch_one(sql + " ORDER BY created_at LIMIT 1", params)
    return _row_to_link(row) if row else None


def is_short_code_available(
    brand_id: str,
    short_code: str,
    domain: str = DEFAULT_LINK_DOMAIN,
    exclude_id: str | None = None,
) -> bool:
    sql = "SELECT id FROM short_links WHERE brand_id = ? AND short_code = ? AND domain = ?"
    params: tuple = (brand_id, short_code, domain)
    if exclude_id:
        sql += " AND id != ?"
        params += (exclude_id,)
    return _fetch_one(sql, params) is None


def _unique_code(brand_id: str, domain: str) -> str:
    for _ in range(MAX_CODE_ATTEMPTS):
        code = generate_short_code()
        if is_short_code_available(brand_id, code, domain):
            return code
    raise ConflictError("Failed to generate unique short code")


# --- Writes ---

def _prepare_insert(data: dict[str, Any]) -> dict[str, Any]:
    """Validate one create payload and return the full column dict to insert."""
    brand_id = data["brand_id"]
    destination = data.get("destination_url") or ""
    if not destination:
        raise BadRequestError("Destination URL is required")
    if not is_valid_url(destination):
        raise BadRequestError("Invalid destination URL")
    domain = data.get("domain") or DEFAULT_LINK_DOMAIN
    code = data.get("short_code") or ""
    if code:
        if not is_valid_short_code(code):
            raise BadRequestError("Short code may only contain letters, numbers, hyphens and underscores")
        if not is_short_code_available(brand_id, code, domain):
            raise ConflictError("Short code already exists")
    else:
        code = _unique_code(brand_id, domain)
    now = now_iso()
    password = data.get("password")
    row = {
        "id": new_id(),
        "brand_id": brand_id,
        "short_code": code,
        "domain": domain,
        "destination_url": destination,
        "title": data.get("title"),
        "description": data.get("description"),
        "tags": to_json(data.get("tags") or []),
        "password_hash": hash_password(password) if password else data.get("password_hash"),
        "expires_at": data.get("expires_at"),
        "owner_id": data.get("owner_id"),
        "session_id": data.get("session_id"),
        "is_active": 1,
        "is_archived": 0,
        "created_at": now,
        "updated_at": now,
    }
    for key in UTM_FIELDS:
        row[key] = data.get(key)
    return row


def _insert_rows(rows: list[dict[str, Any]]) -> None:
    columns = list(rows[0])
    sql = f"INSERT INTO short_links ({', '.join(columns)}) VALUES ({', '.join('?' * len(columns))})"
    conn = get_conn()
    try:
        conn.executemany(sql, [tuple(r[c] for c in columns) for r in rows])
        conn.commit()
    except sqlite3.IntegrityError as e:
        raise ConflictError("Short code already exists") from e
    finally:
        conn.close()


def create_link(data: dict[str, Any]) -> dict[str, Any]:
    """
    Create a link from snake_case fields (brand_id, destination_url, short_code,
    domain, title, description, tags, password, expires_at, utm_*). A missing
    short code is generated. Tags are created for the brand if new.
    """
    logger.info("[links:create_link] IN  brand=%s code=%r", data.get("brand_id"), data.get("short_code"))
    row = _prepare_insert(data)
    _insert_rows([row])
    tags = data.get("tags") or []
    if tags:
        link_tags.ensure_tags_exist(row["brand_id"], tags)
    logger.info("[links:create_link] OUT id=%s code=%s", row["id"], row["short_code"])
    return get_link_by_id(row["id"])


def update_link(link_id: str, fields: dict[str, Any]) -> dict[str, Any]:
    """
    Apply the fields that are present. Besides the plain columns, accepts
    password / remove_password and remove_expiration; a present None clears
    a UTM value.
    """
    existing = get_link_by_id(link_id)
    if existing is None:
        raise NotFoundError("Link not found")

    updates = {k: fields[k] for k in _UPDATABLE if k in fields}
    destination = updates.get("destination_url")
    if "destination_url" in updates and not (destination and is_valid_url(destination)):
        raise BadRequestError("Invalid destination URL")
    code = updates.get("short_code")
    if "short_code" in updates:
        if not code or not is_valid_short_code(code):
            raise BadRequestError("Short code may only contain letters, numbers, hyphens and underscores")
        if code != existing["shortCode"] and not is_short_code_available(
            existing["brandId"], code, existing["domain"], exclude_id=link_id
        ):
            raise ConflictError("Short code already exists")
    if fields.get("remove_password"):
        updates["password_hash"] = None
    elif fields.get("password"):
        updates["password_hash"] = hash_password(fields["password"])
    if fields.get("remove_expiration"):
        updates["expires_at"] = None
    if "tags" in updates:
        updates["tags"] = to_json(updates["tags"] or [])
    for flag in ("is_active", "is_archived"):
        if flag in updates:
            updates[flag] = 1 if updates[flag] else 0
    if not updates:
        return existing

    assignments = ", ".join(f"{k} = ?" for k in updates)
    conn = get_conn()
    try:
        conn.execute(
            f"UPDATE short_links SET {assignments}, updated_at = ? WHERE id = ?",
            (*updates.values(), now_iso(), link_id),
        )
        conn.commit()
    except sqlite3.IntegrityError as e:
        raise ConflictError("Short code already exists") from e
    finally:
        conn.close()
    if fields.get("tags"):
        link_tags.ensure_tags_exist(existing["brandId"], fields["tags"])
    logger.info("[links:update_link] id=%s fields=%s", link_id, sorted(updates))
    return get_link_by_id(link_id)


def archive_link(link_id: str) -> dict[str, Any]:
    return update_link(link_id, {"is_archived": True})


def restore_link(link_id: str) -> dict[str, Any]:
    return update_link(link_id, {"is_archived": False})


def deactivate_link(link_id: str) -> dict[str, Any]:
    return update_link(link_id, {"is_active": False})


def activate_link(link_id: str) -> dict[str, Any]:
    return update_link(link_id, {"is_active": True})


def delete_link(link_id: str) -> bool:
    """Hard delete; its click rows go with it."""
    conn = get_conn()
    try:
        cur = conn.execute("DELETE FROM short_links WHERE id = ?", (link_id,))
        conn.commit()
    finally:
        conn.close()
    return cur.rowcount > 0


def duplicate_link(link_id: str) -> dict[str, Any]:
    """Copy a link under a fresh code. Counters and password do not carry over."""
    original = get_link_by_id(link_id)
    if original is None:
        raise NotFoundError("Link not found")
    return create_link(
        {
            "brand_id": original["brandId"],
            "domain": original["domain"],
            "destination_url": original["destinationUrl"],
            "title": f"{original['title']} (Copy)" if original["title"] else None,
            "description": original["description"],
            "tags": original["tags"],
            "expires_at": original["expiresAt"],
            "owner_id": original["ownerId"],
            "session_id": original["sessionId"],
            **link_utm(original),
        }
    )


def increment_clicks(link_id: str, unique: bool = False) -> None:
    """Bump the click counters. Failures are logged, never raised, so redirects are not blocked."""
    try:
        conn = get_conn()
        try:
            conn.execute(
                """
                UPDATE short_links
                SET clicks = clicks + 1, unique_clicks = unique_clicks + ?, last_clicked_at = ?
                WHERE id = ?
                """,
                (1 if unique else 0, now_iso(), link_id),
            )
            conn.commit()
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.error("[links:increment_clicks] failed id=%s: %s", link_id, e)


# --- Bulk ---

def bulk_create_links(items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Create many links in one transaction (CSV import). Any invalid item rejects the batch."""
    if not items:
        return []
    rows = []
    taken: set[tuple[str, str, str]] = set()
    for item in items:
        row = _prepare_insert(item)
        key = (row["brand_id"], row["domain"], row["short_code"])
        if key in taken:
            if item.get("short_code"):
                raise ConflictError("Short code already exists")
            row["short_code"] = _unique_code(row["brand_id"], row["domain"])
            key = (row["brand_id"], row["domain"], row["short_code"])
        taken.add(key)
        rows.append(row)
    _insert_rows(rows)
    for row, item in zip(rows, items):
        if item.get("tags"):
            link_tags.ensure_tags_exist(row["brand_id"], item["tags"])
    logger.info("[links:bulk_create_links] created=%d", len(rows))
    return [get_link_by_id(r["id"]) for r in rows]


def _bulk_update(ids: list[str], assignment: str, value: Any) -> int:
    if not ids:
        return 0
    placeholders = ",".join("?" * len(ids))
    conn = get_conn()
    try:
        cur = conn.execute(
            f"UPDATE short_links SET {assignment} = ?, updated_at = ? WHERE id IN ({placeholders})",
            (value, now_iso(), *ids),
        )
        conn.commit()
    finally:
        conn.close()
    return cur.rowcount


def bulk_delete_links(ids: list[str]) -> int:
    if not ids:
        return 0
    placeholders = ",".join("?" * len(ids))
    conn = get_conn()
    try:
        cur = conn.execute(f"DELETE FROM short_links WHERE id IN ({placeholders})", ids)
        conn.commit()
    finally:
        conn.close()
    return cur.rowcount


def bulk_archive_links(ids: list[str]) -> int:
    return _bulk_update(ids, "is_archived", 1)


def bulk_update_tags(ids: list[str], tags: list[str]) -> int:
    return _bulk_update(ids, "tags", to_json(tags))


# --- Stats ---

def get_link_stats(brand_id: str) -> dict[str, int]:
    """{total, active (active and not archived), archived, totalClicks}."""
    row = _fetch_one(
        """
        SELECT COUNT(*) AS total,
               COALESCE(SUM(CASE WHEN is_active = 1 AND is_archived = 0 THEN 1 ELSE 0 END), 0) AS active,
               COALESCE(SUM(is_archived), 0) AS archived,
               COALESCE(SUM(clicks), 0) AS total_clicks
        FROM short_links WHERE brand_id = ?
        """,
        (brand_id,),
    )
    return {
        "total": row["total"],
        "active": row["active"],
        "archived": row["archived"],
        "totalClicks": row["total_clicks"],
    }


def _live_links(brand_id: str, order: str, limit: int) -> list[dict[str, Any]]:
    conn = get_conn()
    try:
        rows = conn.execute(
            f"SELECT * FROM short_links WHERE brand_id = ? AND is_active = 1 AND is_archived = 0 ORDER BY {order} LIMIT ?",
            (brand_id, limit),
        ).fetchall()
    finally:
        conn.close()
    return [_row_to_link(r) for r in rows]


def get_top_links(brand_id: str, limit: int = 10) -> list[dict[str, Any]]:
    return _live_links(brand_id, "clicks DESC", limit)


def get_recent_links(brand_id: str, limit: int = 10) -> list[dict[str, Any]]:
    return _live_links(brand_id, "created_at DESC", limit)


# --- Redirects ---

def is_expired(link: dict[str, Any], now: datetime | None = None) -> bool:
    if not link.get("expiresAt"):
        return False
    try:
        expires = datetime.fromisoformat(link["expiresAt"].replace("Z", "+00:00"))
    except ValueError:
        logger.warning("[links:is_expired] unparseable expires_at=%r id=%s", link["expiresAt"], link["id"])
        return False
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    return expires < (now or datetime.now(timezone.utc))


def resolve_redirect(short_code: str) -> tuple[str, dict[str, Any] | None]:
    """
    Decide what a visit to /l/{code} does.
    Returns ("not_found" | "expired" | "password" | "ok", link).
    """
    link = get_link_by_short_code_only(short_code)
    if link is None or not link["isActive"] or link["isArchived"]:
        return "not_found", link
    if is_expired(link):
        return "expired", link
    if link["hasPassword"]:
        return "password", link
    return "ok", link


def verify_link_password(short_code: str, password: str) -> dict[str, Any]:
    """
    Check the password of a live link. Returns the link; raises NotFoundError
    or UnauthorizedError("Incorrect password"). A link without a password passes.
    """
    row = _fetch_one(
        "SELECT * FROM short_links WHERE short_code = ? AND is_active = 1 AND is_archived = 0",
        (short_code,),
    )
    if row is None:
        raise NotFoundError("Link not found")
    if row["password_hash"] and not verify_password(password, row["password_hash"]):
        raise UnauthorizedError("Incorrect password")
    return _row_to_link(row)
