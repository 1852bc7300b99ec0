"""
MCP server auth: API keys stored per brand in mcp_server_config, plus the stateless OAuth code.

Keys arrive as X-API-Key, Authorization: Bearer <key>, or
Authorization: Basic base64(client_id:key). The OAuth flow is a thin wrapper
where the API key doubles as client secret and access token.
"""

import base64
import binascii
import json
import logging
import secrets
import time
from typing import Any, Mapping

from app.core.db import from_json, get_conn, new_id, now_iso, to_json
from app.core.errors import NotFoundError

logger = logging.getLogger(__name__)

API_KEY_PREFIX = "bos_mcp_"
AUTH_CODE_TTL_MS = 5 * 60 * 1000
SCOPES = ["read:brand", "search:knowledge"]


def extract_api_key(headers: Mapping[str, str]) -> str | None:
    """X-API-Key first, then Bearer, then the secret half of Basic credentials."""
    key = headers.get("x-api-key")
    if key:
        return key
    auth = headers.get("authorization") or ""
    if auth.startswith("Bearer "):
        return auth[7:] or None
    if auth.startswith("Basic "):
        credentials = _decode_basic(auth[6:])
        if credentials:
            return credentials[1] or None
    return None


def _decode_basic(value: str) -> tuple[str, str] | None:
    try:
        decoded = base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    client_id, _, secret = decoded.partition(":")
    return client_id, secret


def basic_credentials(headers: Mapping[str, str]) -> tuple[str, str] | None:
    """(client_id, secret) from an Authorization: Basic header, else None."""
    auth = headers.get("authorization") or ""
    if not auth.startswith("Basic "):
        return None
    return _decode_basic(auth[6:])


def validate_api_key(api_key: str) -> dict[str, Any] | None:
    """
    Find an active key on an enabled server config. Stamps the key's last_used.
    Returns {brandId, configId, clientId, scopes} or None.
    """
    conn = get_conn()
    try:
        rows = conn.execute("SELECT id, brand_id, api_keys FROM mcp_server_config WHERE is_enabled = 1").fetchall()
        for row in rows:
            keys = from_json(row["api_keys"], [])
            match = next((k for k in keys if k.get("key") == api_key and k.get("is_active", True)), None)
            if match is None:
                continue
            match["last_used"] = now_iso()
            conn.execute(
                "UPDATE mcp_server_config SET api_keys = ?, updated_at = ? WHERE id = ?",
                (to_json(keys), now_iso(), row["id"]),
            )
            conn.commit()
            return {
                "brandId": row["brand_id"],
                "configId": row["id"],
                "clientId": f"bos-mcp-{row['brand_id']}",
                "scopes": SCOPES,
            }
    finally:
        conn.close()
    return None


def get_or_create_server_config(brand_id: str) -> dict[str, Any]:
    conn = get_conn()
    try:
        row = conn.execute("SELECT * FROM mcp_server_config WHERE brand_id = ?", (brand_id,)).fetchone()
        if row is None:
            now = now_iso()
            config_id = new_id()
            conn.execute(
                "INSERT INTO mcp_server_config (id, brand_id, is_enabled, api_keys, created_at, updated_at) VALUES (?, ?, 1, '[]', ?, ?)",
                (config_id, brand_id, now, now),
            )
            conn.commit()
            row = conn.execute("SELECT * FROM mcp_server_config WHERE id = ?", (config_id,)).fetchone()
            logger.info("[mcp_auth:get_or_create_server_config] created config for brand=%s", brand_id)
    finally:
        conn.close()
    return {
        "id": row["id"],
        "brandId": row["brand_id"],
        "isEnabled": bool(row["is_enabled"]),
        "apiKeys": from_json(row["api_keys"], []),
    }


def generate_api_key_value() -> str:
    raw = base64.b64encode(secrets.token_bytes(24)).decode()
    return API_KEY_PREFIX + raw.replace("+", "x").replace("/", "y").rstrip("=")


def mask_key(key: str) -> str:
    return f"{key[:12]}...{key[-4:]}" if len(key) > 16 else "****"


def _save_keys(config_id: str, keys: list[dict[str, Any]]) -> None:
    conn = get_conn()
    try:
        conn.execute(
            "UPDATE mcp_server_config SET api_keys = ?, updated_at = ? WHERE id = ?",
            (to_json(keys), now_iso(), config_id),
        )
        conn.commit()
    finally:
        conn.close()


def create_api_key(brand_id: str, name: str, created_by: str | None = None) -> dict[str, Any]:
    """Add a key to the brand's server config. The full key is only returned here."""
    config = get_or_create_server_config(brand_id)
    entry = {
        "id": new_id(),
        "key": generate_api_key_value(),
        "name": name,
        "created_at": now_iso(),
        "last_used": None,
        "is_active": True,
        "created_by": created_by,
    }
    _save_keys(config["id"], [*config["apiKeys"], entry])
    logger.info("[mcp_auth:create_api_key] brand=%s name=%r", brand_id, name)
    return entry


def list_api_keys(brand_id: str) -> list[dict[str, Any]]:
    """Keys with the secret masked."""
    config = get_or_create_server_config(brand_id)
    return [{**k, "key": mask_key(k.get("key", ""))} for k in config["apiKeys"]]


def revoke_api_key(brand_id: str, key_id: str) -> dict[str, Any]:
    config = get_or_create_server_config(brand_id)
    keys = config["apiKeys"]
    match = next((k for k in keys if k.get("id") == key_id), None)
    if match is None:
        raise NotFoundError("API key not found")
    match["is_active"] = False
    _save_keys(config["id"], keys)
    logger.info("[mcp_auth:revoke_api_key] brand=%s key_id=%s", brand_id, key_id)
    return {**match, "key": mask_key(match["key"])}


# --- Stateless OAuth authorization code ---

def generate_code(client_id: str, now_ms: int | None = None) -> str:
    """base64url(JSON {cid, exp, rnd}) without padding; valid for five minutes."""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    payload = {"cid": client_id, "exp": now_ms + AUTH_CODE_TTL_MS, "rnd": secrets.token_hex(6)}
    return base64.urlsafe_b64encode(json.dumps(payload).encode()).decode().rstrip("=")


def parse_code(code: str) -> tuple[str, int] | None:
    """(client_id, expires_at_ms) or None when the code is not one of ours."""
    padded = code + "=" * (-len(code) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(padded.encode()))
    except (binascii.Error, ValueError):
        return None
    if not isinstance(payload, dict) or not payload.get("cid") or not isinstance(payload.get("exp"), (int, float)):
        return None
    return str(payload["cid"]), int(payload["exp"])
