"""
BOS MCP server: exposes the brand tools to external AI clients over JSON-RPC 2.0.

POST is the JSON-RPC endpoint (initialize, tools/list, tools/call, ping),
authenticated with a brand API key. GET describes the server. A stateless
OAuth shim (/authorize, /token, /.well-known/oauth-authorization-server)
lets desktop clients that insist on OAuth exchange their API key for a token.
"""

import json
import logging
import secrets
import time
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from fastapi import APIRouter, Depends, HTTPException, Request, Security
from fastapi.responses import JSONResponse, RedirectResponse, Response
from fastapi.security import APIKeyHeader

from app.api.handlers import http_error
from app.core import config
from app.core.config import DEFAULT_BRAND_ID
from app.core.errors import BadRequestError, NotFoundError
from app.mcp import auth
from app.mcp.tools import BRAND_TOOLS, call_brand_tool
from app.schemas.mcp import ApiKeyCreateRequest

logger = logging.getLogger(__name__)

SERVER_NAME = "BOS MCP Server"
SERVER_VERSION = "1.0.0"
PROTOCOL_VERSION = "2024-11-05"
TOKEN_LIFETIME_SECONDS = 31536000

# JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
AUTH_ERROR = -32001

MISSING_KEY_MESSAGE = "Missing API key. Provide via Authorization: Bearer <key> or X-API-Key header."
INVALID_KEY_MESSAGE = "Invalid or expired API key"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-API-Key",
}

mcp_router = APIRouter(tags=["mcp"])


class JsonRpcError(Exception):
    """A JSON-RPC failure with its protocol code and HTTP status."""

    def __init__(self, code: int, message: str, status_code: int = 400) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def _rpc_error(code: int, message: str, request_id: Any = None, status_code: int = 400) -> JSONResponse:
    return JSONResponse(
        {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}},
        status_code=status_code,
        headers=CORS_HEADERS,
    )


def _base_url(request: Request) -> str:
    """This router's own URL (scheme, host and mount path, no trailing slash)."""
    path = request.url.path
    for suffix in ("/.well-known/oauth-authorization-server", "/authorize", "/token"):
        if path.endswith(suffix):
            path = path[: -len(suffix)]
            break
    return f"{request.url.scheme}://{request.url.netloc}{path.rstrip('/')}"


def server_info() -> dict[str, Any]:
    """initialize result."""
    return {
        "protocolVersion": PROTOCOL_VERSION,
        "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
        "capabilities": {"tools": {"listChanged": False}},
    }


def dispatch(method: str, params: Any, brand_id: str) -> Any:
    """Run one JSON-RPC method for an authenticated brand. Raises JsonRpcError."""
    if method == "initialize":
        return server_info()
    if method == "tools/list":
        return {"tools": BRAND_TOOLS}
    if method == "ping":
        return {}
    if method == "tools/call":
        if not isinstance(params, dict) or not params.get("name"):
            raise JsonRpcError(INVALID_PARAMS, "Missing tool parameters")
        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            raise JsonRpcError(INVALID_PARAMS, "Tool arguments must be an object")
        try:
            result = call_brand_tool(brand_id, params["name"], arguments)
        except BadRequestError as e:
            raise JsonRpcError(INVALID_PARAMS, e.message) from e
        return {"content": [{"type": "text", "text": json.dumps(result, indent=2, default=str)}]}
    raise JsonRpcError(METHOD_NOT_FOUND, f"Method not found: {method}")


@mcp_router.get("", summary="MCP server info")
def get_server_info(request: Request) -> JSONResponse:
    base = _base_url(request)
    wants_sse = "text/event-stream" in (request.headers.get("accept") or "")
    return JSONResponse(
        {
            "name": SERVER_NAME,
            "version": SERVER_VERSION,
            "protocol": "MCP",
            "protocolVersion": PROTOCOL_VERSION,
            "description": "Brand Operating System - AI-powered brand management",
            "transport": "sse" if wants_sse else "http",
            "capabilities": {"tools": True, "resources": False, "prompts": False},
            "endpoints": {
                "oauth_discovery": f"{base}/.well-known/oauth-authorization-server",
                "authorize": f"{base}/authorize",
                "token": f"{base}/token",
                "mcp": base,
            },
        },
        headers=CORS_HEADERS,
    )


@mcp_router.options("", include_in_schema=False)
def preflight() -> Response:
    return Response(status_code=204, headers=CORS_HEADERS)


@mcp_router.post("", summary="MCP JSON-RPC endpoint")
async def handle_rpc(request: Request) -> JSONResponse:
    """
    Authenticate, then dispatch one JSON-RPC 2.0 request.
    Auth failures are 401 with code -32001; protocol errors are 400; unexpected failures 500 with -32603.
    """
    api_key = auth.extract_api_key(request.headers)
    if not api_key:
        return _rpc_error(AUTH_ERROR, MISSING_KEY_MESSAGE, status_code=401)
    identity = auth.validate_api_key(api_key)
    if identity is None:
        logger.warning("[mcp_server:handle_rpc] rejected API key")
        return _rpc_error(AUTH_ERROR, INVALID_KEY_MESSAGE, status_code=401)

    try:
        body = await request.json()
    except ValueError:
        return _rpc_error(PARSE_ERROR, "Parse error")
    if not isinstance(body, dict) or body.get("jsonrpc") != "2.0" or not isinstance(body.get("method"), str):
        request_id = body.get("id") if isinstance(body, dict) else None
        return _rpc_error(INVALID_REQUEST, "Invalid JSON-RPC request", request_id)

    request_id = body.get("id")
    method = body["method"]
    logger.info("[mcp_server:handle_rpc] IN  method=%s brand=%s", method, identity["brandId"])
    try:
        result = dispatch(method, body.get("params"), identity["brandId"])
    except JsonRpcError as e:
        return _rpc_error(e.code, e.message, request_id, e.status_code)
    except Exception as e:
        logger.exception("[mcp_server:handle_rpc] method=%s failed", method)
        return _rpc_error(INTERNAL_ERROR, str(e) or "Internal server error", request_id, status_code=500)
    logger.info("[mcp_server:handle_rpc] OUT method=%s", method)
    return JSONResponse({"jsonrpc": "2.0", "id": request_id, "result": result}, headers=CORS_HEADERS)


# --- OAuth (stateless; the API key is both client secret and access token) ---

@mcp_router.get("/.well-known/oauth-authorization-server", summary="OAuth authorization server metadata")
def oauth_metadata(request: Request) -> JSONResponse:
    base = _base_url(request)
    return JSONResponse(
        {
            "issuer": base,
            "authorization_endpoint": f"{base}/authorize",
            "token_endpoint": f"{base}/token",
            "response_types_supported": ["code"],
            "grant_types_supported": ["authorization_code", "client_credentials"],
            "code_challenge_methods_supported": ["S256", "plain"],
            "token_endpoint_auth_methods_supported": ["client_secret_basic", "client_secret_post"],
        },
        headers=CORS_HEADERS,
    )


def _oauth_error(error: str, description: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse({"error": error, "error_description": description}, status_code=status_code, headers=CORS_HEADERS)


@mcp_router.get("/authorize", summary="OAuth authorize (no consent screen)")
def authorize(
    client_id: str | None = None,
    redirect_uri: str | None = None,
    state: str | None = None,
    response_type: str | None = None,
) -> Response:
    """Redirect straight back to redirect_uri with a self-contained code encoding client_id."""
    if not client_id:
        return _oauth_error("invalid_request", "Missing client_id parameter")
    if not redirect_uri:
        return _oauth_error("invalid_request", "Missing redirect_uri parameter")
    if response_type and response_type != "code":
        return _oauth_error("unsupported_response_type", "Only code response type is supported")

    parsed = urlparse(redirect_uri)
    if not parsed.scheme or not parsed.netloc:
        return _oauth_error("invalid_request", "Invalid redirect_uri parameter")
    query = parse_qs(parsed.query, keep_blank_values=True)
    query["code"] = [auth.generate_code(client_id)]
    if state:
        query["state"] = [state]
    location = urlunparse(parsed._replace(query=urlencode(query, doseq=True)))
    return RedirectResponse(location, status_code=302, headers={"Access-Control-Allow-Origin": "*"})


async def _token_params(request: Request) -> dict[str, str]:
    content_type = request.headers.get("content-type") or ""
    if "application/json" in content_type:
        try:
            body = await request.json()
        except ValueError:
            return {}
        return {k: str(v) for k, v in body.items() if v is not None} if isinstance(body, dict) else {}
    form = await request.form()
    return {k: v for k, v in form.items() if isinstance(v, str)}


@mcp_router.post("/token", summary="OAuth token exchange")
async def token(request: Request) -> JSONResponse:
    """
    authorization_code: the code must parse and be unexpired; the token is the
    client secret when given, else the code's client_id. client_credentials:
    the client secret is the token.
    """
    params = await _token_params(request)
    client_id = params.get("client_id")
    client_secret = params.get("client_secret")
    basic = auth.basic_credentials(request.headers)
    if basic:
        client_id = client_id or basic[0]
        client_secret = client_secret or basic[1]
    grant_type = params.get("grant_type")
    code = params.get("code")

    if grant_type == "client_credentials":
        if not client_secret:
            return _oauth_error(
                "invalid_client", "Missing client_secret. Use your BOS API key as the client_secret.", 401
            )
        access_token = client_secret
    elif code:
        parsed = auth.parse_code(code)
        if parsed is None or parsed[1] < int(time.time() * 1000):
            return _oauth_error("invalid_grant", "Invalid or expired authorization code")
        access_token = client_secret or parsed[0]
    elif grant_type in (None, "authorization_code"):
        return _oauth_error("invalid_request", "Missing authorization code")
    else:
        return _oauth_error(
            "unsupported_grant_type",
            "Supported grant types: client_credentials, authorization_code. Use your API key as the client_secret.",
        )
    logger.info("[mcp_server:token] issued token grant=%s client_id=%s", grant_type, client_id)
    return JSONResponse(
        {
            "access_token": access_token,
            "token_type": "Bearer",
            "expires_in": TOKEN_LIFETIME_SECONDS,
            "scope": "mcp:tools",
        },
        headers=CORS_HEADERS,
    )


# --- Server API keys ---

ADMIN_TOKEN_HEADER = APIKeyHeader(name="X-Admin-Token", auto_error=False)


def require_admin(token: str | None = Security(ADMIN_TOKEN_HEADER)) -> None:
    """Key management needs BOS_ADMIN_TOKEN; a brand API key is not enough to mint more keys."""
    if not config.ADMIN_TOKEN:
        raise HTTPException(status_code=503, detail="BOS_ADMIN_TOKEN is not configured")
    if not token or not secrets.compare_digest(token, config.ADMIN_TOKEN):
        logger.warning("[mcp_server:require_admin] rejected key management request")
        raise HTTPException(status_code=401, detail="Invalid or missing admin token. Set X-Admin-Token header.")


@mcp_router.get("/keys", summary="List server API keys (masked)", dependencies=[Depends(require_admin)])
def list_keys(brandId: str = DEFAULT_BRAND_ID) -> dict:
    return {"keys": auth.list_api_keys(brandId)}


@mcp_router.post("/keys", status_code=201, summary="Create a server API key", dependencies=[Depends(require_admin)])
def create_key(body: ApiKeyCreateRequest) -> dict:
    """The response holds the only unmasked copy of the key."""
    return auth.create_api_key(body.brand_id, body.name, body.created_by)


@mcp_router.delete("/keys/{key_id}", summary="Revoke a server API key", dependencies=[Depends(require_admin)])
def revoke_key(key_id: str, brandId: str = DEFAULT_BRAND_ID) -> dict:
    try:
        return auth.revoke_api_key(brandId, key_id)
    except NotFoundError as e:
        raise http_error(e) from e
