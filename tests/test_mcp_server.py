"""
Tests for the MCP JSON-RPC server, its OAuth shim and API key management.
"""

import base64
import json
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.core import config
from app.core.config import DEFAULT_BRAND_ID
from app.core.db import get_conn, new_id, now_iso
from app.mcp import auth

MCP_URL = "/api/mcp"


@pytest.fixture
def api_key() -> str:
    return auth.create_api_key(DEFAULT_BRAND_ID, "test")["key"]


@pytest.fixture
def admin(monkeypatch) -> dict:
    monkeypatch.setattr(config, "ADMIN_TOKEN", "admin-secret")
    return {"x-admin-token": "admin-secret"}


def _rpc(client: TestClient, method: str, params=None, headers=None, request_id=1):
    body = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        body["params"] = params
    return client.post(MCP_URL, json=body, headers=headers or {})


def _seed_color() -> None:
    conn = get_conn()
    try:
        conn.execute(
            "INSERT INTO brand_colors (id, brand_id, name, slug, hex_value, color_group, color_role) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (new_id(), DEFAULT_BRAND_ID, "Aperol", "aperol", "#FE5102", "brand", "accent"),
        )
        conn.execute(
            "INSERT INTO brand_documents (id, brand_id, title, category, section, content, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (new_id(), DEFAULT_BRAND_ID, "Tone of Voice", "writing-styles", "Voice", "Write plainly and confidently.", now_iso()),
        )
        conn.commit()
    finally:
        conn.close()


# --- Auth ---

def test_missing_key_is_rejected(client: TestClient) -> None:
    response = _rpc(client, "ping")
    assert response.status_code == 401
    assert response.json()["error"]["code"] == -32001
    assert "Missing API key" in response.json()["error"]["message"]


def test_unknown_key_is_rejected(client: TestClient, api_key: str) -> None:
    response = _rpc(client, "ping", headers={"x-api-key": "bos_mcp_nope"})
    assert response.status_code == 401
    assert response.json()["error"]["message"] == "Invalid or expired API key"


@pytest.mark.parametrize("scheme", ["x-api-key", "bearer", "basic"])
def test_key_accepted_from_each_header(client: TestClient, api_key: str, scheme: str) -> None:
    if scheme == "x-api-key":
        headers = {"x-api-key": api_key}
    elif scheme == "bearer":
        headers = {"authorization": f"Bearer {api_key}"}
    else:
        headers = {"authorization": "Basic " + base64.b64encode(f"claude:{api_key}".encode()).decode()}
    response = _rpc(client, "ping", headers=headers, request_id=7)
    assert response.status_code == 200
    assert response.json() == {"jsonrpc": "2.0", "id": 7, "result": {}}


def test_revoked_key_stops_working(client: TestClient, admin: dict) -> None:
    created = client.post(f"{MCP_URL}/keys", json={"name": "laptop"}, headers=admin)
    assert created.status_code == 201
    key = created.json()
    assert key["key"].startswith("bos_mcp_")

    listed = client.get(f"{MCP_URL}/keys", headers=admin).json()["keys"]
    assert "..." in listed[0]["key"]
    assert listed[0]["key"] != key["key"]

    revoked = client.delete(f"{MCP_URL}/keys/{key['id']}", headers=admin)
    assert revoked.json()["is_active"] is False
    assert _rpc(client, "ping", headers={"x-api-key": key["key"]}).status_code == 401
    assert client.delete(f"{MCP_URL}/keys/missing", headers=admin).status_code == 404


def test_key_management_requires_admin_token(client: TestClient, admin: dict) -> None:
    assert client.post(f"{MCP_URL}/keys", json={"name": "anon"}).status_code == 401
    assert client.get(f"{MCP_URL}/keys").status_code == 401
    wrong = client.post(f"{MCP_URL}/keys", json={"name": "anon"}, headers={"x-admin-token": "guess"})
    assert wrong.status_code == 401
    assert auth.list_api_keys(DEFAULT_BRAND_ID) == []

    minted = client.post(f"{MCP_URL}/keys", json={"name": "ok"}, headers=admin)
    assert client.delete(f"{MCP_URL}/keys/{minted.json()['id']}").status_code == 401


def test_key_management_disabled_without_admin_token(client: TestClient) -> None:
    with patch("app.core.config.ADMIN_TOKEN", ""):
        response = client.post(f"{MCP_URL}/keys", json={"name": "anon"}, headers={"x-admin-token": "admin-secret"})
    assert response.status_code == 503
    assert response.json()["detail"] == "BOS_ADMIN_TOKEN is not configured"


def test_validate_stamps_last_used(api_key: str) -> None:
    identity = auth.validate_api_key(api_key)
    assert identity["brandId"] == DEFAULT_BRAND_ID
    assert identity["clientId"] == f"bos-mcp-{DEFAULT_BRAND_ID}"
    assert auth.get_or_create_server_config(DEFAULT_BRAND_ID)["apiKeys"][0]["last_used"] is not None


# --- JSON-RPC ---

def test_initialize_and_tools_list(client: TestClient, api_key: str) -> None:
    headers = {"x-api-key": api_key}
    init = _rpc(client, "initialize", headers=headers).json()["result"]
    assert init["protocolVersion"] == "2024-11-05"
    assert init["serverInfo"]["name"] == "BOS MCP Server"

    tools = _rpc(client, "tools/list", headers=headers).json()["result"]["tools"]
    assert {t["name"] for t in tools} == {
        "search_brand_knowledge",
        "get_brand_colors",
        "get_brand_assets",
        "get_brand_guidelines",
        "search_brand_assets",
    }


def test_tools_call_returns_text_content(client: TestClient, api_key: str) -> None:
    _seed_color()
    response = _rpc(client, "tools/call", {"name": "get_brand_colors", "arguments": {}}, headers={"x-api-key": api_key})
    content = response.json()["result"]["content"]
    assert content[0]["type"] == "text"
    payload = json.loads(content[0]["text"])
    assert payload["data"]["colors"][0]["hex"] == "#FE5102"
    assert "Aperol (#FE5102)" in payload["summary"]

    search = _rpc(
        client,
        "tools/call",
        {"name": "search_brand_knowledge", "arguments": {"query": "write confidently"}},
        headers={"x-api-key": api_key},
    )
    results = json.loads(search.json()["result"]["content"][0]["text"])["data"]["results"]
    assert results[0]["document"] == "Tone of Voice"


@pytest.mark.parametrize(
    "params, message",
    [
        ({"name": "unknown_tool"}, "Unknown tool: unknown_tool"),
        ({}, "Missing tool parameters"),
        ({"name": "search_brand_knowledge", "arguments": {}}, "query is required"),
    ],
)
def test_tools_call_invalid_params(client: TestClient, api_key: str, params, message) -> None:
    response = _rpc(client, "tools/call", params, headers={"x-api-key": api_key})
    assert response.status_code == 400
    assert response.json()["error"] == {"code": -32602, "message": message}


def test_protocol_errors(client: TestClient, api_key: str) -> None:
    headers = {"x-api-key": api_key}
    unknown = _rpc(client, "resources/list", headers=headers)
    assert unknown.json()["error"]["code"] == -32601

    bad_json = client.post(MCP_URL, content="{not json", headers={**headers, "content-type": "application/json"})
    assert bad_json.status_code == 400
    assert bad_json.json()["error"]["code"] == -32700

    wrong_version = client.post(MCP_URL, json={"jsonrpc": "1.0", "id": 3, "method": "ping"}, headers=headers)
    assert wrong_version.json()["error"]["code"] == -32600
    assert wrong_version.json()["id"] == 3


def test_server_info_and_preflight(client: TestClient) -> None:
    info = client.get(MCP_URL).json()
    assert info["transport"] == "http"
    assert info["endpoints"]["token"] == "http://testserver/api/mcp/token"
    assert client.get(MCP_URL, headers={"accept": "text/event-stream"}).json()["transport"] == "sse"
    preflight = client.options(MCP_URL)
    assert preflight.status_code == 204
    assert preflight.headers["access-control-allow-origin"] == "*"


# --- OAuth ---

def test_oauth_metadata(client: TestClient) -> None:
    meta = client.get(f"{MCP_URL}/.well-known/oauth-authorization-server").json()
    assert meta["issuer"] == "http://testserver/api/mcp"
    assert meta["authorization_endpoint"] == "http://testserver/api/mcp/authorize"
    assert "client_credentials" in meta["grant_types_supported"]


def test_authorize_redirects_with_code_and_state(client: TestClient) -> None:
    response = client.get(
        f"{MCP_URL}/authorize",
        params={"client_id": "desktop", "redirect_uri": "http://localhost:3000/cb?x=1", "state": "abc"},
        follow_redirects=False,
    )
    assert response.status_code == 302
    location = response.headers["location"]
    assert location.startswith("http://localhost:3000/cb?")
    assert "x=1" in location and "state=abc" in location
    code = location.split("code=")[1].split("&")[0]
    client_id, expires = auth.parse_code(code)
    assert client_id == "desktop"
    assert expires > 0


def test_authorize_validation(client: TestClient) -> None:
    assert client.get(f"{MCP_URL}/authorize", params={"redirect_uri": "http://a/cb"}).json()["error"] == "invalid_request"
    assert client.get(f"{MCP_URL}/authorize", params={"client_id": "c"}).json()["error_description"] == (
        "Missing redirect_uri parameter"
    )
    unsupported = client.get(
        f"{MCP_URL}/authorize", params={"client_id": "c", "redirect_uri": "http://a/cb", "response_type": "token"}
    )
    assert unsupported.json()["error"] == "unsupported_response_type"


def test_token_client_credentials(client: TestClient) -> None:
    ok = client.post(f"{MCP_URL}/token", data={"grant_type": "client_credentials", "client_secret": "bos_mcp_k"})
    assert ok.json()["access_token"] == "bos_mcp_k"
    assert ok.json()["token_type"] == "Bearer"

    basic = base64.b64encode(b"cid:bos_mcp_basic").decode()
    via_basic = client.post(
        f"{MCP_URL}/token", data={"grant_type": "client_credentials"}, headers={"authorization": f"Basic {basic}"}
    )
    assert via_basic.json()["access_token"] == "bos_mcp_basic"

    missing = client.post(f"{MCP_URL}/token", json={"grant_type": "client_credentials"})
    assert missing.status_code == 401
    assert missing.json()["error"] == "invalid_client"


def test_token_authorization_code(client: TestClient) -> None:
    code = auth.generate_code("bos_mcp_from_code")
    response = client.post(f"{MCP_URL}/token", data={"grant_type": "authorization_code", "code": code})
    assert response.json()["access_token"] == "bos_mcp_from_code"

    expired = auth.generate_code("c", now_ms=0)
    assert client.post(f"{MCP_URL}/token", data={"code": expired}).json()["error"] == "invalid_grant"
    assert client.post(f"{MCP_URL}/token", data={"code": "garbage!"}).json()["error"] == "invalid_grant"
    assert client.post(f"{MCP_URL}/token", data={"grant_type": "authorization_code"}).json()["error"] == "invalid_request"
    assert client.post(f"{MCP_URL}/token", data={"grant_type": "password"}).json()["error"] == "unsupported_grant_type"
