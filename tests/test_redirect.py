"""
Tests for the public /l/{code} redirect and the password prompt.
"""

from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from app.core.config import DEFAULT_BRAND_ID
from app.services import links_service


def _create(**overrides) -> dict:
    data = {"brand_id": DEFAULT_BRAND_ID, "destination_url": "https://example.com/landing"}
    data.update(overrides)
    return links_service.create_link(data)


def _get(client: TestClient, path: str, **kwargs):
    return client.get(path, follow_redirects=False, **kwargs)


def test_redirects_with_utm_and_records_click(client: TestClient) -> None:
    link = _create(short_code="go", utm_source="newsletter", utm_medium="email")
    response = _get(client, "/l/go", headers={"user-agent": "Mozilla/5.0 (iPhone; CPU iPhone OS 17_2 like Mac OS X) Mobile"})
    assert response.status_code == 302
    assert response.headers["location"] == "https://example.com/landing?utm_source=newsletter&utm_medium=email"
    assert links_service.get_link_by_id(link["id"])["clicks"] == 1


def test_unknown_inactive_and_archived_go_to_not_found(client: TestClient) -> None:
    inactive = _create(short_code="off")
    links_service.deactivate_link(inactive["id"])
    archived = _create(short_code="old")
    links_service.archive_link(archived["id"])
    for code in ("missing", "off", "old"):
        response = _get(client, f"/l/{code}")
        assert response.status_code == 302
        assert response.headers["location"] == "/link-not-found"


def test_expired_link(client: TestClient) -> None:
    _create(short_code="late", expires_at=(datetime.now(timezone.utc) - timedelta(hours=1)).isoformat())
    assert _get(client, "/l/late").headers["location"] == "/link-expired"


def test_password_protected_flow(client: TestClient) -> None:
    link = _create(short_code="locked", password="pw")
    response = _get(client, "/l/locked")
    assert response.headers["location"] == "/l/password?code=locked"

    page = _get(client, "/l/password", params={"code": "locked"})
    assert page.status_code == 200
    assert 'name="code" value="locked"' in page.text

    wrong = client.post(
        "/l/password",
        content="code=locked&password=nope",
        headers={"content-type": "application/x-www-form-urlencoded"},
        follow_redirects=False,
    )
    assert wrong.status_code == 401
    assert "Incorrect password" in wrong.text

    ok = client.post(
        "/l/password",
        content="code=locked&password=pw",
        headers={"content-type": "application/x-www-form-urlencoded"},
        follow_redirects=False,
    )
    assert ok.status_code == 302
    assert ok.headers["location"] == "https://example.com/landing"
    assert links_service.get_link_by_id(link["id"])["clicks"] == 1


def test_password_prompt_without_code(client: TestClient) -> None:
    assert _get(client, "/l/password").headers["location"] == "/link-not-found"


def test_password_form_decoding(client: TestClient) -> None:
    _create(short_code="amp", password="a&b=c d")
    ok = client.post("/l/password", data={"code": "amp", "password": "a&b=c d"}, follow_redirects=False)
    assert ok.status_code == 302
    assert ok.headers["location"] == "https://example.com/landing"

    missing = client.post("/l/password", data={"password": "a&b=c d"}, follow_redirects=False)
    assert missing.headers["location"] == "/link-not-found"


def test_lookup_failure_goes_to_error_page(client: TestClient, monkeypatch) -> None:
    def _boom(code):
        raise RuntimeError("db down")

    monkeypatch.setattr(links_service, "resolve_redirect", _boom)
    assert _get(client, "/l/anything").headers["location"] == "/link-error"
