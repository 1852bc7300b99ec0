"""
Integration tests for /api/links endpoints.
"""

from fastapi.testclient import TestClient

from app.core.config import DEFAULT_BRAND_ID
from app.services import link_analytics, links_service


def _create(client: TestClient, **body) -> dict:
    payload = {"destinationUrl": "https://example.com/page"}
    payload.update(body)
    response = client.post("/api/links", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_and_get(client: TestClient) -> None:
    link = _create(client, shortCode="github", title="GitHub", tags=["GitHub"], utmSource="site")
    assert link["shortCode"] == "github"
    assert link["brandId"] == DEFAULT_BRAND_ID
    assert link["utmSource"] == "site"

    response = client.get(f"/api/links/{link['id']}", params={"includeAnalytics": "true", "period": "7d"})
    assert response.status_code == 200
    data = response.json()
    assert data["link"]["id"] == link["id"]
    assert data["analytics"]["totalClicks"] == 0


def test_create_validation(client: TestClient) -> None:
    response = client.post("/api/links", json={"destinationUrl": "ftp:/broken"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid destination URL"
    _create(client, shortCode="dupe")
    response = client.post("/api/links", json={"destinationUrl": "https://a.com", "shortCode": "dupe"})
    assert response.status_code == 409
    assert response.json()["detail"] == "Short code already exists"


def test_list_with_filters_and_stats(client: TestClient) -> None:
    _create(client, shortCode="alpha", tags=["social"])
    _create(client, shortCode="beta", tags=["website"])
    response = client.get("/api/links", params={"tags": "social,blog", "includeStats": "true"})
    data = response.json()
    assert [l["shortCode"] for l in data["links"]] == ["alpha"]
    assert data["stats"]["total"] == 2
    sorted_links = client.get("/api/links", params={"sortBy": "alphabetical", "sortOrder": "asc"}).json()["links"]
    assert [l["shortCode"] for l in sorted_links] == ["alpha", "beta"]


def test_update_archive_restore_and_toggle(client: TestClient) -> None:
    link = _create(client, shortCode="edit")
    response = client.patch(f"/api/links/{link['id']}", json={"title": "Edited", "password": "pw"})
    assert response.status_code == 200
    assert response.json()["title"] == "Edited"
    assert response.json()["hasPassword"] is True

    assert client.delete(f"/api/links/{link['id']}").json()["link"]["isArchived"] is True
    assert client.post(f"/api/links/{link['id']}/restore").json()["isArchived"] is False
    assert client.post(f"/api/links/{link['id']}/deactivate").json()["isActive"] is False
    assert client.post(f"/api/links/{link['id']}/activate").json()["isActive"] is True


def test_duplicate_and_hard_delete(client: TestClient) -> None:
    link = _create(client, shortCode="orig", title="Launch")
    copy = client.delete(f"/api/links/{link['id']}", params={"action": "duplicate"}).json()["link"]
    assert copy["title"] == "Launch (Copy)"
    assert client.delete(f"/api/links/{link['id']}", params={"hard": "true"}).json()["deleted"] is True
    assert client.get(f"/api/links/{link['id']}").status_code == 404
    assert client.delete(f"/api/links/{link['id']}", params={"hard": "true"}).status_code == 404


def test_update_missing_link_is_404(client: TestClient) -> None:
    assert client.patch("/api/links/missing", json={"title": "x"}).status_code == 404
    assert client.post("/api/links/missing/restore").status_code == 404


def test_bulk_actions(client: TestClient) -> None:
    response = client.post(
        "/api/links/bulk",
        json={"action": "create", "links": [{"destinationUrl": "https://a.com"}, {"destinationUrl": "https://b.com"}]},
    )
    assert response.json()["count"] == 2
    ids = [l["id"] for l in response.json()["links"]]
    assert client.post("/api/links/bulk", json={"action": "tags", "ids": ids, "tags": ["x"]}).json()["count"] == 2
    assert client.post("/api/links/bulk", json={"action": "archive", "ids": ids[:1]}).json()["count"] == 1
    assert client.post("/api/links/bulk", json={"action": "delete", "ids": ids}).json()["count"] == 2
    assert client.post("/api/links/bulk", json={"action": "delete", "ids": []}).status_code == 400
    assert client.post("/api/links/bulk", json={"action": "explode"}).status_code == 422


def test_stats_top_recent(client: TestClient) -> None:
    link = _create(client, shortCode="hot")
    links_service.increment_clicks(link["id"], unique=True)
    assert client.get("/api/links/stats").json()["totalClicks"] == 1
    assert client.get("/api/links/top").json()["links"][0]["shortCode"] == "hot"
    assert client.get("/api/links/recent").json()["links"][0]["shortCode"] == "hot"


def test_analytics_endpoint(client: TestClient) -> None:
    link = _create(client, shortCode="an")
    link_analytics.record_click(link["id"], "127.0.0.1", "Mozilla/5.0 (Windows NT 10.0) Chrome/120.0", "https://t.co/x")

    full = client.get("/api/links/analytics", params={"linkId": link["id"]}).json()
    assert full["totalClicks"] == 1
    browsers = client.get("/api/links/analytics", params={"linkId": link["id"], "type": "browser"}).json()
    assert browsers == {"clicksByBrowser": [{"browser": "Chrome", "clicks": 1}]}
    recent = client.get("/api/links/analytics", params={"linkId": link["id"], "type": "recent"}).json()
    assert len(recent["clicks"]) == 1
    brand = client.get("/api/links/analytics", params={"period": "7d"}).json()
    assert brand["totalClicks"] == 1
    assert len(brand["clickTrend"]) == 8

    assert client.get("/api/links/analytics", params={"period": "1y"}).status_code == 400
    assert client.get("/api/links/analytics", params={"linkId": link["id"], "type": "odd"}).status_code == 400
    assert client.get("/api/links/analytics", params={"linkId": "missing"}).status_code == 404


def test_tag_endpoints(client: TestClient) -> None:
    assert client.post("/api/links/tags", json={"name": " "}).status_code == 400
    assert client.post("/api/links/tags", json={"name": "Blog", "color": "neon"}).json()["detail"] == "Invalid color"

    created = client.post("/api/links/tags", json={"name": "Blog", "color": "blue"})
    assert created.status_code == 201
    tag = created.json()
    assert client.post("/api/links/tags", json={"name": "blog"}).status_code == 409
    same = client.post("/api/links/tags", json={"name": "blog", "getOrCreate": True}).json()
    assert same["id"] == tag["id"]

    assert client.patch("/api/links/tags", json={"name": "x"}).json()["detail"] == "Tag ID is required"
    renamed = client.patch("/api/links/tags", json={"id": tag["id"], "name": "Journal"}).json()
    assert renamed["slug"] == "journal"

    listed = client.get("/api/links/tags", params={"sync": "true"}).json()["tags"]
    assert [t["name"] for t in listed] == ["Journal"]
    assert client.delete("/api/links/tags", params={"id": tag["id"]}).json() == {"success": True}
    assert client.delete("/api/links/tags", params={"id": tag["id"]}).status_code == 404


def test_verify_password(client: TestClient) -> None:
    _create(client, shortCode="locked", password="pw", utmCampaign="launch")
    assert client.post("/api/links/verify-password", json={"password": "pw"}).json()["detail"] == "Short code is required"
    assert client.post("/api/links/verify-password", json={"shortCode": "locked"}).json()["detail"] == "Password is required"
    assert client.post("/api/links/verify-password", json={"shortCode": "nope", "password": "pw"}).status_code == 404
    wrong = client.post("/api/links/verify-password", json={"shortCode": "locked", "password": "bad"})
    assert wrong.status_code == 401
    assert wrong.json()["detail"] == "Incorrect password"

    ok = client.post("/api/links/verify-password", json={"shortCode": "locked", "password": "pw"})
    assert ok.status_code == 200
    assert ok.json() == {"destinationUrl": "https://example.com/page?utm_campaign=launch"}
    # click recorded by the background task
    assert links_service.get_link_by_short_code(DEFAULT_BRAND_ID, "locked")["clicks"] == 1


def test_tag_suggestions(client: TestClient) -> None:
    assert client.get("/api/links/tags/suggest", params={"shortCode": "github-website"}).json() == {
        "tags": ["website", "github"]
    }
    assert client.get("/api/links/tags/suggest", params={"shortCode": "launch"}).json() == {"tags": []}
