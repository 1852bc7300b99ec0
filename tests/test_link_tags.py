"""
Unit tests for link tags.
"""

import pytest

from app.core.errors import BadRequestError, ConflictError, NotFoundError
from app.services import link_tags, links_service

BRAND = "brand-1"


def test_slug_and_inference() -> None:
    assert link_tags.generate_tag_slug("Product Hunt!") == "product-hunt"
    assert link_tags.infer_tags_from_slug("github-website") == ["website", "github"]
    assert link_tags.infer_tags_from_slug("karim-linkedin") == ["linkedin"]
    assert link_tags.infer_tags_from_slug("launch") == []


def test_default_tags_created_once() -> None:
    created = link_tags.ensure_default_tags(BRAND)
    assert len(created) == len(link_tags.DEFAULT_TAGS)
    assert link_tags.ensure_default_tags(BRAND) == []
    youtube = link_tags.get_tag_by_name(BRAND, "youtube")
    assert youtube["color"] == "red"


def test_create_conflict_and_empty_name() -> None:
    link_tags.create_tag(BRAND, "Social")
    with pytest.raises(ConflictError, match="Tag already exists"):
        link_tags.create_tag(BRAND, "social")
    with pytest.raises(BadRequestError):
        link_tags.create_tag(BRAND, "!!!")


def test_get_or_create_cycles_colours() -> None:
    first = link_tags.get_or_create_tag(BRAND, "One")
    second = link_tags.get_or_create_tag(BRAND, "Two")
    assert first["color"] == "gray"
    assert second["color"] == "red"
    assert link_tags.get_or_create_tag(BRAND, "ONE")["id"] == first["id"]


def test_update_and_delete() -> None:
    tag = link_tags.create_tag(BRAND, "Blog", "blue")
    updated = link_tags.update_tag(tag["id"], name="Journal", color="green")
    assert updated["slug"] == "journal"
    assert updated["color"] == "green"
    with pytest.raises(NotFoundError):
        link_tags.update_tag("missing", name="x")
    assert link_tags.delete_tag(tag["id"]) is True
    assert link_tags.delete_tag(tag["id"]) is False


def test_sync_usage_counts() -> None:
    links_service.create_link({"brand_id": BRAND, "destination_url": "https://a.com", "tags": ["Social"]})
    links_service.create_link({"brand_id": BRAND, "destination_url": "https://b.com", "tags": ["social", "Website"]})
    link_tags.sync_tag_usage_counts(BRAND)
    counts = {t["name"]: t["usageCount"] for t in link_tags.get_tags_by_brand(BRAND)}
    assert counts == {"Social": 2, "Website": 1}
