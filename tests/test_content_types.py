"""
Tests for the content registry (content_types).
"""
import pytest
from pymongo import ASCENDING, DESCENDING

from api_features import build_query
from content_types import CONTENT_TYPES, ContentType, get_content_type


def test_unknown_content_type_raises():
    with pytest.raises(KeyError):
        get_content_type("unicorns")


def test_every_listing_has_a_public_filter():
    for content in CONTENT_TYPES.values():
        assert content.base_filter


def test_query_runs_every_stage():
    content = get_content_type("products")

    spec = content.query({"category": "residential", "search": "panel", "sort": "title", "fields": "title", "page": "2", "limit": "5"})

    assert spec.filter["is_active"] is True
    assert spec.filter["category"] == "residential"
    assert spec.filter["$or"] == [
        {name: {"$regex": "panel", "$options": "i"}} for name in content.search_fields
    ]
    assert spec.sort == (("title", ASCENDING),)
    assert spec.projection == {"title": 1, "_id": 1}
    assert (spec.page, spec.limit, spec.skip) == (2, 5, 5)


def test_query_matches_build_query():
    content = ContentType("hero", search_fields=("title",), timestamp_field=None)
    raw = {"search": "sun", "page": "3"}

    assert content.query(raw) == build_query(
        raw, base_filter={"is_active": True}, search_fields=("title",), timestamp_field=None
    )
    assert content.query(raw).sort == (("_id", DESCENDING),)


def test_query_does_not_mutate_base_filter():
    content = get_content_type("blog-posts")

    content.query({"is_published": "false"})

    assert content.base_filter == {"is_published": True}
