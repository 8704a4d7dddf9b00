"""
Content collections exposed through the generic list endpoint.

Each entry names the MongoDB collection, the fields free-text search looks
at, and the filter every public listing is restricted to.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from api_features import DEFAULT_SEARCH_FIELDS, QuerySpec, build_query


@dataclass(frozen=True)
class ContentType:
    collection: str
    search_fields: Tuple[str, ...] = DEFAULT_SEARCH_FIELDS
    base_filter: Dict[str, Any] = field(default_factory=lambda: {"is_active": True})
    timestamp_field: Optional[str] = "created_at"

    def query(self, raw_params: Any) -> QuerySpec:
        """Run the full list pipeline for this collection."""
        return build_query(
            raw_params,
            base_filter=self.base_filter,
            search_fields=self.search_fields,
            timestamp_field=self.timestamp_field,
        )


CONTENT_TYPES: Dict[str, ContentType] = {
    "blog-posts": ContentType(
        "blogpost",
        search_fields=("title", "excerpt", "content"),
        base_filter={"is_published": True},
    ),
    "products": ContentType("product", search_fields=("title", "description", "category")),
    "projects": ContentType("project", search_fields=("title", "description", "location")),
    "team": ContentType("team", search_fields=("name", "position", "department", "bio")),
    "testimonials": ContentType("testimonial", search_fields=("name", "company", "content")),
    "faqs": ContentType("faq", search_fields=("question", "answer", "category")),
    "careers": ContentType("career", search_fields=("title", "department", "location", "description")),
    "hero-slides": ContentType("hero", search_fields=("title", "subtitle")),
    "clients": ContentType("client", search_fields=("name", "description")),
}


def get_content_type(name: str) -> ContentType:
    """Look up a content type by its URL name; raises KeyError if unknown."""
    try:
        return CONTENT_TYPES[name]
    except KeyError:
        raise KeyError(f"Unknown content type: {name}") from None
