"""
List-query pipeline

Turns a list endpoint's query string into a MongoDB query:

    ?category=residential&price[gte]=100&sort=-created_at,title
    &fields=title,price&page=2&limit=20&search=panel

Parameters are parsed once into a ``QueryParams`` value, then an immutable
``APIFeatures`` builder accumulates filter, search, sort, projection and
pagination. Every stage returns a new builder, so a half-built query can be
shared safely. ``spec`` freezes the result into a ``QuerySpec`` which
``execute``/``count`` apply to a pymongo collection using the same filter.

Reserved parameter names (page, limit, sort, fields, search) are never used
as filters, so a field literally named e.g. ``sort`` cannot be filtered on.
"""
import copy
import logging
import math
import os
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from pymongo import ASCENDING, DESCENDING

from database import serialize_document

logger = logging.getLogger(__name__)

RESERVED_PARAMS = ("page", "limit", "sort", "fields", "search")
DEFAULT_SEARCH_FIELDS = ("name", "title", "description")
DEFAULT_HIDDEN_FIELDS = ("__v",)

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "10"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))
# BSON int64 ceiling for cursor skip
MAX_SKIP = 2 ** 63 - 1

_BRACKET_KEY = re.compile(r"^(?P<field>[^\[\]]+)\[(?P<op>[a-z]+)\]$")


class FilterOp(str, Enum):
    EQ = "eq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"


RELATIONAL_OPS = (FilterOp.GT, FilterOp.GTE, FilterOp.LT, FilterOp.LTE)
_OP_NAMES = frozenset(op.value for op in FilterOp)


@dataclass(frozen=True)
class FieldFilter:
    """One constraint on one field, e.g. ``price >= 100``."""
    field: str
    op: FilterOp
    value: Any

    def to_mongo(self) -> Any:
        if self.op is FilterOp.EQ:
            return self.value
        return {f"${self.op.value}": self.value}


@dataclass(frozen=True)
class QueryParams:
    """Request parameters split into filters and the reserved control keys."""
    filters: Tuple[FieldFilter, ...] = ()
    search: Optional[str] = None
    sort: Optional[str] = None
    fields: Optional[str] = None
    page: Optional[str] = None
    limit: Optional[str] = None


@dataclass(frozen=True)
class QuerySpec:
    filter: Dict[str, Any]
    sort: Tuple[Tuple[str, int], ...] = ()
    projection: Optional[Dict[str, int]] = None
    page: Optional[int] = None
    limit: Optional[int] = None
    skip: int = 0


def _coerce_number(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    text = value.strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return value
    # "nan"/"inf" parse as floats but are never meant as numbers in a query
    return number if math.isfinite(number) else value


def _coerce_scalar(value: Any) -> Any:
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    return value


def _make_filter(field_name: str, op: FilterOp, value: Any) -> FieldFilter:
    if op in RELATIONAL_OPS:
        return FieldFilter(field_name, op, _coerce_number(value))
    if op is FilterOp.IN:
        if isinstance(value, str):
            items = [item.strip() for item in value.split(",") if item.strip()]
        else:
            items = list(value)
        return FieldFilter(field_name, op, items)
    return FieldFilter(field_name, op, _coerce_scalar(value))


def _iter_pairs(params: Any) -> Iterable[Tuple[str, Any]]:
    if params is None:
        return []
    if hasattr(params, "multi_items"):
        return params.multi_items()
    if isinstance(params, Mapping):
        return params.items()
    return params


def _is_field_name(name: Any) -> bool:
    """False for names MongoDB would read as an operator, e.g. ``$where``."""
    if not isinstance(name, str) or not name:
        return False
    return not any(part.startswith("$") for part in name.split("."))


def parse_query_params(params: Any) -> QueryParams:
    """Parse raw query-string pairs into a ``QueryParams``.

    Accepts a plain mapping, a list of ``(key, value)`` pairs or a Starlette
    ``QueryParams``. Operators may come as ``price[gte]=100`` or as a nested
    mapping ``{"price": {"gte": "100"}}``. A key repeated with plain values
    becomes an ``in`` filter. Keys starting with ``$`` are dropped.
    """
    control: Dict[str, str] = {}
    operators: Dict[Tuple[str, FilterOp], FieldFilter] = {}
    equals: Dict[str, List[Any]] = {}

    for key, value in _iter_pairs(params):
        if key in RESERVED_PARAMS:
            # first occurrence wins for control keys
            control.setdefault(key, value)
            continue

        match = _BRACKET_KEY.match(key)
        name = match.group("field") if match else key
        if not _is_field_name(name):
            logger.warning("Dropping query parameter %r: not a field name", key)
            continue

        if match and match.group("op") in _OP_NAMES:
            op = FilterOp(match.group("op"))
            if op is FilterOp.EQ:
                equals.setdefault(name, []).append(value)
            else:
                operators[(name, op)] = _make_filter(name, op, value)
            continue

        if isinstance(value, Mapping):
            for op_key, op_value in value.items():
                if op_key in _OP_NAMES and op_key != FilterOp.EQ.value:
                    op = FilterOp(op_key)
                    operators[(key, op)] = _make_filter(key, op, op_value)
                elif op_key == FilterOp.EQ.value:
                    equals.setdefault(key, []).append(op_value)
                elif not _is_field_name(op_key):
                    logger.warning("Dropping query parameter %s[%s]: not a field name", key, op_key)
                else:
                    equals.setdefault(f"{key}.{op_key}", []).append(op_value)
            continue

        if isinstance(value, (list, tuple)):
            equals.setdefault(key, []).extend(value)
        else:
            equals.setdefault(key, []).append(value)

    filters: List[FieldFilter] = []
    for name, values in equals.items():
        if len(values) == 1:
            filters.append(_make_filter(name, FilterOp.EQ, values[0]))
        else:
            filters.append(FieldFilter(name, FilterOp.IN, [_coerce_scalar(v) for v in values]))
    filters.extend(operators.values())

    return QueryParams(
        filters=tuple(filters),
        search=control.get("search"),
        sort=control.get("sort"),
        fields=control.get("fields"),
        page=control.get("page"),
        limit=control.get("limit"),
    )


def render_filters(filters: Iterable[FieldFilter]) -> Dict[str, Any]:
    """Render field filters into a MongoDB filter document."""
    rendered: Dict[str, Any] = {}
    grouped: Dict[str, List[FieldFilter]] = {}
    for item in filters:
        grouped.setdefault(item.field, []).append(item)

    for name, items in grouped.items():
        if len(items) == 1:
            rendered[name] = items[0].to_mongo()
            continue
        operator_doc: Dict[str, Any] = {}
        for item in items:
            operator_doc[f"${item.op.value}"] = item.value
        rendered[name] = operator_doc
    return rendered


def _and(left: Dict[str, Any], right: Dict[str, Any]) -> Dict[str, Any]:
    if not left:
        return dict(right)
    if not right:
        return dict(left)
    if set(left) & set(right):
        return {"$and": [left, right]}
    return {**left, **right}


def _positive_int(value: Any, default: int) -> int:
    if value is None:
        return default
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default


@dataclass(frozen=True)
class APIFeatures:
    """Immutable query builder; each stage returns a new instance.

    Usage::

        spec = (APIFeatures.from_request(request.query_params)
                .filter().search().sort().limit_fields().paginate().spec)
    """
    params: QueryParams = field(default_factory=QueryParams)
    base_filter: Mapping[str, Any] = field(default_factory=dict)
    search_fields: Tuple[str, ...] = DEFAULT_SEARCH_FIELDS
    timestamp_field: Optional[str] = "created_at"
    hidden_fields: Tuple[str, ...] = DEFAULT_HIDDEN_FIELDS
    default_limit: int = DEFAULT_PAGE_SIZE
    max_limit: int = MAX_PAGE_SIZE

    query_filter: Mapping[str, Any] = field(default_factory=dict)
    sort_spec: Tuple[Tuple[str, int], ...] = ()
    projection: Optional[Mapping[str, int]] = None
    page: Optional[int] = None
    limit: Optional[int] = None

    @classmethod
    def from_request(cls, raw_params: Any, base_filter: Optional[Mapping[str, Any]] = None, **options) -> "APIFeatures":
        base = dict(base_filter or {})
        return cls(
            params=parse_query_params(raw_params),
            base_filter=copy.deepcopy(base),
            query_filter=copy.deepcopy(base),
            **options,
        )

    def filter(self) -> "APIFeatures":
        rendered = render_filters(self.params.filters)
        if not rendered:
            return self
        return replace(self, query_filter=_and(dict(self.query_filter), rendered))

    def search(self) -> "APIFeatures":
        term = (self.params.search or "").strip()
        if not term or not self.search_fields:
            return self
        pattern = re.escape(term)
        clause = {
            "$or": [
                {name: {"$regex": pattern, "$options": "i"}}
                for name in self.search_fields
            ]
        }
        return replace(self, query_filter=_and(dict(self.query_filter), clause))

    def sort(self) -> "APIFeatures":
        order: List[Tuple[str, int]] = []
        for token in (self.params.sort or "").split(","):
            token = token.strip()
            if not token or token == "-":
                continue
            if token.startswith("-"):
                order.append((token[1:], DESCENDING))
            else:
                order.append((token, ASCENDING))
        if not order:
            order = [(self.timestamp_field or "_id", DESCENDING)]
        return replace(self, sort_spec=tuple(order))

    def limit_fields(self) -> "APIFeatures":
        names = [name.strip() for name in (self.params.fields or "").split(",") if name.strip()]
        if names:
            projection = {name: 1 for name in names}
            projection["_id"] = 1
        elif self.hidden_fields:
            projection = {name: 0 for name in self.hidden_fields}
        else:
            projection = None
        return replace(self, projection=projection)

    def paginate(self) -> "APIFeatures":
        page = _positive_int(self.params.page, DEFAULT_PAGE)
        limit = min(_positive_int(self.params.limit, self.default_limit), self.max_limit)
        if (page - 1) * limit > MAX_SKIP:
            logger.warning("Page %s is out of range, using page %s", page, DEFAULT_PAGE)
            page = DEFAULT_PAGE
        return replace(self, page=page, limit=limit)

    @property
    def skip(self) -> int:
        if self.page is None or self.limit is None:
            return 0
        return (self.page - 1) * self.limit

    @property
    def spec(self) -> QuerySpec:
        return QuerySpec(
            filter=copy.deepcopy(dict(self.query_filter)),
            sort=self.sort_spec,
            projection=dict(self.projection) if self.projection is not None else None,
            page=self.page,
            limit=self.limit,
            skip=self.skip,
        )


def build_query(raw_params: Any, base_filter: Optional[Mapping[str, Any]] = None, **options) -> QuerySpec:
    """Run every pipeline stage and return the frozen spec."""
    spec = (
        APIFeatures.from_request(raw_params, base_filter, **options)
        .filter()
        .search()
        .sort()
        .limit_fields()
        .paginate()
        .spec
    )
    logger.debug("Built query spec: %s", spec)
    return spec


def execute(collection, spec: QuerySpec) -> List[Dict[str, Any]]:
    cursor = collection.find(spec.filter, spec.projection)
    if spec.sort:
        cursor = cursor.sort(list(spec.sort))
    if spec.skip:
        cursor = cursor.skip(spec.skip)
    if spec.limit:
        cursor = cursor.limit(spec.limit)
    return list(cursor)


def count(collection, spec: QuerySpec) -> int:
    # total must use the same filter as the page itself
    return collection.count_documents(spec.filter)


def paginated_response(collection, spec: QuerySpec) -> Dict[str, Union[bool, int, Dict[str, int], List[Any]]]:
    if spec.limit is None or spec.page is None:
        raise ValueError("paginate() must be applied before building a paginated response")

    documents = execute(collection, spec)
    total = count(collection, spec)
    return {
        "success": True,
        "count": len(documents),
        "total": total,
        "pagination": {
            "page": spec.page,
            "limit": spec.limit,
            "totalPages": math.ceil(total / spec.limit),
        },
        "data": [serialize_document(doc) for doc in documents],
    }
