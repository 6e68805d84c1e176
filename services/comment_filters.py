"""
Shared filter validation for every comment listing endpoint
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from models.database import PLATFORM_VALUES, STATUS_VALUES, as_utc
from services.query_builder import ParsedQuery, parse_query
from services.sanitizer import check_allowed, sanitize_query, sanitize_text_filter
from utils.config import Config
from utils.exceptions import InvalidPlatformError, ValidationError

SENTIMENT_VALUES = ["positive", "neutral", "negative"]
PRIORITY_VALUES = ["high", "medium", "low"]
ORDER_VALUES = ["asc", "desc"]
LISTING_SORTS = ["created_at", "updated_at", "sentiment_score"]
SEARCH_SORTS = ["relevance"] + LISTING_SORTS

QUEUE_DEFAULT_PAGE_SIZE = 50

_DIGITS = re.compile(r"^\d+$")
_TRUE = {"true", "1", "yes"}
_FALSE = {"false", "0", "no"}


class RequestKind(str, Enum):
    """Which endpoint a filter set was parsed for"""
    LIST = "list"
    PLATFORM = "platform"
    SEARCH = "search"
    QUEUE = "queue"


@dataclass
class CommentFilters:
    kind: RequestKind
    limit: int
    offset: int = 0
    platforms: List[str] = field(default_factory=list)
    status: Optional[str] = None
    sentiment: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    raw_date_from: Optional[str] = None
    raw_date_to: Optional[str] = None
    query: Optional[str] = None
    parsed_query: Optional[ParsedQuery] = None
    sort: str = "created_at"
    order: str = "desc"
    author: Optional[str] = None
    engagement_min: Optional[int] = None
    content_length_min: Optional[int] = None
    content_length_max: Optional[int] = None
    priority: Optional[str] = None
    facets: bool = False
    semantic: bool = False
    sentiment_analysis: bool = False
    include_statistics: bool = True

    @property
    def search_type(self) -> Optional[str]:
        if self.semantic:
            return "semantic"
        return self.parsed_query.search_type if self.parsed_query else None

    def echo(self) -> Dict[str, Any]:
        """Filters as echoed back in the response body"""
        echoed: Dict[str, Any] = {
            "platform": self.platforms[0] if len(self.platforms) == 1 else None,
            "status": self.status,
        }
        if self.kind == RequestKind.QUEUE:
            echoed["priority"] = self.priority
            return echoed
        if len(self.platforms) > 1:
            echoed["platforms"] = list(self.platforms)
        echoed["sentiment"] = self.sentiment
        echoed["search"] = self.query
        echoed["date_range"] = {"from": self.raw_date_from, "to": self.raw_date_to}
        echoed["sort"] = self.sort
        echoed["order"] = self.order
        if self.kind == RequestKind.SEARCH:
            echoed.update({
                "author": self.author,
                "engagement_min": self.engagement_min,
                "content_length_min": self.content_length_min,
                "content_length_max": self.content_length_max,
            })
        return echoed

    def cache_key_parts(self) -> Dict[str, Any]:
        parts = self.echo()
        parts.update({
            "kind": self.kind.value,
            "platforms": sorted(self.platforms),
            "limit": self.limit,
            "offset": self.offset,
            "facets": self.facets,
            "semantic": self.semantic,
            "sentiment_analysis": self.sentiment_analysis,
        })
        return parts


def _invalid(name: str, message: Optional[str] = None) -> ValidationError:
    return ValidationError(message or f"Invalid parameter: {name}", details={"field": name})


def parse_non_negative_int(name: str, raw: Optional[str], default: Optional[int] = None) -> Optional[int]:
    """Digits only; signs, decimals and words are rejected rather than coerced"""
    if raw is None or raw == "":
        return default
    value = raw.strip()
    if not _DIGITS.match(value):
        raise _invalid(name)
    return int(value)


def parse_bool(name: str, raw: Optional[str], default: bool = False) -> bool:
    if raw is None or raw == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise _invalid(name)


def parse_timestamp(name: str, raw: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse an ISO-8601 date or datetime into aware UTC

    Values without an offset, bare dates included, are read as UTC.

    Args:
        name: Parameter name for error reporting
        raw: Value as received
        end_of_day: Extend a bare date to the last instant of that day

    Returns:
        Parsed timestamp or None when absent
    """
    if raw is None or raw.strip() == "":
        return None
    value = raw.strip()
    try:
        if len(value) == 10:
            day = date.fromisoformat(value)
            return datetime.combine(day, time.max if end_of_day else time.min, tzinfo=timezone.utc)
        if value.endswith(("Z", "z")):
            value = value[:-1] + "+00:00"
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise _invalid(name, f"Invalid parameter: {name} must be an ISO-8601 date")
    return as_utc(parsed)


def parse_platform_list(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    platforms: List[str] = []
    for part in raw.split(","):
        value = part.strip().lower()
        if not value:
            continue
        check_allowed("platforms", value, PLATFORM_VALUES)
        if value not in platforms:
            platforms.append(value)
    return platforms


def _parse_limit(kind: RequestKind, raw: Optional[str], config: Config) -> int:
    default = QUEUE_DEFAULT_PAGE_SIZE if kind == RequestKind.QUEUE else config.default_page_size
    limit = parse_non_negative_int("limit", raw, default)
    if limit < 1:
        raise _invalid("limit")
    if limit > config.max_page_size:
        prefix = "Search limit" if kind == RequestKind.SEARCH else "Limit"
        raise _invalid("limit", f"{prefix} too high. Maximum allowed: {config.max_page_size}")
    return limit


def parse_filters(
    kind: RequestKind,
    params: Mapping[str, str],
    config: Config,
    path_platform: Optional[str] = None,
) -> CommentFilters:
    """
    Validate raw query parameters into a CommentFilters for one endpoint kind

    Every listing endpoint goes through here so the same input is accepted or
    rejected identically everywhere. Validation happens before any store access.

    Args:
        kind: Endpoint the parameters belong to
        params: Raw query-string mapping
        config: Application configuration (page sizes, query bounds)
        path_platform: Platform taken from the URL path, for the platform endpoint

    Returns:
        Validated filters
    """
    filters = CommentFilters(
        kind=kind,
        limit=_parse_limit(kind, params.get("limit"), config),
        offset=parse_non_negative_int("offset", params.get("offset"), 0),
    )

    if kind == RequestKind.PLATFORM:
        platform = (path_platform or "").strip().lower()
        if platform not in PLATFORM_VALUES:
            raise InvalidPlatformError(path_platform or "", PLATFORM_VALUES)
        filters.platforms = [platform]
    elif kind == RequestKind.SEARCH:
        filters.platforms = parse_platform_list(params.get("platforms") or params.get("platform"))
    elif params.get("platform"):
        filters.platforms = [check_allowed("platform", params["platform"].strip().lower(), PLATFORM_VALUES)]

    if kind == RequestKind.QUEUE:
        if params.get("priority"):
            filters.priority = check_allowed("priority", params["priority"].strip().lower(), PRIORITY_VALUES)
        filters.sort, filters.order = "created_at", "asc"
        return filters

    if params.get("status"):
        filters.status = check_allowed("status", params["status"].strip().lower(), STATUS_VALUES)
    if params.get("sentiment"):
        filters.sentiment = check_allowed("sentiment", params["sentiment"].strip().lower(), SENTIMENT_VALUES)

    filters.raw_date_from = params.get("date_from") or None
    filters.raw_date_to = params.get("date_to") or None
    filters.date_from = parse_timestamp("date_from", filters.raw_date_from)
    filters.date_to = parse_timestamp("date_to", filters.raw_date_to, end_of_day=True)
    if filters.date_from and filters.date_to and filters.date_from > filters.date_to:
        raise _invalid("date_from", "Invalid parameter: date_from must not be after date_to")

    sorts = SEARCH_SORTS if kind == RequestKind.SEARCH else LISTING_SORTS
    default_sort = "relevance" if kind == RequestKind.SEARCH else "created_at"
    filters.sort = check_allowed("sort", (params.get("sort") or default_sort).strip().lower(), sorts)
    filters.order = check_allowed("order", (params.get("order") or "desc").strip().lower(), ORDER_VALUES)
    if filters.sort == "relevance" and params.get("order"):
        # Relevance is always best match first
        raise _invalid("order", "Invalid parameter: order does not apply to relevance sorting")

    if kind == RequestKind.SEARCH:
        filters.query = sanitize_query(
            params.get("q"),
            min_length=config.min_query_length,
            max_length=config.max_query_length,
            field="q",
        )
        filters.author = sanitize_text_filter("author", params.get("author"))
        filters.engagement_min = parse_non_negative_int("engagement_min", params.get("engagement_min"))
        filters.content_length_min = parse_non_negative_int("content_length_min", params.get("content_length_min"))
        filters.content_length_max = parse_non_negative_int("content_length_max", params.get("content_length_max"))
        if (
            filters.content_length_min is not None
            and filters.content_length_max is not None
            and filters.content_length_min > filters.content_length_max
        ):
            raise _invalid("content_length_min")
        filters.facets = parse_bool("facets", params.get("facets"))
        filters.semantic = parse_bool("semantic", params.get("semantic"))
        filters.sentiment_analysis = parse_bool("sentiment_analysis", params.get("sentiment_analysis"))
    else:
        filters.query = sanitize_query(
            params.get("search"),
            min_length=config.min_query_length,
            max_length=config.max_query_length,
            field="search",
            required=False,
        )
        if kind == RequestKind.PLATFORM:
            filters.include_statistics = parse_bool("statistics", params.get("statistics"), default=True)

    if filters.query:
        filters.parsed_query = parse_query(filters.query)
        scoped = filters.parsed_query.platform
        # platform:term narrows the scope unless the caller already pinned platforms
        if scoped and kind == RequestKind.SEARCH and not filters.platforms:
            filters.platforms = [scoped]

    return filters
