"""
Query builder: advanced query syntax parsing and SQL statement construction
"""

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional

from sqlalchemy import Date, String, and_, case, cast, func, literal_column, not_, or_, select
from sqlalchemy.sql import ColumnElement, Select

from models.database import PLATFORM_VALUES, Comment, CommentStatus
from services.sentiment import HIGH_PRIORITY_THRESHOLD, NEGATIVE_THRESHOLD, POSITIVE_THRESHOLD, UNKNOWN_BUCKET

if TYPE_CHECKING:
    from services.comment_filters import CommentFilters

_TOKEN = re.compile(r'"([^"]*)"|(\S+)')
_PLATFORM_PREFIX = re.compile(r"^([A-Za-z]+):(\S*)$")
_WORD = re.compile(r"[\w@#']+", re.UNICODE)

TS_CONFIG = literal_column("'english'::regconfig")

SORT_COLUMNS = {
    "created_at": Comment.created_at,
    "updated_at": Comment.updated_at,
    "sentiment_score": Comment.sentiment_score,
}


@dataclass
class ParsedQuery:
    """
    Syntax-level reading of a free-text query

    groups is a conjunction of disjunctions: every group must match and any
    alternative inside a group satisfies it.
    """
    raw: str
    search_type: str = "plain"
    groups: List[List[str]] = field(default_factory=list)
    excluded: List[str] = field(default_factory=list)
    phrases: List[str] = field(default_factory=list)
    platform: Optional[str] = None

    @property
    def alternatives(self) -> List[str]:
        return [alt for group in self.groups for alt in group]

    @property
    def terms(self) -> List[str]:
        """Lower-cased words of every positive alternative, in query order"""
        words: List[str] = []
        for alt in self.alternatives:
            for word in tokenize(alt):
                if word not in words:
                    words.append(word)
        return words

    @property
    def text(self) -> str:
        """Positive part of the query as plain text, used for phrase matching"""
        return " ".join(self.alternatives)

    def websearch(self) -> str:
        """Render for PostgreSQL websearch_to_tsquery"""
        def render(term: str) -> str:
            term = term.replace('"', " ").strip().lstrip("@#")
            return f'"{term}"' if " " in term else term

        parts = [" or ".join(render(alt) for alt in group) for group in self.groups]
        parts.extend(f"-{render(term)}" for term in self.excluded)
        return " ".join(part for part in parts if part)


def tokenize(text: str) -> List[str]:
    return [w.lower() for w in _WORD.findall(text or "")]


def parse_query(raw: str) -> ParsedQuery:
    """
    Classify a query into its search_type and matching structure

    Recognises quoted phrases, AND / OR / NOT and -term, a leading
    platform:term scope, @mentions and #hashtags. Anything else is plain
    text; parsing never fails.
    """
    parsed = ParsedQuery(raw=raw)
    boolean = False
    pending_or = False
    negate = False

    for index, match in enumerate(_TOKEN.finditer(raw)):
        phrase, word = match.group(1), match.group(2)
        if word is not None:
            if word in ("AND", "&&"):
                boolean = True
                continue
            if word in ("OR", "||"):
                boolean = True
                pending_or = True
                continue
            if word == "NOT":
                boolean = True
                negate = True
                continue
            if index == 0:
                scoped = _PLATFORM_PREFIX.match(word)
                if scoped and scoped.group(1).lower() in PLATFORM_VALUES:
                    parsed.platform = scoped.group(1).lower()
                    word = scoped.group(2)
            term = word.strip('"')
            if term.startswith("-") and len(term) > 1:
                boolean = True
                negate = True
                term = term[1:]
        else:
            term = phrase.strip()
            if term and not negate:
                parsed.phrases.append(term)

        if not term:
            continue
        if negate:
            parsed.excluded.append(term)
            negate = False
            continue
        if pending_or and parsed.groups:
            parsed.groups[-1].append(term)
        else:
            parsed.groups.append([term])
        pending_or = False

    alternatives = parsed.alternatives
    if parsed.platform:
        parsed.search_type = "platform-scoped"
    elif boolean:
        parsed.search_type = "boolean"
    elif parsed.phrases:
        parsed.search_type = "phrase"
    elif any(alt.startswith("@") for alt in alternatives):
        parsed.search_type = "mention"
    elif any(alt.startswith("#") for alt in alternatives):
        parsed.search_type = "hashtag"
    return parsed


def _contains(term: str) -> ColumnElement:
    return func.lower(Comment.content, type_=String).contains(term.lower(), autoescape=True)


def text_condition(parsed: ParsedQuery, dialect_name: str) -> Optional[ColumnElement]:
    """
    Full-text predicate for a parsed query

    Uses the GIN-indexed tsvector on PostgreSQL and conjunctive substring
    predicates elsewhere.
    """
    if not parsed.groups and not parsed.excluded:
        return None
    if dialect_name == "postgresql":
        document = func.to_tsvector(TS_CONFIG, Comment.content)
        return document.op("@@")(func.websearch_to_tsquery(TS_CONFIG, parsed.websearch()))

    clauses = [or_(*[_contains(alt) for alt in group]) for group in parsed.groups]
    clauses.extend(not_(_contains(term)) for term in parsed.excluded)
    return and_(*clauses)


def sentiment_condition(bucket: str) -> ColumnElement:
    score = Comment.sentiment_score
    if bucket == "positive":
        return score > POSITIVE_THRESHOLD
    if bucket == "negative":
        return score < NEGATIVE_THRESHOLD
    return and_(score.is_not(None), score >= NEGATIVE_THRESHOLD, score <= POSITIVE_THRESHOLD)


def priority_condition(priority: str) -> ColumnElement:
    score = Comment.sentiment_score
    if priority == "high":
        return or_(score < HIGH_PRIORITY_THRESHOLD, Comment.status == CommentStatus.FLAGGED.value)
    # Flagged comments are always high, whatever their score
    not_flagged = Comment.status != CommentStatus.FLAGGED.value
    if priority == "medium":
        return and_(not_flagged, score >= HIGH_PRIORITY_THRESHOLD, score <= 0)
    return and_(not_flagged, score > 0)


def build_conditions(
    filters: "CommentFilters",
    owner_id: Optional[str],
    dialect_name: str
) -> List[ColumnElement]:
    """
    Conjunctive predicates for a validated filter set

    Args:
        filters: Validated filters
        owner_id: Restrict to this user's comments; None for moderator-wide views
        dialect_name: SQLAlchemy dialect, selects the full-text strategy

    Returns:
        List of SQL predicates to AND together
    """
    conditions: List[ColumnElement] = []
    if owner_id is not None:
        conditions.append(Comment.user_id == owner_id)
    conditions.append(Comment.deleted_at.is_(None))
    if filters.platforms:
        conditions.append(Comment.platform.in_(filters.platforms))

    if filters.kind.value == "queue":
        conditions.append(Comment.status.in_([CommentStatus.PENDING.value, CommentStatus.FLAGGED.value]))
        if filters.priority:
            conditions.append(priority_condition(filters.priority))
        return conditions

    if filters.status:
        conditions.append(Comment.status == filters.status)
    if filters.sentiment:
        conditions.append(sentiment_condition(filters.sentiment))
    if filters.date_from:
        conditions.append(Comment.created_at >= filters.date_from)
    if filters.date_to:
        conditions.append(Comment.created_at <= filters.date_to)
    if filters.author:
        conditions.append(func.lower(Comment.author_username, type_=String).contains(filters.author.lower(), autoescape=True))
    if filters.content_length_min is not None:
        conditions.append(func.length(Comment.content) >= filters.content_length_min)
    if filters.content_length_max is not None:
        conditions.append(func.length(Comment.content) <= filters.content_length_max)
    if filters.parsed_query is not None:
        condition = text_condition(filters.parsed_query, dialect_name)
        if condition is not None:
            conditions.append(condition)
    return conditions


def _ordering(sort: str, order: str) -> list:
    column = SORT_COLUMNS.get(sort, Comment.created_at)
    direction = column.asc() if order == "asc" else column.desc()
    # NULLs last on every dialect, id as the stable tie-breaker
    return [column.is_(None), direction, Comment.id.asc()]


def listing_statement(filters: "CommentFilters", owner_id: Optional[str], dialect_name: str) -> Select:
    """Ordered page of comments; pagination is applied after ordering"""
    conditions = build_conditions(filters, owner_id, dialect_name)
    return (
        select(Comment)
        .where(*conditions)
        .order_by(*_ordering(filters.sort, filters.order))
        .offset(filters.offset)
        .limit(filters.limit)
    )


def count_statement(filters: "CommentFilters", owner_id: Optional[str], dialect_name: str) -> Select:
    conditions = build_conditions(filters, owner_id, dialect_name)
    return select(func.count()).select_from(Comment).where(*conditions)


def candidates_statement(
    filters: "CommentFilters",
    owner_id: Optional[str],
    dialect_name: str,
    cap: int
) -> Select:
    """
    Full filtered set (bounded by cap) for ranking, faceting and statistics

    Candidates are taken newest first so the cap drops the oldest matches.
    """
    conditions = build_conditions(filters, owner_id, dialect_name)
    sort = "created_at" if filters.sort == "relevance" else filters.sort
    order = "desc" if filters.sort == "relevance" else filters.order
    return select(Comment).where(*conditions).order_by(*_ordering(sort, order)).limit(cap)


# Aggregation over the whole filtered set

def sentiment_bucket_expression() -> ColumnElement:
    """SQL form of sentiment_bucket"""
    score = Comment.sentiment_score
    return case(
        (score.is_(None), UNKNOWN_BUCKET),
        (score > POSITIVE_THRESHOLD, "positive"),
        (score < NEGATIVE_THRESHOLD, "negative"),
        else_="neutral",
    )


def priority_expression() -> ColumnElement:
    """SQL form of moderation_priority; NULL for unscored, unflagged comments"""
    score = Comment.sentiment_score
    return case(
        (Comment.status == CommentStatus.FLAGGED.value, "high"),
        (score < HIGH_PRIORITY_THRESHOLD, "high"),
        (score <= 0, "medium"),
        (score > 0, "low"),
    )


def day_expression(dialect_name: str) -> ColumnElement:
    """UTC calendar day of created_at"""
    if dialect_name == "postgresql":
        return cast(func.timezone("UTC", Comment.created_at), Date)
    return func.date(Comment.created_at, type_=String)


def aggregate_dimensions(dialect_name: str, include_priority: bool = False) -> Dict[str, ColumnElement]:
    dimensions = {
        "by_platform": Comment.platform,
        "by_status": Comment.status,
        "by_sentiment": sentiment_bucket_expression(),
        "by_day": day_expression(dialect_name),
    }
    if include_priority:
        dimensions["by_priority"] = priority_expression()
    return dimensions


def grouped_count_statement(
    filters: "CommentFilters",
    owner_id: Optional[str],
    dialect_name: str,
    expression: ColumnElement
) -> Select:
    """
    COUNT per distinct value of expression over the filtered set

    The expression is labelled in a subquery and grouped by that column so
    CASE expressions with bound parameters group the same on every dialect.
    """
    conditions = build_conditions(filters, owner_id, dialect_name)
    matches = select(expression.label("bucket")).where(*conditions).subquery()
    return select(matches.c.bucket, func.count()).group_by(matches.c.bucket)


def average_sentiment_statement(filters: "CommentFilters", owner_id: Optional[str], dialect_name: str) -> Select:
    conditions = build_conditions(filters, owner_id, dialect_name)
    return select(func.avg(Comment.sentiment_score)).where(*conditions)
