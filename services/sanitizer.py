"""
Content sanitizer for free-text search input and enumerated filter values
"""

import re
from typing import Iterable, List, Optional, Pattern

from utils.exceptions import SecurityRejection, ValidationError
from utils.monitoring import track_security_rejection
from utils.structured_logging import get_structured_logger, log_security_event, truncate_for_log

logger = get_structured_logger(__name__)

XSS_PATTERNS: List[Pattern] = [
    re.compile(r"<\s*script\b[^>]*>(?:.*?<\s*/\s*script\s*>)?", re.IGNORECASE | re.DOTALL),
    re.compile(r"<\s*/\s*script\s*>", re.IGNORECASE),
    re.compile(r"&lt;\s*script.*?&gt;", re.IGNORECASE),
    re.compile(r"<\s*(?:img|svg|body|iframe|object|embed|form|link|meta)\b[^>]*>", re.IGNORECASE),
    re.compile(r"\bon[a-z]+\s*=", re.IGNORECASE),
    re.compile(r"(?:javascript|vbscript)\s*:", re.IGNORECASE),
    re.compile(r"data\s*:\s*text/html", re.IGNORECASE),
]

SQL_PATTERNS: List[Pattern] = [
    re.compile(r"\b(?:drop|truncate|alter)\s+(?:table|database|schema|index)\b", re.IGNORECASE),
    re.compile(r"\bdelete\s+from\b", re.IGNORECASE),
    re.compile(r"\binsert\s+into\b", re.IGNORECASE),
    re.compile(r"\bunion\s+(?:all\s+)?select\b", re.IGNORECASE),
    re.compile(r";\s*(?:select|insert|update|delete|drop|create|alter|exec|truncate)\b", re.IGNORECASE),
    re.compile(r"'\s*(?:or|and)\s+'?\d+'?\s*=\s*'?\d+", re.IGNORECASE),
    re.compile(r"\b(?:pg_sleep|sleep|benchmark)\s*\(", re.IGNORECASE),
    re.compile(r"\bwaitfor\s+delay\b", re.IGNORECASE),
]

# Terminators are only suspicious next to a statement keyword; on their own they are stripped
SQL_KEYWORD = re.compile(r"\b(?:select|insert|update|delete|drop|create|alter|exec|union|truncate)\b", re.IGNORECASE)
SQL_TERMINATOR = re.compile(r";|--|/\*|\*/")

STRIP_CHARS = re.compile(r"[<>;'\"`]|--|/\*|\*/")
WHITESPACE = re.compile(r"\s+")


def is_malicious(value: str) -> bool:
    """Check a raw input for markup, script URI or SQL-control payloads"""
    if any(p.search(value) for p in XSS_PATTERNS):
        return True
    if any(p.search(value) for p in SQL_PATTERNS):
        return True
    return bool(SQL_KEYWORD.search(value) and SQL_TERMINATOR.search(value))


def strip_offending(value: str) -> str:
    """
    Remove every offending substring from a rejected input

    The result is echoed back to the client for diagnostics only, it is
    never executed.
    """
    cleaned = value
    # Removal can splice fragments into a new match, so repeat until stable
    for _ in range(10):
        before = cleaned
        for pattern in XSS_PATTERNS + SQL_PATTERNS:
            cleaned = pattern.sub(" ", cleaned)
        cleaned = STRIP_CHARS.sub(" ", cleaned)
        if cleaned == before:
            break
    return WHITESPACE.sub(" ", cleaned).strip()


def sanitize_query(
    raw: Optional[str],
    min_length: int = 3,
    max_length: int = 100,
    field: str = "q",
    required: bool = True,
) -> Optional[str]:
    """
    Validate a free-text search query

    Args:
        raw: Query string as received
        min_length: Shortest accepted query after trimming
        max_length: Longest accepted query after trimming
        field: Parameter name, used in logs and error details
        required: Whether an empty query is an error or simply absent

    Returns:
        Trimmed query, or None when optional and empty
    """
    value = (raw or "").strip()
    if not value:
        if required:
            raise ValidationError("Search query is required", details={"field": field})
        return None

    if is_malicious(value):
        sanitized = strip_offending(value)
        track_security_rejection(field)
        log_security_event(
            "MALICIOUS_INPUT",
            severity="HIGH",
            field=field,
            input=truncate_for_log(sanitized),
        )
        raise SecurityRejection(sanitized_query=sanitized, field=field)

    value = WHITESPACE.sub(" ", value)
    if len(value) < min_length:
        raise ValidationError(
            f"Search query must be at least {min_length} characters",
            details={"field": field}
        )
    if len(value) > max_length:
        raise ValidationError(
            f"Search query too long. Maximum allowed: {max_length} characters",
            details={"field": field}
        )
    return value


def check_allowed(field: str, value: str, allowed: Iterable[str]) -> str:
    """Filter values are checked against an allow-list, never cleaned"""
    allowed = list(allowed)
    if value not in allowed:
        logger.info("Rejected filter value", field=field, value=truncate_for_log(value, 32))
        raise ValidationError(
            f"Invalid parameter: {field}",
            details={"field": field, "allowed": allowed}
        )
    return value


def sanitize_text_filter(field: str, raw: Optional[str], max_length: int = 100) -> Optional[str]:
    """Light validation for short free-text filters such as author"""
    value = (raw or "").strip()
    if not value:
        return None
    if is_malicious(value):
        track_security_rejection(field)
        log_security_event("MALICIOUS_INPUT", severity="HIGH", field=field)
        raise SecurityRejection(sanitized_query=strip_offending(value), field=field)
    if len(value) > max_length:
        raise ValidationError(f"Invalid parameter: {field}", details={"field": field})
    return value
