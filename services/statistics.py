"""
Summary statistics for platform listings and the moderation queue
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from numbers import Number
from typing import Any, Dict, Optional, Sequence

from models.database import STATUS_VALUES, Comment, CommentStatus
from services.sentiment import empty_distribution, moderation_priority, sentiment_bucket

KNOWN_ENGAGEMENT_KEYS = ("likes", "replies", "shares", "views", "comments", "saves")


@dataclass
class FilteredCounts:
    """
    Exact counts over a whole filtered set

    Built either by GROUP BY queries in the store or from rows already in
    memory; facets and statistics read only from this.
    """
    total: int = 0
    by_platform: Dict[str, int] = field(default_factory=dict)
    by_status: Dict[str, int] = field(default_factory=dict)
    by_sentiment: Dict[str, int] = field(default_factory=dict)
    by_priority: Dict[str, int] = field(default_factory=dict)
    by_day: Dict[date, int] = field(default_factory=dict)
    average_sentiment: Optional[float] = None

    @classmethod
    def from_comments(cls, comments: Sequence[Comment]) -> "FilteredCounts":
        scores = [c.sentiment_score for c in comments if c.sentiment_score is not None]
        priorities = Counter(moderation_priority(c.sentiment_score, c.status) for c in comments)
        priorities.pop(None, None)
        return cls(
            total=len(comments),
            by_platform=dict(Counter(c.platform for c in comments)),
            by_status=dict(Counter(c.status for c in comments)),
            by_sentiment=dict(Counter(sentiment_bucket(c.sentiment_score) for c in comments)),
            by_priority=dict(priorities),
            by_day=dict(Counter(c.created_at.date() for c in comments if c.created_at is not None)),
            average_sentiment=sum(scores) / len(scores) if scores else None,
        )


def engagement_total(metrics: Any) -> int:
    """Sum of every numeric counter in an engagement bag"""
    if not isinstance(metrics, dict):
        return 0
    return int(sum(v for v in metrics.values() if isinstance(v, Number) and not isinstance(v, bool)))


def engagement_summary(comments: Sequence[Comment]) -> Dict[str, Dict[str, float]]:
    """
    Sum and average per known engagement key

    Platform-specific keys stay on each comment and are not aggregated.
    """
    summary: Dict[str, Dict[str, float]] = {}
    for key in KNOWN_ENGAGEMENT_KEYS:
        values = [
            c.engagement_metrics[key]
            for c in comments
            if isinstance(c.engagement_metrics, dict)
            and isinstance(c.engagement_metrics.get(key), Number)
            and not isinstance(c.engagement_metrics.get(key), bool)
        ]
        if not values:
            continue
        total = sum(values)
        summary[key] = {
            "total": total,
            "average": round(total / len(values), 2),
            "count": len(values),
        }
    return summary


def summarize(comments: Sequence[Comment], counts: Optional[FilteredCounts] = None) -> Dict[str, Any]:
    """
    Per-platform statistics for a filtered comment set

    Args:
        comments: Rows in memory; the engagement summary is computed over these
        counts: Exact counts for the whole set when comments is only a sample

    Returns:
        Statistics block. engagement_sample_size and truncated are added when
        the engagement summary covers fewer rows than total_comments.
    """
    if counts is None:
        counts = FilteredCounts.from_comments(comments)

    by_status = {status: 0 for status in STATUS_VALUES}
    by_status.update(counts.by_status)
    sentiments = empty_distribution()
    sentiments.update(counts.by_sentiment)
    average = counts.average_sentiment

    stats = {
        "total_comments": counts.total,
        "by_status": by_status,
        "sentiment_distribution": sentiments,
        "average_sentiment": round(average, 4) if average is not None else None,
        "engagement_summary": engagement_summary(comments),
    }
    if len(comments) < counts.total:
        stats["engagement_sample_size"] = len(comments)
        stats["truncated"] = True
    return stats


def moderation_queue_statistics(counts: FilteredCounts) -> Dict[str, Any]:
    """Overview of everything awaiting moderation"""
    sentiments = empty_distribution()
    sentiments.update(counts.by_sentiment)
    return {
        "overview": {
            "total_comments": counts.total,
            "pending_moderation": counts.by_status.get(CommentStatus.PENDING.value, 0),
            "flagged_comments": counts.by_status.get(CommentStatus.FLAGGED.value, 0),
        },
        "by_platform": dict(counts.by_platform),
        "sentiment_distribution": sentiments,
        "priority_queue": {
            "high_priority": counts.by_priority.get("high", 0),
            "medium_priority": counts.by_priority.get("medium", 0),
            "low_priority": counts.by_priority.get("low", 0),
        },
    }

