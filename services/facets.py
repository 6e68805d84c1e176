"""
Facet aggregation and search-side sentiment analysis over candidate sets
"""

from collections import Counter, defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from models.database import Comment
from services.sentiment import empty_distribution, sentiment_bucket
from services.statistics import FilteredCounts

MAX_FILLED_BUCKETS = 366


def bucket_start(moment: Union[date, datetime], granularity: str = "day") -> date:
    day = moment.date() if isinstance(moment, datetime) else moment
    if granularity == "week":
        return day - timedelta(days=day.weekday())
    if granularity == "month":
        return day.replace(day=1)
    return day


def bucket_label(start: date, granularity: str = "day") -> str:
    if granularity == "month":
        return start.strftime("%Y-%m")
    return start.isoformat()


def _next_bucket(start: date, granularity: str) -> date:
    if granularity == "week":
        return start + timedelta(days=7)
    if granularity == "month":
        return (start.replace(day=28) + timedelta(days=4)).replace(day=1)
    return start + timedelta(days=1)


def date_distribution(
    by_day: Mapping[date, int],
    granularity: str = "day",
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> Dict[str, int]:
    """
    Roll per-day counts up into date buckets

    When both range bounds are known every bucket in the range is present,
    zero-filled, so clients can plot it directly.
    """
    counts: Counter = Counter()
    for day, count in by_day.items():
        counts[bucket_label(bucket_start(day, granularity), granularity)] += count

    if date_from and date_to:
        cursor = bucket_start(date_from, granularity)
        last = bucket_start(date_to, granularity)
        filled = 0
        while cursor <= last and filled < MAX_FILLED_BUCKETS:
            counts.setdefault(bucket_label(cursor, granularity), 0)
            cursor = _next_bucket(cursor, granularity)
            filled += 1

    return dict(sorted(counts.items()))


def aggregate_facets(
    counts: FilteredCounts,
    granularity: str = "day",
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> Dict[str, Dict[str, int]]:
    """
    Distribution breakdowns over the full filtered set

    Args:
        counts: Exact counts for every match, not just the returned page
        granularity: day, week or month date buckets
        date_from: Lower bound of the request's date range
        date_to: Upper bound of the request's date range

    Returns:
        platforms, statuses, sentiment_distribution and date_distribution maps
    """
    sentiments = empty_distribution()
    sentiments.update(counts.by_sentiment)

    return {
        "platforms": dict(counts.by_platform),
        "statuses": dict(counts.by_status),
        "sentiment_distribution": sentiments,
        "date_distribution": date_distribution(counts.by_day, granularity, date_from, date_to),
    }


def platform_breakdown(comments: Sequence[Comment]) -> Dict[str, int]:
    return dict(Counter(c.platform for c in comments))


def _average(values: List[float]) -> Optional[float]:
    return round(sum(values) / len(values), 4) if values else None


def _sentiment_block(scores: List[Optional[float]]) -> Dict[str, Any]:
    distribution = empty_distribution()
    for score in scores:
        distribution[sentiment_bucket(score)] += 1
    known = [s for s in scores if s is not None]
    average = _average(known)
    return {
        "average_score": average,
        "sentiment": sentiment_bucket(average),
        "count": len(scores),
        "distribution": distribution,
    }


def sentiment_analysis(comments: Sequence[Comment], granularity: str = "day") -> Dict[str, Any]:
    """Overall, per-platform and over-time sentiment for a search result"""
    by_platform: Dict[str, List[Optional[float]]] = defaultdict(list)
    by_bucket: Dict[str, List[float]] = defaultdict(list)
    for comment in comments:
        by_platform[comment.platform].append(comment.sentiment_score)
        if comment.sentiment_score is not None and comment.created_at is not None:
            label = bucket_label(bucket_start(comment.created_at, granularity), granularity)
            by_bucket[label].append(comment.sentiment_score)

    return {
        "overall_sentiment": _sentiment_block([c.sentiment_score for c in comments]),
        "by_platform": {platform: _sentiment_block(scores) for platform, scores in sorted(by_platform.items())},
        "sentiment_trends": [
            {"period": label, "average_score": _average(scores), "count": len(scores)}
            for label, scores in sorted(by_bucket.items())
        ],
    }
