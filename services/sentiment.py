"""
Sentiment bucket policy shared by filtering, faceting and statistics
"""

from typing import Optional

POSITIVE_THRESHOLD = 0.1
NEGATIVE_THRESHOLD = -0.1

# Moderation queue priority cutoffs
HIGH_PRIORITY_THRESHOLD = -0.5

UNKNOWN_BUCKET = "unknown"


def sentiment_bucket(score: Optional[float]) -> str:
    """Map a score in [-1, 1] to positive, negative, neutral or unknown"""
    if score is None:
        return UNKNOWN_BUCKET
    if score > POSITIVE_THRESHOLD:
        return "positive"
    if score < NEGATIVE_THRESHOLD:
        return "negative"
    return "neutral"


def empty_distribution() -> dict:
    return {"positive": 0, "neutral": 0, "negative": 0, UNKNOWN_BUCKET: 0}


def moderation_priority(score: Optional[float], status: str) -> Optional[str]:
    """high = very negative or flagged, medium = mildly negative, low = positive"""
    if status == "flagged" or (score is not None and score < HIGH_PRIORITY_THRESHOLD):
        return "high"
    if score is None:
        return None
    if score <= 0:
        return "medium"
    return "low"
