"""
Relevance ranking for free-text search results
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from models.database import Comment
from services.query_builder import ParsedQuery, tokenize

PHRASE_WEIGHT = 0.45
COVERAGE_WEIGHT = 0.35
PROXIMITY_WEIGHT = 0.10
POSITION_WEIGHT = 0.10

MIN_PREFIX_LENGTH = 3


@dataclass
class RankedComment:
    comment: Comment
    relevance_score: float = 0.0
    semantic_similarity: Optional[float] = None

    @property
    def active_score(self) -> float:
        if self.semantic_similarity is not None:
            return self.semantic_similarity
        return self.relevance_score


def _matches(token: str, term: str) -> bool:
    if token == term:
        return True
    # "product" also matches "products", "productive"
    return len(term) >= MIN_PREFIX_LENGTH and token.startswith(term)


def _contains_sequence(tokens: List[str], needle: List[str]) -> bool:
    if not needle or len(needle) > len(tokens):
        return False
    width = len(needle)
    return any(tokens[i:i + width] == needle for i in range(len(tokens) - width + 1))


def lexical_score(content: str, parsed: ParsedQuery) -> float:
    """
    Score term overlap between a query and a comment, in [0, 1]

    Blend of exact phrase presence, share of query terms present, how close
    together the matched terms sit and how early the first match appears.
    An exact phrase always outranks the same terms scattered.

    Args:
        content: Comment text
        parsed: Parsed query

    Returns:
        Score rounded to 4 decimals
    """
    terms = parsed.terms
    tokens = tokenize(content)
    if not terms or not tokens:
        return 0.0

    first_positions = {}
    for position, token in enumerate(tokens):
        for term in terms:
            if term not in first_positions and _matches(token, term):
                first_positions[term] = position
    if not first_positions:
        return 0.0

    coverage = len(first_positions) / len(terms)

    phrases = parsed.phrases or [parsed.text]
    phrase_hits = sum(1 for phrase in phrases if _contains_sequence(tokens, tokenize(phrase)))
    phrase = phrase_hits / len(phrases)

    positions = sorted(first_positions.values())
    span = positions[-1] - positions[0] + 1
    proximity = len(positions) / span if len(positions) > 1 else 1.0

    earliness = 1.0 - positions[0] / len(tokens)

    score = (
        PHRASE_WEIGHT * phrase
        + COVERAGE_WEIGHT * coverage
        + PROXIMITY_WEIGHT * min(proximity, 1.0)
        + POSITION_WEIGHT * earliness
    )
    return round(max(0.0, min(score, 1.0)), 4)


def _created_at_key(item: RankedComment) -> float:
    created = item.comment.created_at
    return created.timestamp() if isinstance(created, datetime) else 0.0


def order_by_score(items: Sequence[RankedComment]) -> List[RankedComment]:
    """Non-increasing by active score, newest first on ties, id last"""
    by_id = sorted(items, key=lambda item: str(item.comment.id))
    return sorted(by_id, key=lambda item: (-item.active_score, -_created_at_key(item)))


class RelevanceRanker:
    """Attach lexical scores to candidates and order them"""

    def __init__(self, scorer: Callable[[str, ParsedQuery], float] = lexical_score):
        self.scorer = scorer

    def score(self, candidates: Sequence[Comment], parsed: ParsedQuery) -> List[RankedComment]:
        return [RankedComment(comment=c, relevance_score=self.scorer(c.content or "", parsed)) for c in candidates]

    def rank(self, candidates: Sequence[Comment], parsed: ParsedQuery) -> List[RankedComment]:
        if not candidates:
            return []
        return order_by_score(self.score(candidates, parsed))
