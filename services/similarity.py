"""
Semantic similarity scorers for semantic search mode
"""

import asyncio
import math
from abc import ABC, abstractmethod
from collections import Counter
from typing import Dict, List, Optional

import httpx

from services.query_builder import tokenize
from utils.exceptions import ExternalServiceError, UpstreamTimeout
from utils.http_client import get_async_client
from utils.structured_logging import get_structured_logger

logger = get_structured_logger(__name__)

STOPWORDS = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "but", "by", "for", "if", "in",
    "is", "it", "of", "on", "or", "so", "that", "the", "this", "to", "was",
    "with", "i", "you", "we", "they", "my", "your", "our",
})


class SimilarityScorer(ABC):
    """Scores documents against a query by meaning rather than literal overlap"""

    name: str = "base"

    @abstractmethod
    async def score(self, query: str, documents: List[str]) -> List[float]:
        """Return one similarity in [0, 1] per document, same order"""
        pass

    async def close(self) -> None:
        return None


def _stem(word: str) -> str:
    word = word.lstrip("@#")
    for suffix in ("ing", "ed", "es", "s"):
        if len(word) > len(suffix) + 2 and word.endswith(suffix):
            return word[: -len(suffix)]
    return word


def term_vector(text: str) -> Dict[str, float]:
    counts = Counter(_stem(w) for w in tokenize(text) if w not in STOPWORDS)
    return dict(counts)


def cosine(left: Dict[str, float], right: Dict[str, float]) -> float:
    if not left or not right:
        return 0.0
    dot = sum(weight * right.get(term, 0.0) for term, weight in left.items())
    norm = math.sqrt(sum(v * v for v in left.values())) * math.sqrt(sum(v * v for v in right.values()))
    return dot / norm if norm else 0.0


class TermVectorScorer(SimilarityScorer):
    """In-process cosine similarity over stemmed term-frequency vectors"""

    name = "term_vector"

    async def score(self, query: str, documents: List[str]) -> List[float]:
        query_vector = term_vector(query)
        return [round(cosine(query_vector, term_vector(doc)), 4) for doc in documents]


class HttpSimilarityScorer(SimilarityScorer):
    """
    Delegate scoring to an external embedding service

    The service receives {"query": str, "documents": [str]} and answers
    {"scores": [float]} with one score per document.
    """

    name = "http"

    def __init__(self, url: str, timeout: float = 3.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.timeout = timeout
        self.client = client or get_async_client(timeout=timeout)

    async def score(self, query: str, documents: List[str]) -> List[float]:
        if not documents:
            return []
        try:
            response = await asyncio.wait_for(
                self.client.post(self.url, json={"query": query, "documents": documents}),
                timeout=self.timeout,
            )
            response.raise_for_status()
            scores = response.json().get("scores", [])
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("Similarity scorer timed out", timeout=self.timeout)
            raise UpstreamTimeout("Search request timed out")
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Similarity scorer failed", error=str(e))
            raise ExternalServiceError("Semantic scoring service unavailable")

        if len(scores) != len(documents):
            raise ExternalServiceError("Semantic scoring service returned a malformed response")
        return [round(max(0.0, min(float(s), 1.0)), 4) for s in scores]

    async def close(self) -> None:
        await self.client.aclose()


def build_similarity_scorer(config) -> SimilarityScorer:
    if config.semantic_scorer_url:
        return HttpSimilarityScorer(config.semantic_scorer_url, timeout=config.semantic_timeout_seconds)
    return TermVectorScorer()
