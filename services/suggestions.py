"""
Best-effort query suggestions for searches that matched nothing
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from services.query_builder import tokenize
from utils.structured_logging import get_structured_logger

logger = get_structured_logger(__name__)

SYNONYMS: Dict[str, List[str]] = {
    "great": ["awesome", "amazing", "excellent"],
    "good": ["great", "nice"],
    "bad": ["terrible", "awful", "poor"],
    "love": ["like", "adore"],
    "hate": ["dislike"],
    "product": ["item"],
    "price": ["cost"],
    "cheap": ["affordable", "inexpensive"],
    "fast": ["quick"],
    "slow": ["sluggish"],
    "help": ["support"],
    "broken": ["damaged", "defective"],
}

MAX_ALTERNATIVES = 5


def levenshtein(left: str, right: str) -> int:
    if left == right:
        return 0
    if not left:
        return len(right)
    if not right:
        return len(left)
    previous = list(range(len(right) + 1))
    for i, lc in enumerate(left, 1):
        current = [i]
        for j, rc in enumerate(right, 1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (lc != rc),
            ))
        previous = current
    return previous[-1]


def pluralize(word: str) -> str:
    if word.endswith("s"):
        return word[:-1] if len(word) > 3 else word
    if word.endswith("y") and len(word) > 2 and word[-2] not in "aeiou":
        return word[:-1] + "ies"
    return word + "s"


class SuggestionStrategy(ABC):
    """Produces a corrected query and alternatives for an empty result"""

    @abstractmethod
    def suggest(self, query: str, vocabulary: Iterable[str]) -> Dict[str, object]:
        pass


class EditDistanceSuggester(SuggestionStrategy):
    """
    Spell-correct each query word against a vocabulary by edit distance

    Args:
        max_distance: Largest edit distance accepted as a correction
    """

    def __init__(self, max_distance: int = 2):
        self.max_distance = max_distance

    def _closest(self, word: str, vocabulary: List[str]) -> Optional[str]:
        best, best_distance = None, self.max_distance + 1
        for candidate in vocabulary:
            if abs(len(candidate) - len(word)) > self.max_distance:
                continue
            distance = levenshtein(word, candidate)
            if distance < best_distance:
                best, best_distance = candidate, distance
        return best if best_distance <= self.max_distance else None

    def suggest(self, query: str, vocabulary: Iterable[str]) -> Dict[str, object]:
        words = tokenize(query)
        known = sorted({w for text in vocabulary for w in tokenize(text) if len(w) > 2} | set(SYNONYMS))
        known_set = set(known)

        corrected_words = []
        for word in words:
            if word in known_set or len(word) < 3:
                corrected_words.append(word)
                continue
            corrected_words.append(self._closest(word, known) or word)
        corrected = " ".join(corrected_words)

        alternatives: List[str] = []
        base = corrected_words or words
        for index, word in enumerate(base):
            variants = [pluralize(word)] + SYNONYMS.get(word, [])
            for variant in variants:
                candidate = " ".join(base[:index] + [variant] + base[index + 1:])
                if candidate not in alternatives and candidate != " ".join(words):
                    alternatives.append(candidate)

        return {
            "corrected_query": corrected if corrected and corrected != " ".join(words) else None,
            "alternative_queries": alternatives[:MAX_ALTERNATIVES],
        }


def safe_suggest(strategy: SuggestionStrategy, query: str, vocabulary: Iterable[str]) -> Optional[Dict[str, object]]:
    """Suggestions never fail a search; errors are logged and dropped"""
    try:
        return strategy.suggest(query, vocabulary)
    except Exception as e:
        logger.warning("Suggestion strategy failed", error=str(e), strategy=type(strategy).__name__)
        return None
