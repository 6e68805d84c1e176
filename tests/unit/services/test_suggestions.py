"""
Unit tests for empty-result query suggestions
"""

from services.suggestions import EditDistanceSuggester, SuggestionStrategy, levenshtein, pluralize, safe_suggest


class TestHelpers:

    def test_levenshtein(self):
        assert levenshtein("kitten", "sitting") == 3
        assert levenshtein("", "abc") == 3
        assert levenshtein("same", "same") == 0

    def test_pluralize(self):
        assert pluralize("product") == "products"
        assert pluralize("reply") == "replies"
        assert pluralize("products") == "product"


class TestEditDistanceSuggester:

    def test_corrects_misspelling_from_vocabulary(self):
        suggestions = EditDistanceSuggester().suggest("shiping", ["Fast shipping, thanks"])

        assert suggestions["corrected_query"] == "shipping"
        assert "shippings" in suggestions["alternative_queries"]

    def test_known_words_are_left_alone(self):
        suggestions = EditDistanceSuggester().suggest("great", [])

        assert suggestions["corrected_query"] is None
        assert "awesome" in suggestions["alternative_queries"]

    def test_alternatives_are_capped(self):
        suggestions = EditDistanceSuggester().suggest("great bad price", [])

        assert len(suggestions["alternative_queries"]) <= 5


class TestSafeSuggest:

    def test_strategy_errors_are_swallowed(self):
        class Broken(SuggestionStrategy):
            def suggest(self, query, vocabulary):
                raise RuntimeError("model unavailable")

        assert safe_suggest(Broken(), "great", []) is None
