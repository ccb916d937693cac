"""
Tests — text matching helpers.

Covers:
    - normalize / tokens (punctuation, '&', plurals, stopwords)
    - matches: equality, containment, Jaccard threshold
    - dedupe keeps first spelling and order
    - same_value for strings, string lists and ownership categories
"""

from roleclarity.clarity.text import (
    coverage,
    dedupe,
    find_match,
    matches,
    normalize,
    same_value,
    similarity,
    tokens,
)


class TestNormalize:

    def test_lowercases_and_drops_punctuation(self):
        assert normalize("  Pricing & Discounts! ") == "pricing and discounts"

    def test_empty(self):
        assert normalize(None) == ""
        assert normalize("   ") == ""

    def test_tokens_singularize_and_skip_stopwords(self):
        assert tokens("The Invoices of all Agencies") == frozenset({"invoice", "agency"})


class TestMatching:

    def test_equal_after_normalize(self):
        assert matches("Client Pricing", "client-pricing")

    def test_containment(self):
        assert matches("Client pricing", "Pricing")

    def test_unrelated(self):
        assert not matches("Invoicing", "Pricing")
        assert not matches("", "Pricing")

    def test_similarity_bounds(self):
        assert similarity("a b", "") == 0.0
        assert similarity("Weekly sales report", "weekly sales report") == 1.0

    def test_coverage_of_empty_expectation(self):
        assert coverage("", "anything") == 1.0

    def test_find_match_returns_pool_spelling(self):
        assert find_match("pricing", ["Billing", "Pricing policy"]) == "Pricing policy"
        assert find_match("pricing", ["Billing"]) is None


class TestDedupe:

    def test_keeps_first_spelling(self):
        assert dedupe(["Pricing", " pricing ", "", "Billing"]) == ["Pricing", "Billing"]


class TestSameValue:

    def test_strings(self):
        assert same_value("Own  the Roadmap", "own the roadmap")
        assert not same_value("Own the roadmap", "Own pricing")

    def test_lists_ignore_order(self):
        assert same_value(["B", "a"], ["A", "b"])
        assert not same_value(["A"], ["A", "B"])

    def test_none_and_empty_list(self):
        assert same_value(None, [])

    def test_ownership_categories(self):
        a = [{"title": "Sales", "items": ["Pricing", "Renewals"]}]
        b = [{"title": "sales", "items": ["renewals", "pricing"]}]
        assert same_value(a, b)
        assert not same_value(a, [{"title": "Sales", "items": ["Pricing"]}])
