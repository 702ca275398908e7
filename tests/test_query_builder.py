# tests/test_query_builder.py

"""Tests for search-query construction and title normalisation."""

import unittest

from vinyl_offers.errors import InputError
from vinyl_offers.filters.query_builder import QueryBuilder
from vinyl_offers.models.product import ProductIdentifier


class TestBuildQuery(unittest.TestCase):
    """build_query prefers the most specific identifier available."""

    def test_ean_wins(self) -> None:
        ident = ProductIdentifier(
            ean=" 0886979143411 ",
            catalog_id="r123",
            artist="Miles Davis",
            title="Kind Of Blue",
        )
        self.assertEqual(QueryBuilder.build_query(ident), "0886979143411")

    def test_catalog_id_before_text(self) -> None:
        ident = ProductIdentifier(
            catalog_id="r123", artist="Miles Davis", title="Kind Of Blue",
        )
        self.assertEqual(QueryBuilder.build_query(ident), "r123")

    def test_artist_title_fallback(self) -> None:
        ident = ProductIdentifier(
            artist=" Miles Davis ", title="Kind Of Blue",
        )
        self.assertEqual(
            QueryBuilder.build_query(ident), "Miles Davis Kind Of Blue LP",
        )

    def test_blank_ean_ignored(self) -> None:
        ident = ProductIdentifier(
            ean="   ", artist="Miles Davis", title="Kind Of Blue",
        )
        self.assertTrue(QueryBuilder.build_query(ident).endswith(" LP"))

    def test_title_only_raises(self) -> None:
        with self.assertRaises(InputError):
            QueryBuilder.build_query(ProductIdentifier(title="Kind Of Blue"))

    def test_empty_identifier_raises(self) -> None:
        with self.assertRaises(InputError):
            QueryBuilder.build_query(ProductIdentifier())


class TestNormalize(unittest.TestCase):
    """normalize drops separators and lowercases."""

    def test_strips_separators(self) -> None:
        self.assertEqual(
            QueryBuilder.normalize("Kind Of Blue (Remastered) [180g]"),
            "kindofblueremastered180g",
        )

    def test_hyphen_and_underscore(self) -> None:
        self.assertEqual(QueryBuilder.normalize("A-ha_Take.On,Me"), "ahatakeonme")

    def test_empty(self) -> None:
        self.assertEqual(QueryBuilder.normalize(""), "")

    def test_hangul_preserved(self) -> None:
        self.assertEqual(QueryBuilder.normalize("아이유 - 꽃갈피"), "아이유꽃갈피")


class TestTokenize(unittest.TestCase):
    """tokenize splits into words longer than the minimum length."""

    def test_default_min_length(self) -> None:
        self.assertEqual(
            QueryBuilder.tokenize("Kind Of Blue"), ["kind", "of", "blue"],
        )

    def test_strict_min_length_drops_short_words(self) -> None:
        self.assertEqual(
            QueryBuilder.tokenize("Kind Of Blue", min_length=2),
            ["kind", "blue"],
        )

    def test_single_letters_dropped(self) -> None:
        self.assertEqual(QueryBuilder.tokenize("A Love Supreme"), ["love", "supreme"])

    def test_punctuation_splits(self) -> None:
        self.assertEqual(
            QueryBuilder.tokenize("Sgt. Pepper's Lonely Hearts"),
            ["sgt", "pepper", "lonely", "hearts"],
        )

    def test_empty(self) -> None:
        self.assertEqual(QueryBuilder.tokenize(""), [])


class TestCleanTitle(unittest.TestCase):
    """clean_title removes highlight markup and entities."""

    def test_strips_bold_tags(self) -> None:
        self.assertEqual(
            QueryBuilder.clean_title("<b>Miles Davis</b> Kind Of Blue <b>LP</b>"),
            "Miles Davis Kind Of Blue LP",
        )

    def test_unescapes_entities(self) -> None:
        self.assertEqual(
            QueryBuilder.clean_title("Simon &amp; Garfunkel &quot;Bookends&quot;"),
            'Simon & Garfunkel "Bookends"',
        )

    def test_collapses_whitespace(self) -> None:
        self.assertEqual(QueryBuilder.clean_title("  a \n  b  "), "a b")

    def test_empty(self) -> None:
        self.assertEqual(QueryBuilder.clean_title(""), "")


if __name__ == "__main__":
    unittest.main()
