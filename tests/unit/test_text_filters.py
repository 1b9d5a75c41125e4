"""Tests for title cleaning and blacklist matching."""

import pytest

from dailynews.processing.text_filters import clean_text, find_blacklisted_term


class TestCleanText:
    @pytest.mark.parametrize("raw,expected", [
        ("Title&nbsp;&amp;&nbsp;More", "Title & More"),
        ("<b>Bold</b> headline", "Bold headline"),
        ("  spaced \n\t out  ", "spaced out"),
        ("&quot;Quoted&quot; &#39;single&#39;", "\"Quoted\" 'single'"),
        ("&lt;tag&gt;", "<tag>"),
        ("Café&#160;con leche", "Café con leche"),
        ("", ""),
        (None, ""),
    ])
    def test_clean_text(self, raw, expected):
        assert clean_text(raw) == expected

    def test_entities_decoded_once(self):
        assert clean_text("&amp;lt;") == "&lt;"

    def test_named_and_numeric_entities_decoded(self):
        assert clean_text("A &copy; B &#8211; Espa&ntilde;a") == "A © B – España"

    def test_non_breaking_space_collapsed(self):
        assert clean_text("Uno\u00a0\u00a0dos") == "Uno dos"


class TestBlacklist:
    def test_case_insensitive_substring(self):
        assert find_blacklisted_term("Tu HORÓSCOPO de hoy", ["horóscopo"]) == "horóscopo"

    def test_first_matching_term_returned(self):
        assert find_blacklisted_term("oróscopo y horóscopo", ["horóscopo", "oróscopo"]) == "horóscopo"

    def test_no_match(self):
        assert find_blacklisted_term("Football results", ["horóscopo"]) is None

    def test_empty_terms_ignored(self):
        assert find_blacklisted_term("anything", ["", None]) is None
