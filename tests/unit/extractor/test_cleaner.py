"""
Unit tests for BoilerplateCleaner.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from newsharvest.config import CleanerRules
from newsharvest.extractor.cleaner import BoilerplateCleaner, normalize_whitespace

BOILERPLATE_FRAGMENTS = [
    "Read more",
    "Read more:",
    "Subscribe now",
    "Advertisement",
    "Related Articles",
    "Tags:",
    "Share",
    "RSS",
    "\n",
    "\n\n\n",
    "  ",
    "\t",
]


@pytest.mark.unit
class TestNormalizeWhitespace:
    def test_collapses_inline_runs(self):
        assert normalize_whitespace("a \t  b c") == "a b c"

    def test_drops_spaces_around_line_breaks(self):
        assert normalize_whitespace("one \n two") == "one\ntwo"

    def test_caps_consecutive_line_breaks(self):
        assert normalize_whitespace("a\n\n\n\n\nb") == "a\n\nb"


@pytest.mark.unit
class TestBoilerplateCleaner:
    """Test cases for the rule-driven cleaner."""

    def setup_method(self):
        self.cleaner = BoilerplateCleaner()

    def test_empty_input(self):
        assert self.cleaner.clean("") == ""
        assert self.cleaner.clean("   \n\n ") == ""

    def test_plain_prose_is_untouched(self, article_prose):
        assert self.cleaner.clean(article_prose) == article_prose

    def test_removes_junk_lines(self):
        text = "Home\nMarkets rallied today.\nAdvertisement\nTraders cheered.\nshare"
        assert self.cleaner.clean(text) == "Markets rallied today.\nTraders cheered."

    def test_junk_token_inside_sentence_survives(self):
        text = "The Home office issued a statement on RSS feeds."
        assert self.cleaner.clean(text) == text

    def test_truncates_at_first_trailing_marker(self):
        text = "Body paragraph one.\n\nBody paragraph two.\nRelated Articles\nOther story\nTags: bitcoin, eth"
        assert self.cleaner.clean(text) == "Body paragraph one.\n\nBody paragraph two."

    def test_trailing_marker_is_case_insensitive(self):
        text = "Story text.\nFOLLOW US ON X and Telegram"
        assert self.cleaner.clean(text) == "Story text."

    def test_marker_mid_line_does_not_truncate(self):
        text = "Analysts read the newsletter closely.\nSecond line."
        assert self.cleaner.clean(text) == text

    def test_marker_as_word_prefix_does_not_truncate(self):
        text = (
            "Lead paragraph about markets.\n"
            "Newsletters from exchanges told traders to expect volatility.\n"
            "Related Newsroom coverage followed.\n"
            "Closing paragraph."
        )
        assert self.cleaner.clean(text) == text

    def test_punctuated_marker_runs_into_next_token(self):
        text = "Story text.\nTags:bitcoin,eth"
        assert self.cleaner.clean(text) == "Story text."

    def test_deletes_promotional_phrases(self):
        text = "Prices climbed. Read more: Subscribe now for updates."
        assert self.cleaner.clean(text) == "Prices climbed. for updates."

    def test_phrase_inside_word_is_kept(self):
        text = "She will reread moreover."
        assert self.cleaner.clean(text) == text

    def test_phrase_deletion_exposing_junk_line(self):
        # Removing the phrase leaves "Advertisement" alone on its line.
        text = "Lead paragraph.\nAdvertisement Read more\nClosing paragraph."
        assert self.cleaner.clean(text) == "Lead paragraph.\nClosing paragraph."

    def test_custom_rules(self):
        cleaner = BoilerplateCleaner(CleanerRules(junk_lines=["Sponsored"], trailing_markers=["---"], phrases=["[ad]"]))
        text = "Sponsored\nReal text [ad] here.\n--- footer"
        assert cleaner.clean(text) == "Real text here."

    def test_empty_rule_lists(self):
        cleaner = BoilerplateCleaner(CleanerRules(junk_lines=[], trailing_markers=[], phrases=[]))
        assert cleaner.clean("  Home \n\n\n\nRead more  ") == "Home\n\nRead more"

    @settings(max_examples=200, deadline=None)
    @given(
        st.lists(
            st.one_of(st.sampled_from(BOILERPLATE_FRAGMENTS), st.text(max_size=30)),
            max_size=20,
        )
    )
    def test_clean_is_idempotent(self, fragments):
        text = " ".join(fragments)
        once = self.cleaner.clean(text)
        assert self.cleaner.clean(once) == once
