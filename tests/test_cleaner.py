"""Tests for sitescribe.services.cleaner.clean_markdown."""

from sitescribe.services.cleaner import clean_markdown


class TestWhitespace:
    def test_collapses_blank_line_runs(self):
        assert clean_markdown("a\n\n\n\n\nb") == "a\n\nb"

    def test_strips_trailing_spaces(self):
        assert clean_markdown("line one   \nline two\t") == "line one\nline two"

    def test_replaces_non_breaking_spaces(self):
        assert clean_markdown("a\u00a0b") == "a b"

    def test_strips_outer_whitespace(self):
        assert clean_markdown("\n\n  text  \n\n") == "text"


class TestEmailPlaceholders:
    def test_removes_cloudflare_email_placeholder(self):
        result = clean_markdown("Contact us at [email\u00a0protected] for support.")
        assert "protected]" not in result
        assert result.startswith("Contact us at")

    def test_removes_entity_variant(self):
        assert "protected" not in clean_markdown("Write to [email&#160;protected] today.")
