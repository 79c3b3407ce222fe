"""Unit tests for the character-limit guards and LLM output helpers."""

import pytest

from text2sql.utils.input_limits import check_batch_chars, check_char_limit, check_total_chars
from text2sql.utils.llm_output import clean_sql, extract_json_object, strip_markdown


class TestCharLimits:
    """Tests for check_char_limit, check_total_chars and check_batch_chars."""

    def test_within_limit_passes(self):
        check_char_limit("Hello", max_chars=100)

    def test_exact_limit_passes(self):
        check_char_limit("a" * 100, max_chars=100)

    def test_over_limit_raises(self):
        with pytest.raises(ValueError, match="too large"):
            check_char_limit("a" * 101, max_chars=100, label="Question")

    def test_total_counts_system_prompt(self):
        check_total_chars("a" * 50, None, max_chars=50)
        with pytest.raises(ValueError, match="Total input too large"):
            check_total_chars("a" * 50, "b", max_chars=50)

    def test_batch_error_names_index(self):
        with pytest.raises(ValueError, match="index 2"):
            check_batch_chars(["ok", "ok", "x" * 11], max_chars_per_text=10)


class TestStripMarkdown:
    """Tests for strip_markdown."""

    def test_plain_text_unchanged(self):
        assert strip_markdown("  SELECT 1  ") == "SELECT 1"

    def test_fenced_block(self):
        assert strip_markdown("```sql\nSELECT 1\n```") == "SELECT 1"

    def test_fence_inside_prose(self):
        text = "Here you go:\n```json\n{\"a\": 1}\n```\nThanks"
        assert strip_markdown(text) == '{"a": 1}'


class TestExtractJsonObject:
    """Tests for extract_json_object."""

    def test_pure_json(self):
        assert extract_json_object('{"category": "COUNT"}') == {"category": "COUNT"}

    def test_json_with_prose(self):
        assert extract_json_object('Sure! {"category": "LIST"} hope this helps') == {"category": "LIST"}

    def test_array_is_not_an_object(self):
        assert extract_json_object("[1, 2]") is None

    def test_garbage(self):
        assert extract_json_object("no json here") is None
        assert extract_json_object("") is None


class TestCleanSql:
    """Tests for clean_sql."""

    def test_fence_and_semicolon(self):
        assert clean_sql("```sql\nSELECT * FROM customers;\n```") == "SELECT * FROM customers"

    def test_sql_label(self):
        assert clean_sql("SQL: SELECT 1") == "SELECT 1"

    def test_corrected_sql_label(self):
        assert clean_sql("Corrected SQL:\nSELECT name FROM customers") == "SELECT name FROM customers"

    def test_only_one_trailing_semicolon_removed(self):
        assert clean_sql("SELECT 1;;") == "SELECT 1;"

    def test_empty(self):
        assert clean_sql("   ") == ""
