"""Unit tests for PromptNormalizer."""

import pytest

from text2sql.domain.errors import ValidationError
from text2sql.services.prompt_normalizer import PromptNormalizer, detect_language


@pytest.fixture
def normalizer():
    return PromptNormalizer()


class TestNormalize:
    """Tests for PromptNormalizer.normalize."""

    def test_whitespace_collapsed(self, normalizer):
        prompt = normalizer.normalize("  how   many\tcustomers \n are there  ")
        assert prompt.normalized_text == "how many customers are there"

    def test_abbreviations_expanded_case_insensitive(self, normalizer):
        prompt = normalizer.normalize("cho tôi DS KH")
        assert prompt.normalized_text == "cho tôi danh sách khách hàng"

    def test_abbreviation_only_as_whole_word(self, normalizer):
        prompt = normalizer.normalize("list dbo tables and spending")
        assert prompt.normalized_text == "list dbo tables and spending"

    def test_typos_fixed(self, normalizer):
        prompt = normalizer.normalize("cho toi biet bao nhieu don hang")
        assert prompt.normalized_text == "cho tôi biet bao nhiêu don hang"
        assert prompt.language_tag == "vi"

    def test_english_tag(self, normalizer):
        prompt = normalizer.normalize("How many tables are in the db?")
        assert prompt.normalized_text == "How many tables are in the database?"
        assert prompt.language_tag == "en"

    def test_original_text_kept(self, normalizer):
        raw = "  ds sp  "
        prompt = normalizer.normalize(raw)
        assert prompt.original_text == raw
        assert prompt.normalized_text == "danh sách sản phẩm"

    @pytest.mark.parametrize("raw", ["", "   ", "\n\t"])
    def test_empty_rejected(self, normalizer, raw):
        with pytest.raises(ValidationError, match="cannot be empty"):
            normalizer.normalize(raw)

    @pytest.mark.parametrize(
        "raw",
        [
            "Có bao nhiêu bảng trong db?",
            "cho toi ds kh o Ha Noi",
            "tat ca dh cua kh   An",
            "Top 5 sp by dt",
            "how many   orders",
        ],
    )
    def test_idempotent(self, normalizer, raw):
        once = normalizer.normalize(raw).normalized_text
        twice = normalizer.normalize(once).normalized_text
        assert twice == once


class TestDetectLanguage:
    """Tests for detect_language."""

    def test_vietnamese_diacritic(self):
        assert detect_language("Có bao nhiêu bảng") == "vi"

    def test_uppercase_diacritic(self):
        assert detect_language("ĐƠN HÀNG") == "vi"

    def test_plain_ascii(self):
        assert detect_language("Co bao nhieu bang") == "en"
