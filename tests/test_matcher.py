import logging

from flashquest import matcher


def broken_transliteration(text):
    raise ValueError("unsupported script")


class TestNormalize:
    def test_lowercases_and_trims(self):
        assert matcher.normalize("  TOKYO  ", str) == "tokyo"

    def test_katakana_becomes_hiragana(self):
        assert matcher.normalize("トウキョウ") == "とうきょう"

    def test_romaji_becomes_hiragana(self):
        assert matcher.normalize("toukyou") == "とうきょう"

    def test_transliteration_failure_falls_back(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert matcher.normalize(" Neko ", broken_transliteration) == "neko"
        assert "Transliteration failed" in caplog.text


class TestIsCorrect:
    def test_case_and_whitespace_insensitive(self):
        assert matcher.is_correct("TOKYO", "Tokyo, 東京")
        assert matcher.is_correct("  tokyo ", "Tokyo, 東京")

    def test_any_candidate_matches(self):
        assert matcher.is_correct("東京", "Tokyo, 東京")

    def test_quotes_are_ignored(self):
        assert matcher.is_correct("dog", '"inu, dog"')

    def test_romaji_matches_kana_answer(self):
        assert matcher.is_correct("toukyou", "東京, とうきょう")

    def test_wrong_answer(self):
        assert not matcher.is_correct("osaka", "Tokyo, 東京")

    def test_partial_answer_is_wrong(self):
        assert not matcher.is_correct("tok", "Tokyo")

    def test_still_works_when_transliteration_fails(self):
        assert matcher.is_correct("TOKYO", "Tokyo, 東京", broken_transliteration)


class TestMatchesChoice:
    def test_full_answers_field_is_accepted(self):
        assert matcher.matches_choice("inu, dog", "inu, dog")

    def test_other_card_answers_are_rejected(self):
        assert not matcher.matches_choice("neko, cat", "inu, dog")
