import logging
from typing import Callable, List

import jaconv

logger = logging.getLogger(__name__)


def to_hiragana(text: str) -> str:
    """Transliterate romaji and katakana to hiragana."""
    return jaconv.kata2hira(jaconv.alphabet2kana(text))


def normalize(raw: str, transliterate: Callable[[str], str] = to_hiragana) -> str:
    """Lowercase, trim and transliterate an answer.

    Falls back to the lowercased form if transliteration fails.
    """
    plain = raw.strip().lower()
    try:
        return transliterate(plain)
    except Exception as e:
        logger.warning(f"Transliteration failed for {plain!r}: {e}")
        return plain


def split_answers(accepted_answers: str) -> List[str]:
    return accepted_answers.replace('"', "").split(",")


def is_correct(
    submitted: str,
    accepted_answers: str,
    transliterate: Callable[[str], str] = to_hiragana,
) -> bool:
    """Check a submission against a comma separated accepted-answers field."""
    candidates = {normalize(a, transliterate) for a in split_answers(accepted_answers)}
    return normalize(submitted, transliterate) in candidates


def matches_choice(selected: str, accepted_answers: str) -> bool:
    """Check a chosen multiple-choice string.

    Choices carry the whole answers field of a card, so the full field is
    accepted as well as any single candidate in it.
    """
    if normalize(selected) == normalize(accepted_answers):
        return True
    return is_correct(selected, accepted_answers)
