"""
Word normalization helpers.
"""
import re

_NON_LETTERS = re.compile(r"[^a-z]")


def normalize(raw: str | None) -> str:
    """
    Lowercase a word and strip every character outside a-z.

    normalize("Ice-9!") == "ice"
    """
    if not raw:
        return ""
    return _NON_LETTERS.sub("", raw.lower())


def first_letter(word: str | None) -> str:
    """First letter of the normalized word, or "" if it is empty."""
    normalized = normalize(word)
    return normalized[0] if normalized else ""


def last_letter(word: str | None) -> str:
    """Last letter of the normalized word, or "" if it is empty."""
    normalized = normalize(word)
    return normalized[-1] if normalized else ""
