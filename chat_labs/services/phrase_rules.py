"""
Phrase Rules
============

Ordered (predicate, outcome) rule tables over Japanese/English text.

Japanese phrases match as substrings with whitespace ignored; ASCII phrases
match on word boundaries, case-insensitively, with spaces or hyphens
between words. Text is NFKC-normalized first so full-width and half-width
forms compare equal.
"""

import re
import unicodedata
from functools import lru_cache
from typing import Any, Callable, Optional, Sequence, Tuple


@lru_cache(maxsize=None)
def _pattern(phrase: str) -> "re.Pattern[str]":
    phrase = unicodedata.normalize("NFKC", phrase).lower()
    if phrase.isascii():
        body = r"[\s\-]*".join(re.escape(word) for word in phrase.split())
        return re.compile(rf"(?<![a-z]){body}(?![a-z])")
    return re.compile(r"\s*".join(re.escape(ch) for ch in phrase if not ch.isspace()))


class PhraseText:
    """Normalized text that supports phrase lookup and removal."""

    def __init__(self, text: Optional[str]):
        self.text = unicodedata.normalize("NFKC", text or "").lower()

    def has(self, phrase: str) -> bool:
        return _pattern(phrase).search(self.text) is not None

    def has_any(self, words: Sequence[str]) -> bool:
        return any(self.has(w) for w in words)

    def starts_with_any(self, words: Sequence[str]) -> bool:
        head = self.text.lstrip()
        return any(_pattern(w).match(head) for w in words)

    def remove(self, words: Sequence[str]) -> None:
        for word in words:
            self.text = _pattern(word).sub(" ", self.text)


Predicate = Callable[[PhraseText], bool]
Rule = Tuple[Predicate, Any]


def phrases(*words: str) -> Predicate:
    """Predicate that holds when any of the phrases occurs."""
    return lambda text: text.has_any(words)


def first_match(rules: Sequence[Rule], text: PhraseText) -> Optional[Any]:
    """Return the outcome of the first rule whose predicate holds."""
    for predicate, outcome in rules:
        if predicate(text):
            return outcome
    return None
