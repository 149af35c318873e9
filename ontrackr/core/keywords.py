"""Keyword extraction for fuzzy task matching.

Task titles, commit messages and pull-request text all go through
:func:`extract_keywords`, so a title keyword and a commit keyword compare
equal exactly when they normalize to the same token.
"""

from __future__ import annotations

import re

STOP_WORDS: frozenset[str] = frozenset(
    {
        "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "from", "as", "is", "was", "are", "be", "been",
    }
)

MIN_KEYWORD_LENGTH = 3

_NON_WORD = re.compile(r"[^a-z0-9\s]")


def extract_keywords(text: str | None) -> frozenset[str]:
    """Return the set of significant lowercase tokens in *text*.

    Punctuation is removed before splitting (``"log-in"`` becomes
    ``"login"``), then tokens shorter than three characters and stop words
    are dropped.
    """
    if not text:
        return frozenset()
    cleaned = _NON_WORD.sub("", text.lower())
    return frozenset(
        word
        for word in cleaned.split()
        if len(word) >= MIN_KEYWORD_LENGTH and word not in STOP_WORDS
    )


def keywords_overlap(task_keywords, event_keywords: frozenset[str]) -> bool:
    """True if any single task keyword appears among *event_keywords*."""
    if not task_keywords:
        return False
    return not event_keywords.isdisjoint(task_keywords)
