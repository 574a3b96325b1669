"""Text processing utilities: word counts, keyword phrases, rendering ratio."""

import re
from typing import Iterable

_STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "from", "as", "is", "was", "are", "were", "been", "be",
    "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "must", "can", "this", "that", "these", "those",
    "your", "our", "their", "about", "more", "into", "than", "then", "them",
})

_NON_WORD = re.compile(r"[^\w\s-]")
_WHITESPACE = re.compile(r"\s+")

MAX_RENDERING_PERCENTAGE = 10000.0
HIGH_RENDERING_PERCENTAGE = 100.0


def count_words(text: str) -> int:
    """Count words in text.

    Args:
        text: Input text.

    Returns:
        Word count.
    """
    return len(text.split())


def clean_text(text: str) -> str:
    """Collapse runs of whitespace and strip the ends."""
    return _WHITESPACE.sub(" ", text or "").strip()


def _tokenize(text: str) -> list[str]:
    normalized = _WHITESPACE.sub(" ", _NON_WORD.sub(" ", text.lower())).strip()
    words: list[str] = []
    for word in normalized.split(" "):
        bare = word.replace("-", "").replace("_", "")
        if len(bare) <= 3 or bare in _STOP_WORDS:
            continue
        # Drop consecutive duplicates ("seo seo tools")
        if words and words[-1].replace("-", "") == bare:
            continue
        words.append(word)
    return words


def extract_keyword_phrases(
    sources: Iterable[str],
    max_keywords: int = 20,
) -> list[str]:
    """Extract 2-3 word keyword phrases from short text sources.

    Sources are typically the title, H1s, meta description and the first
    few H2s of a page. Stop words and words of three characters or fewer
    are removed before phrases are built.

    Args:
        sources: Text snippets to mine.
        max_keywords: Upper bound on the number of phrases returned.

    Returns:
        Unique phrases in discovery order.
    """
    phrases: dict[str, None] = {}
    for text in sources:
        if not text:
            continue
        words = _tokenize(text)
        for size, min_len, max_len in ((2, 8, 40), (3, 12, 50)):
            for i in range(len(words) - size + 1):
                window = words[i:i + size]
                if len(set(window)) < size:
                    continue
                phrase = " ".join(window)
                if min_len <= len(phrase.replace("-", "")) and len(phrase) <= max_len:
                    phrases.setdefault(phrase, None)
    return list(phrases)[:max_keywords]


def calculate_rendering_percentage(initial_length: int, rendered_length: int) -> tuple[float, bool]:
    """Percentage of content that only appears after script execution.

    Returns:
        Tuple of (percentage, is_high). The percentage is never negative,
        is capped at 10000 and is rounded to one decimal.
    """
    if initial_length <= 0:
        if rendered_length <= 0:
            return 0.0, False
        return MAX_RENDERING_PERCENTAGE, True
    pct = max(0.0, (rendered_length - initial_length) / initial_length * 100)
    pct = round(min(pct, MAX_RENDERING_PERCENTAGE), 1)
    return pct, pct > HIGH_RENDERING_PERCENTAGE
