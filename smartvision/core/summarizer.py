"""Extractive summarizer.

Sentences are scored by length with a bonus for the lead and the closing
sentence, the best ones are kept and emitted in document order.
"""

import math
import re
from dataclasses import dataclass

from smartvision.core.errors import SmartVisionError

_SENTENCE_SPLIT = re.compile(r'[.!?]+')

FIRST_SENTENCE_BONUS = 50
LAST_SENTENCE_BONUS = 25


@dataclass
class SummaryResult:
    summary: str
    sentence_count: int
    selected_count: int
    word_count: int
    char_count: int
    reduction_percent: int


def count_words(text: str) -> int:
    return len(text.split())


def split_sentences(text: str) -> list[str]:
    return [fragment.strip() for fragment in _SENTENCE_SPLIT.split(text) if fragment.strip()]


def _score(sentence: str, index: int, total: int) -> int:
    score = len(sentence)
    if index == 0:
        score += FIRST_SENTENCE_BONUS
    if index == total - 1:
        score += LAST_SENTENCE_BONUS
    return score


def select_sentences(sentences: list[str], ratio: float = 0.3) -> list[str]:
    """Pick the top scoring sentences and return them in source order.

    Equal scores prefer the earlier sentence.
    """
    if not sentences:
        return []
    target = max(1, math.ceil(len(sentences) * ratio))
    total = len(sentences)
    ranked = sorted(range(total), key=lambda index: (-_score(sentences[index], index, total), index))
    return [sentences[index] for index in sorted(ranked[:target])]


def summarize(text: str, ratio: float = 0.3, min_words: int = 10) -> SummaryResult:
    if not text or not text.strip():
        raise SmartVisionError('MISSING_TEXT', 'Please enter some text to summarize.', status_code=422)

    word_count = count_words(text)
    if word_count < min_words:
        raise SmartVisionError(
            'TEXT_TOO_SHORT',
            f'Please provide longer text for better summarization (at least {min_words} words).',
            status_code=422,
            details={'word_count': word_count, 'min_words': min_words},
        )

    try:
        sentences = split_sentences(text)
        selected = select_sentences(sentences, ratio)
        summary = '. '.join(selected) + '.'
    except Exception as exc:
        raise SmartVisionError(
            'SUMMARIZATION_FAILED',
            'Error generating summary. Please try again with different text.',
            status_code=500,
        ) from exc

    return SummaryResult(
        summary=summary,
        sentence_count=len(sentences),
        selected_count=len(selected),
        word_count=word_count,
        char_count=len(text),
        reduction_percent=round(len(summary) / len(text) * 100),
    )
