"""
Boundary detection helpers for the split cascade.
"""

import re
from enum import Enum
from typing import List

SENTENCE_TERMINALS = (".", "!", "?")

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
# Terminator followed by whitespace and a capital letter; end of text is implicit
_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+(?=[A-Z])")
_PHRASE_BREAK = re.compile(r"(?<=[,;])\s+")


class SplitLevel(Enum):
    """Granularity of a boundary unit, coarsest first."""

    PARAGRAPH = "paragraph"
    SENTENCE = "sentence"
    PHRASE = "phrase"
    WORD = "word"


def split_by_paragraphs(text: str) -> List[str]:
    """Split text on blank-line separated blocks."""
    return [p.strip() for p in _PARAGRAPH_BREAK.split(text) if p.strip()]


def split_by_sentences(text: str) -> List[str]:
    """Split at a terminator followed by whitespace and a capital letter."""
    return [s.strip() for s in _SENTENCE_BREAK.split(text) if s.strip()]


def split_by_phrases(text: str) -> List[str]:
    """Split after commas and semicolons, keeping the punctuation."""
    return [p.strip() for p in _PHRASE_BREAK.split(text) if p.strip()]


def split_by_words(text: str) -> List[str]:
    return text.split()


def ends_with_sentence_terminal(text: str) -> bool:
    stripped = text.rstrip().rstrip("\"')]}")
    return stripped.endswith(SENTENCE_TERMINALS)


SPLITTERS = {
    SplitLevel.PARAGRAPH: split_by_paragraphs,
    SplitLevel.SENTENCE: split_by_sentences,
    SplitLevel.PHRASE: split_by_phrases,
    SplitLevel.WORD: split_by_words,
}

SEPARATORS = {
    SplitLevel.PARAGRAPH: "\n\n",
    SplitLevel.SENTENCE: " ",
    SplitLevel.PHRASE: " ",
    SplitLevel.WORD: " ",
}

CASCADE = [
    SplitLevel.PARAGRAPH,
    SplitLevel.SENTENCE,
    SplitLevel.PHRASE,
    SplitLevel.WORD,
]
