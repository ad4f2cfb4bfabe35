"""
Per-chunk quality metrics.
"""

from ..core.models import QualityMetrics
from .boundaries import ends_with_sentence_terminal
from .tokens import TokenCounter

# Completeness assigned when a split was forced below sentence granularity
FORCED_CUT_COMPLETENESS = 0.7


def compute_metrics(
    text: str,
    counter: TokenCounter,
    *,
    was_split: bool = False,
    semantic_completeness: float = 1.0,
    has_incomplete_table: bool = False,
) -> QualityMetrics:
    """Derive token, character and word counts for ``text``.

    ``has_truncated_sentence`` is only raised for split fragments: an unsplit
    chunk that lacks terminal punctuation (a heading, a list item) is not
    truncated, it is just short.
    """
    return QualityMetrics(
        token_count=counter.count_tokens(text),
        character_count=len(text),
        word_count=len(text.split()),
        semantic_completeness=min(1.0, max(0.0, semantic_completeness)),
        was_split=was_split,
        has_truncated_sentence=was_split and not ends_with_sentence_terminal(text),
        has_incomplete_table=has_incomplete_table,
    )


def annotate(chunks, counter: TokenCounter) -> None:
    """Fill metrics for chunks that do not carry them yet.

    Metrics set by the splitter (``was_split``) are kept; table producers'
    ``has_incomplete_table`` flag is passed through.
    """
    for chunk in chunks:
        existing = chunk.quality_metrics
        if existing is not None and existing.was_split:
            continue
        chunk.quality_metrics = compute_metrics(
            chunk.content,
            counter,
            has_incomplete_table=bool(existing and existing.has_incomplete_table),
        )
