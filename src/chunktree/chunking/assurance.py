"""
Chunk statistics and assurance reporting.
"""

import statistics
from collections import Counter
from typing import Dict, List, Optional

from ..core.models import Chunk, ChunkingStatistics, ChunkType, ValidationResult
from .tokens import TokenCounter

VISUAL_TYPES = {ChunkType.IMAGE}


def _token_count(chunk: Chunk) -> int:
    return chunk.quality_metrics.token_count if chunk.quality_metrics else 0


def compute_statistics(chunks: List[Chunk], processing_time_ms: int = 0) -> ChunkingStatistics:
    """Roll up counts, depth and token totals for a chunk list."""
    token_counts = [_token_count(c) for c in chunks]
    distribution = Counter(c.chunk_type.value for c in chunks)

    return ChunkingStatistics(
        total_chunks=len(chunks),
        structural_chunks=sum(1 for c in chunks if c.is_container),
        content_chunks=sum(1 for c in chunks if c.is_content),
        visual_chunks=sum(1 for c in chunks if c.chunk_type in VISUAL_TYPES),
        table_chunks=distribution.get(ChunkType.TABLE.value, 0),
        split_chunks=sum(
            1 for c in chunks if c.quality_metrics and c.quality_metrics.was_split
        ),
        max_depth=max((c.depth for c in chunks), default=0),
        total_tokens=sum(token_counts),
        average_tokens_per_chunk=int(sum(token_counts) / len(token_counts)) if token_counts else 0,
        max_tokens_in_chunk=max(token_counts, default=0),
        min_tokens_in_chunk=min(token_counts, default=0),
        processing_time_ms=processing_time_ms,
        chunk_type_distribution=dict(distribution),
    )


def _distribution_stats(values: List[int]) -> Dict[str, int]:
    if not values:
        return {"min": 0, "median": 0, "p95": 0, "max": 0}
    return {
        "min": min(values),
        "median": int(statistics.median(values)),
        "p95": int(statistics.quantiles(values, n=20)[18]) if len(values) > 20 else max(values),
        "max": max(values),
    }


def build_chunk_assurance(
    chunks: List[Chunk],
    counter: TokenCounter,
    max_tokens: int,
    overlap_tokens: int = 0,
    validation: Optional[ValidationResult] = None,
) -> Dict:
    """
    Build an assurance report for a finished chunk list.

    Token counts are recomputed with ``counter`` rather than trusted from
    the chunks' metrics.

    Args:
        chunks: Final chunk list
        counter: Token counter used for the run
        max_tokens: Token budget the run was configured with
        overlap_tokens: Overlap the run was configured with
        validation: Validator result, if validation ran

    Returns:
        Assurance report dictionary
    """
    token_counts: List[int] = []
    char_counts: List[int] = []
    breaches = []
    split_counts = {"no-split": 0, "split": 0, "forced-cut": 0}

    for chunk in chunks:
        actual_tokens = counter.count_tokens(chunk.content)
        token_counts.append(actual_tokens)
        char_counts.append(len(chunk.content))

        metrics = chunk.quality_metrics
        if metrics and metrics.was_split:
            split_counts["split"] += 1
            if metrics.semantic_completeness < 1.0:
                split_counts["forced-cut"] += 1
        else:
            split_counts["no-split"] += 1

        if actual_tokens > max_tokens:
            breaches.append(
                {
                    "chunk_id": chunk.id,
                    "token_count": actual_tokens,
                    "chunk_type": chunk.chunk_type.value,
                    "char_count": len(chunk.content),
                }
            )

    token_stats = _distribution_stats(token_counts)
    token_stats["total"] = sum(token_counts)

    issue_codes = Counter(validation.codes()) if validation else Counter()
    hierarchy_ok = not (validation and (validation.has_circular_references or validation.has_invalid_hierarchy))
    status = "PASS" if not breaches and hierarchy_ok else "FAIL"

    return {
        "tokenCap": {"maxTokens": max_tokens, "overlapTokens": overlap_tokens},
        "tokenStats": token_stats,
        "charStats": _distribution_stats(char_counts),
        "splitStrategies": split_counts,
        "chunkTypes": dict(Counter(c.chunk_type.value for c in chunks)),
        "breaches": {"count": len(breaches), "examples": breaches[:10]},
        "validation": {
            "isValid": validation.is_valid if validation else None,
            "issues": dict(issue_codes),
        },
        "status": status,
    }
