"""
Structural and size validation of a finished chunk set.
"""

from typing import Dict, List, Optional

from ..core.errors import StructuralCycleError
from ..core.logging import log
from ..core.models import (
    Chunk,
    ValidationIssue,
    ValidationResult,
    ValidationSeverity,
)
from .hierarchy import ANCESTOR_MISMATCH, DEPTH_MISMATCH, hierarchy_mismatches
from .tokens import TokenCounter

ORPHANED_CHUNK = "ORPHANED_CHUNK"
CIRCULAR_REFERENCE = "CIRCULAR_REFERENCE"
OVERSIZED_CHUNK = "OVERSIZED_CHUNK"
EMPTY_CHUNK = "EMPTY_CHUNK"


def _revisits(chunk: Chunk, by_id: Dict[str, Chunk]) -> bool:
    """True when walking up from ``chunk`` reaches a chunk already seen."""
    seen = {chunk.id}
    parent_id = chunk.parent_id
    while parent_id is not None:
        if parent_id in seen:
            return True
        seen.add(parent_id)
        parent = by_id.get(parent_id)
        if parent is None:
            return False
        parent_id = parent.parent_id
    return False


class ChunkValidator:
    """Checks orphans, cycles, depth/ancestor consistency and token size.

    Size checks run only when both a counter and ``max_tokens`` are given;
    ``min_tokens`` only collects ``undersized_chunk_ids`` and never makes
    the result invalid.
    """

    def __init__(
        self,
        counter: Optional[TokenCounter] = None,
        max_tokens: Optional[int] = None,
        min_tokens: Optional[int] = None,
    ):
        self.counter = counter
        self.max_tokens = max_tokens
        self.min_tokens = min_tokens

    def validate(self, chunks: List[Chunk]) -> ValidationResult:
        by_id = {chunk.id: chunk for chunk in chunks}
        result = ValidationResult()

        def add(severity: ValidationSeverity, code: str, message: str, chunk: Chunk) -> None:
            result.issues.append(
                ValidationIssue(severity=severity, code=code, message=message, chunk_id=chunk.id)
            )
            log.debug("validate.issue", code=code, severity=severity.value, chunk_id=chunk.id)

        for chunk in chunks:
            if chunk.parent_id is not None and chunk.parent_id not in by_id:
                add(
                    ValidationSeverity.WARNING,
                    ORPHANED_CHUNK,
                    f"Chunk {chunk.id} references missing parent {chunk.parent_id}",
                    chunk,
                )

            if _revisits(chunk, by_id):
                add(
                    ValidationSeverity.CRITICAL,
                    CIRCULAR_REFERENCE,
                    f"Circular reference detected starting from chunk {chunk.id}",
                    chunk,
                )
                continue

            try:
                mismatches = hierarchy_mismatches(chunk, by_id)
            except StructuralCycleError as e:
                add(ValidationSeverity.CRITICAL, CIRCULAR_REFERENCE, str(e), chunk)
                continue
            for code, message in mismatches:
                add(ValidationSeverity.ERROR, code, message, chunk)

            if chunk.is_content and not chunk.content.strip():
                add(
                    ValidationSeverity.WARNING,
                    EMPTY_CHUNK,
                    f"Chunk {chunk.id} ({chunk.chunk_type.value}) has no content",
                    chunk,
                )

            self._check_size(chunk, result, add)

        codes = set(result.codes())
        result.has_orphaned_chunks = ORPHANED_CHUNK in codes
        result.has_circular_references = CIRCULAR_REFERENCE in codes
        result.has_invalid_hierarchy = bool(codes & {DEPTH_MISMATCH, ANCESTOR_MISMATCH})
        result.is_valid = not result.issues

        if result.issues:
            log.warning(
                "validate.failed",
                chunks=len(chunks),
                issues=len(result.issues),
                codes=sorted(codes),
            )
        return result

    def _check_size(self, chunk: Chunk, result: ValidationResult, add) -> None:
        if self.counter is None:
            return

        token_count = self.counter.count_tokens(chunk.content)
        if self.max_tokens is not None and token_count > self.max_tokens:
            result.oversized_chunk_ids.append(chunk.id)
            add(
                ValidationSeverity.WARNING,
                OVERSIZED_CHUNK,
                f"Chunk {chunk.id} has {token_count} tokens, limit is {self.max_tokens}",
                chunk,
            )
        if self.min_tokens is not None and chunk.is_content and token_count < self.min_tokens:
            result.undersized_chunk_ids.append(chunk.id)


def validate(
    chunks: List[Chunk],
    counter: Optional[TokenCounter] = None,
    max_tokens: Optional[int] = None,
) -> ValidationResult:
    return ChunkValidator(counter, max_tokens).validate(chunks)
