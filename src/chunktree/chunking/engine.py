"""
Chunking pipeline: segments -> linked chunks -> hierarchy -> split -> metrics -> validation.
"""

import re
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..core.config import ChunkingOptions, OutputFormat
from ..core.errors import ChunkingCancelledError
from ..core.logging import log
from ..core.models import (
    Chunk,
    ChunkingResult,
    ChunkingWarning,
    Segment,
    ValidationSeverity,
)
from .assurance import compute_statistics
from .detector import Heuristic, StructuralDetector
from .hierarchy import build_hierarchy, populate_children
from .metrics import annotate
from .splitter import TokenBoundedSplitter
from .tokens import TokenCounter, counter_for_options
from .validator import ChunkValidator

CancelCheck = Callable[[], bool]


def link_segments(segments: Sequence[Segment]) -> List[Chunk]:
    """Turn classified segments into chunks linked through a heading stack.

    A heading pops every open heading of the same or deeper level and then
    becomes the parent of what follows; other segments attach to the
    innermost open heading. Sequence numbers follow segment order.
    """
    chunks: List[Chunk] = []
    stack: List[Tuple[int, str]] = []

    for sequence, segment in enumerate(segments):
        chunk = Chunk(
            chunk_type=segment.chunk_type,
            specific_type=segment.specific_type,
            content=segment.content,
            payload=segment.payload,
            tags=list(segment.tags),
            sequence_number=sequence,
        )
        level = segment.heading_level
        if level:
            while stack and stack[-1][0] >= level:
                stack.pop()
            chunk.parent_id = stack[-1][1] if stack else None
            stack.append((level, chunk.id))
        else:
            chunk.parent_id = stack[-1][1] if stack else None
        chunks.append(chunk)

    return chunks


def _split_lines(text: str) -> List[str]:
    return re.sub(r"\r\n?", "\n", text).split("\n")


class ChunkingEngine:
    """Runs the full pipeline for one set of options.

    The token counter and the detector strategy list are injected; when
    omitted they are built from ``options``.
    """

    def __init__(
        self,
        options: Optional[ChunkingOptions] = None,
        counter: Optional[TokenCounter] = None,
        strategies: Optional[List[Tuple[str, Heuristic]]] = None,
    ):
        self.options = (options or ChunkingOptions()).check()
        self.counter = counter or counter_for_options(self.options)
        self.detector = StructuralDetector(self.options.detector, strategies)
        self.splitter = TokenBoundedSplitter(
            self.counter, self.options.max_tokens, self.options.overlap_tokens
        )

    def chunk_text(self, text: str, should_cancel: Optional[CancelCheck] = None) -> ChunkingResult:
        """Detect structure in plain text and chunk it."""
        return self.chunk_lines(_split_lines(text), should_cancel)

    def chunk_lines(
        self, lines: Sequence[str], should_cancel: Optional[CancelCheck] = None
    ) -> ChunkingResult:
        started = time.perf_counter()
        segments = self.detector.detect(lines, should_cancel)
        log.debug("chunk.detected", segments=len(segments))
        return self._run(link_segments(segments), should_cancel, started)

    def process_chunks(
        self, chunks: List[Chunk], should_cancel: Optional[CancelCheck] = None
    ) -> ChunkingResult:
        """Chunk pre-typed, parent-linked input from a format extractor.

        Input is taken in ``sequence_number`` order (list order on ties).
        """
        started = time.perf_counter()
        ordered = sorted(chunks, key=lambda c: c.sequence_number)
        return self._run(ordered, should_cancel, started)

    # -- passes ----------------------------------------------------------

    @staticmethod
    def _checkpoint(should_cancel: Optional[CancelCheck], stage: str) -> None:
        if should_cancel is not None and should_cancel():
            log.info("chunk.cancelled", stage=stage)
            raise ChunkingCancelledError(f"Chunking cancelled before {stage}")

    def _run(
        self,
        chunks: List[Chunk],
        should_cancel: Optional[CancelCheck],
        started: float,
    ) -> ChunkingResult:
        warnings: List[ChunkingWarning] = []

        self._checkpoint(should_cancel, "hierarchy")
        build_hierarchy(chunks)

        self._checkpoint(should_cancel, "split")
        chunks = self._split_oversized(chunks, should_cancel, warnings)
        for sequence, chunk in enumerate(chunks):
            chunk.sequence_number = sequence

        if self.options.include_quality_metrics:
            self._checkpoint(should_cancel, "metrics")
            annotate(chunks, self.counter)

        validation = None
        if self.options.validate_chunks:
            self._checkpoint(should_cancel, "validation")
            validation = ChunkValidator(self.counter, self.options.max_tokens).validate(chunks)

        output = self._apply_output_format(chunks)
        statistics = compute_statistics(
            output, processing_time_ms=int((time.perf_counter() - started) * 1000)
        )

        log.info(
            "chunk.complete",
            chunks=statistics.total_chunks,
            split_chunks=statistics.split_chunks,
            max_depth=statistics.max_depth,
            total_tokens=statistics.total_tokens,
            valid=validation.is_valid if validation else None,
            output_format=self.options.output_format.value,
        )
        return ChunkingResult(
            chunks=output,
            statistics=statistics,
            validation=validation,
            warnings=warnings,
            success=True,
        )

    def _split_oversized(
        self,
        chunks: List[Chunk],
        should_cancel: Optional[CancelCheck],
        warnings: List[ChunkingWarning],
    ) -> List[Chunk]:
        parent_ids = {chunk.parent_id for chunk in chunks if chunk.parent_id}
        relinked: Dict[str, str] = {}
        result: List[Chunk] = []

        for chunk in chunks:
            if not self.splitter.needs_split(chunk):
                result.append(chunk)
                continue

            self._checkpoint(should_cancel, "split")
            pieces = self.splitter.split(chunk)
            if chunk.id in parent_ids:
                relinked[chunk.id] = pieces[0].id
                log.info("chunk.split.relinked", chunk_id=chunk.id, new_parent_id=pieces[0].id)
                warnings.append(
                    ChunkingWarning(
                        code="SPLIT_PARENT",
                        message=(
                            f"Chunk {chunk.id} exceeded max_tokens and had children; "
                            f"they now hang under its first piece {pieces[0].id}"
                        ),
                        level=ValidationSeverity.INFO,
                    )
                )

            oversized = [p for p in pieces if self.counter.count_tokens(p.content) > self.options.max_tokens]
            if oversized:
                warnings.append(
                    ChunkingWarning(
                        code="OVERSIZED_UNIT",
                        message=(
                            f"Chunk {chunk.id} holds {len(oversized)} indivisible unit(s) "
                            f"larger than {self.options.max_tokens} tokens"
                        ),
                        level=ValidationSeverity.WARNING,
                    )
                )
            result.extend(pieces)

        if relinked:
            # Former children point at ids that no longer exist in the set
            for chunk in result:
                if chunk.parent_id in relinked:
                    chunk.parent_id = relinked[chunk.parent_id]
            build_hierarchy(result)
        return result

    def _apply_output_format(self, chunks: List[Chunk]) -> List[Chunk]:
        output_format = self.options.output_format
        if output_format is OutputFormat.LEAVES_ONLY:
            return [chunk for chunk in chunks if chunk.is_content]
        if output_format is OutputFormat.HIERARCHICAL:
            return populate_children(chunks)
        return chunks


def chunk_text(
    text: str,
    options: Optional[ChunkingOptions] = None,
    *,
    counter: Optional[TokenCounter] = None,
    should_cancel: Optional[CancelCheck] = None,
) -> ChunkingResult:
    """Chunk plain text in one call."""
    return ChunkingEngine(options, counter).chunk_text(text, should_cancel)


def process_chunks(
    chunks: List[Chunk],
    options: Optional[ChunkingOptions] = None,
    *,
    counter: Optional[TokenCounter] = None,
    should_cancel: Optional[CancelCheck] = None,
) -> ChunkingResult:
    """Run hierarchy, splitting, metrics and validation over extractor output."""
    return ChunkingEngine(options, counter).process_chunks(chunks, should_cancel)
