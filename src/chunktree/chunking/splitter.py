"""
Token-bounded splitting with a boundary cascade and overlap.
"""

from __future__ import annotations

from typing import List, NamedTuple, Optional

from ..core.config import check_token_limits
from ..core.logging import log
from ..core.models import Chunk, new_chunk_id
from .boundaries import CASCADE, SEPARATORS, SPLITTERS, SplitLevel
from .metrics import FORCED_CUT_COMPLETENESS, compute_metrics
from .tokens import TokenCounter


class Unit(NamedTuple):
    """One boundary unit: its text, granularity and the glue placed before it."""

    text: str
    level: SplitLevel
    sep: str
    ends_sentence: bool


class SplitPiece(NamedTuple):
    """A packed piece of text; ``text`` starts with ``overlap_text``."""

    text: str
    overlap_text: str
    ends_sentence: bool
    token_count: int
    finest_level: SplitLevel


def join_units(units: List[Unit]) -> str:
    if not units:
        return ""
    return units[0].text + "".join(u.sep + u.text for u in units[1:])


class TokenBoundedSplitter:
    """Divide oversized content into ordered pieces that fit ``max_tokens``.

    Blocks are refined paragraph -> sentence -> phrase -> word only where a
    block is still over budget, then packed greedily. Each new piece is seeded
    with up to ``overlap_tokens`` of trailing units from the previous piece.
    A single word larger than the budget is emitted on its own.
    """

    def __init__(self, counter: TokenCounter, max_tokens: int, overlap_tokens: int = 0):
        check_token_limits(max_tokens, overlap_tokens)
        self.counter = counter
        self.max_tokens = max_tokens
        self.overlap_tokens = overlap_tokens

    def _count(self, text: str) -> int:
        return self.counter.count_tokens(text)

    def _fits(self, text: str) -> bool:
        return self._count(text) <= self.max_tokens

    def needs_split(self, chunk: Chunk) -> bool:
        return chunk.is_content and not self._fits(chunk.content)

    # -- cascade ---------------------------------------------------------

    def units_for(self, text: str) -> List[Unit]:
        """Break ``text`` into boundary units, refining only oversized blocks."""
        return self._refine(text, 0)

    def _refine(self, text: str, level_index: int) -> List[Unit]:
        level = CASCADE[level_index]
        sep = SEPARATORS[level]
        sentence_level = level in (SplitLevel.PARAGRAPH, SplitLevel.SENTENCE)
        units: List[Unit] = []

        for piece in SPLITTERS[level](text):
            if level is SplitLevel.WORD or self._fits(piece):
                units.append(Unit(piece, level, sep, sentence_level))
                continue

            sub_units = self._refine(piece, level_index + 1)
            if not sub_units:
                continue
            first = sub_units[0]
            sub_units[0] = first._replace(sep=sep)
            if sentence_level:
                sub_units[-1] = sub_units[-1]._replace(ends_sentence=True)
            units.extend(sub_units)

        return units

    # -- packing ---------------------------------------------------------

    def split_text(self, text: str) -> List[SplitPiece]:
        """Pack boundary units of ``text`` into pieces within the budget."""
        units = self.units_for(text)
        pieces: List[SplitPiece] = []
        current: List[Unit] = []
        seed_len = 0

        for unit in units:
            if not current:
                current = [unit]
                continue

            if self._fits(join_units(current + [unit])):
                current.append(unit)
                continue

            pieces.append(self._piece(current, seed_len))
            seed = self._overlap_seed(current, unit)
            current = seed + [unit]
            seed_len = len(seed)

        if current and seed_len < len(current):
            pieces.append(self._piece(current, seed_len))

        return pieces

    def _piece(self, units: List[Unit], seed_len: int) -> SplitPiece:
        text = join_units(units)
        token_count = self._count(text)
        if token_count > self.max_tokens:
            log.warning(
                "chunk.split.oversized_unit",
                token_count=token_count,
                max_tokens=self.max_tokens,
                preview=text[:40],
            )
        finest = max(units, key=lambda u: CASCADE.index(u.level)).level
        return SplitPiece(
            text=text,
            overlap_text=join_units(units[:seed_len]),
            ends_sentence=units[-1].ends_sentence,
            token_count=token_count,
            finest_level=finest,
        )

    def _overlap_seed(self, closed: List[Unit], next_unit: Unit) -> List[Unit]:
        """Trailing units of ``closed`` worth at most ``overlap_tokens``."""
        if self.overlap_tokens == 0 or not self._fits(next_unit.text):
            return []

        seed: List[Unit] = []
        for unit in reversed(closed):
            trial = [unit] + seed
            if self._count(join_units(trial)) > self.overlap_tokens:
                break
            seed = trial

        if not seed:
            # Last unit alone exceeds the overlap; fall back to its trailing words
            last = closed[-1]
            words: List[Unit] = []
            for word in reversed(last.text.split()):
                trial = [Unit(word, SplitLevel.WORD, " ", False)] + words
                if self._count(join_units(trial)) > self.overlap_tokens:
                    break
                words = trial
            if words and last.ends_sentence:
                words[-1] = words[-1]._replace(ends_sentence=True)
            seed = words

        while seed and not self._fits(join_units(seed + [next_unit])):
            seed.pop(0)
        return seed

    # -- chunks ----------------------------------------------------------

    def split(self, chunk: Chunk, sequence_start: Optional[int] = None) -> List[Chunk]:
        """Replace an oversized content chunk by its split children.

        Chunks that already fit, or are not content-bearing, come back
        unchanged as a single-element list.
        """
        if not self.needs_split(chunk):
            return [chunk]

        pieces = self.split_text(chunk.content)
        start = chunk.sequence_number if sequence_start is None else sequence_start
        children: List[Chunk] = []

        for offset, piece in enumerate(pieces):
            completeness = 1.0 if piece.ends_sentence else FORCED_CUT_COMPLETENESS
            children.append(
                Chunk(
                    id=new_chunk_id(),
                    parent_id=chunk.parent_id,
                    chunk_type=chunk.chunk_type,
                    specific_type=chunk.specific_type,
                    content=piece.text,
                    depth=chunk.depth,
                    ancestor_ids=list(chunk.ancestor_ids),
                    sequence_number=start + offset,
                    payload=chunk.payload.model_copy(deep=True) if chunk.payload else None,
                    tags=[*chunk.tags, "split"],
                    quality_metrics=compute_metrics(
                        piece.text,
                        self.counter,
                        was_split=True,
                        semantic_completeness=completeness,
                        has_incomplete_table=bool(
                            chunk.quality_metrics and chunk.quality_metrics.has_incomplete_table
                        ),
                    ),
                )
            )

        log.debug(
            "chunk.split",
            chunk_id=chunk.id,
            pieces=len(children),
            max_tokens=self.max_tokens,
            overlap_tokens=self.overlap_tokens,
        )
        return children
