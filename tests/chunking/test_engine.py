"""Tests for the end-to-end chunking pipeline."""

import pytest

from chunktree.chunking.detector import detect_segments, match_prefixed_heading
from chunktree.chunking.engine import ChunkingEngine, chunk_text, link_segments, process_chunks
from chunktree.core.config import ChunkingOptions, OutputFormat
from chunktree.core.errors import ChunkingCancelledError, InvalidConfigurationError
from chunktree.core.models import Chunk, ChunkType, HeadingHeuristic, TablePayload


def _long_paragraph(sentences=100):
    return " ".join(
        f"Sentence number {i} has exactly ten words in it today." for i in range(sentences)
    )


class TestLinkSegments:
    """Heading stack linking of detected segments."""

    def test_heading_stack(self):
        """Test that headings pop same-or-deeper levels and adopt what follows."""
        segments = detect_segments("# A\n## B\ntext\n# C\nmore")
        chunks = link_segments(segments)
        by_content = {c.content: c for c in chunks}

        assert by_content["A"].parent_id is None
        assert by_content["B"].parent_id == by_content["A"].id
        assert by_content["text"].parent_id == by_content["B"].id
        assert by_content["C"].parent_id is None
        assert by_content["more"].parent_id == by_content["C"].id
        assert [c.sequence_number for c in chunks] == [0, 1, 2, 3, 4]

    def test_content_before_first_heading_is_root(self):
        """Test that content before any heading has no parent."""
        chunks = link_segments(detect_segments("Preamble.\n\n# Title\nBody."))

        assert chunks[0].parent_id is None
        assert chunks[2].parent_id == chunks[1].id


class TestChunkText:
    """Plain text through the whole pipeline."""

    def test_underlined_heading_document(self):
        """Test hierarchy, sequence numbers and validation for a small document."""
        result = chunk_text("Main\n====\n\nPara one.\n\nPara two.")
        heading, first, second = result.chunks

        assert heading.chunk_type == ChunkType.SECTION
        assert heading.depth == 0
        assert heading.payload.heuristic == HeadingHeuristic.UNDERLINED
        assert heading.payload.heading_level == 1
        assert heading.payload.confidence > 0.9
        for paragraph in (first, second):
            assert paragraph.chunk_type == ChunkType.PARAGRAPH
            assert paragraph.depth == 1
            assert paragraph.parent_id == heading.id
            assert paragraph.ancestor_ids == [heading.id]
        assert [c.sequence_number for c in result.chunks] == [0, 1, 2]
        assert result.validation.is_valid
        assert result.success

    def test_metrics_attached(self):
        """Test that quality metrics are filled with the default character counter."""
        result = chunk_text("Para one.")

        metrics = result.chunks[0].quality_metrics
        assert metrics.character_count == 9
        assert metrics.token_count == 3  # ceil(9 / 4)
        assert metrics.word_count == 2

    def test_crlf_input(self):
        """Test that CRLF line endings are handled like LF."""
        result = chunk_text("Main\r\n====\r\n\r\nBody.")

        assert [c.chunk_type for c in result.chunks] == [ChunkType.SECTION, ChunkType.PARAGRAPH]

    def test_no_headings_for_inline_acronym(self):
        """Test that an inline acronym does not create a section."""
        result = chunk_text("This mentions USA in the text.\n\nMore content.")

        assert all(c.chunk_type != ChunkType.SECTION for c in result.chunks)

    def test_empty_text(self):
        """Test that empty text gives an empty, valid result."""
        result = chunk_text("")

        assert result.chunks == []
        assert result.statistics.total_chunks == 0
        assert result.validation.is_valid

    def test_long_paragraph_is_split_under_heading(self, word_counter):
        """Test that an oversized paragraph is replaced by pieces under the same heading."""
        text = "# Report\n\n" + _long_paragraph()
        options = ChunkingOptions(max_tokens=200, overlap_tokens=20)

        result = chunk_text(text, options, counter=word_counter)
        heading, *pieces = result.chunks

        assert 5 <= len(pieces) <= 7
        assert all(p.parent_id == heading.id for p in pieces)
        assert all(p.depth == 1 for p in pieces)
        assert all(p.quality_metrics.was_split for p in pieces)
        assert all(word_counter.count_tokens(p.content) <= 200 for p in pieces)
        assert [c.sequence_number for c in result.chunks] == list(range(len(result.chunks)))
        assert result.statistics.split_chunks == len(pieces)
        assert result.validation.is_valid

    def test_injected_strategies(self):
        """Test that the engine passes injected strategies to its detector."""
        engine = ChunkingEngine(strategies=[("prefixed_headings", match_prefixed_heading)])

        result = engine.chunk_text("INTRODUCTION\n\n# Real")

        assert [c.chunk_type for c in result.chunks] == [ChunkType.PARAGRAPH, ChunkType.SECTION]


class TestOutputFormats:
    """Flat, hierarchical and leaves-only output."""

    TEXT = "# A\nFirst.\n\n## B\nSecond."

    def test_flat_keeps_everything(self):
        """Test that flat output keeps sections and content."""
        result = chunk_text(self.TEXT)

        assert len(result.chunks) == 4

    def test_leaves_only(self):
        """Test that leaves-only output drops sections."""
        result = chunk_text(self.TEXT, ChunkingOptions(output_format=OutputFormat.LEAVES_ONLY))

        assert [c.content for c in result.chunks] == ["First.", "Second."]

    def test_hierarchical_populates_children(self):
        """Test that hierarchical output fills container children in order."""
        result = chunk_text(self.TEXT, ChunkingOptions(output_format=OutputFormat.HIERARCHICAL))
        a, first, b, second = result.chunks

        assert a.children == [first.id, b.id]
        assert b.children == [second.id]
        assert first.children == []


class TestProcessChunks:
    """Pre-linked extractor input."""

    def test_extractor_output(self, make_section, make_paragraph, word_counter):
        """Test ordering, splitting and renumbering of extractor chunks."""
        section = make_section("Report", id="s", sequence_number=0)
        body = make_paragraph(_long_paragraph(), id="p", parent_id="s", sequence_number=1)
        tail = make_paragraph("Closing words.", id="t", parent_id="s", sequence_number=2)
        options = ChunkingOptions(max_tokens=200, overlap_tokens=20)

        result = process_chunks([tail, body, section], options, counter=word_counter)
        ids = [c.id for c in result.chunks]

        assert ids[0] == "s"
        assert ids[-1] == "t"
        assert "p" not in ids
        assert [c.sequence_number for c in result.chunks] == list(range(len(ids)))
        assert all(c.parent_id == "s" for c in result.chunks[1:])

    def test_orphan_reported_not_raised(self, make_paragraph):
        """Test that a missing parent is reported by validation, not raised."""
        result = process_chunks([make_paragraph("Stray.", parent_id="ghost")])

        assert result.validation.has_orphaned_chunks
        assert not result.validation.is_valid

    def test_oversized_parent_is_split_and_children_relinked(self, word_counter):
        """Test that an oversized chunk with a child is replaced and the child follows its first piece."""
        table = Chunk(
            id="tbl",
            chunk_type=ChunkType.TABLE,
            content="cell " * 50,
            payload=TablePayload(row_count=5, column_count=10),
        )
        caption = Chunk(
            id="cap", chunk_type=ChunkType.PARAGRAPH, content="Table caption.", parent_id="tbl"
        )
        options = ChunkingOptions(max_tokens=10, overlap_tokens=2)

        result = process_chunks([table, caption], options, counter=word_counter)
        pieces = [c for c in result.chunks if c.chunk_type == ChunkType.TABLE]
        caption = next(c for c in result.chunks if c.id == "cap")

        assert "tbl" not in [c.id for c in result.chunks]
        assert all(word_counter.count_tokens(p.content) <= 10 for p in pieces)
        assert caption.parent_id == pieces[0].id
        assert caption.depth == 1
        assert caption.ancestor_ids == [pieces[0].id]
        assert [w.code for w in result.warnings] == ["SPLIT_PARENT"]
        assert result.validation.is_valid

    def test_validation_can_be_disabled(self, make_paragraph):
        """Test that validation is skipped when turned off."""
        result = process_chunks(
            [make_paragraph("Stray.", parent_id="ghost")], ChunkingOptions(validate_chunks=False)
        )

        assert result.validation is None


class TestFailures:
    """Fatal errors and cancellation."""

    def test_invalid_configuration_fails_fast(self):
        """Test that unusable limits raise before any work is done."""
        with pytest.raises(InvalidConfigurationError):
            chunk_text("Text.", ChunkingOptions(max_tokens=10, overlap_tokens=10))

    def test_cancellation_during_detection(self):
        """Test that cancellation is honoured between segments."""
        with pytest.raises(ChunkingCancelledError):
            chunk_text("One.\n\nTwo.", should_cancel=lambda: True)

    def test_cancellation_before_hierarchy_leaves_chunks_untouched(self, make_paragraph):
        """Test that a cancelled run does not mutate the input chunks."""
        chunk = make_paragraph("Child.", parent_id="ghost", depth=4)

        with pytest.raises(ChunkingCancelledError):
            process_chunks([chunk], should_cancel=lambda: True)

        assert chunk.depth == 4
