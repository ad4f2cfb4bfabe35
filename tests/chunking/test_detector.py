"""Tests for heuristic structure detection."""

from chunktree.chunking.detector import (
    DetectionContext,
    StructuralDetector,
    detect_segments,
    indentation,
    match_all_caps_heading,
    match_numbered_section,
    match_prefixed_heading,
    match_underlined_heading,
)
from chunktree.core.config import DetectorOptions
from chunktree.core.models import (
    ChunkType,
    HeadingHeuristic,
    ListType,
    ParagraphDetection,
)


def _types(segments):
    return [s.chunk_type for s in segments]


class TestHeadings:
    """Heading heuristics and their priority."""

    def test_underlined_heading_followed_by_paragraphs(self):
        """Test an underlined heading followed by two blank-line separated paragraphs."""
        segments = detect_segments("Main\n====\n\nPara one.\n\nPara two.")

        assert _types(segments) == [ChunkType.SECTION, ChunkType.PARAGRAPH, ChunkType.PARAGRAPH]
        heading = segments[0]
        assert heading.content == "Main"
        assert heading.payload.heuristic == HeadingHeuristic.UNDERLINED
        assert heading.heading_level == 1
        assert heading.confidence > 0.9
        assert heading.line_count == 2
        assert [s.content for s in segments[1:]] == ["Para one.", "Para two."]

    def test_dash_underline_is_level_two(self):
        """Test that a dash underline gives a level 2 heading."""
        match = match_underlined_heading(["Details", "-------"], 0, DetectionContext())

        segment, consumed = match
        assert consumed == 2
        assert segment.heading_level == 2
        assert segment.confidence == 0.90

    def test_underline_length_must_be_close_to_heading(self):
        """Test that a short rule under a long line is not an underline."""
        segments = detect_segments("A much longer line of ordinary text\n---")

        assert ChunkType.SECTION not in _types(segments)

    def test_short_underline_rejected(self):
        """Test that underlines shorter than three characters are ignored."""
        assert match_underlined_heading(["Hi", "=="], 0, DetectionContext()) is None

    def test_numbered_section_levels(self):
        """Test that the numbering depth sets the heading level."""
        first, _ = match_numbered_section(["1.2 Scope"], 0, DetectionContext())
        second, _ = match_numbered_section(["1.2.3. Details"], 0, DetectionContext())
        top, _ = match_numbered_section(["1. Introduction"], 0, DetectionContext())

        assert first.heading_level == 2
        assert first.content == "Scope"
        assert second.heading_level == 3
        assert top.heading_level == 1
        assert top.confidence == 0.85

    def test_single_number_rejected_after_colon(self):
        """Test that a single number after a colon line is not a heading."""
        context = DetectionContext(previous_line="Steps:", previous_type=ChunkType.PARAGRAPH)
        assert match_numbered_section(["1. Open the door"], 0, context) is None

    def test_single_number_rejected_after_list_item(self):
        """Test that a single number right after a list item is not a heading."""
        context = DetectionContext(previous_line="- a", previous_type=ChunkType.LIST_ITEM)
        assert match_numbered_section(["2. Next step"], 0, context) is None

    def test_single_number_rejected_for_sentence_like_text(self):
        """Test that lowercase, punctuated or long numbered lines are not headings."""
        context = DetectionContext()
        assert match_numbered_section(["1. lowercase start"], 0, context) is None
        assert match_numbered_section(["1. Ends with a period."], 0, context) is None
        assert match_numbered_section(["1. " + "Long " * 30], 0, context) is None

    def test_colon_guarded_number_becomes_list_item(self):
        """Test that a guarded numbered line falls through to a numbered list item."""
        segments = detect_segments("Steps:\n1. Open the door")

        assert _types(segments) == [ChunkType.PARAGRAPH, ChunkType.LIST_ITEM]
        assert segments[1].payload.list_type == ListType.NUMBERED

    def test_all_caps_heading(self):
        """Test the all-caps heading heuristic and its confidence."""
        segment, _ = match_all_caps_heading(["INTRODUCTION"], 0, DetectionContext())

        assert segment.payload.heuristic == HeadingHeuristic.ALL_CAPS
        assert segment.confidence == 0.70

    def test_all_caps_token_inside_sentence_is_not_heading(self):
        """Test that an acronym inside prose does not make a heading."""
        segments = detect_segments("This mentions USA in the text.\n\nMore content.")

        assert ChunkType.SECTION not in _types(segments)
        assert len(segments) == 2

    def test_all_caps_needs_mostly_letters(self):
        """Test that short or mostly non-letter lines are not all-caps headings."""
        assert match_all_caps_heading(["A-1 2-3 4-5"], 0, DetectionContext()) is None
        assert match_all_caps_heading(["USA"], 0, DetectionContext()) is None

    def test_prefixed_heading_level_capped(self):
        """Test that the hash count sets the level, capped at 6."""
        segment, _ = match_prefixed_heading(["### Deep"], 0, DetectionContext())
        deepest, _ = match_prefixed_heading(["######### Too deep"], 0, DetectionContext())

        assert segment.heading_level == 3
        assert segment.content == "Deep"
        assert segment.confidence == 0.75
        assert deepest.heading_level == 6

    def test_disabled_heuristic_is_skipped(self):
        """Test that a disabled heuristic is never tried."""
        options = DetectorOptions(all_caps_headings=False)
        segments = detect_segments("INTRODUCTION\n\nText.", options)

        assert _types(segments) == [ChunkType.PARAGRAPH, ChunkType.PARAGRAPH]


class TestLists:
    """Bullet and ordered list detection."""

    def test_nested_bullets(self):
        """Test that indentation sets the nesting level of bullets."""
        segments = detect_segments("- A\n  - B\n    - C")

        assert _types(segments) == [ChunkType.LIST_ITEM] * 3
        assert [s.payload.nesting_level for s in segments] == [0, 1, 2]
        assert all(s.payload.list_type == ListType.BULLET for s in segments)
        assert [s.content for s in segments] == ["A", "B", "C"]

    def test_ordered_markers(self):
        """Test bullet, parenthesised and lettered markers."""
        segments = detect_segments("- first\n2) second\nb. third")

        assert [s.payload.marker for s in segments] == ["-", "2)", "b."]
        assert [s.payload.is_ordered for s in segments] == [False, True, True]
        assert segments[1].confidence == 0.80

    def test_tab_counts_as_four_spaces(self):
        """Test that a tab indents a list item by four columns."""
        assert indentation("\t- x") == 4
        segments = detect_segments("\t- x")
        assert segments[0].payload.nesting_level == 2

    def test_custom_indent_step(self):
        """Test that the configured indent step divides indentation into levels."""
        segments = detect_segments("- a\n    - b", DetectorOptions(list_indent_step=4))

        assert [s.payload.nesting_level for s in segments] == [0, 1]


class TestCode:
    """Fenced and indented code blocks."""

    def test_fenced_block_with_language(self):
        """Test a fenced block with a language tag and the text after it."""
        segments = detect_segments("```python\ndef f():\n    return 1\n```\nAfter.")

        code = segments[0]
        assert code.chunk_type == ChunkType.CODE_BLOCK
        assert code.payload.language == "python"
        assert code.payload.is_fenced
        assert code.content == "def f():\n    return 1"
        assert code.confidence == 1.0
        assert segments[1].content == "After."

    def test_unclosed_fence_runs_to_end(self):
        """Test that an unclosed fence takes the rest of the input."""
        segments = detect_segments("```\ncode line\nmore code")

        assert len(segments) == 1
        assert segments[0].payload.language is None
        assert segments[0].content == "code line\nmore code"

    def test_upper_case_fence_language_is_not_a_heading(self):
        """Test that an all-caps fence language still opens a fenced block."""
        text = '```JSON\n{"a": 1}\n```\n\nAfter the block.\n\nMore prose.'

        segments = detect_segments(text)

        assert _types(segments) == [ChunkType.CODE_BLOCK, ChunkType.PARAGRAPH, ChunkType.PARAGRAPH]
        assert segments[0].payload.language == "JSON"
        assert segments[0].content == '{"a": 1}'
        assert [s.content for s in segments[1:]] == ["After the block.", "More prose."]
        assert match_all_caps_heading(["```JSON"], 0, DetectionContext()) is None

    def test_indented_code_with_indicators(self):
        """Test that indented lines with code indicators become a code block."""
        segments = detect_segments("Intro:\n\n    def add(a, b):\n        return a + b\n")

        assert _types(segments) == [ChunkType.PARAGRAPH, ChunkType.CODE_BLOCK]
        code = segments[1]
        assert code.content == "def add(a, b):\n    return a + b"
        assert not code.payload.is_fenced
        assert {"def", "return", "call"} <= set(code.payload.code_indicators)
        assert code.confidence == 0.60

    def test_indented_code_allows_blank_lines_inside(self):
        """Test that blank lines inside indented code do not end the block."""
        text = "    x = compute(1);\n\n    y = compute(2);"
        segments = detect_segments(text)

        assert _types(segments) == [ChunkType.CODE_BLOCK]
        assert segments[0].content == "x = compute(1);\n\ny = compute(2);"

    def test_indented_prose_is_paragraph(self):
        """Test that indented prose without code indicators stays a paragraph."""
        segments = detect_segments("    just some indented words\n    and more words here")

        assert _types(segments) == [ChunkType.PARAGRAPH]
        assert segments[0].content == "just some indented words and more words here"


class TestParagraphs:
    """Paragraph fallback and its stopping rules."""

    def test_lines_joined_until_blank(self):
        """Test that consecutive lines join into one paragraph."""
        segments = detect_segments("first line\nsecond line\n\nnext")

        assert [s.content for s in segments] == ["first line second line", "next"]
        assert segments[0].payload.detection_method == ParagraphDetection.DOUBLE_NEWLINE

    def test_paragraph_stops_at_heading(self):
        """Test that a heading line ends the running paragraph."""
        segments = detect_segments("Some text here\n# Heading\nMore")

        assert _types(segments) == [ChunkType.PARAGRAPH, ChunkType.SECTION, ChunkType.PARAGRAPH]

    def test_sentence_completion_method(self):
        """Test that a paragraph ending on a terminator records sentence completion."""
        segments = detect_segments("Done here.\n- item")

        assert segments[0].payload.detection_method == ParagraphDetection.SENTENCE_COMPLETION

    def test_indentation_change_method(self):
        """Test that a paragraph ended by an indent change records it."""
        segments = detect_segments("Text\n    def f():\n        return 1")

        assert _types(segments) == [ChunkType.PARAGRAPH, ChunkType.CODE_BLOCK]
        assert segments[0].payload.detection_method == ParagraphDetection.INDENTATION_CHANGE

    def test_blank_input_has_no_segments(self):
        """Test that empty and whitespace-only input yields nothing."""
        assert detect_segments("") == []
        assert detect_segments("\n\n   \n") == []


class TestStrategyInjection:
    """Explicit strategy lists replace the defaults."""

    def test_only_injected_strategies_run(self):
        """Test that a detector with injected strategies ignores the defaults."""
        detector = StructuralDetector(strategies=[("prefixed_headings", match_prefixed_heading)])
        segments = detector.detect(["INTRODUCTION", "", "# Real"])

        sections = [s for s in segments if s.chunk_type == ChunkType.SECTION]
        assert [s.content for s in sections] == ["Real"]
