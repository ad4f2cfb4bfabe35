"""
Heuristic structure detection for plain text.

Each heuristic is a pure function ``match_*(lines, index, context)`` that
returns ``(segment, lines_consumed)`` or ``None``. ``StructuralDetector``
tries them in priority order, first match wins, and advances its own index.
Paragraph is the fallback and always matches.
"""

from __future__ import annotations

import re
import textwrap
from typing import Callable, List, NamedTuple, Optional, Sequence, Tuple

from ..core.config import DetectorOptions
from ..core.errors import ChunkingCancelledError
from ..core.logging import log
from ..core.models import (
    ChunkType,
    CodeBlockPayload,
    HeadingHeuristic,
    ListItemPayload,
    ListType,
    ParagraphDetection,
    ParagraphPayload,
    SectionPayload,
    Segment,
)
from .boundaries import SENTENCE_TERMINALS, ends_with_sentence_terminal

NUMBERED_SECTION = re.compile(r"^(?P<numbering>\d+(?:\.\d+)*)\.?\s+(?P<text>.+)$")
PREFIXED_HEADING = re.compile(r"^(?P<prefix>#+)\s+(?P<text>.+)$")
BULLET_ITEM = re.compile(r"^(?P<marker>[-*•])\s+(?P<text>.+)$")
ORDERED_ITEM = re.compile(r"^(?P<marker>\d+[.)]|[a-zA-Z][.)])\s+(?P<text>.+)$")
FENCE_OPEN = re.compile(r"^```[ \t]*(?P<language>[^\s`]+)?[ \t]*$")
FENCE_CLOSE = re.compile(r"^```+$")

CODE_CALL = re.compile(r"\b[A-Za-z_]\w*\s*[({]")
CODE_STATEMENT_END = re.compile(r";\s*$", re.MULTILINE)
CODE_KEYWORDS = (
    "def",
    "class",
    "function",
    "return",
    "import",
    "var",
    "let",
    "const",
    "public",
    "private",
    "if",
    "for",
    "while",
)
CODE_KEYWORD_LINE = re.compile(
    r"^\s*(?P<keyword>" + "|".join(CODE_KEYWORDS) + r")\b", re.MULTILINE
)

MAX_HEADING_CHARS = 100
MIN_ALL_CAPS_CHARS = 4
MIN_UNDERLINE_CHARS = 3
UNDERLINE_TOLERANCE = 0.2
CODE_INDENT = 4
TAB_WIDTH = 4
MAX_HEADING_LEVEL = 6


class DetectionContext(NamedTuple):
    """What a heuristic may know about the lines already consumed."""

    previous_line: Optional[str] = None
    previous_type: Optional[ChunkType] = None
    indent_step: int = 2


Match = Tuple[Segment, int]
Heuristic = Callable[[Sequence[str], int, DetectionContext], Optional[Match]]


def indentation(line: str) -> int:
    """Leading whitespace width, a tab counting as four spaces."""
    width = 0
    for char in line:
        if char == " ":
            width += 1
        elif char == "\t":
            width += TAB_WIDTH
        else:
            break
    return width


def _heading(
    text: str, level: int, heuristic: HeadingHeuristic, confidence: float, index: int, consumed: int
) -> Match:
    segment = Segment(
        chunk_type=ChunkType.SECTION,
        content=text,
        payload=SectionPayload(
            heading_level=level, heuristic=heuristic, confidence=confidence
        ),
        specific_type=f"Heading{level}",
        tags=["heading", f"level{level}", heuristic.value],
        line_start=index,
        line_count=consumed,
    )
    return segment, consumed


# -- headings --------------------------------------------------------------


def match_underlined_heading(
    lines: Sequence[str], index: int, context: DetectionContext
) -> Optional[Match]:
    """Heading text followed by a line of ``=`` (level 1) or ``-`` (level 2)."""
    if index + 1 >= len(lines):
        return None

    text = lines[index].strip()
    underline = lines[index + 1].strip()
    if not text or not underline:
        return None
    if set(text) <= {"=", "-"}:
        return None

    char = underline[0]
    if char not in "=-" or set(underline) != {char}:
        return None
    if len(underline) < MIN_UNDERLINE_CHARS:
        return None
    if abs(len(underline) - len(text)) > UNDERLINE_TOLERANCE * len(text):
        return None

    if char == "=":
        return _heading(text, 1, HeadingHeuristic.UNDERLINED, 0.95, index, 2)
    return _heading(text, 2, HeadingHeuristic.UNDERLINED, 0.90, index, 2)


def _single_number_is_heading(text: str, context: DetectionContext) -> bool:
    # "1. Foo" is ambiguous with an ordered list; require heading-like text
    if context.previous_line is not None and context.previous_line.strip().endswith(":"):
        return False
    if context.previous_type is ChunkType.LIST_ITEM:
        return False
    if not text[:1].isupper():
        return False
    if len(text) > MAX_HEADING_CHARS:
        return False
    return not text.rstrip().endswith(SENTENCE_TERMINALS)


def match_numbered_section(
    lines: Sequence[str], index: int, context: DetectionContext
) -> Optional[Match]:
    """``1 Intro``, ``1.2 Scope``, ``1.2.3. Details``; level is dots + 1."""
    match = NUMBERED_SECTION.match(lines[index].strip())
    if not match:
        return None

    text = match.group("text").strip()
    level = match.group("numbering").count(".") + 1
    if level == 1 and not _single_number_is_heading(text, context):
        return None

    level = min(level, MAX_HEADING_LEVEL)
    return _heading(text, level, HeadingHeuristic.NUMBERED, 0.85, index, 1)


def match_all_caps_heading(
    lines: Sequence[str], index: int, context: DetectionContext
) -> Optional[Match]:
    text = lines[index].strip()
    if not MIN_ALL_CAPS_CHARS <= len(text) <= MAX_HEADING_CHARS:
        return None
    # ```JSON opens a fence, not a heading
    if FENCE_OPEN.match(text):
        return None

    letters = [c for c in text if c.isalpha()]
    if not letters or not all(c.isupper() for c in letters):
        return None
    if len(letters) <= len(text) * 0.5:
        return None

    return _heading(text, 1, HeadingHeuristic.ALL_CAPS, 0.70, index, 1)


def match_prefixed_heading(
    lines: Sequence[str], index: int, context: DetectionContext
) -> Optional[Match]:
    match = PREFIXED_HEADING.match(lines[index].strip())
    if not match:
        return None

    level = min(len(match.group("prefix")), MAX_HEADING_LEVEL)
    return _heading(
        match.group("text").strip(), level, HeadingHeuristic.PREFIXED, 0.75, index, 1
    )


# -- lists -----------------------------------------------------------------


def match_list_item(
    lines: Sequence[str], index: int, context: DetectionContext
) -> Optional[Match]:
    """Bullet (``-``, ``*``, ``•``) or ordered (``1.``, ``2)``, ``a.``) item."""
    line = lines[index]
    trimmed = line.strip()
    nesting_level = indentation(line) // context.indent_step

    bullet = BULLET_ITEM.match(trimmed)
    if bullet:
        payload = ListItemPayload(
            list_type=ListType.BULLET,
            marker=bullet.group("marker"),
            nesting_level=nesting_level,
            is_ordered=False,
            confidence=0.85,
        )
        text = bullet.group("text").strip()
    else:
        ordered = ORDERED_ITEM.match(trimmed)
        if not ordered:
            return None
        payload = ListItemPayload(
            list_type=ListType.NUMBERED,
            marker=ordered.group("marker"),
            nesting_level=nesting_level,
            is_ordered=True,
            confidence=0.80,
        )
        text = ordered.group("text").strip()

    segment = Segment(
        chunk_type=ChunkType.LIST_ITEM,
        content=text,
        payload=payload,
        specific_type="ListItem",
        tags=["list-item", payload.list_type.value],
        line_start=index,
        line_count=1,
    )
    return segment, 1


# -- code ------------------------------------------------------------------


def code_indicators(code: str) -> List[str]:
    """Code-like tokens present in ``code``; empty means it reads like prose."""
    indicators = sorted({m.group("keyword") for m in CODE_KEYWORD_LINE.finditer(code)})
    if CODE_CALL.search(code):
        indicators.append("call")
    if CODE_STATEMENT_END.search(code):
        indicators.append("semicolon")
    return indicators


def match_fenced_code(
    lines: Sequence[str], index: int, context: DetectionContext
) -> Optional[Match]:
    """Triple-backtick block; runs to the closing fence or end of input."""
    opening = FENCE_OPEN.match(lines[index].strip())
    if not opening:
        return None

    language = opening.group("language")
    code_lines: List[str] = []
    cursor = index + 1
    closed = False
    while cursor < len(lines):
        if FENCE_CLOSE.match(lines[cursor].strip()):
            closed = True
            cursor += 1
            break
        code_lines.append(lines[cursor])
        cursor += 1

    if not closed:
        log.debug("detect.fence_unclosed", line=index)

    segment = Segment(
        chunk_type=ChunkType.CODE_BLOCK,
        content="\n".join(code_lines),
        payload=CodeBlockPayload(
            language=language,
            is_fenced=True,
            indentation_level=0,
            confidence=1.0,
        ),
        specific_type="CodeBlock",
        tags=["code", language or "unknown"],
        line_start=index,
        line_count=cursor - index,
    )
    return segment, cursor - index


def match_indented_code(
    lines: Sequence[str], index: int, context: DetectionContext
) -> Optional[Match]:
    """Two or more lines indented by 4+ spaces (or a tab) that look like code."""
    if indentation(lines[index]) < CODE_INDENT:
        return None

    block: List[str] = []
    cursor = index
    while cursor < len(lines):
        line = lines[cursor]
        if not line.strip():
            block.append("")
        elif indentation(line) >= CODE_INDENT:
            block.append(line)
        else:
            break
        cursor += 1

    while block and not block[-1]:
        block.pop()

    code_lines = [line for line in block if line]
    if len(code_lines) < 2:
        return None

    code = textwrap.dedent("\n".join(block))
    indicators = code_indicators(code)
    if not indicators:
        return None

    segment = Segment(
        chunk_type=ChunkType.CODE_BLOCK,
        content=code,
        payload=CodeBlockPayload(
            language=None,
            is_fenced=False,
            indentation_level=min(indentation(line) for line in code_lines),
            code_indicators=indicators,
            confidence=0.60,
        ),
        specific_type="CodeBlock",
        tags=["code", "indented"],
        line_start=index,
        line_count=len(block),
    )
    return segment, len(block)


# -- registry --------------------------------------------------------------

# Priority order; paragraph is the implicit fallback
DEFAULT_STRATEGIES: List[Tuple[str, Heuristic]] = [
    ("underlined_headings", match_underlined_heading),
    ("numbered_sections", match_numbered_section),
    ("all_caps_headings", match_all_caps_heading),
    ("prefixed_headings", match_prefixed_heading),
    ("list_items", match_list_item),
    ("fenced_code", match_fenced_code),
    ("indented_code", match_indented_code),
]


def strategies_for(options: DetectorOptions) -> List[Tuple[str, Heuristic]]:
    """The default strategies minus those switched off in ``options``."""
    return [(name, fn) for name, fn in DEFAULT_STRATEGIES if getattr(options, name, True)]


class StructuralDetector:
    """Classify a line stream into headings, list items, code and paragraphs."""

    def __init__(
        self,
        options: Optional[DetectorOptions] = None,
        strategies: Optional[List[Tuple[str, Heuristic]]] = None,
    ):
        self.options = options or DetectorOptions()
        self.strategies = (
            strategies if strategies is not None else strategies_for(self.options)
        )

    def _context(self, previous_line: Optional[str], previous_type: Optional[ChunkType]):
        return DetectionContext(previous_line, previous_type, self.options.list_indent_step)

    def _try_strategies(
        self, lines: Sequence[str], index: int, context: DetectionContext
    ) -> Optional[Match]:
        for _name, heuristic in self.strategies:
            match = heuristic(lines, index, context)
            if match is not None:
                return match
        return None

    def match_paragraph(
        self, lines: Sequence[str], index: int, context: DetectionContext
    ) -> Match:
        """Join non-blank lines until a blank line or another block begins."""
        collected: List[str] = []
        cursor = index
        method = ParagraphDetection.DOUBLE_NEWLINE

        while cursor < len(lines):
            line = lines[cursor]
            if not line.strip():
                break
            if cursor > index:
                follow_context = self._context(lines[cursor - 1], ChunkType.PARAGRAPH)
                if self._try_strategies(lines, cursor, follow_context) is not None:
                    if indentation(line) != indentation(lines[cursor - 1]):
                        method = ParagraphDetection.INDENTATION_CHANGE
                    elif ends_with_sentence_terminal(collected[-1]):
                        method = ParagraphDetection.SENTENCE_COMPLETION
                    break
            collected.append(line.strip())
            cursor += 1

        consumed = cursor - index
        segment = Segment(
            chunk_type=ChunkType.PARAGRAPH,
            content=" ".join(collected),
            payload=ParagraphPayload(detection_method=method),
            specific_type="Paragraph",
            tags=["paragraph"],
            line_start=index,
            line_count=consumed,
        )
        return segment, consumed

    def detect(
        self,
        lines: Sequence[str],
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> List[Segment]:
        segments: List[Segment] = []
        previous_line: Optional[str] = None
        previous_type: Optional[ChunkType] = None
        index = 0

        while index < len(lines):
            if should_cancel is not None and should_cancel():
                raise ChunkingCancelledError("Structure detection cancelled")

            line = lines[index]
            if not line.strip():
                # Keep previous_type so lists continue across blank lines
                previous_line = line
                index += 1
                continue

            context = self._context(previous_line, previous_type)
            match = self._try_strategies(lines, index, context)
            if match is None:
                match = self.match_paragraph(lines, index, context)

            segment, consumed = match
            segments.append(segment)
            previous_line = lines[index + consumed - 1]
            previous_type = segment.chunk_type
            index += consumed

        log.debug(
            "detect.complete",
            lines=len(lines),
            segments=len(segments),
            headings=sum(1 for s in segments if s.chunk_type is ChunkType.SECTION),
        )
        return segments


def detect_segments(
    text_or_lines: str | Sequence[str], options: Optional[DetectorOptions] = None
) -> List[Segment]:
    """Convenience wrapper: classify ``text`` (or pre-split lines)."""
    if isinstance(text_or_lines, str):
        lines = text_or_lines.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    else:
        lines = list(text_or_lines)
    return StructuralDetector(options).detect(lines)
