import uuid
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


def new_chunk_id() -> str:
    return str(uuid.uuid4())


class ChunkType(str, Enum):
    """Closed set of chunk variants."""

    SECTION = "section"
    PARAGRAPH = "paragraph"
    LIST_ITEM = "list_item"
    CODE_BLOCK = "code_block"
    QUOTE = "quote"
    TABLE = "table"
    IMAGE = "image"


# Variants that may own children in the materialized tree view
CONTAINER_TYPES = frozenset({ChunkType.SECTION})

# Variants whose text is subject to token-bounded splitting
CONTENT_TYPES = frozenset(
    {
        ChunkType.PARAGRAPH,
        ChunkType.LIST_ITEM,
        ChunkType.CODE_BLOCK,
        ChunkType.QUOTE,
        ChunkType.TABLE,
    }
)


class HeadingHeuristic(str, Enum):
    UNDERLINED = "underlined"
    NUMBERED = "numbered"
    ALL_CAPS = "all_caps"
    PREFIXED = "prefixed"


class ParagraphDetection(str, Enum):
    DOUBLE_NEWLINE = "double_newline"
    INDENTATION_CHANGE = "indentation_change"
    SENTENCE_COMPLETION = "sentence_completion"


class ListType(str, Enum):
    BULLET = "bullet"
    NUMBERED = "numbered"


class SectionPayload(BaseModel):
    kind: Literal["section"] = "section"
    heading_level: int = 1
    heuristic: HeadingHeuristic | None = None
    confidence: float = 1.0


class ParagraphPayload(BaseModel):
    kind: Literal["paragraph"] = "paragraph"
    detection_method: ParagraphDetection = ParagraphDetection.DOUBLE_NEWLINE


class ListItemPayload(BaseModel):
    kind: Literal["list_item"] = "list_item"
    list_type: ListType = ListType.BULLET
    marker: str = "-"
    nesting_level: int = 0
    is_ordered: bool = False
    confidence: float = 1.0


class CodeBlockPayload(BaseModel):
    kind: Literal["code_block"] = "code_block"
    language: str | None = None
    is_fenced: bool = False
    indentation_level: int = 0
    code_indicators: list[str] = []
    confidence: float = 1.0


class QuotePayload(BaseModel):
    kind: Literal["quote"] = "quote"
    attribution: str | None = None


class TablePayload(BaseModel):
    kind: Literal["table"] = "table"
    row_count: int = 0
    column_count: int = 0
    has_header: bool = False


class ImagePayload(BaseModel):
    kind: Literal["image"] = "image"
    alt_text: str | None = None
    source: str | None = None


ChunkPayload = Annotated[
    Union[
        SectionPayload,
        ParagraphPayload,
        ListItemPayload,
        CodeBlockPayload,
        QuotePayload,
        TablePayload,
        ImagePayload,
    ],
    Field(discriminator="kind"),
]


class QualityMetrics(BaseModel):
    token_count: int = 0
    character_count: int = 0
    word_count: int = 0
    semantic_completeness: float = 1.0  # 1.0 = ends on a complete sentence
    was_split: bool = False
    has_truncated_sentence: bool = False
    has_incomplete_table: bool = False


class Chunk(BaseModel):
    """A unit of document content with identity, hierarchy position and metrics.

    Shared fields live on the record; variant specific data lives in
    ``payload``, discriminated by its ``kind`` tag.
    """

    id: str = Field(default_factory=new_chunk_id)
    parent_id: str | None = None
    chunk_type: ChunkType
    specific_type: str = ""
    content: str = ""
    depth: int = 0
    ancestor_ids: list[str] = []
    sequence_number: int = 0
    quality_metrics: QualityMetrics | None = None
    payload: ChunkPayload | None = None
    tags: list[str] = []
    children: list[str] = []  # filled by populate_children for containers

    @property
    def is_container(self) -> bool:
        return self.chunk_type in CONTAINER_TYPES

    @property
    def is_content(self) -> bool:
        return self.chunk_type in CONTENT_TYPES

    @property
    def label(self) -> str:
        """Short human label used for hierarchy paths and tree dumps."""
        text = " ".join(self.content.split())
        if len(text) > 60:
            text = text[:57] + "..."
        return text or self.specific_type or self.chunk_type.value


class ValidationSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ValidationIssue(BaseModel):
    severity: ValidationSeverity
    code: str
    message: str
    chunk_id: str | None = None


class ValidationResult(BaseModel):
    is_valid: bool = True
    issues: list[ValidationIssue] = []
    has_orphaned_chunks: bool = False
    has_circular_references: bool = False
    has_invalid_hierarchy: bool = False
    oversized_chunk_ids: list[str] = []
    undersized_chunk_ids: list[str] = []

    def codes(self) -> list[str]:
        return [issue.code for issue in self.issues]


class Segment(BaseModel):
    """A classified run of input lines, not yet linked into a hierarchy."""

    chunk_type: ChunkType
    content: str
    payload: ChunkPayload | None = None
    specific_type: str = ""
    tags: list[str] = []
    line_start: int = 0
    line_count: int = 1

    @property
    def confidence(self) -> float:
        return getattr(self.payload, "confidence", 1.0)

    @property
    def heading_level(self) -> int:
        if isinstance(self.payload, SectionPayload):
            return self.payload.heading_level
        return 0


class ChunkingStatistics(BaseModel):
    total_chunks: int = 0
    structural_chunks: int = 0
    content_chunks: int = 0
    visual_chunks: int = 0
    table_chunks: int = 0
    split_chunks: int = 0
    max_depth: int = 0
    total_tokens: int = 0
    average_tokens_per_chunk: int = 0
    max_tokens_in_chunk: int = 0
    min_tokens_in_chunk: int = 0
    processing_time_ms: int = 0
    chunk_type_distribution: dict[str, int] = {}


class ChunkingWarning(BaseModel):
    code: str
    message: str
    level: ValidationSeverity = ValidationSeverity.WARNING


class ChunkingResult(BaseModel):
    chunks: list[Chunk] = []
    statistics: ChunkingStatistics = Field(default_factory=ChunkingStatistics)
    validation: ValidationResult | None = None
    warnings: list[ChunkingWarning] = []
    success: bool = True
