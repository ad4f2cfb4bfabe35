"""Global test configuration for chunktree tests."""

import pytest
import structlog

from chunktree.chunking.tokens import WordTokenCounter
from chunktree.core.models import Chunk, ChunkType, ParagraphPayload, SectionPayload


@pytest.fixture
def word_counter():
    """One token per word keeps expected sizes easy to compute by hand."""
    return WordTokenCounter()


@pytest.fixture
def make_section():
    def _make(content="Heading", id=None, parent_id=None, level=1, **kwargs):
        fields = {"chunk_type": ChunkType.SECTION, "content": content, "parent_id": parent_id}
        if id is not None:
            fields["id"] = id
        fields["payload"] = SectionPayload(heading_level=level)
        fields.update(kwargs)
        return Chunk(**fields)

    return _make


@pytest.fixture
def make_paragraph():
    def _make(content="Some text.", id=None, parent_id=None, **kwargs):
        fields = {"chunk_type": ChunkType.PARAGRAPH, "content": content, "parent_id": parent_id}
        if id is not None:
            fields["id"] = id
        fields["payload"] = ParagraphPayload()
        fields.update(kwargs)
        return Chunk(**fields)

    return _make


@pytest.fixture(autouse=True)
def isolated_settings_env(monkeypatch):
    """Keep host environment variables out of Settings."""
    for name in (
        "CHUNK_MAX_TOKENS",
        "CHUNK_OVERLAP_TOKENS",
        "CHUNK_PRESET",
        "TOKEN_COUNTER",
        "OUTPUT_FORMAT",
        "LOG_FORMAT",
        "LOG_LEVEL",
        "LIST_INDENT_STEP",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_logging():
    """Loggers configured in one test must not write to another test's streams."""
    yield
    structlog.reset_defaults()
