"""
Chunktree Chunking Package

Heuristic structure detection, hierarchy building and token-bounded
splitting with overlap for plain text and extractor output.
"""

from .assurance import build_chunk_assurance, compute_statistics
from .detector import StructuralDetector, detect_segments
from .engine import ChunkingEngine, chunk_text, link_segments, process_chunks
from .hierarchy import build_hierarchy, populate_children
from .splitter import TokenBoundedSplitter
from .tokens import create_token_counter
from .validator import ChunkValidator, validate

__all__ = [
    "ChunkingEngine",
    "ChunkValidator",
    "StructuralDetector",
    "TokenBoundedSplitter",
    "build_chunk_assurance",
    "build_hierarchy",
    "chunk_text",
    "compute_statistics",
    "create_token_counter",
    "detect_segments",
    "link_segments",
    "populate_children",
    "process_chunks",
    "validate",
]
