"""Exception taxonomy for the chunking engine."""


class ChunkingError(Exception):
    """Base class for fatal chunking errors."""


class StructuralCycleError(ChunkingError):
    """Raised when a parent walk exceeds the safety ceiling."""

    def __init__(self, chunk_id: str, steps: int):
        self.chunk_id = chunk_id
        self.steps = steps
        super().__init__(
            f"Circular reference detected in chunk hierarchy for chunk {chunk_id} "
            f"(walk exceeded {steps} steps)"
        )


class InvalidConfigurationError(ChunkingError, ValueError):
    """Raised at entry when token limits are unusable."""


class ChunkingCancelledError(ChunkingError):
    """Raised when the host requests cancellation between segments."""
