from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import InvalidConfigurationError


class OutputFormat(str, Enum):
    FLAT = "flat"
    HIERARCHICAL = "hierarchical"
    LEAVES_ONLY = "leaves_only"


class TokenCountingMethod(str, Enum):
    CHARACTER = "character"
    TIKTOKEN = "tiktoken"


class DetectorOptions(BaseModel):
    """Per-heuristic switches for the structural detector."""

    underlined_headings: bool = True
    numbered_sections: bool = True
    all_caps_headings: bool = True
    prefixed_headings: bool = True
    list_items: bool = True
    fenced_code: bool = True
    indented_code: bool = True
    list_indent_step: int = Field(default=2, gt=0)


class ChunkingOptions(BaseModel):
    """Engine-facing options for one chunking call."""

    max_tokens: int = 512
    overlap_tokens: int = 50
    token_counter: TokenCountingMethod = TokenCountingMethod.CHARACTER
    tokenizer_encoding: str = "cl100k_base"
    output_format: OutputFormat = OutputFormat.FLAT
    validate_chunks: bool = True
    include_quality_metrics: bool = True
    detector: DetectorOptions = Field(default_factory=DetectorOptions)

    def check(self) -> "ChunkingOptions":
        """Fail fast on unusable token limits."""
        check_token_limits(self.max_tokens, self.overlap_tokens)
        return self


def check_token_limits(max_tokens: int, overlap_tokens: int) -> None:
    if max_tokens <= 0:
        raise InvalidConfigurationError(f"max_tokens must be positive, got {max_tokens}")
    if overlap_tokens < 0:
        raise InvalidConfigurationError(
            f"overlap_tokens must be non-negative, got {overlap_tokens}"
        )
    if overlap_tokens >= max_tokens:
        raise InvalidConfigurationError(
            f"overlap_tokens ({overlap_tokens}) must be less than max_tokens ({max_tokens})"
        )


PRESETS: Dict[str, Dict[str, Any]] = {
    "openai_embeddings": {
        "max_tokens": 512,
        "overlap_tokens": 50,
        "token_counter": TokenCountingMethod.TIKTOKEN,
        "tokenizer_encoding": "cl100k_base",
    },
    "cohere_embeddings": {"max_tokens": 256, "overlap_tokens": 25},
    "azure_ai_search": {"max_tokens": 1024, "overlap_tokens": 100},
    "rag": {"max_tokens": 512, "overlap_tokens": 100},
}


def preset(name: str) -> ChunkingOptions:
    """Return the named preset as a fresh options object."""
    try:
        values = PRESETS[name]
    except KeyError:
        raise InvalidConfigurationError(
            f"Unknown preset '{name}'. Available: {', '.join(sorted(PRESETS))}"
        ) from None
    return ChunkingOptions(**values)


class Settings(BaseSettings):
    # Token budget
    CHUNK_MAX_TOKENS: int = 512
    CHUNK_OVERLAP_TOKENS: int = 50
    CHUNK_PRESET: Optional[str] = None  # overrides the two limits above

    # Token counting
    TOKEN_COUNTER: TokenCountingMethod = TokenCountingMethod.CHARACTER
    TOKENIZER_ENCODING: str = "cl100k_base"

    # Structural detector
    LIST_INDENT_STEP: int = Field(default=2, gt=0)
    DETECT_UNDERLINED_HEADINGS: bool = True
    DETECT_NUMBERED_SECTIONS: bool = True
    DETECT_ALL_CAPS_HEADINGS: bool = True
    DETECT_PREFIXED_HEADINGS: bool = True
    DETECT_LIST_ITEMS: bool = True
    DETECT_FENCED_CODE: bool = True
    DETECT_INDENTED_CODE: bool = True

    # Output
    OUTPUT_FORMAT: OutputFormat = OutputFormat.FLAT
    VALIDATE_CHUNKS: bool = True

    # Observability
    LOG_FORMAT: str = "auto"  # json|plain|auto
    LOG_LEVEL: str = "info"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @classmethod
    def load_config(cls, config_file: Optional[str] = None) -> "Settings":
        """Load settings with config file -> env -> CLI precedence."""
        config_data: Dict[str, Any] = {}

        if config_file:
            config_path: Optional[Path] = Path(config_file)
        else:
            # Auto-discover .chunktree.{yaml,yml,toml}
            for ext in ["yaml", "yml", "toml"]:
                config_path = Path(f".chunktree.{ext}")
                if config_path.exists():
                    break
            else:
                config_path = None

        if config_path and config_path.exists():
            if config_path.suffix in [".yaml", ".yml"]:
                import yaml  # type: ignore[import-untyped]

                with open(config_path) as f:
                    config_data = yaml.safe_load(f) or {}
            elif config_path.suffix == ".toml":
                import tomllib

                with open(config_path, "rb") as f:
                    config_data = tomllib.load(f)

        # File values only fill gaps; environment variables win
        from_env = cls()
        merged: Dict[str, Any] = {
            key.upper(): value
            for key, value in config_data.items()
            if key.upper() in cls.model_fields
        }
        merged.update({name: getattr(from_env, name) for name in from_env.model_fields_set})
        return cls(**merged)

    def to_options(self) -> ChunkingOptions:
        """Build engine options from these settings."""
        if self.CHUNK_PRESET:
            options = preset(self.CHUNK_PRESET)
        else:
            options = ChunkingOptions(
                max_tokens=self.CHUNK_MAX_TOKENS,
                overlap_tokens=self.CHUNK_OVERLAP_TOKENS,
                token_counter=self.TOKEN_COUNTER,
                tokenizer_encoding=self.TOKENIZER_ENCODING,
            )
        options.output_format = self.OUTPUT_FORMAT
        options.validate_chunks = self.VALIDATE_CHUNKS
        options.detector = DetectorOptions(
            underlined_headings=self.DETECT_UNDERLINED_HEADINGS,
            numbered_sections=self.DETECT_NUMBERED_SECTIONS,
            all_caps_headings=self.DETECT_ALL_CAPS_HEADINGS,
            prefixed_headings=self.DETECT_PREFIXED_HEADINGS,
            list_items=self.DETECT_LIST_ITEMS,
            fenced_code=self.DETECT_FENCED_CODE,
            indented_code=self.DETECT_INDENTED_CODE,
            list_indent_step=self.LIST_INDENT_STEP,
        )
        return options.check()
