"""
Token-counting capability.

The engine treats token counting as an opaque, pure cost function: anything
with a ``count_tokens(text) -> int`` method will do.
"""

import math
from typing import Callable, Dict, Protocol, runtime_checkable

import tiktoken

from ..core.config import ChunkingOptions, TokenCountingMethod
from ..core.errors import InvalidConfigurationError

CHARS_PER_TOKEN = 4


@runtime_checkable
class TokenCounter(Protocol):
    def count_tokens(self, text: str) -> int: ...


class CharacterTokenCounter:
    """Estimates tokens as ceil(characters / 4)."""

    def __init__(self, chars_per_token: int = CHARS_PER_TOKEN):
        if chars_per_token <= 0:
            raise InvalidConfigurationError("chars_per_token must be positive")
        self.chars_per_token = chars_per_token

    def count_tokens(self, text: str) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self.chars_per_token)


class WordTokenCounter:
    """One token per whitespace-delimited word."""

    def count_tokens(self, text: str) -> int:
        return len(text.split())


class TiktokenCounter:
    """Counts tokens with a tiktoken encoding (cl100k_base by default)."""

    def __init__(self, encoding_name: str = "cl100k_base"):
        self.encoding_name = encoding_name
        self._encoding = tiktoken.get_encoding(encoding_name)

    def count_tokens(self, text: str) -> int:
        if not text:
            return 0
        return len(self._encoding.encode(text, disallowed_special=()))


class CallableTokenCounter:
    """Adapts a plain ``f(text) -> int`` function to the counter protocol."""

    def __init__(self, func: Callable[[str], int]):
        self._func = func

    def count_tokens(self, text: str) -> int:
        return self._func(text)


_FACTORIES: Dict[TokenCountingMethod, Callable[[str], TokenCounter]] = {
    TokenCountingMethod.CHARACTER: lambda _encoding: CharacterTokenCounter(),
    TokenCountingMethod.TIKTOKEN: lambda encoding: TiktokenCounter(encoding),
}


def create_token_counter(
    method: TokenCountingMethod | str, encoding_name: str = "cl100k_base"
) -> TokenCounter:
    """Build a token counter for the given method."""
    try:
        factory = _FACTORIES[TokenCountingMethod(method)]
    except ValueError:
        raise InvalidConfigurationError(
            f"Token counting method '{method}' is not supported"
        ) from None
    return factory(encoding_name)


def counter_for_options(options: ChunkingOptions) -> TokenCounter:
    return create_token_counter(options.token_counter, options.tokenizer_encoding)
