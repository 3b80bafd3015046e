# repochat/core/token_counter.py
from functools import lru_cache
from typing import Optional, Any

import tiktoken
from loguru import logger

DEFAULT_ENCODING = "cl100k_base" # Close enough for both providers' models
FALLBACK_ENCODING = "gpt2"
CHARS_PER_TOKEN = 4

@lru_cache(maxsize=4)
def _get_cached_encoder(encoding_name: str) -> Optional[Any]:
    """Loads and caches an encoder. Returns None when no encoding can be loaded."""
    try:
        logger.debug(f"Loading tiktoken encoder: {encoding_name}")
        return tiktoken.get_encoding(encoding_name)
    except Exception as e:
        # Encodings are downloaded on first use, so this fails offline
        logger.warning(f"Failed to get tiktoken encoder '{encoding_name}': {e}")
        if encoding_name == FALLBACK_ENCODING:
            logger.error(f"Fallback encoder '{FALLBACK_ENCODING}' also failed. Token counts will be estimated.")
            return None
        return _get_cached_encoder(FALLBACK_ENCODING)

def estimate_tokens(text: str) -> int:
    return len(text) // CHARS_PER_TOKEN

def count_tokens(text: str, encoding_name: str = DEFAULT_ENCODING) -> int:
    """
    Counts tokens in a string with tiktoken.
    Falls back to a character-based estimate if no encoder is available.
    """
    if not text:
        return 0

    encoder = _get_cached_encoder(encoding_name)
    if encoder is None:
        return estimate_tokens(text)

    try:
        # Repository files may contain special-token lookalikes such as <|endoftext|>
        return len(encoder.encode(text, disallowed_special=()))
    except Exception as e:
        logger.error(f"Error encoding text for token count with '{encoding_name}': {e}")
        return estimate_tokens(text)
