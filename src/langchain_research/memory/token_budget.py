"""
Token estimation and history budget calculation.
"""

from typing import Optional

from .config import MemoryConfig
from .content import ContentCache, extract_content

# Characters per estimation window
TOKEN_WINDOW_CHARS = 64


def estimate_tokens(text: str) -> int:
    """
    Rough token estimate: ~4 chars per token.

    The string is walked in 64-character windows and each window contributes
    ceil(len / 4), so a trailing partial window rounds up on its own.
    """
    if not text:
        return 0
    tokens = 0
    for i in range(0, len(text), TOKEN_WINDOW_CHARS):
        window = text[i:i + TOKEN_WINDOW_CHARS]
        tokens += -(-len(window) // 4)
    return tokens


def estimate_message_tokens(msg, cache: Optional[ContentCache] = None) -> int:
    """Estimate tokens for a message from its extracted content."""
    return estimate_tokens(extract_content(msg, cache))


def calculate_budget(
    config: MemoryConfig,
    model_name: str,
    system_prompt_tokens: int = 0,
) -> int:
    """
    Token budget available for conversation history.

    Available = context_window * (1 - safety_margin) - system_prompt - output_reserve
    """
    context_window = config.get_context_window(model_name)

    # Reserve space for safety margin and output (20% for output, capped at 16k)
    usable = int(context_window * (1 - config.safety_margin))
    output_reserve = min(int(context_window * 0.2), 16000)
    return max(usable - system_prompt_tokens - output_reserve, 0)
