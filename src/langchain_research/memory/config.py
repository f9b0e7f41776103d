"""
Memory processor configuration and model context window mappings.
"""

import os
from dataclasses import dataclass, field

from dotenv import find_dotenv, load_dotenv

# Model → context window size (tokens)
MODEL_CONTEXT_WINDOWS: dict[str, int] = {
    # Google
    "gemini-2.5-flash": 1_048_576,
    "gemini-2.5-pro": 1_048_576,
    "gemini-2.0-flash": 1_048_576,
    # Anthropic
    "claude-sonnet-4-5-20250929": 200_000,
    "claude-sonnet-4-20250514": 200_000,
    "claude-3-5-sonnet": 200_000,
    # OpenAI compatible
    "gpt-4o": 128_000,
    "gpt-4o-mini": 128_000,
}

DEFAULT_CONTEXT_WINDOW = 128_000

DEFAULT_MAX_TOKENS = 1_000_000

# Stage order used by the research agents' memory
DEFAULT_PROCESSORS: list[str] = [
    "personalization",
    "token_limiter",
    "reliability",
    "citation",
    "deduplicator",
    "knowledge_graph",
    "uncertainty",
    "temporal",
    "belief",
    "hierarchical",
    "multi_perspective",
]

DEFAULT_VIEWPOINTS: list[str] = [
    "researcher",
    "analyst",
    "programmer",
    "designer",
    "developer",
    "manager",
    "product_owner",
    "stakeholder",
    "user",
    "customer",
]


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name, "")
    if not raw.strip():
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class MemoryConfig:
    """Configuration for the memory processor pipeline."""

    # Context window (0 = auto-detect from model name)
    context_window: int = 0

    # Token limiter budget (0 = derive from the model context window)
    max_tokens: int = DEFAULT_MAX_TOKENS
    safety_margin: float = 0.10

    # Hierarchical filter: minimum length-based relevance
    hierarchical_threshold: float = 0.7

    # Keyword stages
    preferences: list[str] = field(default_factory=lambda: ["any"])
    viewpoints: list[str] = field(default_factory=lambda: list(DEFAULT_VIEWPOINTS))

    # Circuit breaker around the reliability filter
    failure_threshold: int = 3
    recovery_timeout_ms: int = 30_000

    # Stage names, in pipeline order
    processors: list[str] = field(default_factory=lambda: list(DEFAULT_PROCESSORS))

    @classmethod
    def from_env(cls) -> "MemoryConfig":
        """Load configuration from environment variables (and .env, if any)."""
        load_dotenv(find_dotenv(usecwd=True), override=False)
        return cls(
            context_window=int(os.getenv("MEMORY_CONTEXT_WINDOW", "0")),
            max_tokens=int(os.getenv("MEMORY_MAX_TOKENS", str(DEFAULT_MAX_TOKENS))),
            hierarchical_threshold=float(
                os.getenv("MEMORY_HIERARCHICAL_THRESHOLD", "0.7")
            ),
            preferences=_env_list("MEMORY_PREFERENCES", ["any"]),
            viewpoints=_env_list("MEMORY_VIEWPOINTS", DEFAULT_VIEWPOINTS),
            failure_threshold=int(os.getenv("MEMORY_BREAKER_FAILURE_THRESHOLD", "3")),
            recovery_timeout_ms=int(
                os.getenv("MEMORY_BREAKER_RECOVERY_TIMEOUT_MS", "30000")
            ),
            processors=_env_list("MEMORY_PROCESSORS", DEFAULT_PROCESSORS),
        )

    def get_context_window(self, model_name: str) -> int:
        """Resolve context window size from config or model name."""
        if self.context_window > 0:
            return self.context_window
        # Try exact match first, then prefix match
        if model_name in MODEL_CONTEXT_WINDOWS:
            return MODEL_CONTEXT_WINDOWS[model_name]
        for key, size in MODEL_CONTEXT_WINDOWS.items():
            if model_name and (model_name.startswith(key) or key.startswith(model_name)):
                return size
        return DEFAULT_CONTEXT_WINDOW
