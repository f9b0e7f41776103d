"""
Memory processor middleware.

Intercepts the conversation before it is sent to the LLM and runs it through
the memory processor pipeline. The checkpointer still stores the complete
history; this middleware only affects what the LLM sees.
"""

import logging
from typing import Optional

from .config import MemoryConfig
from .content import ContentCache
from .pipeline import MemoryPipeline, build_pipeline
from .processors import ProcessorOptions
from .token_budget import estimate_tokens

logger = logging.getLogger(__name__)


class MemoryMiddleware:
    """
    Memory processor middleware.

    Usage:
        middleware = MemoryMiddleware(config, model_name=model_name)
        filtered = middleware.apply(messages, thread_id)
        # Send filtered messages to LLM instead of full history
    """

    def __init__(
        self,
        config: Optional[MemoryConfig] = None,
        pipeline: Optional[MemoryPipeline] = None,
        model_name: str = "",
        system_prompt: str = "",
        cache: Optional[ContentCache] = None,
    ):
        self.config = config or MemoryConfig()
        self.model_name = model_name
        self.system_prompt_tokens = estimate_tokens(system_prompt)
        self.pipeline = pipeline or build_pipeline(
            self.config,
            model_name=model_name,
            system_prompt_tokens=self.system_prompt_tokens,
            cache=cache,
        )

    def apply(
        self,
        messages: list,
        thread_id: str = "default",
        resource_id: Optional[str] = None,
    ) -> list:
        """
        Run the pipeline over ``messages``.

        Returns a new list; the original list and its messages are not modified.
        """
        if not messages:
            return messages

        opts = ProcessorOptions(thread_id=thread_id, resource_id=resource_id)
        result = self.pipeline.process(messages, opts)

        logger.info(
            "Memory pipeline kept %d of %d messages for thread %s",
            len(result),
            len(messages),
            thread_id,
        )
        return result
