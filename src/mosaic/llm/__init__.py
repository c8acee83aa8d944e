"""LLM client abstraction."""

from mosaic.llm.client import Completion, CompletionOptions, LLMClient, LLMProvider

__all__ = ["Completion", "CompletionOptions", "LLMClient", "LLMProvider"]
