"""LLM client abstraction."""

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from mosaic.errors import ProviderError

logger = logging.getLogger(__name__)


@dataclass
class CompletionOptions:
    """Per-call overrides for a completion request."""

    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    response_format: Optional[str] = None  # "json" or None


@dataclass
class Completion:
    """Text completion returned by a provider."""

    content: str
    model: str = ""
    stop_reason: Optional[str] = None
    usage: dict[str, int] = field(default_factory=dict)
    raw_response: Any = None


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def complete(
        self, messages: list[dict], options: Optional[CompletionOptions] = None
    ) -> Completion:
        """
        Send a chat completion request.

        Messages use the OpenAI-style shape: ``role`` is one of system, user,
        assistant or tool; assistant turns may carry ``tool_calls`` and tool
        turns carry ``tool_call_id`` and ``name``.

        Args:
            messages: Conversation messages
            options: Optional per-call overrides

        Returns:
            Completion with the response text

        Raises:
            ProviderError: On transport, auth, or exhausted-retry failures
        """
        pass


def _to_anthropic_messages(messages: list[dict]) -> tuple[Optional[str], list[dict]]:
    """
    Convert OpenAI-style messages into Anthropic's system + user/assistant turns.

    Tool calls and tool results are rendered as text since no tool schemas are
    sent to the API. Consecutive turns with the same role are merged, and a
    leading user turn is inserted when the conversation opens with an
    assistant turn.
    """
    system_parts: list[str] = []
    turns: list[dict] = []

    for msg in messages:
        role = msg.get("role")
        content = msg.get("content") or ""

        if role == "system":
            if content:
                system_parts.append(content)
            continue

        if role == "tool":
            role = "user"
            name = msg.get("name", "tool")
            call_id = msg.get("tool_call_id", "")
            content = f"[Tool result {call_id} from {name}]\n{content}"
        elif role == "assistant" and msg.get("tool_calls"):
            calls = []
            for call in msg["tool_calls"]:
                function = call.get("function", {})
                calls.append(
                    f"[Tool call {call.get('id', '')}] "
                    f"{function.get('name', '')}({function.get('arguments', '{}')})"
                )
            content = "\n".join(filter(None, [content, *calls]))
        elif role != "assistant":
            role = "user"

        if not content:
            continue

        if turns and turns[-1]["role"] == role:
            turns[-1]["content"] += f"\n\n{content}"
        else:
            turns.append({"role": role, "content": content})

    if turns and turns[0]["role"] != "user":
        turns.insert(0, {"role": "user", "content": "Begin."})

    system = "\n\n".join(system_parts) if system_parts else None
    return system, turns


class AnthropicProvider(LLMProvider):
    """Anthropic Claude provider."""

    default_api_key_env = "ANTHROPIC_API_KEY"

    def __init__(self, config: dict) -> None:
        """
        Initialize Anthropic provider.

        Args:
            config: Provider configuration
        """
        self.config = config
        self.model = config.get("model", "claude-sonnet-4-20250514")
        self._configure(config)
        self.client = self._create_client()

        logger.info(f"Initialized Anthropic provider with model: {self.model}")

    def _configure(self, config: dict) -> None:
        """Read sampling, retry and throttle settings shared by all Anthropic providers."""
        self.max_tokens = config.get("max_tokens", 4096)
        self.temperature = config.get("temperature", 0.7)

        retry_config = config.get("retry", {})
        self.max_retries = retry_config.get("max_retries", 5)
        self.base_delay = retry_config.get("base_delay", 2.0)
        self.max_delay = retry_config.get("max_delay", 60.0)
        self.exponential_base = retry_config.get("exponential_base", 2.0)

        throttle_config = config.get("throttle", {})
        self.throttle_enabled = throttle_config.get("enabled", False)
        self.min_request_interval = throttle_config.get("min_request_interval", 0.5)
        self.last_request_time = 0.0

        api_key_env = config.get("api_key_env", self.default_api_key_env)
        self.api_key = os.getenv(api_key_env)
        if not self.api_key:
            raise ValueError(f"API key not found in environment variable: {api_key_env}")

    def _create_client(self, **kwargs: Any) -> Any:
        try:
            from anthropic import AsyncAnthropic
        except ImportError as e:
            raise ImportError(
                "anthropic package not installed. Install with: pip install anthropic"
            ) from e
        return AsyncAnthropic(api_key=self.api_key, **kwargs)

    async def _apply_throttle(self) -> None:
        """Apply request throttling if enabled."""
        if not self.throttle_enabled:
            return

        elapsed = time.time() - self.last_request_time
        if elapsed < self.min_request_interval:
            sleep_time = self.min_request_interval - elapsed
            logger.debug(f"Throttling: sleeping for {sleep_time:.2f}s")
            await asyncio.sleep(sleep_time)

        self.last_request_time = time.time()

    async def complete(
        self, messages: list[dict], options: Optional[CompletionOptions] = None
    ) -> Completion:
        """
        Send a completion request to the Anthropic API.

        Rate-limit (429) errors are retried with exponential backoff; any other
        error, or a rate limit that outlasts the retries, is raised as
        ProviderError.
        """
        options = options or CompletionOptions()
        await self._apply_throttle()

        system, turns = _to_anthropic_messages(messages)
        params: dict[str, Any] = {
            "model": self.model,
            "max_tokens": options.max_tokens or self.max_tokens,
            "temperature": (
                options.temperature if options.temperature is not None else self.temperature
            ),
            "messages": turns,
        }
        if system:
            params["system"] = system

        logger.debug(f"Calling Anthropic API with {len(turns)} messages")

        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.messages.create(**params)
            except Exception as e:
                is_rate_limit = self._is_rate_limit_error(e)

                if is_rate_limit and attempt < self.max_retries:
                    delay = min(self.base_delay * (self.exponential_base**attempt), self.max_delay)
                    retry_after = self._get_retry_after(e)
                    if retry_after:
                        delay = min(retry_after, self.max_delay)

                    logger.warning(
                        f"Rate limit error (429) on attempt {attempt + 1}/{self.max_retries + 1}. "
                        f"Retrying in {delay:.1f}s..."
                    )
                    await asyncio.sleep(delay)
                    continue

                if is_rate_limit:
                    logger.error(f"Rate limit error persisted after {self.max_retries} retries")
                else:
                    logger.error(f"Error calling Anthropic API: {e}", exc_info=True)
                raise ProviderError(f"Anthropic API error: {e}") from e

            text = "".join(
                getattr(block, "text", "")
                for block in response.content
                if getattr(block, "type", "text") == "text"
            )
            return Completion(
                content=text,
                model=response.model,
                stop_reason=response.stop_reason,
                usage={
                    "input_tokens": response.usage.input_tokens,
                    "output_tokens": response.usage.output_tokens,
                },
                raw_response=response,
            )

        raise ProviderError("Anthropic API request failed without a response")

    def _is_rate_limit_error(self, error: Exception) -> bool:
        """Check if error is a rate limit (429) error."""
        if "RateLimitError" in type(error).__name__:
            return True

        error_str = str(error).lower()
        return "429" in error_str or "rate limit" in error_str or "too many requests" in error_str

    def _get_retry_after(self, error: Exception) -> Optional[float]:
        """Extract retry-after value from error if available."""
        try:
            if hasattr(error, "response") and hasattr(error.response, "headers"):
                retry_after = error.response.headers.get("retry-after")
                if retry_after:
                    return float(retry_after)
        except (AttributeError, ValueError, TypeError):
            pass
        return None


class AzureAnthropicProvider(AnthropicProvider):
    """Azure-hosted Anthropic Claude provider.

    Uses the Anthropic SDK with a custom base_url; the deployment name is
    sent as the model.
    """

    default_api_key_env = "AZURE_ANTHROPIC_API_KEY"

    def __init__(self, config: dict) -> None:
        """
        Initialize Azure Anthropic provider.

        Required config keys:
            endpoint: Azure Anthropic API endpoint URL
            deployment_name: Azure deployment name (used as model)
        """
        self.config = config
        self.endpoint = config.get("endpoint")
        self.deployment_name = config.get("deployment_name")

        if not self.endpoint:
            raise ValueError("Azure Anthropic endpoint is required")
        if not self.deployment_name:
            raise ValueError("Azure Anthropic deployment_name is required")

        self.model = self.deployment_name
        self._configure(config)
        self.client = self._create_client(base_url=self.endpoint)

        logger.info(
            f"Initialized Azure Anthropic provider (endpoint={self.endpoint}, "
            f"deployment={self.deployment_name})"
        )


class LLMClient(LLMProvider):
    """LLM client that routes to the configured provider."""

    def __init__(self, config: dict) -> None:
        """
        Initialize LLM client.

        Args:
            config: LLM configuration (the ``llm`` section)
        """
        self.config = config
        provider_name = config.get("provider", "anthropic")

        if provider_name == "anthropic":
            self.provider: LLMProvider = AnthropicProvider(config.get("anthropic", {}))
        elif provider_name == "azure_anthropic":
            self.provider = AzureAnthropicProvider(config.get("azure_anthropic", {}))
        else:
            raise ValueError(f"Unsupported LLM provider: {provider_name}")

        logger.info(f"Initialized LLM client with provider: {provider_name}")

    async def complete(
        self, messages: list[dict], options: Optional[CompletionOptions] = None
    ) -> Completion:
        return await self.provider.complete(messages, options)
