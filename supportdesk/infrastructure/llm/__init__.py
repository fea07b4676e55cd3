"""
LLM Client Infrastructure
==========================

Chat-completion client for an OpenAI-compatible gateway.

The application layer depends on `ILLMClient`; which model answers is a
gateway concern configured through settings.
"""

import time
from typing import List, Optional
from abc import ABC, abstractmethod

from openai import AsyncOpenAI

from supportdesk.config import Settings, settings as default_settings
from supportdesk.core import LLMException, ConfigurationException
from supportdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class ChatCompletionResult:
    """Result of a chat completion."""

    def __init__(
        self,
        content: str,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        latency_ms: int
    ):
        self.content = content
        self.model = model
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.total_tokens = prompt_tokens + completion_tokens
        self.latency_ms = latency_ms


class ILLMClient(ABC):
    """Interface for chat completion."""

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 300,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """Generate a chat completion."""

    async def close(self) -> None:
        """Release network resources."""


class GatewayLLMClient(ILLMClient):
    """
    AsyncOpenAI pointed at the configured gateway base URL.

    Every call is bounded by `llm_timeout_seconds` and never retried here;
    callers fall back to raw KB text on failure.
    """

    def __init__(self, config: Optional[Settings] = None):
        config = config or default_settings
        if not config.llm_api_key:
            raise ConfigurationException("LLM gateway API key not configured")

        self._model = config.llm_model
        self._client = AsyncOpenAI(
            api_key=config.llm_api_key,
            base_url=config.llm_gateway_url,
            timeout=config.llm_timeout_seconds,
            max_retries=0,
        )

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 300,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """
        Generate a chat completion through the gateway.

        Args:
            messages: List of message dicts with 'role' and 'content'
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens to generate
            operation: Operation name for logs (support_answer, triage_summary)

        Returns:
            ChatCompletionResult with the trimmed text

        Raises:
            LLMException: If the call fails or times out
        """
        start_time = time.perf_counter()

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens
            )
        except Exception as e:
            raise LLMException(f"{operation} failed: {e}")

        latency_ms = int((time.perf_counter() - start_time) * 1000)

        content = ""
        if response.choices and response.choices[0].message.content:
            content = response.choices[0].message.content.strip()

        # Some gateways omit usage
        usage = response.usage
        prompt_tokens = usage.prompt_tokens if usage else 0
        completion_tokens = usage.completion_tokens if usage else 0

        logger.info(
            "LLM call completed",
            extra={
                "operation": operation,
                "model": response.model or self._model,
                "latency_ms": latency_ms,
                "prompt_tokens_used": prompt_tokens,
                "completion_tokens_used": completion_tokens,
            }
        )

        return ChatCompletionResult(
            content=content,
            model=response.model or self._model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            latency_ms=latency_ms
        )

    async def close(self) -> None:
        await self._client.close()


class MockLLMClient(ILLMClient):
    """
    Mock LLM client for local runs and tests.

    Answers from the first reference line of the system prompt so
    responses stay grounded in the supplied content.
    """

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 300,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """Return a deterministic response based on operation type."""
        system = str(messages[0].get("content", "")) if messages else ""

        if operation == "support_answer":
            content = "Here is what to do."
            for line in system.splitlines():
                if line.startswith("Summary: ") or line.startswith("Steps: "):
                    content = line.split(": ", 1)[1]
                    break
        elif operation == "triage_summary":
            content = "Ticket volume is within normal range. No single issue dominates."
        else:
            content = "This is a mock LLM response for testing purposes."

        return ChatCompletionResult(
            content=content,
            model="mock-model",
            prompt_tokens=100,
            completion_tokens=len(content.split()),
            latency_ms=1
        )


def build_llm_client(config: Optional[Settings] = None) -> Optional[ILLMClient]:
    """
    Build the configured client.

    Returns None when completion is disabled or the gateway key is
    missing; callers then use verbatim KB text.
    """
    config = config or default_settings

    if config.mock_llm:
        return MockLLMClient()
    if not config.llm_enabled:
        return None

    try:
        return GatewayLLMClient(config)
    except ConfigurationException as e:
        logger.warning(f"LLM client not configured: {e}")
        return None
