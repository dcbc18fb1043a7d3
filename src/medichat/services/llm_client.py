# src/medichat/services/llm_client.py
"""
Thin async wrapper around an OpenAI-compatible Chat Completions endpoint.

Responses are returned as plain dicts (``response.model_dump()``) so callers,
and the fakes used in tests, only depend on the wire shape:
``{"choices": [{"message": {"content": ..., "tool_calls": [...]}}]}``.

Any SDK/network failure is converted into ``LLMError`` so callers have a
single error path.
"""

from typing import Any, Dict, List, Optional
from openai import AsyncOpenAI, OpenAIError
from medichat.core.config import settings
from medichat.utils.logger import setup_logger

logger = setup_logger("LLM_CLIENT")


class LLMError(RuntimeError):
    """Raised when the model provider call fails"""


class LLMClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self._client = AsyncOpenAI(
            api_key=api_key or settings.AI_API_KEY or "missing-key",
            base_url=base_url or settings.AI_API_BASE,
            timeout=timeout or settings.AI_REQUEST_TIMEOUT,
        )

    async def chat_completion(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        temperature: float = 0,
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Args:
            messages: OpenAI-style message dicts.
            model: Provider model identifier.
            temperature: Sampling temperature.
            tools: Function-tool definitions, if any.
            tool_choice: "auto" / "none" when tools are passed.
        Returns:
            The completion as a dict.
        Raises:
            LLMError on any provider failure.
        """
        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = tool_choice or "auto"

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except OpenAIError as exc:
            logger.error(f"Chat completion failed for model {model}: {exc}")
            raise LLMError(f"Error calling model provider: {exc}") from exc

        return response.model_dump()

    async def close(self) -> None:
        await self._client.close()
