import asyncio
import logging
from typing import List, Optional

import openai
from openai import AsyncOpenAI

from memory_rag.core.config import settings
from memory_rag.core.exceptions import CompletionUnavailable
from .llm_service_interface import ChatTurn, CompletionResult, LLMServiceInterface, TokenUsage

logger = logging.getLogger(__name__)


class OpenAICompletionService(LLMServiceInterface):
    """Chat completions through the OpenAI API or an OpenAI-compatible server"""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.model = model or settings.COMPLETION_MODEL
        self.timeout = timeout if timeout is not None else settings.COMPLETION_TIMEOUT_SECONDS
        self.client = client or AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY or None,
            base_url=settings.OPENAI_BASE_URL,
        )

    async def complete(
        self,
        messages: List[ChatTurn],
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4000
    ) -> CompletionResult:
        payload = []
        if system_prompt:
            payload.append({"role": "system", "content": system_prompt})
        payload.extend(turn.to_dict() for turn in messages)

        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=payload,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    stream=False
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error("Completion timed out after %ss", self.timeout)
            raise CompletionUnavailable(f"Completion timed out after {self.timeout}s", service="openai") from e
        except openai.OpenAIError as e:
            logger.error("Error calling OpenAI API: %s", e)
            raise CompletionUnavailable(f"Completion failed: {e}", service="openai") from e

        if not response.choices:
            raise CompletionUnavailable("Completion returned no choices", service="openai")

        usage = TokenUsage()
        if response.usage is not None:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
            )

        return CompletionResult(
            text=response.choices[0].message.content or "",
            usage=usage,
            model=response.model or self.model,
        )

    def get_model_name(self) -> str:
        return self.model
