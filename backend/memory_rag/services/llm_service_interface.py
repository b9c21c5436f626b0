"""
LLM Service Interface - Standardized interface for completion providers

The engine only needs one operation from an LLM: turn a role-tagged message
list (the last user turn possibly prefixed with retrieved context) into a
reply.

Supported Implementations:
    - OpenAICompletionService (OpenAI or any OpenAI-compatible server)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class ChatTurn:
    role: str  # "user" | "assistant" | "system"
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def to_dict(self) -> Dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class CompletionResult:
    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: str = "unknown"


class LLMServiceInterface(ABC):
    """Standard interface that all completion services must implement"""

    @abstractmethod
    async def complete(
        self,
        messages: List[ChatTurn],
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4000
    ) -> CompletionResult:
        """
        Generate the assistant's next turn.

        Args:
            messages: Conversation so far, oldest first, ending with the user turn
            system_prompt: Optional system instruction
            temperature: Sampling temperature (0.0-1.0). Lower = more deterministic
            max_tokens: Maximum response length in tokens

        Returns:
            CompletionResult with text, token usage and model name

        Raises:
            CompletionUnavailable: If generation fails or times out
        """
        pass

    def get_model_name(self) -> str:
        """
        Get the name of the underlying model.

        Returns:
            Model name/identifier
        """
        return "unknown"

