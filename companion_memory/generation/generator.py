"""LLM integration for memory extraction and companion responses."""
from __future__ import annotations
from typing import Dict, Optional
from dataclasses import dataclass
from abc import ABC, abstractmethod
import time


@dataclass
class GenerationConfig:
    """Configuration for text generation."""
    max_new_tokens: int = 512
    temperature: float = 0.7
    top_p: float = 0.9


@dataclass
class GeneratedResponse:
    """Container for generated response with metadata."""
    text: str
    confidence: float
    model_used: str
    prompt_length: int
    response_length: int
    processing_time: float = 0.0


class BaseGenerator(ABC):
    """Abstract base class for text generators."""

    @abstractmethod
    def generate(self, prompt: str, config: Optional[GenerationConfig] = None) -> GeneratedResponse:
        """Generate text based on the given prompt."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the generator is available and ready to use."""
        pass


class MockGenerator(BaseGenerator):
    """
    Deterministic generator for tests and offline use.

    Responses are picked by the first keyword found in the prompt
    (case-insensitive); ``default`` is returned otherwise.
    """

    def __init__(
        self,
        responses: Optional[Dict[str, str]] = None,
        default: str = "That sounds wonderful! Tell me more.",
    ):
        self.responses = responses or {}
        self.default = default
        self.prompts: list[str] = []

    def _pick(self, prompt: str) -> str:
        prompt_lower = prompt.lower()
        for keyword, response in self.responses.items():
            if keyword.lower() in prompt_lower:
                return response
        return self.default

    def generate(self, prompt: str, config: Optional[GenerationConfig] = None) -> GeneratedResponse:
        """Return the canned response matching the prompt."""
        start = time.time()
        self.prompts.append(prompt)
        response_text = self._pick(prompt)

        return GeneratedResponse(
            text=response_text,
            confidence=0.8,
            model_used="mock_generator",
            prompt_length=len(prompt),
            response_length=len(response_text),
            processing_time=time.time() - start,
        )

    def is_available(self) -> bool:
        """Mock generator is always available."""
        return True
