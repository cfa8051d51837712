"""
Ollama generator adapter for local LLM inference.

Implements BaseGenerator for the Ollama REST API. Used both as the
extraction backend and as the companion's AI response endpoint.
"""

import time
from typing import Optional

import requests

from companion_memory.generation.generator import (
    BaseGenerator,
    GeneratedResponse,
    GenerationConfig,
)


class OllamaGenerator(BaseGenerator):
    """
    Generator that uses Ollama for local LLM inference.

    Ollama must be running locally (default: http://localhost:11434).
    Availability is checked lazily so constructing the adapter never
    touches the network.
    """

    def __init__(
        self,
        model: str = "llama3",
        base_url: str = "http://localhost:11434",
        timeout: int = 60,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize Ollama generator.

        Args:
            model: Ollama model name (e.g., "llama3", "mistral", "phi")
            base_url: Ollama API base URL
            timeout: Request timeout in seconds
            session: Optional requests session (connection reuse, testing)
        """
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def is_available(self) -> bool:
        """Check if Ollama server is running."""
        try:
            response = self.session.get(f"{self.base_url}/api/tags", timeout=5)
            return response.status_code == 200
        except requests.exceptions.RequestException:
            return False

    def generate(
        self,
        prompt: str,
        config: Optional[GenerationConfig] = None,
    ) -> GeneratedResponse:
        """
        Generate text using Ollama (non-streaming).

        Raises:
            RuntimeError: If the request fails or returns a non-200 status
        """
        start_time = time.time()
        config = config or GenerationConfig()

        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": config.temperature,
                "top_p": config.top_p,
                "num_predict": config.max_new_tokens,
            },
        }

        try:
            response = self.session.post(
                f"{self.base_url}/api/generate",
                json=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise RuntimeError(f"Ollama request timed out after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise RuntimeError(
                f"Ollama request failed: {e}. Check if Ollama is running at {self.base_url}."
            ) from e

        if response.status_code != 200:
            raise RuntimeError(
                f"Ollama API returned status {response.status_code}: {response.text}"
            )

        response_text = response.json().get("response", "").strip()

        return GeneratedResponse(
            text=response_text,
            confidence=0.9,  # Ollama doesn't provide confidence scores
            model_used=self.model,
            prompt_length=len(prompt),
            response_length=len(response_text),
            processing_time=time.time() - start_time,
        )
