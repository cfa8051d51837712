"""
Text generation backends.

Used for LLM-backed memory extraction and as the companion's AI response
endpoint.
"""

from .generator import BaseGenerator, GenerationConfig, GeneratedResponse, MockGenerator
from .ollama_generator import OllamaGenerator
from .responder import GeneratorResponder, ResponseEndpoint

__all__ = [
    "BaseGenerator",
    "GenerationConfig",
    "GeneratedResponse",
    "MockGenerator",
    "OllamaGenerator",
    "GeneratorResponder",
    "ResponseEndpoint",
]
