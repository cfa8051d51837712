"""
AI response endpoint.

The engine talks to whatever produces the companion's replies through the
ResponseEndpoint protocol. GeneratorResponder adapts any BaseGenerator.
"""

from typing import Optional, Protocol, Sequence

from companion_memory.persist.transcripts import ConversationTurn
from .generator import BaseGenerator, GenerationConfig


class ResponseEndpoint(Protocol):
    """Produces the assistant reply for a user message."""

    def respond(
        self,
        user_message: str,
        recent_history: Sequence[ConversationTurn],
        context: str,
    ) -> str:
        ...


class GeneratorResponder:
    """
    ResponseEndpoint backed by a text generator.

    The prompt holds the persona line, the recent history and the user
    message; memory context (if any) is prepended to the user message the
    same way the companion app does it.
    """

    def __init__(
        self,
        generator: BaseGenerator,
        persona: str = "You are Moxie, a friendly and encouraging robot companion for children.",
        assistant_name: str = "Moxie",
        config: Optional[GenerationConfig] = None,
    ):
        self.generator = generator
        self.persona = persona
        self.assistant_name = assistant_name
        self.config = config or GenerationConfig(max_new_tokens=256)

    def build_prompt(
        self,
        user_message: str,
        recent_history: Sequence[ConversationTurn],
        context: str,
    ) -> str:
        lines = [self.persona, ""]

        for turn in recent_history:
            speaker = "User" if turn.is_user else self.assistant_name
            lines.append(f"{speaker}: {turn.content}")

        if context:
            lines.append(f"{context}\n\n---\n\nUser: {user_message}")
        else:
            lines.append(f"User: {user_message}")

        lines.append(f"{self.assistant_name}:")
        return "\n".join(lines)

    def respond(
        self,
        user_message: str,
        recent_history: Sequence[ConversationTurn],
        context: str,
    ) -> str:
        prompt = self.build_prompt(user_message, recent_history, context)
        return self.generator.generate(prompt, self.config).text.strip()
