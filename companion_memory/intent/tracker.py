"""
Per-session intent tracking with drift detection.

The tracker keeps one SessionIntentState per conversation id. State lives in
memory only and is discarded when the session ends.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Sequence

from companion_memory.persist.transcripts import ConversationTurn
from .classifier import UNKNOWN_INTENT, IntentClassifier, IntentKind, SessionIntent


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# (current kind, detected kind) -> nudge; None as current matches any
REDIRECTION_SUGGESTIONS: Dict[tuple, str] = {
    (IntentKind.SOCIALIZING, IntentKind.LEARN):
        "I notice you're curious about learning something new! Want to start a lesson together?",
    (IntentKind.PLAY, IntentKind.LEARN):
        "Sounds like you want to learn! Should we switch to learning mode?",
    (IntentKind.LEARN, IntentKind.PLAY):
        "Ready for a break from learning? Let's have some fun!",
    (IntentKind.LEARN, IntentKind.COMFORT):
        "I can tell you might need a little break. Want to just talk for a bit?",
    (IntentKind.PLAY, IntentKind.COMFORT):
        "Is everything okay? I'm here if you need to talk.",
    (None, IntentKind.STORYTELLING):
        "Would you like me to tell you a story?",
    (IntentKind.SOCIALIZING, IntentKind.EXPLORE):
        "You seem really curious! Want to explore and discover some new things together?",
}

FALLBACK_SUGGESTION = "We were {old} a moment ago, but it sounds like you'd like some {new}. Want to switch?"


def redirection_suggestion(current: SessionIntent, detected: SessionIntent) -> str:
    """Natural-language nudge from the current intent toward the detected one."""
    suggestion = REDIRECTION_SUGGESTIONS.get((current.kind, detected.kind))
    if suggestion is None:
        suggestion = REDIRECTION_SUGGESTIONS.get((None, detected.kind))
    if suggestion is None:
        suggestion = FALLBACK_SUGGESTION.format(
            old=current.display_name.lower(),
            new=detected.display_name.lower(),
        )
    return suggestion


@dataclass
class SessionIntentState:
    """Intent bookkeeping for one live conversation session."""
    session_start: datetime
    last_checked_at: datetime
    current_intent: SessionIntent = UNKNOWN_INTENT
    confidence: float = 0.0
    messages_since_check: int = 0
    drift_detected: bool = False
    pending_intent: Optional[SessionIntent] = None
    suggestion: Optional[str] = None


class SessionIntentTracker:
    """
    Stateful wrapper around IntentClassifier.

    Example:
        >>> tracker = SessionIntentTracker(IntentClassifier())
        >>> tracker.start_session("conv_1")
        >>> tracker.on_message("conv_1")
        >>> if tracker.should_recheck("conv_1"):
        ...     tracker.recheck("conv_1", turns)
    """

    def __init__(
        self,
        classifier: Optional[IntentClassifier] = None,
        clock: Callable[[], datetime] = _utcnow,
        recheck_after_messages: int = 5,
        recheck_after_seconds: float = 180.0,
        window: int = 5,
    ):
        self.classifier = classifier or IntentClassifier(window=window)
        self.clock = clock
        self.recheck_after_messages = recheck_after_messages
        self.recheck_after_seconds = recheck_after_seconds
        self.window = window
        self._sessions: Dict[str, SessionIntentState] = {}

    def _now(self) -> datetime:
        now = self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now

    def start_session(
        self,
        conversation_id: str,
        intent: SessionIntent = UNKNOWN_INTENT,
    ) -> SessionIntentState:
        """Create (or replace) the state for a session."""
        now = self._now()
        state = SessionIntentState(session_start=now, last_checked_at=now, current_intent=intent)
        self._sessions[conversation_id] = state
        return state

    def state(self, conversation_id: str) -> Optional[SessionIntentState]:
        return self._sessions.get(conversation_id)

    def _state(self, conversation_id: str) -> SessionIntentState:
        state = self._sessions.get(conversation_id)
        if state is None:
            state = self.start_session(conversation_id)
        return state

    def on_message(self, conversation_id: str) -> None:
        self._state(conversation_id).messages_since_check += 1

    def should_recheck(self, conversation_id: str) -> bool:
        state = self._sessions.get(conversation_id)
        if state is None:
            return False

        elapsed = (self._now() - state.last_checked_at).total_seconds()
        return (
            state.messages_since_check >= self.recheck_after_messages
            or elapsed >= self.recheck_after_seconds
            or state.drift_detected
        )

    def recheck(
        self,
        conversation_id: str,
        messages: Sequence[ConversationTurn],
    ) -> SessionIntentState:
        """
        Re-classify the session and flag drift.

        The full window sets the baseline; the last ``window`` messages are
        compared against the current intent. A differing (non-Unknown)
        recent intent marks drift and surfaces a redirection suggestion
        without changing ``current_intent``.

        Args:
            conversation_id: Session to recheck
            messages: Every turn of the session so far

        Returns:
            The updated state
        """
        state = self._state(conversation_id)
        full_intent, full_confidence = self.classifier.classify_turns(messages)
        recent_intent, _ = self.classifier.classify_turns(list(messages)[-self.window:])

        current = state.current_intent
        if (
            current.kind != IntentKind.UNKNOWN
            and recent_intent.kind != IntentKind.UNKNOWN
            and not recent_intent.same_kind(current)
        ):
            state.drift_detected = True
            state.pending_intent = recent_intent
            state.suggestion = redirection_suggestion(current, recent_intent)
            logger.info(
                f"Intent drift in {conversation_id}: "
                f"{current.display_name} -> {recent_intent.display_name}"
            )
        else:
            if current.kind == IntentKind.UNKNOWN:
                state.current_intent = full_intent
            state.confidence = full_confidence
            state.drift_detected = False
            state.pending_intent = None
            state.suggestion = None

        state.messages_since_check = 0
        state.last_checked_at = self._now()
        return state

    def accept_redirection(self, conversation_id: str) -> Optional[SessionIntent]:
        """
        Adopt the detected intent and clear drift.

        Returns:
            The newly adopted intent, or None when nothing was pending
        """
        state = self._sessions.get(conversation_id)
        if state is None:
            return None

        adopted = state.pending_intent
        if adopted is not None:
            state.current_intent = adopted
        state.drift_detected = False
        state.pending_intent = None
        state.suggestion = None
        return adopted

    def dismiss_redirection(self, conversation_id: str) -> None:
        """Hide the suggestion; drift is left for the next recheck."""
        state = self._sessions.get(conversation_id)
        if state is not None:
            state.suggestion = None

    def end_session(self, conversation_id: str) -> None:
        self._sessions.pop(conversation_id, None)
