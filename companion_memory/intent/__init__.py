"""
Session intent classification and drift tracking.

Classifies what a conversation is for (play, learning, comfort, ...) and
notices when the most recent messages move away from it.
"""

from .classifier import IntentClassifier, IntentKind, SessionIntent, UNKNOWN_INTENT
from .tracker import SessionIntentState, SessionIntentTracker, redirection_suggestion

__all__ = [
    "IntentClassifier",
    "IntentKind",
    "SessionIntent",
    "UNKNOWN_INTENT",
    "SessionIntentState",
    "SessionIntentTracker",
    "redirection_suggestion",
]
