"""Keyword-based session intent classification."""
from __future__ import annotations
from typing import Dict, List, Optional, Sequence, Tuple
import string
from dataclasses import dataclass
from enum import Enum

from companion_memory.persist.transcripts import ConversationTurn


class IntentKind(Enum):
    """Purpose of a conversation session."""
    PLAY = "play"
    LEARN = "learn"
    COMFORT = "comfort"
    EXPLORE = "explore"
    SOCIALIZING = "socializing"
    STORYTELLING = "storytelling"
    UNKNOWN = "unknown"


DISPLAY_NAMES = {
    IntentKind.PLAY: "Playing",
    IntentKind.LEARN: "Learning",
    IntentKind.COMFORT: "Comfort & Support",
    IntentKind.EXPLORE: "Exploring",
    IntentKind.SOCIALIZING: "Chatting",
    IntentKind.STORYTELLING: "Story Time",
    IntentKind.UNKNOWN: "Unknown",
}


@dataclass(frozen=True)
class SessionIntent:
    """An intent kind, with an optional subject for Learn."""
    kind: IntentKind = IntentKind.UNKNOWN
    subject: Optional[str] = None

    @property
    def display_name(self) -> str:
        if self.kind == IntentKind.LEARN and self.subject:
            return f"Learning: {self.subject}"
        return DISPLAY_NAMES[self.kind]

    def same_kind(self, other: "SessionIntent") -> bool:
        return self.kind == other.kind


UNKNOWN_INTENT = SessionIntent(IntentKind.UNKNOWN)

SCORE_PER_MATCH = 0.3
MIN_SCORE = 0.3
COMFORT_WEIGHT = 1.2

# Iteration order doubles as the tie-break priority
INTENT_KEYWORDS: Dict[IntentKind, List[str]] = {
    IntentKind.COMFORT: [
        "sad", "scared", "worried", "upset", "lonely", "miss", "hurt", "cry",
        "afraid", "nervous", "anxious", "feel bad", "not good", "help me feel",
        "i need", "comfort me",
    ],
    IntentKind.LEARN: [
        "learn", "teach", "show me", "how to", "what is", "why", "explain",
        "help me understand", "i want to know", "can you teach", "homework",
        "study", "practice", "lesson",
    ],
    IntentKind.STORYTELLING: [
        "story", "tell me a story", "once upon", "adventure", "tale",
        "read me", "storytime", "bedtime story", "make up a story",
    ],
    IntentKind.PLAY: [
        "play", "game", "fun", "silly", "joke", "laugh", "pretend", "imagine",
        "let's play", "wanna play", "can we play",
    ],
    IntentKind.EXPLORE: [
        "what if", "curious", "wonder", "explore", "discover", "find out",
        "show me around", "let's look", "i wonder", "tell me about",
    ],
    IntentKind.SOCIALIZING: [
        "hi", "hello", "how are you", "what's up", "tell me about you",
        "let's talk", "chat", "friend", "buddy", "wanna hang out",
    ],
}

LEARN_SUBJECTS: Dict[str, List[str]] = {
    "math": ["math", "addition", "subtraction", "numbers", "counting", "multiply", "divide"],
    "science": ["science", "experiment", "animals", "plants", "space", "earth", "nature"],
    "reading": ["reading", "letters", "words", "alphabet", "spelling", "book"],
    "art": ["art", "drawing", "painting", "colors", "creative", "craft"],
    "social": ["feelings", "emotions", "friends", "sharing", "kindness", "manners"],
}

# Apostrophes stay so "let's" and "what's" survive tokenization
_STRIP_CHARS = string.punctuation.replace("'", "")


class IntentClassifier:
    """
    Scores text against per-intent keyword lists.

    Single-word keywords match whole tokens; multi-word keywords match as
    substrings of the lower-cased text. Each distinct matched keyword adds
    0.3 to its intent's score. The classifier is total: it never raises.
    """

    def __init__(self, window: int = 5):
        self.window = window

    @staticmethod
    def _tokens(text: str) -> set:
        return {token.strip(_STRIP_CHARS) for token in text.split()} - {""}

    @staticmethod
    def _matches(text: str, tokens: set, keywords: Sequence[str]) -> int:
        count = 0
        for keyword in keywords:
            if " " in keyword:
                if keyword in text:
                    count += 1
            elif keyword in tokens:
                count += 1
        return count

    def detect_subject(self, text: str) -> Optional[str]:
        """Learning subject with the most vocabulary hits, if any."""
        text = text.lower()
        tokens = self._tokens(text)
        best, best_count = None, 0
        for subject, vocabulary in LEARN_SUBJECTS.items():
            count = self._matches(text, tokens, vocabulary)
            if count > best_count:
                best, best_count = subject, count
        return best

    def scores(self, text: str) -> Dict[IntentKind, float]:
        """Raw per-intent scores for lower-cased text."""
        text = (text or "").lower()
        tokens = self._tokens(text)
        scores = {
            kind: SCORE_PER_MATCH * self._matches(text, tokens, keywords)
            for kind, keywords in INTENT_KEYWORDS.items()
        }
        scores[IntentKind.COMFORT] *= COMFORT_WEIGHT
        return scores

    def classify(self, text: str) -> Tuple[SessionIntent, float]:
        """
        Classify text into a session intent.

        Args:
            text: Concatenated user text (case-insensitive)

        Returns:
            (intent, confidence); (Unknown, 0.0) when no intent scores 0.3
        """
        if not text or not text.strip():
            return UNKNOWN_INTENT, 0.0

        best_kind, best_score = IntentKind.UNKNOWN, 0.0
        for kind, score in self.scores(text).items():
            if score > best_score:
                best_kind, best_score = kind, score

        # Float tolerance: a single match is exactly the threshold
        if best_score < MIN_SCORE - 1e-9:
            return UNKNOWN_INTENT, 0.0

        subject = self.detect_subject(text) if best_kind == IntentKind.LEARN else None
        return SessionIntent(best_kind, subject), min(best_score, 1.0)

    def classify_turns(self, turns: Sequence[ConversationTurn]) -> Tuple[SessionIntent, float]:
        """Classify the joined content of user-authored turns."""
        text = " ".join(turn.content for turn in turns if turn.is_user)
        return self.classify(text)

    def classify_recent(self, turns: Sequence[ConversationTurn]) -> Tuple[SessionIntent, float]:
        """Classify only the last ``window`` turns."""
        return self.classify_turns(list(turns)[-self.window:] if self.window > 0 else [])
