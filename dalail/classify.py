"""
Line language classification.

The parser only asks "what kind of line is this?"; how that is decided lives
behind the ``LineClassifier`` interface so detection can be swapped without
touching block assembly.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from enum import Enum


class LineKind(str, Enum):
    PRIMARY_LANGUAGE = "primary"
    SECONDARY_LANGUAGE_A = "secondary_a"
    SECONDARY_LANGUAGE_B = "secondary_b"
    UNCLASSIFIED = "unclassified"


class LineClassifier(ABC):
    """Interface for assigning a ``LineKind`` to a line of text."""

    @abstractmethod
    def classify(self, line: str) -> LineKind:
        """Classify a single trimmed line."""

    def matches(self, line: str, kind: LineKind) -> bool:
        """Whether a line qualifies as ``kind`` on its own, ignoring precedence."""
        return self.classify(line) is kind


# Arabic, Arabic Supplement, Arabic Extended-A
ARABIC_CHARS_RE = re.compile(r"[\u0600-\u06FF\u0750-\u077F\u08A0-\u08FF]")
LETTER_CHARS_RE = re.compile(r"[A-Za-z\u0600-\u06FF]")

PRIMARY_RATIO_THRESHOLD = 0.7

# French translation lines on the source page
FRENCH_RE = re.compile(r"^Ô\s|^O\sAllah\b|\bprie\b|\bServiteur\b", re.IGNORECASE)
# English translation lines on the source page
ENGLISH_RE = re.compile(r"^O\sAllah\b|\bbless\b|\bMessenger\b", re.IGNORECASE)


def primary_ratio(line: str) -> float | None:
    """
    Ratio of Arabic-script characters to letters.

    Returns:
        The ratio, or None when the line has no letters
    """
    text = line.strip()
    letters = len(LETTER_CHARS_RE.findall(text))
    if letters == 0:
        return None
    return len(ARABIC_CHARS_RE.findall(text)) / letters


class ScriptRatioClassifier(LineClassifier):
    """
    Threshold-based classifier.

    A line is primary-language when more than ``threshold`` of its letters are
    Arabic script. Otherwise the secondary patterns are tried in order.
    """

    def __init__(
        self,
        threshold: float = PRIMARY_RATIO_THRESHOLD,
        secondary_a: re.Pattern[str] = FRENCH_RE,
        secondary_b: re.Pattern[str] = ENGLISH_RE,
    ):
        self.threshold = threshold
        self.secondary_a = secondary_a
        self.secondary_b = secondary_b

    def classify(self, line: str) -> LineKind:
        text = line.strip()
        if not text:
            return LineKind.UNCLASSIFIED

        ratio = primary_ratio(text)
        if ratio is not None and ratio > self.threshold:
            return LineKind.PRIMARY_LANGUAGE
        if self.secondary_a.search(text):
            return LineKind.SECONDARY_LANGUAGE_A
        if self.secondary_b.search(text):
            return LineKind.SECONDARY_LANGUAGE_B
        return LineKind.UNCLASSIFIED

    def matches(self, line: str, kind: LineKind) -> bool:
        text = line.strip()
        if kind is LineKind.SECONDARY_LANGUAGE_A:
            return bool(text and self.secondary_a.search(text))
        if kind is LineKind.SECONDARY_LANGUAGE_B:
            return bool(text and self.secondary_b.search(text))
        return super().matches(line, kind)
