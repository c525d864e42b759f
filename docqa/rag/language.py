"""Heuristic English/Hindi language detection.

Used to pick prompt templates and localized messages; it is not a
statistical model.
"""
import re
from dataclasses import dataclass
from typing import Tuple

DEVANAGARI = re.compile(r"[\u0900-\u097F]")
DEVANAGARI_WORD = re.compile(r"[\u0900-\u0963\u0966-\u097F]+")   # danda and double danda split words
LATIN = re.compile(r"[a-zA-Z]")

HINDI_FUNCTION_WORDS = frozenset({
    "है", "का", "को", "में", "और", "या", "नहीं", "हाँ", "क्या", "यह",
    "वह", "मैं", "तुम", "वे", "ये", "उन्होंने", "किया", "करना", "होगा", "होना",
})

DEVANAGARI_THRESHOLD = 20.0   # percent of all characters
LATIN_THRESHOLD = 80.0        # percent of all characters
HINDI_WORD_THRESHOLD = 3      # function-word matches

LANGUAGE_NAMES = {
    "en": "English",
    "hi": "Hindi",
    "mixed": "Mixed (English & Hindi)",
}


@dataclass
class LanguageDetection:
    """Detected language code with a display-only confidence."""

    language: str
    confidence: float


class LanguageDetector:
    """Character-range and function-word language heuristic."""

    @staticmethod
    def _measure(text: str) -> Tuple[float, float, int]:
        total = len(text)
        devanagari_percent = len(DEVANAGARI.findall(text)) / total * 100
        latin_percent = len(LATIN.findall(text)) / total * 100
        hindi_words = sum(1 for w in DEVANAGARI_WORD.findall(text) if w in HINDI_FUNCTION_WORDS)
        return devanagari_percent, latin_percent, hindi_words

    @classmethod
    def detect(cls, text: str) -> str:
        """Detect the language of a text.

        Args:
            text: Input text

        Returns:
            "hi" or "en"
        """
        return cls.detect_with_confidence(text).language

    @classmethod
    def detect_with_confidence(cls, text: str) -> LanguageDetection:
        """Detect the language of a text with a heuristic confidence.

        Devanagari share is checked first, then Latin share, then the
        Hindi function-word count; anything else defaults to English.
        """
        if not text or not text.strip():
            return LanguageDetection(language="en", confidence=0.5)

        devanagari_percent, latin_percent, hindi_words = cls._measure(text)

        language = "en"
        confidence = 0.5

        if devanagari_percent > DEVANAGARI_THRESHOLD:
            language = "hi"
            confidence = devanagari_percent / 100 + hindi_words * 0.1
        elif latin_percent > LATIN_THRESHOLD:
            confidence = latin_percent / 100
        elif hindi_words > HINDI_WORD_THRESHOLD:
            language = "hi"
            confidence = 0.7 + hindi_words * 0.05

        return LanguageDetection(language=language, confidence=min(1.0, confidence))

    @staticmethod
    def get_language_name(code: str) -> str:
        return LANGUAGE_NAMES.get(code, "Unknown")
