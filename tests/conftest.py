"""Shared fixtures: anonymizers without a model download, fake recognizers."""
from typing import Dict, List

import pytest

from legal_anonymizer import (
    AnonymizationSettings,
    Anonymizer,
    DetectionMode,
    EntityType,
    RecognizedSpan,
    RecognizerUnavailable,
)

SCENARIO = (
    "John Smith filed a complaint under Article 6 GDPR on 2024-03-15. "
    "Mr. Smith claimed that Acme Corporation violated his privacy rights by "
    "sharing his email address john.smith@example.com without consent."
)


class FakeRecognizer:
    """Recognizer double returning fixed spans for known substrings."""

    def __init__(self, names: Dict[str, EntityType] = None, confidence: float = 0.9,
                 error: Exception = None):
        self.names = names or {}
        self.confidence = confidence
        self.error = error
        self.calls = 0

    def is_available(self) -> bool:
        return True

    def detect(self, text: str, language: str = "en") -> List[RecognizedSpan]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        spans = []
        for name, entity_type in self.names.items():
            start = text.find(name)
            while start != -1:
                spans.append(RecognizedSpan(start, start + len(name), entity_type, self.confidence))
                start = text.find(name, start + 1)
        return spans


class FakeGlinerModel:
    """Stands in for gliner.GLiNER: predict_entities over known phrases."""

    def __init__(self, phrases: Dict[str, str], score: float = 0.9):
        self.phrases = phrases
        self.score = score
        self.calls = []

    def predict_entities(self, text, labels, threshold=0.5):
        self.calls.append((text, list(labels), threshold))
        found = []
        for phrase, label in self.phrases.items():
            start = text.find(phrase)
            while start != -1:
                found.append({
                    "text": phrase,
                    "label": label,
                    "start": start,
                    "end": start + len(phrase),
                    "score": self.score,
                })
                start = text.find(phrase, start + 1)
        return found


@pytest.fixture()
def anonymizer() -> Anonymizer:
    return Anonymizer(recognizer=None)


@pytest.fixture()
def pattern_settings() -> AnonymizationSettings:
    return AnonymizationSettings(mode=DetectionMode.PATTERN_ONLY)


@pytest.fixture()
def unavailable_recognizer() -> FakeRecognizer:
    return FakeRecognizer(error=RecognizerUnavailable("model missing"))
