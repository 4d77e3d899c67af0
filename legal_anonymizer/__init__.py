"""
Legal Anonymizer - PII detection and consistent anonymization for legal text
"""

from .anonymizer import Anonymizer, create_anonymizer
from .linker import EntityLinker
from .merger import merge
from .models import (
    AnonymizationResult,
    AnonymizationSettings,
    ConfigurationError,
    DetectionMode,
    Entity,
    EntityStatistics,
    EntityType,
    OperationSummary,
    RecognizedSpan,
    RecognizerUnavailable
)
from .patterns import PatternDetector
from .recognizer import GlinerRecognizer, create_pipeline
from .replacement import ReplacementMap, to_letters

__version__ = "0.1.0"

__all__ = [
    "Anonymizer",
    "create_anonymizer",
    "EntityLinker",
    "merge",
    "AnonymizationResult",
    "AnonymizationSettings",
    "ConfigurationError",
    "DetectionMode",
    "Entity",
    "EntityStatistics",
    "EntityType",
    "OperationSummary",
    "RecognizedSpan",
    "RecognizerUnavailable",
    "PatternDetector",
    "GlinerRecognizer",
    "create_pipeline",
    "ReplacementMap",
    "to_letters"
]
