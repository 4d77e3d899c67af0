"""
Data model shared by the detectors, the linker and the anonymizer
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, NamedTuple, Optional, Tuple

from .config import (
    DEFAULT_CONFIDENCE_THRESHOLD,
    DEFAULT_ENTITY_TYPES,
    DEFAULT_LANGUAGE,
    SUPPORTED_LANGUAGES
)


class ConfigurationError(ValueError):
    """Invalid anonymization settings"""


class RecognizerUnavailable(RuntimeError):
    """The contextual entity recognizer cannot be used right now"""


class EntityType(str, Enum):
    PERSON = "PERSON"
    ORGANIZATION = "ORGANIZATION"
    LOCATION = "LOCATION"
    DATE = "DATE"
    MONEY = "MONEY"
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    CASE = "CASE"
    IDENTIFICATION = "IDENTIFICATION"
    TECHNICAL_IDENTIFIER = "TECHNICAL_IDENTIFIER"
    LAW = "LAW"

    @classmethod
    def parse(cls, value: Any) -> "EntityType":
        """Accept a member, its value or its name in any case"""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().upper().replace(" ", "_").replace("-", "_")
            # "TechnicalIdentifier" style names
            compact = {member.value.replace("_", ""): member for member in cls}
            if key in cls.__members__:
                return cls[key]
            if key.replace("_", "") in compact:
                return compact[key.replace("_", "")]
        raise ConfigurationError(f"Unknown entity type: {value!r}")

    @property
    def should_anonymize(self) -> bool:
        return self is not EntityType.LAW

    @property
    def uses_letters(self) -> bool:
        return self in (EntityType.PERSON, EntityType.ORGANIZATION)


NAME_TYPES = frozenset({EntityType.PERSON, EntityType.ORGANIZATION, EntityType.LOCATION})


class DetectionMode(str, Enum):
    PATTERN_ONLY = "pattern_only"
    RECOGNIZER_ONLY = "recognizer_only"
    HYBRID = "hybrid"

    @classmethod
    def parse(cls, value: Any) -> "DetectionMode":
        if isinstance(value, cls):
            return value
        aliases = {
            "pattern": cls.PATTERN_ONLY,
            "patterns": cls.PATTERN_ONLY,
            "recognizer": cls.RECOGNIZER_ONLY,
            "ner": cls.RECOGNIZER_ONLY,
        }
        if isinstance(value, str):
            key = value.strip().lower().replace("-", "_")
            if key in aliases:
                return aliases[key]
            for member in cls:
                if member.value == key or member.name.lower() == key:
                    return member
        raise ConfigurationError(f"Unknown detection mode: {value!r}")

    @property
    def uses_patterns(self) -> bool:
        return self is not DetectionMode.RECOGNIZER_ONLY

    @property
    def uses_recognizer(self) -> bool:
        return self is not DetectionMode.PATTERN_ONLY


class RecognizedSpan(NamedTuple):
    """What a contextual recognizer reports for one span"""
    start: int
    end: int
    entity_type: EntityType
    confidence: float


@dataclass
class Entity:
    """A detected span of the source text (half-open character offsets)"""
    entity_type: EntityType
    text: str
    start: int
    end: int
    confidence: float
    replacement: Optional[str] = None
    source: str = "pattern"
    canonical: Optional[str] = None

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Empty or inverted span: {self.start}-{self.end}")

    @property
    def span(self) -> Tuple[int, int]:
        return (self.start, self.end)

    def __len__(self) -> int:
        return self.end - self.start

    def overlaps(self, other: "Entity") -> bool:
        return self.start < other.end and other.start < self.end

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_type": self.entity_type.value,
            "text": self.text,
            "start": self.start,
            "end": self.end,
            "confidence": round(self.confidence, 3),
            "replacement": self.replacement,
            "source": self.source,
            "canonical": self.canonical
        }


@dataclass
class AnonymizationSettings:
    entity_types: FrozenSet[EntityType] = field(
        default_factory=lambda: frozenset(EntityType(t) for t in DEFAULT_ENTITY_TYPES)
    )
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD
    preserve_legal_references: bool = True
    consistent_replacement: bool = True
    language: str = DEFAULT_LANGUAGE
    mode: DetectionMode = DetectionMode.HYBRID

    def __post_init__(self):
        if isinstance(self.entity_types, (str, EntityType)):
            raise ConfigurationError("entity_types must be a collection of entity types")
        self.entity_types = frozenset(EntityType.parse(t) for t in self.entity_types)

        try:
            threshold = float(self.confidence_threshold)
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"confidence_threshold must be a number, got {self.confidence_threshold!r}"
            ) from None
        if not 0.0 <= threshold <= 1.0:
            raise ConfigurationError(f"confidence_threshold out of range [0, 1]: {threshold}")
        self.confidence_threshold = threshold

        language = str(self.language).strip().lower()
        if language not in SUPPORTED_LANGUAGES:
            raise ConfigurationError(f"Unsupported language code: {self.language!r}")
        self.language = language

        self.mode = DetectionMode.parse(self.mode)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnonymizationSettings":
        known = {"entity_types", "confidence_threshold", "preserve_legal_references",
                 "consistent_replacement", "language", "mode"}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown settings: {', '.join(sorted(unknown))}")
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_types": sorted(t.value for t in self.entity_types),
            "confidence_threshold": self.confidence_threshold,
            "preserve_legal_references": self.preserve_legal_references,
            "consistent_replacement": self.consistent_replacement,
            "language": self.language,
            "mode": self.mode.value
        }


@dataclass
class AnonymizationResult:
    original_text: str
    anonymized_text: str
    entities: List[Entity] = field(default_factory=list)
    replacements: List[Tuple[str, str]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original_text": self.original_text,
            "anonymized_text": self.anonymized_text,
            "entities": [e.to_dict() for e in self.entities],
            "replacements": [list(pair) for pair in self.replacements],
            "warnings": list(self.warnings)
        }


@dataclass
class EntityStatistics:
    entity_counts: Dict[EntityType, int] = field(default_factory=dict)
    total_entities: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_counts": {t.value: c for t, c in self.entity_counts.items()},
            "total_entities": self.total_entities
        }


@dataclass
class OperationSummary:
    """Per-call summary handed to audit subscribers"""
    operation_type: str
    entity_count: int
    entity_breakdown: Dict[str, int]
    processing_time: float

    @classmethod
    def from_entities(cls, operation_type: str, entities: Iterable[Entity],
                      processing_time: float) -> "OperationSummary":
        breakdown: Dict[str, int] = {}
        count = 0
        for entity in entities:
            breakdown[entity.entity_type.value] = breakdown.get(entity.entity_type.value, 0) + 1
            count += 1
        return cls(operation_type, count, breakdown, round(processing_time, 6))
