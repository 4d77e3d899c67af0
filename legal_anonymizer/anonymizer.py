"""
Anonymization engine: detection, linking, consistent replacement, rewriting
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, Tuple

from .config import DEFAULT_LANGUAGE, DEFAULT_MAX_WORKERS
from .linker import EntityLinker, normalize
from .merger import merge
from .models import (
    AnonymizationResult,
    AnonymizationSettings,
    ConfigurationError,
    DetectionMode,
    Entity,
    EntityStatistics,
    EntityType,
    NAME_TYPES,
    OperationSummary,
    RecognizerUnavailable
)
from .patterns import PatternDetector, replacement_token_spans
from .recognizer import GlinerRecognizer
from .replacement import ReplacementMap, StatisticsTracker

logger = logging.getLogger(__name__)

SummaryListener = Callable[[OperationSummary], None]


class Detection:
    """Outcome of steps 1-3 for one text: surviving entities plus warnings"""

    def __init__(self, entities: List[Entity], warnings: List[str]):
        self.entities = entities
        self.warnings = warnings


class Anonymizer:
    """Session-scoped anonymization engine

    One instance owns one replacement map. Independent sessions (per user,
    per test) use independent instances.
    """

    def __init__(self, recognizer=None,
                 pattern_detector: Optional[PatternDetector] = None,
                 linker: Optional[EntityLinker] = None,
                 max_workers: int = DEFAULT_MAX_WORKERS):
        self.recognizer = recognizer
        self.pattern_detector = pattern_detector or PatternDetector()
        self.linker = linker or EntityLinker()
        self.max_workers = max_workers
        self.replacement_map = ReplacementMap()
        self.statistics = StatisticsTracker()
        self._listeners: List[SummaryListener] = []

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def anonymize(self, text: str,
                  settings: Optional[AnonymizationSettings] = None) -> AnonymizationResult:
        """Anonymize one text

        Args:
            text: Input text
            settings: Anonymization settings (defaults when None)

        Returns:
            AnonymizationResult with replacements assigned
        """
        settings = settings or self.get_default_settings()
        started = time.perf_counter()
        detection = self._detect(text, settings)
        result = self._apply(text, detection, settings)
        self._emit("anonymize", result.entities, time.perf_counter() - started)
        return result

    def anonymize_batch(self, texts: Sequence[str],
                        settings: Optional[AnonymizationSettings] = None) -> List[AnonymizationResult]:
        """Anonymize several texts against one shared replacement map

        Detection runs concurrently; linking and token assignment run in
        input order so tokens do not depend on thread timing.
        """
        settings = settings or self.get_default_settings()
        texts = list(texts)
        started = time.perf_counter()

        if len(texts) > 1 and self.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                detections = list(executor.map(lambda t: self._detect(t, settings), texts))
        else:
            detections = [self._detect(t, settings) for t in texts]

        with self.replacement_map.lock:
            results = [self._apply(t, d, settings) for t, d in zip(texts, detections)]

        self._emit("anonymize_batch",
                   [e for r in results for e in r.entities],
                   time.perf_counter() - started)
        return results

    def detect_only(self, text: str, language: str = DEFAULT_LANGUAGE,
                    mode: DetectionMode = DetectionMode.HYBRID) -> List[Entity]:
        """Detect and link entities without assigning replacements

        Legal references are kept in the output so reviewers can see what
        is protected.
        """
        settings = AnonymizationSettings(
            entity_types=list(EntityType),
            confidence_threshold=0.0,
            language=language,
            mode=mode
        )
        started = time.perf_counter()
        detection = self._detect(text, settings, keep_legal=True)
        self.linker.link(detection.entities)
        self._emit("detect_only", detection.entities, time.perf_counter() - started)
        return detection.entities

    def clear(self):
        """Forget every replacement and reset statistics"""
        self.replacement_map.clear()
        self.statistics.clear()
        logger.info("Replacement map and statistics cleared")

    def get_statistics(self) -> EntityStatistics:
        return self.statistics.snapshot()

    @staticmethod
    def get_default_settings() -> AnonymizationSettings:
        return AnonymizationSettings()

    @staticmethod
    def get_entity_types() -> List[str]:
        return [entity_type.value for entity_type in EntityType]

    def subscribe(self, listener: SummaryListener):
        """Register a callback receiving an OperationSummary per call"""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    def _detect(self, text: str, settings: AnonymizationSettings,
                keep_legal: bool = False) -> Detection:
        """Steps 1-3: detect, merge, filter, protect legal references"""
        warnings: List[str] = []
        mode = settings.mode
        if not text:
            return Detection([], warnings)

        pattern_entities = []
        if mode.uses_patterns:
            pattern_entities = self.pattern_detector.detect(text, settings.language)

        recognizer_entities = []
        if mode.uses_recognizer:
            recognizer_entities, warning = self._recognize(text, settings.language)
            if warning:
                warnings.append(warning)
                if mode is DetectionMode.HYBRID:
                    mode = DetectionMode.PATTERN_ONLY

        entities = merge(pattern_entities, recognizer_entities, mode)

        tokens = replacement_token_spans(text)
        if tokens:
            entities = [e for e in entities if not _overlaps_any(e, tokens)]

        legal_spans: List[Tuple[int, int]] = []
        if settings.preserve_legal_references or keep_legal:
            legal_spans = [e.span for e in self.pattern_detector.legal_references(text, settings.language)]

        kept = []
        for entity in entities:
            if entity.entity_type is EntityType.LAW:
                if keep_legal:
                    kept.append(entity)
                continue
            if entity.entity_type not in settings.entity_types:
                continue
            if entity.confidence < settings.confidence_threshold:
                continue
            if legal_spans and _overlaps_any(entity, legal_spans):
                continue
            kept.append(entity)

        logger.debug("Detection kept %d of %d entities", len(kept), len(entities))
        return Detection(kept, warnings)

    def _recognize(self, text: str, language: str) -> Tuple[List[Entity], Optional[str]]:
        """Run the contextual recognizer; failures become a warning"""
        if self.recognizer is None:
            warning = "Contextual recognizer not configured; using pattern detection only"
            logger.warning(warning)
            return [], warning

        try:
            if hasattr(self.recognizer, "is_available") and not self.recognizer.is_available():
                raise RecognizerUnavailable("recognizer reported unavailable")
            entities = self._to_entities(text, self.recognizer.detect(text, language))
        except Exception as exc:
            warning = f"Contextual recognizer unavailable ({type(exc).__name__}); using pattern detection only"
            logger.warning("%s: %s", warning, exc)
            return [], warning
        return entities, None

    @staticmethod
    def _to_entities(text: str, spans) -> List[Entity]:
        """Keep recognizer spans of name types with valid offsets"""
        entities = []
        for start, end, label, confidence in spans:
            try:
                entity_type = EntityType.parse(label)
            except ConfigurationError:
                logger.debug("Ignoring recognizer span %s-%s with unknown label", start, end)
                continue
            if entity_type not in NAME_TYPES or not 0 <= start < end <= len(text):
                logger.debug("Ignoring recognizer span %d-%d (%s)", start, end, entity_type.value)
                continue
            entities.append(Entity(
                entity_type=entity_type,
                text=text[start:end],
                start=start,
                end=end,
                confidence=float(confidence),
                source="recognizer"
            ))
        return entities

    def _apply(self, text: str, detection: Detection,
               settings: AnonymizationSettings) -> AnonymizationResult:
        """Steps 4-8: link, assign tokens, rewrite, count"""
        entities = detection.entities
        if not entities:
            return AnonymizationResult(original_text=text, anonymized_text=text,
                                       warnings=list(detection.warnings))

        groups = self.linker.link_groups(entities)

        with self.replacement_map.lock:
            if settings.consistent_replacement:
                for group in groups:
                    first = group[0]
                    aliases = sorted({normalize(e.text, e.entity_type) for e in group})
                    token = self.replacement_map.lookup_or_allocate(
                        first.entity_type, first.canonical, aliases
                    )
                    for entity in group:
                        entity.replacement = token
            else:
                for entity in sorted(entities, key=lambda e: e.start):
                    entity.replacement = self.replacement_map.allocate(entity.entity_type)

        ordered = sorted(entities, key=lambda e: e.start)
        anonymized = text
        for entity in reversed(ordered):
            anonymized = anonymized[:entity.start] + entity.replacement + anonymized[entity.end:]

        self.statistics.record(ordered)

        return AnonymizationResult(
            original_text=text,
            anonymized_text=anonymized,
            entities=ordered,
            replacements=[(e.text, e.replacement) for e in ordered],
            warnings=list(detection.warnings)
        )

    def _emit(self, operation_type: str, entities: Sequence[Entity], elapsed: float):
        summary = OperationSummary.from_entities(operation_type, entities, elapsed)
        logger.info("%s: %d entities %s in %.3fs", summary.operation_type,
                    summary.entity_count, summary.entity_breakdown, summary.processing_time)
        for listener in self._listeners:
            try:
                listener(summary)
            except Exception:
                logger.exception("Summary listener failed for %s", operation_type)


def _overlaps_any(entity: Entity, spans: Sequence[Tuple[int, int]]) -> bool:
    return any(entity.start < end and start < entity.end for start, end in spans)


def create_anonymizer(use_recognizer: bool = True, **recognizer_options) -> Anonymizer:
    """Create an anonymizer, optionally with the GLiNER recognizer

    Args:
        use_recognizer: Attach a GlinerRecognizer (model loads on first use)
        **recognizer_options: Passed to GlinerRecognizer, ignored without one

    Returns:
        Configured Anonymizer
    """
    recognizer = GlinerRecognizer(**recognizer_options) if use_recognizer else None
    return Anonymizer(recognizer=recognizer)
