"""
Contextual entity recognizer: spaCy pipeline component backed by GLiNER
"""

import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

import spacy
from spacy.language import Language
from spacy.tokens import Doc, Span
from spacy.util import filter_spans

from .config import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_FILTER_FILE,
    DEFAULT_LABELS,
    DEFAULT_LANGUAGE,
    DEFAULT_OVERLAP,
    DEFAULT_RECOGNIZER_THRESHOLD,
    GLINER_MODEL_NAME,
    LABEL_MAPPING
)
from .models import EntityType, RecognizedSpan, RecognizerUnavailable
from .utils import chunk_text, deduplicate_entities, load_false_positives, load_gliner_model

logger = logging.getLogger(__name__)

COMPONENT_NAME = "legal_entity_recognizer"


@Language.factory(
    COMPONENT_NAME,
    default_config={
        "labels": DEFAULT_LABELS,
        "threshold": DEFAULT_RECOGNIZER_THRESHOLD,
        "chunk_size": DEFAULT_CHUNK_SIZE,
        "overlap": DEFAULT_OVERLAP,
        "filter_false_positives": False,
        "filter_file": DEFAULT_FILTER_FILE,
        "model_name": GLINER_MODEL_NAME
    }
)
class EntityRecognizerComponent:
    """SpaCy component tagging persons, organizations and locations"""

    def __init__(self, nlp, name, labels, threshold, chunk_size, overlap,
                 filter_false_positives, filter_file, model_name):
        self.nlp = nlp
        self.labels = list(labels)
        self.threshold = threshold
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.filter_false_positives = filter_false_positives
        self.filter_file = filter_file
        self.model_name = model_name
        # Loaded on first use; may be set directly to an injected model
        self.model = None

        if not Span.has_extension("confidence"):
            Span.set_extension("confidence", default=None)

        if not Doc.has_extension("pii_processing_metadata"):
            Doc.set_extension("pii_processing_metadata", default={})

        # Case-insensitive false positives per label
        self.false_positives = {}
        if filter_false_positives:
            for label, terms in load_false_positives(filter_file).items():
                self.false_positives[label] = set(term.lower() for term in terms)

    def _get_model(self):
        if self.model is None:
            try:
                self.model = load_gliner_model(self.model_name)
            except Exception as exc:
                raise RecognizerUnavailable(
                    f"GLiNER model {self.model_name} could not be loaded: {exc}"
                ) from exc
        return self.model

    def __call__(self, doc: Doc) -> Doc:
        metadata = {
            'chunk_boundaries': [],
            'filtered_false_positives': [],
            'unmapped_labels': [],
            'overlapping_entities_removed': [],
            'model_info': {
                'name': self.model_name,
                'threshold': self.threshold,
                'chunk_size': self.chunk_size,
                'overlap': self.overlap
            }
        }

        raw_entities, chunks = self._extract_chunked(doc.text)
        metadata['chunk_boundaries'] = chunks

        if self.filter_false_positives:
            raw_entities, filtered_out = self._filter_entities(raw_entities)
            metadata['filtered_false_positives'] = filtered_out

        spans = []
        for ent in raw_entities:
            label = LABEL_MAPPING.get(ent['label'].lower())
            if label is None:
                metadata['unmapped_labels'].append(ent['label'])
                continue
            if 'score' not in ent:
                raise ValueError(f"GLiNER entity missing score at {ent['start']}-{ent['end']}")
            span = self._char_to_token_span(doc, ent['start'], ent['end'], label, ent['score'])
            if span is not None:
                spans.append(span)

        filtered_spans = filter_spans(spans)
        metadata['overlapping_entities_removed'] = [
            {'label': s.label_, 'start': s.start_char, 'end': s.end_char}
            for s in spans if s not in filtered_spans
        ]

        doc.ents = filtered_spans
        doc._.pii_processing_metadata = metadata
        return doc

    def _extract_chunked(self, text: str) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        """Run the model chunk by chunk; return document-level entities and chunk boundaries"""
        model = self._get_model()
        all_entities = []
        chunk_boundaries = []

        for chunk_info in chunk_text(text, self.chunk_size, self.overlap):
            chunk_start = chunk_info['start']
            chunk_boundaries.append({
                'start': chunk_start,
                'end': chunk_info['end'],
                'length': len(chunk_info['text'])
            })

            entities = model.predict_entities(
                chunk_info['text'],
                self.labels,
                threshold=self.threshold
            )

            for entity in entities:
                entity = dict(entity)
                entity['start'] += chunk_start
                entity['end'] += chunk_start
                all_entities.append(entity)

        return deduplicate_entities(all_entities), chunk_boundaries

    def _filter_entities(self, entities: List[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        """Drop known false positives (case-insensitive) and report them"""
        kept = []
        filtered_out = []

        for entity in entities:
            terms = self.false_positives.get(entity['label'])
            if terms and entity['text'].strip().lower() in terms:
                filtered_out.append({'label': entity['label'], 'score': entity.get('score')})
                continue
            kept.append(entity)

        return kept, filtered_out

    def _char_to_token_span(self, doc: Doc, start_char: int, end_char: int,
                            label: str, score: float) -> Optional[Span]:
        """Convert character offsets to a token span, contracting first"""
        span = doc.char_span(start_char, end_char, label=label, alignment_mode="contract")
        if span is None:
            span = doc.char_span(start_char, end_char, label=label, alignment_mode="expand")
        if span is not None:
            span._.confidence = score
        return span


def create_pipeline(language: str = DEFAULT_LANGUAGE,
                    threshold: float = DEFAULT_RECOGNIZER_THRESHOLD,
                    filter_false_positives: bool = False,
                    filter_file: str = DEFAULT_FILTER_FILE,
                    model_name: str = GLINER_MODEL_NAME) -> Language:
    """Create a spaCy pipeline with the legal entity recognizer

    Args:
        language: Language code (en, nl, de, ...)
        threshold: GLiNER prediction threshold
        filter_false_positives: Whether to filter known false positives
        filter_file: Path to false positives JSON file
        model_name: GLiNER model id

    Returns:
        Configured spaCy Language object
    """
    nlp = spacy.blank(language)
    nlp.add_pipe("sentencizer")
    nlp.add_pipe(COMPONENT_NAME, config={
        "threshold": threshold,
        "filter_false_positives": filter_false_positives,
        "filter_file": filter_file,
        "model_name": model_name
    })
    return nlp


class GlinerRecognizer:
    """Recognizer collaborator used by the anonymizer

    detect() returns RecognizedSpan tuples or raises RecognizerUnavailable.
    A model that failed to load is not retried.
    """

    def __init__(self, model=None,
                 model_name: str = GLINER_MODEL_NAME,
                 threshold: float = DEFAULT_RECOGNIZER_THRESHOLD,
                 filter_false_positives: bool = False,
                 filter_file: str = DEFAULT_FILTER_FILE):
        self.model = model
        self.model_name = model_name
        self.threshold = threshold
        self.filter_false_positives = filter_false_positives
        self.filter_file = filter_file
        self.failure: Optional[str] = None
        self._pipelines: Dict[str, Language] = {}
        self._lock = threading.Lock()

    def is_available(self) -> bool:
        return self.failure is None

    def pipeline(self, language: str) -> Language:
        with self._lock:
            if language not in self._pipelines:
                nlp = create_pipeline(
                    language=language,
                    threshold=self.threshold,
                    filter_false_positives=self.filter_false_positives,
                    filter_file=self.filter_file,
                    model_name=self.model_name
                )
                if self.model is not None:
                    nlp.get_pipe(COMPONENT_NAME).model = self.model
                self._pipelines[language] = nlp
            return self._pipelines[language]

    def detect(self, text: str, language: str = DEFAULT_LANGUAGE) -> List[RecognizedSpan]:
        if self.failure is not None:
            raise RecognizerUnavailable(self.failure)
        if not text.strip():
            return []

        try:
            doc = self.pipeline(language)(text)
        except RecognizerUnavailable as exc:
            self.failure = str(exc)
            raise
        except Exception as exc:
            raise RecognizerUnavailable(f"Recognizer failed: {exc}") from exc

        return [
            RecognizedSpan(ent.start_char, ent.end_char, EntityType(ent.label_),
                           float(ent._.confidence if ent._.confidence is not None else 1.0))
            for ent in doc.ents
        ]
