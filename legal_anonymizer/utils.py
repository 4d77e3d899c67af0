"""
Shared utilities for the contextual entity recognizer
"""

import json
import logging
import os
import threading
from typing import Any, Dict, List

from .config import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_OVERLAP,
    GLINER_MODEL_NAME
)

logger = logging.getLogger(__name__)

# Global model cache, one instance per model name
_cached_models: Dict[str, Any] = {}
_cache_lock = threading.Lock()


def load_gliner_model(model_name: str = GLINER_MODEL_NAME):
    """Load a GLiNER model with HuggingFace caching

    Uses HuggingFace's built-in caching mechanism which stores models
    in ~/.cache/huggingface/ by default. The loaded model is kept for the
    lifetime of the process.

    Args:
        model_name: HuggingFace model id

    Returns:
        Loaded GLiNER model
    """
    with _cache_lock:
        if model_name not in _cached_models:
            # Imported here so the package works in pattern-only mode
            # on machines without the model stack
            from gliner import GLiNER

            logger.info("Loading GLiNER model: %s", model_name)
            _cached_models[model_name] = GLiNER.from_pretrained(model_name)
        return _cached_models[model_name]


def load_false_positives(file_path: str) -> Dict[str, List[str]]:
    """Load false positives filter from JSON file

    Args:
        file_path: Path to false positives JSON file

    Returns:
        Dictionary mapping labels to lists of false positive terms
    """
    if os.path.exists(file_path):
        with open(file_path, "r", encoding="utf-8") as f:
            return json.load(f)
    logger.debug("No false positives file at %s", file_path)
    return {}


def chunk_text(text: str, chunk_size: int = DEFAULT_CHUNK_SIZE,
               overlap: int = DEFAULT_OVERLAP) -> List[Dict[str, Any]]:
    """Split text into overlapping chunks for processing

    Args:
        text: Text to chunk
        chunk_size: Size of each chunk
        overlap: Overlap between chunks

    Returns:
        List of dicts with 'text', 'start', 'end' keys
    """
    chunks = []
    text_length = len(text)
    position = 0

    while position < text_length:
        chunk_start = max(0, position - overlap) if position > 0 else 0
        chunk_end = min(position + chunk_size, text_length)

        chunks.append({
            'text': text[chunk_start:chunk_end],
            'start': chunk_start,
            'end': chunk_end
        })

        position += chunk_size

    return chunks


def deduplicate_entities(entities: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Remove predictions repeated by overlapping chunks

    The same span found in two chunks is kept once, with its best score.

    Args:
        entities: List of entity dicts with 'text', 'label', 'start', 'end', 'score'

    Returns:
        Deduplicated list sorted by position
    """
    best: Dict[tuple, Dict[str, Any]] = {}
    for entity in entities:
        key = (entity['start'], entity['end'], entity['label'])
        if key not in best or entity.get('score', 0) > best[key].get('score', 0):
            best[key] = entity
    return sorted(best.values(), key=lambda e: (e['start'], -e.get('score', 0)))
