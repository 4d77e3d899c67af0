"""
Merging of pattern and recognizer detections into one non-overlapping list
"""

import logging
from typing import Callable, Iterable, List, Sequence

from .models import DetectionMode, Entity, EntityType, NAME_TYPES

logger = logging.getLogger(__name__)

# More specific types first
TYPE_PRIORITY = [
    EntityType.LAW,
    EntityType.EMAIL,
    EntityType.PHONE,
    EntityType.CASE,
    EntityType.IDENTIFICATION,
    EntityType.TECHNICAL_IDENTIFIER,
    EntityType.MONEY,
    EntityType.DATE,
    EntityType.ORGANIZATION,
    EntityType.PERSON,
    EntityType.LOCATION,
]
_PRIORITY_INDEX = {entity_type: i for i, entity_type in enumerate(TYPE_PRIORITY)}


def type_rank(entity_type: EntityType) -> int:
    return _PRIORITY_INDEX[entity_type]


def by_position(entities: Iterable[Entity]) -> List[Entity]:
    return sorted(entities, key=lambda e: (e.start, -len(e), type_rank(e.entity_type)))


def select_ranked(entities: Iterable[Entity]) -> List[Entity]:
    """Keep the strongest of every overlapping group

    Strength is: longer span, then higher confidence, then type priority,
    then earlier start. Used for matches coming from one detector.
    """
    ranked = sorted(
        entities,
        key=lambda e: (-len(e), -e.confidence, type_rank(e.entity_type), e.start)
    )
    kept: List[Entity] = []
    for entity in ranked:
        if not any(entity.overlaps(other) for other in kept):
            kept.append(entity)
    return by_position(kept)


def hybrid_beats(candidate: Entity, rival: Entity) -> bool:
    """Return True if *candidate* should replace the overlapping *rival*"""
    if candidate.entity_type == rival.entity_type:
        if candidate.confidence != rival.confidence:
            return candidate.confidence > rival.confidence
        if candidate.start != rival.start:
            return candidate.start < rival.start
        if len(candidate) != len(rival):
            return len(candidate) > len(rival)
        return candidate.source == "pattern" and rival.source != "pattern"

    if candidate.source != rival.source:
        pattern_entity = candidate if candidate.source == "pattern" else rival
        pattern_wins = pattern_entity.entity_type not in NAME_TYPES
        return (candidate is pattern_entity) == pattern_wins

    if len(candidate) != len(rival):
        return len(candidate) > len(rival)
    if candidate.confidence != rival.confidence:
        return candidate.confidence > rival.confidence
    return type_rank(candidate.entity_type) < type_rank(rival.entity_type)


def resolve_overlaps(entities: Iterable[Entity],
                     beats: Callable[[Entity, Entity], bool] = hybrid_beats) -> List[Entity]:
    """Greedy left-to-right overlap resolution

    A candidate enters the result only if it beats every kept entity it
    overlaps; those entities are then dropped.
    """
    kept: List[Entity] = []
    for candidate in by_position(entities):
        rivals = [other for other in kept if other.overlaps(candidate)]
        if all(beats(candidate, rival) for rival in rivals):
            for rival in rivals:
                kept.remove(rival)
            kept.append(candidate)
    return by_position(kept)


def merge(pattern_entities: Sequence[Entity],
          recognizer_entities: Sequence[Entity],
          mode: DetectionMode) -> List[Entity]:
    """Combine detector outputs according to the detection mode

    Args:
        pattern_entities: Output of the pattern detector
        recognizer_entities: Output of the contextual recognizer
        mode: Which detectors contribute

    Returns:
        Entities sorted by start offset; non-overlapping in hybrid mode
    """
    mode = DetectionMode.parse(mode)

    if mode is DetectionMode.PATTERN_ONLY:
        return by_position(pattern_entities)
    if mode is DetectionMode.RECOGNIZER_ONLY:
        return by_position(recognizer_entities)

    merged = resolve_overlaps(list(pattern_entities) + list(recognizer_entities))
    dropped = len(pattern_entities) + len(recognizer_entities) - len(merged)
    if dropped:
        logger.debug("Hybrid merge dropped %d overlapping entities", dropped)
    return merged
