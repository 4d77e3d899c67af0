"""
Session state: replacement tokens per canonical entity and entity statistics
"""

import threading
from collections import defaultdict
from typing import Dict, Iterable, Optional, Tuple

from .config import TOKEN_FORMAT
from .linker import EntityLinker
from .models import Entity, EntityStatistics, EntityType


def to_letters(index: int) -> str:
    """Convert a 1-based index to spreadsheet-style letters (27 -> 'AA')"""
    if index < 1:
        raise ValueError(f"Letter index must be >= 1, got {index}")
    letters = ""
    while index > 0:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


def format_token(entity_type: EntityType, index: int) -> str:
    value = to_letters(index) if entity_type.uses_letters else str(index)
    return TOKEN_FORMAT.format(label=entity_type.value, index=value)


class ReplacementMap:
    """Canonical entity -> replacement token, with one counter per type

    Lives for the whole anonymization session; only clear() empties it.
    All mutation happens under one lock so token order follows call order.
    """

    def __init__(self):
        self.lock = threading.RLock()
        self.mapping: Dict[Tuple[EntityType, str], str] = {}
        self.counters: Dict[EntityType, int] = defaultdict(int)

    def __len__(self) -> int:
        return len(self.mapping)

    def get(self, entity_type: EntityType, key: str) -> Optional[str]:
        with self.lock:
            return self.mapping.get((entity_type, key))

    def allocate(self, entity_type: EntityType) -> str:
        """Next token of the type, without remembering it"""
        with self.lock:
            self.counters[entity_type] += 1
            return format_token(entity_type, self.counters[entity_type])

    def lookup_or_allocate(self, entity_type: EntityType, key: str,
                           aliases: Iterable[str] = ()) -> str:
        """Token for a canonical entity, allocating one on first sight

        Args:
            entity_type: Type of the canonical entity
            key: Canonical key (normalized text)
            aliases: Normalized forms of the other mentions in the class

        Returns:
            The replacement token
        """
        with self.lock:
            token = self._find(entity_type, key, aliases)
            if token is None:
                token = self.allocate(entity_type)
            self.mapping[(entity_type, key)] = token
            return token

    def _find(self, entity_type: EntityType, key: str, aliases: Iterable[str]) -> Optional[str]:
        candidates = [key] + [a for a in aliases if a != key]
        for candidate in candidates:
            token = self.mapping.get((entity_type, candidate))
            if token is not None:
                return token
        # A shorter form of a fuller name seen earlier ("smith" after "john smith").
        # Single-word keys are never targets, and an ambiguous short form gets a new token.
        matched = set()
        for (known_type, known_key), token in self.mapping.items():
            if known_type is not entity_type or len(known_key.split()) < 2:
                continue
            if any(len(c) < len(known_key) and EntityLinker.matches(entity_type, known_key, c)
                   for c in candidates):
                matched.add(token)
        if len(matched) == 1:
            return matched.pop()
        return None

    def clear(self):
        with self.lock:
            self.mapping.clear()
            self.counters.clear()

    def snapshot(self) -> Dict[str, str]:
        """Token per canonical key, e.g. {'PERSON:john doe': '[PERSON-A]'}"""
        with self.lock:
            return {f"{t.value}:{k}": token for (t, k), token in self.mapping.items()}


class StatisticsTracker:
    """Entity counts accumulated over the session"""

    def __init__(self):
        self.lock = threading.Lock()
        self.counts: Dict[EntityType, int] = defaultdict(int)

    def record(self, entities: Iterable[Entity]):
        with self.lock:
            for entity in entities:
                self.counts[entity.entity_type] += 1

    def snapshot(self) -> EntityStatistics:
        with self.lock:
            counts = {t: c for t, c in self.counts.items() if c}
            return EntityStatistics(entity_counts=counts, total_entities=sum(counts.values()))

    def clear(self):
        with self.lock:
            self.counts.clear()
