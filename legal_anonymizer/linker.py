"""
Entity linking: group mentions that denote the same real-world entity
"""

import re
from collections import defaultdict
from typing import Dict, List, Sequence, Tuple

from .config import HONORIFICS
from .models import Entity, EntityType

LINKED_TYPES = (EntityType.PERSON, EntityType.ORGANIZATION)

_PUNCTUATION = ".,;:!?'\"()[]{}«»“”‘’-–—/\\"


def normalize(text: str, entity_type: EntityType) -> str:
    """Normalize entity text for comparison

    Names are lower-cased, stripped of honorifics and punctuation. Phone
    numbers keep only digits and a leading plus; everything else is
    case-folded with collapsed whitespace.
    """
    if entity_type in LINKED_TYPES:
        tokens = [t.strip(_PUNCTUATION) for t in text.lower().split()]
        tokens = [t for t in tokens if t]
        while len(tokens) > 1 and tokens[0] in HONORIFICS:
            tokens.pop(0)
        return " ".join(tokens)

    if entity_type is EntityType.PHONE:
        digits = re.sub(r"\D", "", text)
        return ("+" + digits) if text.strip().startswith("+") else digits

    return " ".join(text.casefold().split())


def names_match(first: str, second: str) -> bool:
    """Decide whether two normalized names refer to the same entity

    Rules:
    1. Identical -> match
    2. One is a whitespace-bounded part of the other ('doe' in 'john doe')
    3. Same surname and the shorter one's other tokens are initials of the
       longer one's tokens in order ('j doe' and 'john doe')
    """
    if not first or not second:
        return False
    if first == second:
        return True

    if f" {first} " in f" {second} " or f" {second} " in f" {first} ":
        return True

    a_tokens, b_tokens = first.split(), second.split()
    if len(a_tokens) < 2 or len(b_tokens) < 2 or a_tokens[-1] != b_tokens[-1]:
        return False
    return _initials_of(a_tokens, b_tokens) or _initials_of(b_tokens, a_tokens)


def _initials_of(short: List[str], long: List[str]) -> bool:
    if len(short) > len(long):
        return False
    for token, full in zip(short[:-1], long):
        if len(token) != 1 or token != full[0]:
            return False
    return True


class UnionFind:
    """Disjoint sets over an index arena; the root is the lowest index"""

    def __init__(self, size: int):
        self.parent = list(range(size))

    def find(self, index: int) -> int:
        root = index
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[index] != root:
            self.parent[index], index = root, self.parent[index]
        return root

    def union(self, a: int, b: int):
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return
        if root_a < root_b:
            self.parent[root_b] = root_a
        else:
            self.parent[root_a] = root_b


class EntityLinker:
    """Build equivalence classes of entity mentions"""

    def link_groups(self, entities: Sequence[Entity]) -> List[List[Entity]]:
        """Cluster mentions; each group is sorted by start, groups by first start

        Args:
            entities: Detected entities (any order)

        Returns:
            List of groups of entities believed to be the same referent
        """
        ordered = sorted(entities, key=lambda e: (e.start, e.end))
        keys = [normalize(e.text, e.entity_type) for e in ordered]
        sets = UnionFind(len(ordered))

        by_type: Dict[EntityType, List[int]] = defaultdict(list)
        for index, entity in enumerate(ordered):
            by_type[entity.entity_type].append(index)

        for entity_type, indices in by_type.items():
            if entity_type in LINKED_TYPES:
                for i, left in enumerate(indices):
                    for right in indices[i + 1:]:
                        if names_match(keys[left], keys[right]):
                            sets.union(left, right)
            else:
                first_seen: Dict[str, int] = {}
                for index in indices:
                    if keys[index] in first_seen:
                        sets.union(first_seen[keys[index]], index)
                    else:
                        first_seen[keys[index]] = index

        groups: Dict[int, List[int]] = defaultdict(list)
        for index in range(len(ordered)):
            groups[sets.find(index)].append(index)

        result = []
        for root in sorted(groups):
            canonical = keys[root]
            members = []
            for index in groups[root]:
                ordered[index].canonical = canonical
                members.append(ordered[index])
            result.append(members)
        return result

    def link(self, entities: Sequence[Entity]) -> Dict[Tuple[int, int], str]:
        """Map each entity span to the canonical key of its class"""
        mapping = {}
        for group in self.link_groups(entities):
            for entity in group:
                mapping[entity.span] = entity.canonical
        return mapping

    @staticmethod
    def matches(entity_type: EntityType, first: str, second: str) -> bool:
        """Pairwise rule on normalized keys, as used when linking"""
        if entity_type in LINKED_TYPES:
            return names_match(first, second)
        return first == second
